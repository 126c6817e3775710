"""Ingestion routes."""

from typing import Optional

from fastapi import APIRouter, Depends

from ...errors import DocragError
from ..schemas import FileIngestResponse
from ..services import Services
from . import get_services, to_http

router = APIRouter(prefix="/ingest", tags=["ingest"])


@router.post("/file", response_model=FileIngestResponse)
def ingest_file(
    path: str,
    chunkSize: int = 800,
    overlap: int = 120,
    logEvery: int = 50,
    services: Services = Depends(get_services),
):
    """Ingest one file (path relative to the library root) and persist its records."""
    try:
        r = services.ingester.ingest_file(path, chunk_size=chunkSize, overlap=overlap, log_every=logEvery)
    except DocragError as e:
        raise to_http(e) from e
    return FileIngestResponse(
        source=r.source,
        chunks=r.chunks,
        total_seconds=r.total_seconds,
        embed_seconds=r.embed_seconds,
        upsert_seconds=r.upsert_seconds,
        index_info=services.index.info(),
    )


@router.post("/all")
def ingest_all(
    ext: Optional[str] = None,
    chunkSize: int = 800,
    overlap: int = 120,
    logEvery: int = 50,
    services: Services = Depends(get_services),
):
    """Ingest every library file whose extension is in ``ext`` (CSV; defaults apply when empty)."""
    result = services.ingester.ingest_all(ext, chunk_size=chunkSize, overlap=overlap, log_every=logEvery)
    return result.to_dict()
