"""Library browsing routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from ...errors import DocragError
from ...library import parse_extensions
from ..schemas import LibraryFile
from ..services import Services
from . import get_services, to_http

router = APIRouter(prefix="/library", tags=["library"])


@router.get("/files", response_model=List[LibraryFile])
def list_files(ext: Optional[str] = None, services: Services = Depends(get_services)):
    allowed = parse_extensions(ext) or None
    return [
        LibraryFile(path=e.relative_path, size=e.size, mtime_ns=e.mtime_ns)
        for e in services.files.list_files(allowed)
    ]


@router.get("/text", response_class=PlainTextResponse)
def file_text(path: str, services: Services = Depends(get_services)):
    """Extracted text of one library file, as it would be chunked."""
    try:
        p = services.files.require_file(services.files.normalize_relative(path))
        return services.extractor.extract(p)
    except DocragError as e:
        raise to_http(e) from e
