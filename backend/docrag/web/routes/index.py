"""Index administration routes."""

from fastapi import APIRouter, Depends

from ...errors import DocragError
from ..services import Services
from . import get_services, to_http

router = APIRouter(prefix="/index", tags=["index"])


@router.get("/info")
def index_info(services: Services = Depends(get_services)):
    info = services.admin.index_info()
    info["store_path"] = str(services.store.path)
    return info


@router.post("/save")
def save_now(services: Services = Depends(get_services)):
    """Compact the store now: dedupe by chunk id and drop entries of deleted files."""
    try:
        return services.admin.save_now().to_dict()
    except DocragError as e:
        raise to_http(e) from e


@router.post("/load")
def load_now(
    batchSize: int = 200,
    logEvery: int = 100,
    clear: bool = True,
    services: Services = Depends(get_services),
):
    """Rebuild the in-memory index from the store."""
    try:
        return services.admin.load_now(clear=clear, batch_size=batchSize, log_every=logEvery).to_dict()
    except DocragError as e:
        raise to_http(e) from e
