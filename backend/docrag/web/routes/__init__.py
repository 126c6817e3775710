"""HTTP routes and the helpers they share."""

from fastapi import HTTPException, Request

from ...errors import (
    BadChatRequest,
    ConfigError,
    DocragError,
    LibraryFileNotFound,
    LibraryPathError,
)
from ..services import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def to_http(e: DocragError) -> HTTPException:
    """Map a docrag error to the HTTP status the client should see."""
    if isinstance(e, LibraryFileNotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (LibraryPathError, BadChatRequest, ConfigError)):
        return HTTPException(status_code=400, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))
