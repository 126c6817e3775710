"""HTTP surface for docrag."""

from .app import create_app
from .services import Services, build_services

__all__ = ["create_app", "Services", "build_services"]
