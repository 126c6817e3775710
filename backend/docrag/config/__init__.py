"""Configuration management for docrag."""

from .manager import (
    DEFAULT_CONFIG,
    DEFAULT_EXTENSIONS,
    deep_update,
    load_config,
    parse_bool,
)

__all__ = [
    "DEFAULT_CONFIG",
    "DEFAULT_EXTENSIONS",
    "deep_update",
    "load_config",
    "parse_bool",
]
