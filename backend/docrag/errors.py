"""Exception types shared across docrag."""

from __future__ import annotations


class DocragError(Exception):
    """Base class for all docrag errors."""


class ConfigError(DocragError):
    """Missing or invalid configuration (e.g. blank model name)."""


class LibraryPathError(DocragError):
    """A relative path is malformed or escapes the library root."""


class LibraryFileNotFound(DocragError):
    """A relative path does not point to a regular file."""


class EmbeddingUnavailableError(DocragError):
    """The embedding backend is unreachable or returned an unexpected shape."""


class ExtractionError(DocragError):
    """Text could not be extracted from a document."""


class DimensionMismatchError(DocragError):
    """Two vectors that should be compared have different lengths."""


class ChatError(DocragError):
    """The chat backend failed or returned an unexpected shape."""


class BadChatRequest(ChatError):
    """The chat request cannot be served (no messages, no user turn, no model)."""


class OllamaUnavailableError(DocragError):
    """Ollama did not answer the startup health check."""
