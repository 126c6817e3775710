"""Character-based text chunking with overlap."""

from __future__ import annotations

import logging
import re
import unicodedata
from typing import Iterator, List

from .models import Chunk

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 800
DEFAULT_OVERLAP = 120

_ZERO_WIDTH = {"\u200b", "\u200c", "\u200d", "\ufeff"}

# Horizontal whitespace, including the common Unicode spaces.
_WS_RUN_RE = re.compile("[ \t\x0b\x0c\u00a0\u2000-\u200a\u202f\u205f\u3000]{2,}")


def _is_control(ch: str) -> bool:
    code = ord(ch)
    return code <= 0x1F or 0x7F <= code <= 0x9F


def sanitize(text: str) -> str:
    """Normalize text so identical input always yields identical chunk boundaries.

    - NFC composition
    - CRLF / CR become LF
    - zero-width characters removed
    - control characters other than LF and TAB removed
    - runs of 2+ horizontal whitespace collapsed to one space
    """
    if not text:
        return ""
    s = unicodedata.normalize("NFC", text).replace("\r\n", "\n").replace("\r", "\n")
    s = "".join(
        ch for ch in s
        if ch not in _ZERO_WIDTH and (ch in "\n\t" or not _is_control(ch))
    )
    return _WS_RUN_RE.sub(" ", s)


def _effective_params(chunk_size: int, overlap: int) -> tuple[int, int]:
    if chunk_size <= 0:
        chunk_size = DEFAULT_CHUNK_SIZE
    if overlap < 0:
        overlap = 0
    if overlap >= chunk_size:
        overlap = max(0, chunk_size // 4)
    return chunk_size, overlap


# -----------------------------------------------------------------------------
# Interfaces
# -----------------------------------------------------------------------------

class Chunker:
    """Abstract base class for text chunking."""

    def iter_chunks(self, source: str, text: str) -> Iterator[Chunk]:
        raise NotImplementedError

    def chunk(self, source: str, text: str) -> List[Chunk]:
        """Chunk text into a list of Chunks with indices 0..N-1."""
        return list(self.iter_chunks(source, text))


class CharChunker(Chunker):
    """Fixed-size character windows with overlap."""

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE, overlap: int = DEFAULT_OVERLAP):
        self.chunk_size, self.overlap = _effective_params(chunk_size, overlap)

    def iter_chunks(self, source: str, text: str) -> Iterator[Chunk]:
        cleaned = sanitize(text or "")
        if not cleaned:
            return

        step = self.chunk_size - self.overlap
        start = 0
        chunk_index = 0
        total = len(cleaned)
        while start < total:
            end = min(total, start + self.chunk_size)
            piece = cleaned[start:end].strip()
            if piece:
                yield Chunk(source=source, chunk_index=chunk_index, text=piece)
                chunk_index += 1
            if end >= total:
                break
            start += step

        logger.debug(f"Chunked '{source}' into {chunk_index} chunk(s) [chunk_size={self.chunk_size}, overlap={self.overlap}]")


def chunk_text(
    source: str,
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_OVERLAP,
) -> List[Chunk]:
    """Chunk text by characters (Functional Wrapper)."""
    return CharChunker(chunk_size=chunk_size, overlap=overlap).chunk(source, text)
