"""Data models for docrag."""

from __future__ import annotations

import dataclasses
from typing import Dict, List, Optional

ID_SEPARATOR = "::"


def make_id(source: str, chunk_index: int) -> str:
    """Stable record id for a (source, chunk_index) pair."""
    return f"{source}{ID_SEPARATOR}{chunk_index}"


@dataclasses.dataclass(frozen=True)
class Chunk:
    """A contiguous slice of a source document's sanitized text."""

    source: str
    chunk_index: int
    text: str

    @property
    def id(self) -> str:
        return make_id(self.source, self.chunk_index)


@dataclasses.dataclass
class Record:
    """A chunk plus its embedding vector (the unit stored and indexed)."""

    id: str
    source: str
    chunk_index: int
    text: str
    vector: List[float]

    @classmethod
    def from_chunk(cls, chunk: Chunk, vector: List[float]) -> "Record":
        return cls(
            id=chunk.id,
            source=chunk.source,
            chunk_index=chunk.chunk_index,
            text=chunk.text,
            vector=list(vector),
        )

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "source": self.source,
            "chunkIndex": self.chunk_index,
            "text": self.text,
            "vector": [float(x) for x in self.vector],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Record":
        """Parse one persisted line.

        Raises ValueError when a required field is missing or has the wrong type.
        """
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        rid = data.get("id")
        source = data.get("source")
        text = data.get("text")
        vector = data.get("vector")
        chunk_index = data.get("chunkIndex", 0)
        if not isinstance(rid, str) or not rid:
            raise ValueError("missing 'id'")
        if not isinstance(source, str):
            raise ValueError(f"record {rid!r}: missing 'source'")
        if not isinstance(text, str):
            raise ValueError(f"record {rid!r}: missing 'text'")
        if not isinstance(vector, list) or not all(
            isinstance(x, (int, float)) and not isinstance(x, bool) for x in vector
        ):
            raise ValueError(f"record {rid!r}: 'vector' must be a list of numbers")
        if not vector:
            raise ValueError(f"record {rid!r}: 'vector' is empty")
        if isinstance(chunk_index, bool) or not isinstance(chunk_index, int):
            raise ValueError(f"record {rid!r}: 'chunkIndex' must be an integer")
        return cls(
            id=rid,
            source=source,
            chunk_index=chunk_index,
            text=text,
            vector=[float(x) for x in vector],
        )


@dataclasses.dataclass(frozen=True)
class SearchHit:
    """A search result with its cosine score."""

    id: str
    source: str
    chunk_index: int
    text: str
    score: float


@dataclasses.dataclass
class IngestResult:
    """Outcome of ingesting one file."""

    source: str
    chunks: int
    total_seconds: float = 0.0
    embed_seconds: float = 0.0
    upsert_seconds: float = 0.0
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        return dataclasses.asdict(self)


@dataclasses.dataclass
class LoadResult:
    """Outcome of streaming the store into an index."""

    path: str
    records: int
    seconds: float
    skipped: int = 0


@dataclasses.dataclass
class CompactionResult:
    """Outcome of a store compaction pass."""

    path: str
    lines_in: int
    lines_out: int
    sources: int
    skipped: int
    seconds: float
