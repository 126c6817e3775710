"""Abstract vector index interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Sequence

from ..core.models import Record, SearchHit

# (processed, total, elapsed_seconds)
ProgressCallback = Callable[[int, int, float], None]


class VectorIndex(ABC):
    """Abstract base class for similarity indexes."""

    @abstractmethod
    def upsert(self, record: Record) -> None:
        """Insert a record, or replace the one with the same id."""
        pass

    @abstractmethod
    def upsert_all(
        self,
        records: Sequence[Record],
        log_every: int = 200,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        """Upsert a batch of records as one unit."""
        pass

    @abstractmethod
    def remove_source(self, source: str) -> int:
        """Remove every record of ``source`` and return how many were removed."""
        pass

    @abstractmethod
    def search(self, query_vector: Sequence[float], top_k: int) -> List[SearchHit]:
        """Return the ``top_k`` records most similar to ``query_vector``."""
        pass

    @abstractmethod
    def info(self) -> Dict:
        """Return ``count``, sorted ``sources`` and, when non-empty, ``dimension``."""
        pass

    def replace_source(self, source: str, records: Sequence[Record], log_every: int = 200) -> int:
        """Swap all records of ``source`` for ``records`` (default implementation)."""
        removed = self.remove_source(source)
        if records:
            self.upsert_all(records, log_every=log_every)
        return removed

    def clear(self) -> int:
        """Remove all sources (default implementation)."""
        sources = self.info().get("sources", [])
        for s in sources:
            self.remove_source(s)
        return len(sources)

    def size(self) -> int:
        return int(self.info().get("count", 0))
