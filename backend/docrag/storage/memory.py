"""Exact brute-force cosine index held in memory."""

from __future__ import annotations

import logging
import threading
import time
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..core.models import Record, SearchHit
from ..core.vectors import normalize
from ..errors import DimensionMismatchError
from .base import ProgressCallback, VectorIndex

logger = logging.getLogger(__name__)


class _Item:
    __slots__ = ("id", "source", "chunk_index", "text", "unit")

    def __init__(self, record: Record, unit: np.ndarray):
        self.id = record.id
        self.source = record.source
        self.chunk_index = record.chunk_index
        self.text = record.text
        self.unit = unit


class InMemoryVectorIndex(VectorIndex):
    """In-memory vector index with cosine similarity.

    Vectors are L2-normalized on the way in, so a search is one matrix-vector
    product. Every public method runs under a single re-entrant lock: a search never
    observes a partially applied batch.

    The first stored vector fixes the dimension until the index is empty again;
    vectors of any other length are rejected with DimensionMismatchError.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._items: List[_Item] = []
        self._id_to_pos: Dict[str, int] = {}
        self._matrix: Optional[np.ndarray] = None

    # -------------- writes --------------

    def upsert(self, record: Record) -> None:
        with self._lock:
            dim = self._dimension()
            unit = self._prepare(record, dim)
            self._put(record, unit)

    def upsert_all(
        self,
        records: Sequence[Record],
        log_every: int = 200,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        if not records:
            logger.info("upsert_all(): nothing to upsert")
            return
        if log_every < 1:
            log_every = 200

        with self._lock:
            start = time.perf_counter()
            before = len(self._items)
            total = len(records)
            logger.info(f"Upserting {total} records (current index size: {before}, log_every={log_every})")

            # Validate the whole batch first so a bad vector leaves the index untouched.
            dim = self._dimension()
            prepared: List[Tuple[Record, np.ndarray]] = []
            for r in records:
                unit = self._prepare(r, dim)
                dim = unit.shape[0]
                prepared.append((r, unit))

            for i, (r, unit) in enumerate(prepared, start=1):
                self._put(r, unit)
                if i % log_every == 0 or i == total:
                    elapsed = time.perf_counter() - start
                    rate = i / max(elapsed, 1e-6)
                    logger.info(
                        f"Progress {i}/{total} ({100.0 * i / total:.2f}%), "
                        f"elapsed {elapsed:.2f}s, rate {rate:.1f} items/s"
                    )
                    if progress is not None:
                        progress(i, total, elapsed)

            elapsed = time.perf_counter() - start
            after = len(self._items)
            logger.info(
                f"Upsert done: +{after - before} items ({before} -> {after}), "
                f"total {elapsed:.2f}s, throughput {total / max(elapsed, 1e-6):.1f} items/s"
            )

    def remove_source(self, source: str) -> int:
        with self._lock:
            if not self._items:
                return 0
            before = len(self._items)
            self._items = [it for it in self._items if it.source != source]
            removed = before - len(self._items)
            if removed:
                self._id_to_pos = {it.id: pos for pos, it in enumerate(self._items)}
                self._matrix = None
            logger.info(f"Removed {removed} item(s) for source '{source}'")
            return removed

    def replace_source(self, source: str, records: Sequence[Record], log_every: int = 200) -> int:
        with self._lock:
            items, id_to_pos = list(self._items), dict(self._id_to_pos)
            try:
                return super().replace_source(source, records, log_every=log_every)
            except Exception:
                self._items, self._id_to_pos, self._matrix = items, id_to_pos, None
                raise

    def clear(self) -> int:
        with self._lock:
            sources = {it.source for it in self._items}
            self._items = []
            self._id_to_pos = {}
            self._matrix = None
            logger.info(f"Cleared in-memory index ({len(sources)} sources removed)")
            return len(sources)

    # -------------- reads --------------

    def search(self, query_vector: Sequence[float], top_k: int) -> List[SearchHit]:
        with self._lock:
            if not self._items:
                return []
            t0 = time.perf_counter()
            q = normalize(query_vector)
            dim = self._dimension()
            if q.shape[0] != dim:
                raise DimensionMismatchError(
                    f"query vector has dimension {q.shape[0]}, index has {dim}"
                )

            scores = self._get_matrix() @ q
            k = min(max(1, int(top_k)), len(self._items))
            # Stable sort keeps insertion order among equal scores.
            order = np.argsort(-scores, kind="stable")[:k]
            hits = [
                SearchHit(
                    id=self._items[i].id,
                    source=self._items[i].source,
                    chunk_index=self._items[i].chunk_index,
                    text=self._items[i].text,
                    score=float(scores[i]),
                )
                for i in order
            ]
            logger.debug(
                f"search(top_k={top_k}) scanned {len(self._items)} items in "
                f"{(time.perf_counter() - t0) * 1000:.2f} ms"
            )
            return hits

    def info(self) -> Dict:
        with self._lock:
            out: Dict = {
                "count": len(self._items),
                "sources": sorted({it.source for it in self._items}),
            }
            dim = self._dimension()
            if dim is not None:
                out["dimension"] = dim
            return out

    def size(self) -> int:
        with self._lock:
            return len(self._items)

    def get(self, record_id: str) -> Optional[SearchHit]:
        """Look up a stored record by id (score is always 1.0)."""
        with self._lock:
            pos = self._id_to_pos.get(record_id)
            if pos is None:
                return None
            it = self._items[pos]
            return SearchHit(it.id, it.source, it.chunk_index, it.text, 1.0)

    def vector(self, record_id: str) -> Optional[np.ndarray]:
        """The stored unit vector for ``record_id``."""
        with self._lock:
            pos = self._id_to_pos.get(record_id)
            return None if pos is None else self._items[pos].unit.copy()

    # -------------- internals (lock held) --------------

    def _dimension(self) -> Optional[int]:
        return self._items[0].unit.shape[0] if self._items else None

    @staticmethod
    def _prepare(record: Record, dim: Optional[int]) -> np.ndarray:
        unit = normalize(record.vector)
        if unit.shape[0] == 0:
            raise DimensionMismatchError(f"record {record.id!r} has an empty vector")
        if dim is not None and unit.shape[0] != dim:
            raise DimensionMismatchError(
                f"record {record.id!r} has dimension {unit.shape[0]}, index has {dim}"
            )
        return unit

    def _put(self, record: Record, unit: np.ndarray) -> None:
        item = _Item(record, unit)
        pos = self._id_to_pos.get(record.id)
        if pos is not None:
            self._items[pos] = item
            if self._matrix is not None:
                self._matrix[pos] = unit
        else:
            self._id_to_pos[record.id] = len(self._items)
            self._items.append(item)
            self._matrix = None

    def _get_matrix(self) -> np.ndarray:
        if self._matrix is None:
            self._matrix = np.vstack([it.unit for it in self._items]).astype(np.float32)
        return self._matrix
