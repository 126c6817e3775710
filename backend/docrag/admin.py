"""Administrative operations on the in-memory index and its on-disk store."""

from __future__ import annotations

import dataclasses
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from .core.models import CompactionResult
from .indexing.scheduler import WatchScheduler
from .storage import IndexFileStore, VectorIndex

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class SaveReport:
    store_path: str
    size_bytes_before: int
    size_bytes_after: int
    last_modified_before: Optional[str]
    last_modified_after: Optional[str]
    in_memory_chunk_count: int
    embedding_dimension: Optional[int]
    in_memory_sources: List[str]
    compaction: Optional[CompactionResult] = None

    def to_dict(self) -> Dict:
        return dataclasses.asdict(self)


@dataclasses.dataclass
class LoadReport:
    store_path: str
    loaded_records: int
    seconds: float
    in_memory_chunk_count: int
    embedding_dimension: Optional[int]
    skipped: int = 0

    def to_dict(self) -> Dict:
        return dataclasses.asdict(self)


def _safe_size(path: Path) -> int:
    try:
        return path.stat().st_size if path.exists() else -1
    except OSError:
        return -1


def _safe_mtime(path: Path) -> Optional[str]:
    try:
        if not path.exists():
            return None
        return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc).isoformat()
    except OSError:
        return None


class IndexAdmin:
    """Save-now, load-now, info and the startup auto-load."""

    def __init__(self, index: VectorIndex, store: IndexFileStore, scheduler: WatchScheduler) -> None:
        self.index = index
        self.store = store
        self.scheduler = scheduler

    def index_info(self) -> Dict:
        return self.index.info()

    def save_now(self) -> SaveReport:
        """Compact the store right away (same pass as the scheduled compaction)."""
        path = self.store.path
        size_before, mtime_before = _safe_size(path), _safe_mtime(path)

        result = self.scheduler.run_compaction()

        info = self.index.info()
        return SaveReport(
            store_path=str(path),
            size_bytes_before=size_before,
            size_bytes_after=_safe_size(path),
            last_modified_before=mtime_before,
            last_modified_after=_safe_mtime(path),
            in_memory_chunk_count=int(info.get("count", 0)),
            embedding_dimension=info.get("dimension"),
            in_memory_sources=list(info.get("sources", [])),
            compaction=result,
        )

    def load_now(self, clear: bool = True, batch_size: int = 200, log_every: int = 100) -> LoadReport:
        """Rebuild the in-memory index from the store, optionally clearing it first."""
        if clear:
            removed = self.index.clear()
            logger.info(f"Cleared in-memory index before load ({removed} sources removed)")

        r = self.store.load_into_index(self.index, batch_size=max(1, batch_size), log_every=max(1, log_every))
        info = self.index.info()
        return LoadReport(
            store_path=r.path,
            loaded_records=r.records,
            seconds=r.seconds,
            in_memory_chunk_count=int(info.get("count", 0)),
            embedding_dimension=info.get("dimension"),
            skipped=r.skipped,
        )

    def auto_load(self, enabled: bool = True, clear: bool = True, batch_size: int = 200,
                  log_every: int = 100) -> Optional[LoadReport]:
        """Startup load. Failures are logged; the service starts with what it has."""
        if not enabled:
            logger.info("Index auto-load disabled (index.auto_load=false). Skipping.")
            return None
        t0 = time.perf_counter()
        try:
            report = self.load_now(clear=clear, batch_size=batch_size, log_every=log_every)
        except Exception as e:
            logger.warning(f"Index auto-load failed: {e}")
            return None
        logger.info(
            f"Auto-load complete from {report.store_path}: loaded {report.loaded_records} records "
            f"in {time.perf_counter() - t0:.2f}s (in-memory chunks={report.in_memory_chunk_count}, "
            f"dim={report.embedding_dimension})"
        )
        return report
