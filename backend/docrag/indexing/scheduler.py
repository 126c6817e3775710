"""Background jobs keeping the index and the store in sync with the library."""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from typing import Callable, Collection, Dict, List, Optional

from ..core.models import CompactionResult
from ..library import FileMeta, LibraryFiles, parse_extensions
from ..storage import IndexFileStore, VectorIndex
from .ingestion import IngestionService

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class ScanResult:
    new_or_changed: int
    removed: int
    failed: int
    seconds: float


class WatchScheduler:
    """Periodically scans the library folder and:

    - ingests new or changed files (by size and mtime),
    - removes index entries for deleted files,
    - compacts the on-disk store on a long interval (deduplicate, drop removed sources).

    Overlapping runs of the same job are skipped, not queued. A failing run is logged
    and the next scheduled run proceeds normally. Scan and compaction may run at the
    same time; the store's own lock keeps their writes apart.
    """

    def __init__(
        self,
        files: LibraryFiles,
        ingester: IngestionService,
        index: VectorIndex,
        store: IndexFileStore,
        extensions: Optional[Collection[str]] = None,
        watch_enabled: bool = True,
        watch_delay_seconds: float = 60.0,
        compact_enabled: bool = True,
        compact_interval_seconds: float = 86400.0,
    ) -> None:
        self.files = files
        self.ingester = ingester
        self.index = index
        self.store = store
        self.extensions = parse_extensions(extensions) or set(files.default_extensions)
        self.watch_enabled = watch_enabled
        self.watch_delay_seconds = watch_delay_seconds
        self.compact_enabled = compact_enabled
        self.compact_interval_seconds = compact_interval_seconds

        self._state: Dict[str, FileMeta] = {}
        self._state_lock = threading.Lock()
        self._scan_guard = threading.Lock()
        self._compact_guard = threading.Lock()
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []

    # -------- tracked file state --------

    def tracked(self) -> Dict[str, FileMeta]:
        with self._state_lock:
            return dict(self._state)

    # -------- periodic scan (new/changed/deleted) --------

    def run_scan(self) -> Optional[ScanResult]:
        """Run one scan now. Returns None when a scan is already running."""
        if not self._scan_guard.acquire(blocking=False):
            logger.debug("Watch scan already running; skipped")
            return None
        try:
            return self._scan()
        finally:
            self._scan_guard.release()

    def _scan(self) -> ScanResult:
        t0 = time.perf_counter()
        current = self.files.list_files(self.extensions)
        seen = set()
        new_or_changed = 0
        failed = 0

        for entry in current:
            path = entry.relative_path
            seen.add(path)
            meta = entry.meta
            with self._state_lock:
                prev = self._state.get(path)
            if prev == meta:
                continue

            logger.info(f"Detected {'new' if prev is None else 'changed'} file: '{path}'")
            try:
                res = self.ingester.ingest_file(path)
            except Exception as e:
                # prior meta stays, so the next scan retries
                failed += 1
                logger.warning(f"Failed to ingest '{path}': {e}")
                continue
            with self._state_lock:
                self._state[path] = meta
            new_or_changed += 1
            logger.info(f"Ingested '{path}': {res.chunks} chunks in {res.total_seconds:.2f}s")

        removed = 0
        with self._state_lock:
            gone = [p for p in self._state if p not in seen]
        for path in gone:
            self.index.remove_source(path)
            with self._state_lock:
                self._state.pop(path, None)
            removed += 1
            logger.info(f"Removed index for deleted file '{path}'")

        sec = time.perf_counter() - t0
        if new_or_changed or removed or failed:
            logger.info(f"Watch scan done: {new_or_changed} updated/new, {removed} removed, {failed} failed, in {sec:.2f}s")
        else:
            logger.debug(f"Watch scan: no changes ({sec:.2f}s)")
        return ScanResult(new_or_changed, removed, failed, sec)

    def scan_and_ingest(self) -> Optional[ScanResult]:
        """Scheduled entry point: like run_scan but never raises."""
        if not self.watch_enabled:
            return None
        try:
            return self.run_scan()
        except Exception as e:
            logger.warning(f"Watch scan failed: {e}")
            return None

    # -------- compaction (dedupe + drop missing sources) --------

    def run_compaction(self) -> Optional[CompactionResult]:
        """Compact the store now against a fresh library listing.

        Returns None when there is no store or a compaction is already running.
        """
        if not self._compact_guard.acquire(blocking=False):
            logger.debug("Compaction already running; skipped")
            return None
        try:
            if not self.store.exists():
                logger.info(f"Compaction: no store at {self.store.path} (skipped)")
                return None
            live = self.files.live_sources(self.extensions)
            return self.store.compact(live)
        finally:
            self._compact_guard.release()

    def compact_store(self) -> Optional[CompactionResult]:
        """Scheduled entry point: like run_compaction but never raises."""
        if not self.compact_enabled:
            return None
        try:
            return self.run_compaction()
        except Exception as e:
            logger.warning(f"Compaction failed: {e}")
            return None

    # -------- lifecycle --------

    def start(self) -> None:
        if self._threads:
            return
        self._stop.clear()
        if self.watch_enabled:
            self._spawn("docrag-watch", self.scan_and_ingest, self.watch_delay_seconds, run_first=True)
        if self.compact_enabled:
            self._spawn("docrag-compact", self.compact_store, self.compact_interval_seconds, run_first=False)
        logger.info(
            f"Scheduler started (watch={self.watch_enabled} every {self.watch_delay_seconds}s, "
            f"compact={self.compact_enabled} every {self.compact_interval_seconds}s)"
        )

    def stop(self, timeout: Optional[float] = 10.0) -> None:
        self._stop.set()
        for t in self._threads:
            t.join(timeout)
        self._threads = []
        logger.info("Scheduler stopped")

    def _spawn(self, name: str, job: Callable[[], object], delay: float, run_first: bool) -> None:
        def _loop() -> None:
            if run_first and not self._stop.is_set():
                job()
            # fixed delay between the end of one run and the start of the next
            while not self._stop.wait(max(delay, 0.01)):
                job()

        t = threading.Thread(target=_loop, name=name, daemon=True)
        self._threads.append(t)
        t.start()
