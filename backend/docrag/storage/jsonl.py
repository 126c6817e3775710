"""Newline-delimited JSON record store, optionally gzip-compressed.

Each line is one record::

    {"id": "people_food.txt::0", "source": "people_food.txt", "chunkIndex": 0,
     "text": "Alice likes sushi.", "vector": [0.12, -0.03, ...]}

Normal operation only appends, so the same id can appear many times; the last line
wins. ``compact`` rewrites the file with one line per live id. A ``.gz`` suffix on
the path turns on gzip (appends add new gzip members, which readers concatenate).
"""

from __future__ import annotations

import gzip
import io
import json
import logging
import os
import tempfile
import threading
import time
import zlib
from contextlib import contextmanager
from pathlib import Path
from typing import Collection, Dict, IO, Iterable, Iterator, List, Optional, Sequence

from ..core.models import CompactionResult, LoadResult, Record
from .base import VectorIndex

logger = logging.getLogger(__name__)

DEFAULT_STORE_PATH = "./library/index.jsonl.gz"


def pick_log_every(size: int) -> int:
    if size <= 100:
        return 25
    if size <= 1000:
        return 100
    return 250


def compact_records(records: Iterable[Record], live_sources: Collection[str]) -> List[Record]:
    """Keep the last record per id, dropping records whose source is not live.

    Output order follows the first appearance of each surviving id.
    """
    live = set(live_sources)
    latest: Dict[str, Record] = {}
    for r in records:
        if r.source not in live:
            continue
        latest[r.id] = r
    return list(latest.values())


class IndexFileStore:
    """Durable JSONL(.gz) persistence for index records.

    One lock serializes appends, rewrites, loads and compactions, so an append can
    never interleave with a rewrite of the same file.
    """

    def __init__(self, path: str | Path = DEFAULT_STORE_PATH) -> None:
        self.path = Path(path).expanduser().absolute()
        self._lock = threading.RLock()

    @property
    def is_gz(self) -> bool:
        return self.path.name.lower().endswith(".gz")

    def exists(self) -> bool:
        return self.path.is_file()

    # -------------- writing --------------

    def append_batch(self, records: Sequence[Record]) -> None:
        """Append records to the store, creating it (and its directory) if absent."""
        if not records:
            return
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            verb = "Appending" if self.path.exists() else "Creating"
            logger.info(f"{verb} {len(records)} records to {self.path}")
            t0 = time.perf_counter()
            with open(self.path, "ab") as raw:
                self._write_lines(raw, records, t0, label="Append")
                raw.flush()
                os.fsync(raw.fileno())
            logger.info(f"Append complete: {self.path} ({len(records)} records) in {time.perf_counter() - t0:.2f}s")

    def rewrite_from_batch(self, records: Sequence[Record]) -> None:
        """Replace the store with ``records`` via a temp file and an atomic rename.

        If anything fails before the rename, the temp file is removed and the old
        store is left untouched.
        """
        records = list(records or [])
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            logger.info(f"Writing {len(records)} records to {self.path}")
            t0 = time.perf_counter()
            fd, tmp_name = tempfile.mkstemp(prefix=self.path.name + ".", suffix=".tmp", dir=self.path.parent)
            try:
                with os.fdopen(fd, "wb") as raw:
                    self._write_lines(raw, records, t0, label="Write")
                    raw.flush()
                    os.fsync(raw.fileno())
                os.replace(tmp_name, self.path)
            except BaseException:
                try:
                    os.unlink(tmp_name)
                except FileNotFoundError:
                    pass
                raise
            logger.info(f"Write complete: {self.path} ({len(records)} records) in {time.perf_counter() - t0:.2f}s")

    def _write_lines(self, raw: IO[bytes], records: Sequence[Record], t0: float, label: str) -> None:
        total = len(records)
        log_every = pick_log_every(total)
        with self._text_writer(raw) as w:
            for i, r in enumerate(records, start=1):
                w.write(json.dumps(r.to_dict(), ensure_ascii=False, separators=(",", ":")))
                w.write("\n")
                if i % log_every == 0 or i == total:
                    sec = time.perf_counter() - t0
                    logger.info(
                        f"{label} progress {i}/{total} ({100.0 * i / max(total, 1):.1f}%), "
                        f"elapsed {sec:.2f}s, rate {i / max(sec, 1e-6):.1f} rec/s"
                    )

    @contextmanager
    def _text_writer(self, raw: IO[bytes]) -> Iterator[io.TextIOWrapper]:
        gz = gzip.GzipFile(fileobj=raw, mode="wb") if self.is_gz else None
        w = io.TextIOWrapper(gz if gz is not None else raw, encoding="utf-8", newline="\n")
        try:
            yield w
        finally:
            w.flush()
            w.detach()
            if gz is not None:
                gz.close()

    # -------------- reading --------------

    def iter_records(self, stats: Optional[Dict[str, int]] = None) -> Iterator[Record]:
        """Stream the records stored on disk, skipping malformed lines.

        ``stats`` (if given) receives ``lines`` and ``skipped`` counters.
        """
        counters = stats if stats is not None else {}
        counters.setdefault("lines", 0)
        counters.setdefault("skipped", 0)
        if not self.path.exists():
            return

        opener = gzip.open if self.is_gz else open
        with opener(self.path, "rt", encoding="utf-8", errors="replace") as f:
            lineno = 0
            while True:
                try:
                    line = f.readline()
                except (EOFError, OSError, zlib.error) as e:
                    # A crash during a gzip append can leave a truncated member.
                    logger.warning(f"Stopped reading {self.path} after line {lineno}: {e}")
                    counters["skipped"] += 1
                    return
                if not line:
                    return
                lineno += 1
                line = line.strip()
                if not line:
                    continue
                counters["lines"] += 1
                try:
                    yield Record.from_dict(json.loads(line))
                except ValueError as e:
                    counters["skipped"] += 1
                    logger.warning(f"Skipping malformed line {lineno} in {self.path}: {e}")

    def load_into_index(self, index: VectorIndex, batch_size: int = 200, log_every: int = 100) -> LoadResult:
        """Stream the store into ``index`` in batches of at most ``batch_size``.

        A record whose vector length differs from the index dimension (or, for an
        empty index, from the first record loaded) is skipped like a malformed line.
        """
        batch_size = max(1, batch_size)
        log_every = max(1, log_every)
        with self._lock:
            if not self.path.exists():
                logger.info(f"No index store found at {self.path} (nothing to load)")
                return LoadResult(str(self.path), 0, 0.0)

            t0 = time.perf_counter()
            total = 0
            stats: Dict[str, int] = {}
            buffer: List[Record] = []
            dim: Optional[int] = index.info().get("dimension")
            logger.info(f"Loading index from {self.path}")
            for record in self.iter_records(stats):
                if dim is None:
                    dim = len(record.vector)
                elif len(record.vector) != dim:
                    stats["skipped"] += 1
                    logger.warning(
                        f"Skipping record {record.id!r} in {self.path}: "
                        f"dimension {len(record.vector)}, index has {dim}"
                    )
                    continue
                buffer.append(record)
                if len(buffer) >= batch_size:
                    index.upsert_all(buffer, log_every=log_every)
                    total += len(buffer)
                    buffer = []
            if buffer:
                index.upsert_all(buffer, log_every=log_every)
                total += len(buffer)

            sec = time.perf_counter() - t0
            logger.info(f"Load complete: {total} records loaded into index in {sec:.2f}s ({stats['skipped']} skipped)")
            return LoadResult(str(self.path), total, sec, skipped=stats["skipped"])

    # -------------- compaction --------------

    def compact(self, live_sources: Collection[str]) -> Optional[CompactionResult]:
        """Dedupe by id (last wins) and drop dead sources, then rewrite atomically.

        Returns None when there is no store file.
        """
        with self._lock:
            if not self.path.exists():
                logger.info(f"Compaction: no store at {self.path} (skipped)")
                return None

            t0 = time.perf_counter()
            stats: Dict[str, int] = {}
            survivors = compact_records(self.iter_records(stats), live_sources)
            self.rewrite_from_batch(survivors)

            sec = time.perf_counter() - t0
            result = CompactionResult(
                path=str(self.path),
                lines_in=stats["lines"],
                lines_out=len(survivors),
                sources=len({r.source for r in survivors}),
                skipped=stats["skipped"],
                seconds=sec,
            )
            logger.info(
                f"Compaction complete: {result.lines_in} -> {result.lines_out} lines "
                f"({result.sources} sources), in {sec:.2f}s"
            )
            return result


def make_index_store(cfg: Dict) -> IndexFileStore:
    return IndexFileStore(cfg.get("index", {}).get("store", DEFAULT_STORE_PATH))
