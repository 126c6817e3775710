"""Library ingestion: extract, chunk, embed, index, persist."""

from __future__ import annotations

import dataclasses
import logging
import time
from typing import Collection, Dict, List, Optional

from ..core import CharChunker, Embedder, IngestResult, Record, TextExtractor
from ..library import LibraryFiles, parse_extensions
from ..storage import IndexFileStore, VectorIndex

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class BatchIngestResult:
    extensions_used: List[str]
    files: int
    chunks: int
    embed_plus_upsert_seconds: float
    results: List[IngestResult]
    index_info: Dict

    def to_dict(self) -> Dict:
        return {
            "extensions_used": self.extensions_used,
            "files": self.files,
            "chunks": self.chunks,
            "embed_plus_upsert_seconds": self.embed_plus_upsert_seconds,
            "results": [r.to_dict() for r in self.results],
            "index_info": self.index_info,
        }


class IngestionService:
    """Ingests library files into the index and the on-disk store.

    For one file:
      1) extract text
      2) chunk by characters (with overlap)
      3) embed every chunk
      4) replace the source's records in the index
      5) append the new records to the store (when auto_save is on)

    Blank text, or text that yields no chunks, removes the source from the index.
    The store is append-only here; stale lines are dropped by compaction.
    """

    def __init__(
        self,
        files: LibraryFiles,
        embedder: Embedder,
        index: VectorIndex,
        store: IndexFileStore,
        extractor: Optional[TextExtractor] = None,
        chunk_size: int = 800,
        overlap: int = 120,
        log_every: int = 50,
        auto_save: bool = True,
    ) -> None:
        self.files = files
        self.embedder = embedder
        self.index = index
        self.store = store
        self.extractor = extractor or TextExtractor()
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.log_every = log_every
        self.auto_save = auto_save

    def ingest_file(
        self,
        relative_path: str,
        chunk_size: Optional[int] = None,
        overlap: Optional[int] = None,
        log_every: Optional[int] = None,
    ) -> IngestResult:
        """Ingest one file given by its path relative to the library root."""
        t0 = time.perf_counter()
        source = self.files.normalize_relative(relative_path)
        path = self.files.require_file(source)
        log_every = log_every if log_every and log_every > 0 else max(1, self.log_every)

        text = self.extractor.extract(path)
        if not text or not text.strip():
            self.index.remove_source(source)
            return IngestResult(source, 0, total_seconds=time.perf_counter() - t0)

        chunker = CharChunker(
            chunk_size=self.chunk_size if chunk_size is None else chunk_size,
            overlap=self.overlap if overlap is None else overlap,
        )
        chunks = chunker.chunk(source, text)
        logger.info(
            f"Ingesting '{source}' -> {len(chunks)} chunk(s) "
            f"[chunk_size={chunker.chunk_size}, overlap={chunker.overlap}]"
        )
        if not chunks:
            self.index.remove_source(source)
            return IngestResult(source, 0, total_seconds=time.perf_counter() - t0)

        te0 = time.perf_counter()
        batch: List[Record] = []
        for i, chunk in enumerate(chunks, start=1):
            batch.append(Record.from_chunk(chunk, self.embedder.embed_one(chunk.text)))
            if i % log_every == 0 or i == len(chunks):
                elapsed = time.perf_counter() - te0
                logger.info(
                    f"Embedding progress {i}/{len(chunks)} ({100.0 * i / len(chunks):.1f}%), "
                    f"elapsed {elapsed:.2f}s, rate {i / max(elapsed, 1e-6):.1f} items/s"
                )
        embed_seconds = time.perf_counter() - te0

        tu0 = time.perf_counter()
        self.index.replace_source(source, batch, log_every=log_every)
        upsert_seconds = time.perf_counter() - tu0

        if self.auto_save:
            ts0 = time.perf_counter()
            self.store.append_batch(batch)
            logger.info(
                f"Persisted {len(batch)} record(s) for '{source}' to {self.store.path} "
                f"in {time.perf_counter() - ts0:.2f}s"
            )
        else:
            logger.info(f"Auto-save is disabled; skipping persistence for '{source}'")

        result = IngestResult(
            source=source,
            chunks=len(chunks),
            total_seconds=time.perf_counter() - t0,
            embed_seconds=embed_seconds,
            upsert_seconds=upsert_seconds,
        )
        logger.info(
            f"Ingestion complete for '{source}': chunks={result.chunks}, total={result.total_seconds:.2f}s "
            f"(embed={result.embed_seconds:.2f}s, upsert={result.upsert_seconds:.2f}s)"
        )
        return result

    def ingest_all(
        self,
        extensions: Optional[str | Collection[str]] = None,
        chunk_size: Optional[int] = None,
        overlap: Optional[int] = None,
        log_every: Optional[int] = None,
    ) -> BatchIngestResult:
        """Ingest every library file matching the extension filter.

        An empty or missing filter falls back to the configured extensions. A failing
        file is recorded in its per-file result and does not stop the batch.
        """
        allowed = parse_extensions(extensions) or set(self.files.default_extensions)
        entries = self.files.list_files(allowed)

        results: List[IngestResult] = []
        total_chunks = 0
        total_seconds = 0.0
        for i, entry in enumerate(entries, start=1):
            path = entry.relative_path
            try:
                r = self.ingest_file(path, chunk_size=chunk_size, overlap=overlap, log_every=log_every)
            except Exception as e:
                logger.warning(f"Failed to ingest '{path}': {e}")
                results.append(IngestResult(path, 0, error=str(e) or type(e).__name__))
                continue
            total_chunks += r.chunks
            total_seconds += r.embed_seconds + r.upsert_seconds
            results.append(r)
            logger.info(
                f"Batch progress {i}/{len(entries)}: '{path}', chunks={r.chunks}, total={r.total_seconds:.2f}s"
            )

        return BatchIngestResult(
            extensions_used=sorted(allowed),
            files=len(entries),
            chunks=total_chunks,
            embed_plus_upsert_seconds=total_seconds,
            results=results,
            index_info=self.index.info(),
        )
