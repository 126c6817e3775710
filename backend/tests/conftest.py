from __future__ import annotations

import string
from pathlib import Path
from typing import List, Set

import pytest

from docrag.config import load_config
from docrag.core.embeddings import Embedder
from docrag.errors import EmbeddingUnavailableError
from docrag.indexing import IngestionService, WatchScheduler
from docrag.library import LibraryFiles
from docrag.storage import IndexFileStore, InMemoryVectorIndex

LETTERS = string.ascii_lowercase


class LetterEmbedder(Embedder):
    """Deterministic bag-of-letters embedding: one component per a-z, plus a bias."""

    def __init__(self, fail_on: Set[str] | None = None) -> None:
        self.fail_on = set(fail_on or ())
        self.calls: List[str] = []

    def embed_one(self, text: str) -> List[float]:
        self.calls.append(text)
        if text in self.fail_on:
            raise EmbeddingUnavailableError(f"cannot embed {text!r}")
        lowered = text.lower()
        return [float(lowered.count(c)) for c in LETTERS] + [0.5]


@pytest.fixture
def embedder() -> LetterEmbedder:
    return LetterEmbedder()


@pytest.fixture
def library_dir(tmp_path: Path) -> Path:
    d = tmp_path / "library"
    d.mkdir()
    return d


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "store" / "index.jsonl.gz"


@pytest.fixture
def config(library_dir: Path, store_path: Path) -> dict:
    return load_config(
        {
            "library_dir": str(library_dir),
            "index": {"store": str(store_path), "auto_load": False},
            "watch": {"enabled": False},
            "compact": {"enabled": False},
            "ollama": {"chat_model": "test-chat", "embedding_model": "test-embed", "health": {"enabled": False}},
        },
        environ={},
    )


@pytest.fixture
def files(library_dir: Path) -> LibraryFiles:
    return LibraryFiles(library_dir, ["txt", "md", "csv"])


@pytest.fixture
def index() -> InMemoryVectorIndex:
    return InMemoryVectorIndex()


@pytest.fixture
def store(store_path: Path) -> IndexFileStore:
    return IndexFileStore(store_path)


@pytest.fixture
def ingester(files, embedder, index, store) -> IngestionService:
    return IngestionService(files, embedder, index, store, chunk_size=40, overlap=10, log_every=5)


@pytest.fixture
def scheduler(files, ingester, index, store) -> WatchScheduler:
    return WatchScheduler(files, ingester, index, store, watch_delay_seconds=0.05, compact_interval_seconds=0.05)


@pytest.fixture
def write_file(library_dir: Path):
    """Write a UTF-8 file under the library root and return its path."""

    def _write(relative: str, text: str) -> Path:
        p = library_dir / relative
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text, encoding="utf-8")
        return p

    return _write
