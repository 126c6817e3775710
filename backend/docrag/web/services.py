"""Builds and wires the long-lived service objects from configuration."""

from __future__ import annotations

import dataclasses
from typing import Dict, Optional

from ..admin import IndexAdmin
from ..core.embeddings import Embedder, make_embedder
from ..core.extraction import TextExtractor
from ..indexing import IngestionService, WatchScheduler
from ..library import LibraryFiles, ensure_library_dir
from ..llm import ChatService, OllamaChatClient, OllamaHealthCheck, make_chat_client, make_health_check
from ..search import EntityHintExtractor, RetrievalService, make_hint_extractor, make_retrieval_service
from ..storage import IndexFileStore, InMemoryVectorIndex, make_index_store


@dataclasses.dataclass
class Services:
    config: Dict
    files: LibraryFiles
    extractor: TextExtractor
    embedder: Embedder
    index: InMemoryVectorIndex
    store: IndexFileStore
    ingester: IngestionService
    scheduler: WatchScheduler
    hints: EntityHintExtractor
    retrieval: RetrievalService
    chat: ChatService
    admin: IndexAdmin
    health: Optional[OllamaHealthCheck] = None

    def start(self) -> None:
        """Startup: check Ollama, auto-load the persisted index, then start the background jobs."""
        if self.health is not None:
            self.health.run()
        load_cfg = self.config["index"].get("load", {})
        self.admin.auto_load(
            enabled=bool(self.config["index"].get("auto_load", True)),
            clear=bool(load_cfg.get("clear", True)),
            batch_size=int(load_cfg.get("batch_size", 200)),
            log_every=int(load_cfg.get("log_every", 100)),
        )
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()


def build_services(
    cfg: Dict,
    embedder: Optional[Embedder] = None,
    chat_client: Optional[OllamaChatClient] = None,
    hints: Optional[EntityHintExtractor] = None,
    health: Optional[OllamaHealthCheck] = None,
) -> Services:
    """Create every service for ``cfg``; collaborators may be injected (tests)."""
    root = ensure_library_dir(cfg["library_dir"])
    ingest_cfg = cfg["ingest"]
    files = LibraryFiles(root, ingest_cfg.get("extensions"))
    extractor = TextExtractor()
    embedder = embedder or make_embedder(cfg)
    index = InMemoryVectorIndex()
    store = make_index_store(cfg)

    ingester = IngestionService(
        files,
        embedder,
        index,
        store,
        extractor=extractor,
        chunk_size=int(ingest_cfg.get("chunk_size", 800)),
        overlap=int(ingest_cfg.get("overlap", 120)),
        log_every=int(ingest_cfg.get("log_every", 50)),
        auto_save=bool(ingest_cfg.get("auto_save", True)),
    )
    scheduler = WatchScheduler(
        files,
        ingester,
        index,
        store,
        watch_enabled=bool(cfg["watch"].get("enabled", True)),
        watch_delay_seconds=float(cfg["watch"].get("delay_seconds", 60)),
        compact_enabled=bool(cfg["compact"].get("enabled", True)),
        compact_interval_seconds=float(cfg["compact"].get("interval_seconds", 86400)),
    )

    hints = hints or make_hint_extractor(cfg)
    retrieval = make_retrieval_service(cfg, embedder, index, hints)
    chat = ChatService(
        chat_client or make_chat_client(cfg),
        retrieval,
        default_top_k=int(cfg["retrieval"].get("top_k", 6)),
        max_context_chars=int(cfg["retrieval"].get("max_context_chars", 6000)),
    )

    return Services(
        config=cfg,
        files=files,
        extractor=extractor,
        embedder=embedder,
        index=index,
        store=store,
        ingester=ingester,
        scheduler=scheduler,
        hints=hints,
        retrieval=retrieval,
        chat=chat,
        admin=IndexAdmin(index, store, scheduler),
        health=health if health is not None else make_health_check(cfg),
    )
