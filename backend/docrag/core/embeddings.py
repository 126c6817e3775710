"""Embedding models for semantic search."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from ..errors import ConfigError, EmbeddingUnavailableError

logger = logging.getLogger(__name__)


class Embedder:
    """Abstract base class for embedding models."""

    def embed(self, texts: List[str]) -> List[List[float]]:
        """Embed multiple texts into vectors."""
        return [self.embed_one(t) for t in texts]

    def embed_one(self, text: str) -> List[float]:
        """Embed a single text into a vector."""
        raise NotImplementedError


class OllamaEmbedder(Embedder):
    """Embedder backed by an Ollama server.

    Prefers ``POST /api/embed`` with ``{"model", "input"}``. When that endpoint is
    missing (older servers) or answers with an unexpected shape, retries once against
    ``POST /api/embeddings`` with ``{"model", "prompt"}``.
    """

    def __init__(
        self,
        base_url: str,
        model: Optional[str],
        timeout: float = 120.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = (model or "").strip()
        self.timeout = timeout
        self.session = session or requests.Session()
        if not self.model:
            logger.warning("No embedding model configured (ollama.embedding_model is empty)")
        else:
            logger.info(f"OllamaEmbedder using model: {self.model}")

    def embed_one(self, text: str) -> List[float]:
        if not self.model:
            raise ConfigError("Embedding model is not configured (ollama.embedding_model)")

        try:
            response = self.session.post(
                f"{self.base_url}/api/embed",
                json={"model": self.model, "input": text},
                timeout=self.timeout,
            )
            response.raise_for_status()
            vec = extract_embedding(response.json())
            if vec is not None:
                return vec
            logger.debug("Unexpected /api/embed response shape, attempting /api/embeddings fallback")
            return self._embed_fallback(text)
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else "?"
            logger.debug(f"Primary /api/embed failed with {status}, trying /api/embeddings")
            return self._embed_fallback(text)
        except EmbeddingUnavailableError:
            raise
        except (requests.RequestException, ValueError) as e:
            raise EmbeddingUnavailableError(f"Embedding request failed: {e}") from e

    def _embed_fallback(self, text: str) -> List[float]:
        try:
            response = self.session.post(
                f"{self.base_url}/api/embeddings",
                json={"model": self.model, "prompt": text},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise EmbeddingUnavailableError(f"Embedding fallback request failed: {e}") from e

        vec = extract_embedding(data)
        if vec is None:
            raise EmbeddingUnavailableError("Could not parse embedding from /api/embeddings response")
        return vec


def extract_embedding(data: Any) -> Optional[List[float]]:
    """Pull a single vector out of an embedding response.

    Accepts ``{"embeddings": [...]}``, ``{"embeddings": [[...], ...]}`` (first row)
    and ``{"embedding": [...]}``. Returns None for any other shape.
    """
    if not isinstance(data, dict):
        return None

    value = data.get("embeddings")
    if isinstance(value, list):
        if value and isinstance(value[0], list):
            value = value[0]
        return _to_floats(value)

    value = data.get("embedding")
    if isinstance(value, list):
        return _to_floats(value)
    return None


def _to_floats(values: List[Any]) -> Optional[List[float]]:
    if not values:
        return None
    try:
        return [float(v) for v in values]
    except (TypeError, ValueError):
        return None


class SentenceTransformersEmbedder(Embedder):
    """Embedder using SentenceTransformers library."""

    def __init__(self, model_name: str) -> None:
        from sentence_transformers import SentenceTransformer  # type: ignore
        self.model = SentenceTransformer(model_name)

    def embed(self, texts: List[str]) -> List[List[float]]:
        """Embed texts using SentenceTransformers model."""
        arr = self.model.encode(texts, normalize_embeddings=True, show_progress_bar=False)
        return [row.tolist() for row in arr]

    def embed_one(self, text: str) -> List[float]:
        return self.embed([text])[0]


def make_embedder(cfg: Dict) -> Embedder:
    """Create embedder from config.

    Raises:
        ConfigError: If backend is invalid or dependencies are missing
    """
    emb_cfg = cfg.get("embedding", {})
    backend = str(emb_cfg.get("backend", "ollama")).strip().lower()

    if backend == "ollama":
        ollama_cfg = cfg.get("ollama", {})
        return OllamaEmbedder(
            base_url=ollama_cfg.get("base_url", "http://localhost:11434"),
            model=ollama_cfg.get("embedding_model"),
            timeout=float(ollama_cfg.get("timeout", 120)),
        )

    if backend == "sentence_transformers":
        model_name = emb_cfg.get("sentence_transformers_model", "all-MiniLM-L6-v2")
        try:
            return SentenceTransformersEmbedder(model_name)
        except ImportError as e:
            raise ConfigError(
                "sentence-transformers is not installed. "
                "Run: pip install 'docrag[sentence-transformers]'"
            ) from e

    raise ConfigError(f"Invalid embedding.backend: {backend!r}")
