"""Configuration management for docrag."""

from __future__ import annotations

import copy
import os
from typing import Any, Dict, List, Mapping, Optional

from ..errors import ConfigError

DEFAULT_EXTENSIONS: List[str] = [
    "txt", "md", "csv", "json", "xml", "yaml", "yml", "properties",
    "java", "kt", "py", "js", "ts", "tsx", "sql", "gradle", "sh", "bat",
]

DEFAULT_CONFIG: Dict = {
    "library_dir": "./library",
    "ingest": {
        "extensions": list(DEFAULT_EXTENSIONS),
        "chunk_size": 800,
        "overlap": 120,
        "log_every": 50,
        "auto_save": True,
    },
    "watch": {
        "enabled": True,
        "delay_seconds": 60.0,
    },
    "compact": {
        "enabled": True,
        # nightly
        "interval_seconds": 86400.0,
    },
    "index": {
        "store": "./library/index.jsonl.gz",
        "auto_load": True,
        "load": {"clear": True, "batch_size": 200, "log_every": 100},
    },
    "retrieval": {
        "top_k": 6,
        "max_context_chars": 6000,
        "mmr": {"enabled": True, "lambda": 0.5, "overfetch": 24},
        "hints": {"max": 6},
    },
    "embedding": {
        "backend": "ollama",
        "sentence_transformers_model": "sentence-transformers/all-MiniLM-L6-v2",
    },
    "ollama": {
        "base_url": "http://localhost:11434",
        "embedding_model": "",
        "chat_model": "",
        "hints_model": "",
        "timeout": 120.0,
        "health": {
            "enabled": True,
            # fail startup when Ollama is unreachable
            "required": True,
            # fail startup when a configured model is not installed
            "require_models": True,
            "max_log_models": 100,
            "timeout": 10.0,
        },
    },
}

# env var -> (config path, converter)
_ENV_OVERRIDES = {
    "DOCRAG_LIBRARY_DIR": (("library_dir",), str),
    "DOCRAG_INGEST_EXTENSIONS": (("ingest", "extensions"), "csv"),
    "DOCRAG_CHUNK_SIZE": (("ingest", "chunk_size"), int),
    "DOCRAG_CHUNK_OVERLAP": (("ingest", "overlap"), int),
    "DOCRAG_AUTO_SAVE": (("ingest", "auto_save"), "bool"),
    "DOCRAG_WATCH_ENABLED": (("watch", "enabled"), "bool"),
    "DOCRAG_WATCH_DELAY_SECONDS": (("watch", "delay_seconds"), float),
    "DOCRAG_COMPACT_ENABLED": (("compact", "enabled"), "bool"),
    "DOCRAG_COMPACT_INTERVAL_SECONDS": (("compact", "interval_seconds"), float),
    "DOCRAG_INDEX_STORE": (("index", "store"), str),
    "DOCRAG_INDEX_AUTO_LOAD": (("index", "auto_load"), "bool"),
    "DOCRAG_TOP_K": (("retrieval", "top_k"), int),
    "DOCRAG_MAX_CONTEXT_CHARS": (("retrieval", "max_context_chars"), int),
    "DOCRAG_MMR_ENABLED": (("retrieval", "mmr", "enabled"), "bool"),
    "DOCRAG_MMR_LAMBDA": (("retrieval", "mmr", "lambda"), float),
    "DOCRAG_EMBEDDING_BACKEND": (("embedding", "backend"), str),
    "OLLAMA_BASE_URL": (("ollama", "base_url"), str),
    "OLLAMA_EMBEDDING_MODEL": (("ollama", "embedding_model"), str),
    "OLLAMA_CHAT_MODEL": (("ollama", "chat_model"), str),
    "OLLAMA_HINTS_MODEL": (("ollama", "hints_model"), str),
    "OLLAMA_HEALTH_ENABLED": (("ollama", "health", "enabled"), "bool"),
    "OLLAMA_HEALTH_REQUIRED": (("ollama", "health", "required"), "bool"),
    "OLLAMA_HEALTH_REQUIRE_MODELS": (("ollama", "health", "require_models"), "bool"),
    "OLLAMA_HEALTH_MAX_LOG_MODELS": (("ollama", "health", "max_log_models"), int),
}


def parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _convert(name: str, raw: str, kind: Any) -> Any:
    if kind == "bool":
        return parse_bool(raw)
    if kind == "csv":
        return [s.strip().lower() for s in raw.split(",") if s.strip()]
    try:
        return kind(raw.strip())
    except ValueError as e:
        raise ConfigError(f"Invalid value for {name}: {raw!r}") from e


def _set_path(cfg: Dict, path: tuple, value: Any) -> None:
    node = cfg
    for key in path[:-1]:
        node = node.setdefault(key, {})
    node[path[-1]] = value


def deep_update(base: Dict, overrides: Mapping) -> Dict:
    """Recursively merge ``overrides`` into ``base`` (in place) and return it."""
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            deep_update(base[key], value)
        else:
            base[key] = value
    return base


def load_config(
    overrides: Optional[Mapping] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Dict:
    """Load configuration.

    Returns a fresh copy of DEFAULT_CONFIG, overridden first by environment
    variables and then by ``overrides``.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    env = os.environ if environ is None else environ

    for name, (path, kind) in _ENV_OVERRIDES.items():
        raw = env.get(name)
        if raw is None or raw == "":
            continue
        _set_path(config, path, _convert(name, raw, kind))

    if overrides:
        deep_update(config, overrides)
    return config
