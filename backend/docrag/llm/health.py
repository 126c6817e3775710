"""Startup check that Ollama answers and has the configured models installed."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

import requests

from ..errors import ConfigError, OllamaUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class InstalledModel:
    name: Optional[str]
    # usually the tagged form, e.g. "llama3:8b"
    model: Optional[str] = None
    parameter_size: Optional[str] = None
    quantization: Optional[str] = None

    def pretty(self) -> str:
        extras = [self.model] if self.model and self.model != self.name else []
        extras += [x for x in (self.parameter_size, self.quantization) if x]
        label = self.name or self.model or "?"
        return f"{label} ({', '.join(extras)})" if extras else label


@dataclass
class HealthReport:
    base_url: str
    reachable: bool
    installed: List[str] = field(default_factory=list)
    # None when the embedding model is not served by Ollama
    embedding_ok: Optional[bool] = None
    chat_ok: bool = False
    version: Optional[str] = None


def canonical_names(name: Optional[str]) -> Set[str]:
    """Lowercased ``name`` plus its tagless form and the tail after the last ``/``."""
    out: Set[str] = set()
    if not name or not name.strip():
        return out
    lc = name.strip().lower()
    out.add(lc)
    if lc.find(":") > 0:
        out.add(lc.split(":", 1)[0])
    if "/" in lc:
        tail = lc.rsplit("/", 1)[1]
        out.add(tail)
        if tail.find(":") > 0:
            out.add(tail.split(":", 1)[0])
    out.discard("")
    return out


def is_installed(configured: Optional[str], canonical: Set[str]) -> bool:
    """Whether a configured model name matches one of the canonical installed names.

    A configured tag also matches a tagless install, and a configured name without a
    tag matches ``name:latest``.
    """
    if not configured or not configured.strip():
        return False
    lc = configured.strip().lower()
    if lc in canonical:
        return True
    if lc.find(":") > 0 and lc.split(":", 1)[0] in canonical:
        return True
    return ":" not in lc and f"{lc}:latest" in canonical


def parse_tags(data) -> List[InstalledModel]:
    """Models listed by an ``/api/tags`` answer; unknown shapes give an empty list."""
    if not isinstance(data, dict) or not isinstance(data.get("models"), list):
        return []
    out = []
    for m in data["models"]:
        if not isinstance(m, dict):
            continue
        details = m.get("details") if isinstance(m.get("details"), dict) else {}
        out.append(
            InstalledModel(
                name=m.get("name"),
                model=m.get("model"),
                parameter_size=details.get("parameter_size"),
                quantization=details.get("quantization_level"),
            )
        )
    return out


def _shown(name: Optional[str]) -> str:
    return name.strip() if name and name.strip() else "-"


class OllamaHealthCheck:
    """Verifies at startup that Ollama is reachable and the configured models exist.

    With ``required`` off an unreachable server only logs a warning. With
    ``require_models`` off missing models are reported but do not stop startup.
    Pass ``embedding_model=None`` when embeddings come from another backend.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        embedding_model: Optional[str] = "",
        chat_model: str = "",
        required: bool = True,
        require_models: bool = True,
        max_log_models: int = 100,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.embedding_model = embedding_model
        self.chat_model = chat_model
        self.required = required
        self.require_models = require_models
        self.max_log_models = max(0, max_log_models)
        self.timeout = timeout
        self.session = session or requests.Session()

    def run(self) -> HealthReport:
        """Run the check and log what was found.

        Raises:
            OllamaUnavailableError: If Ollama cannot be reached and the check is required
            ConfigError: If a configured model is missing and models are required
        """
        logger.info(f"Checking Ollama at {self.base_url}")
        try:
            models = self.fetch_installed_models()
        except (requests.RequestException, ValueError) as e:
            msg = f"Ollama not reachable at {self.base_url} ({type(e).__name__}: {e})"
            if self.required:
                raise OllamaUnavailableError(msg) from e
            logger.warning(f"{msg}; continuing because ollama.health.required is off")
            return HealthReport(self.base_url, reachable=False)

        canonical: Set[str] = set()
        for m in models:
            canonical |= canonical_names(m.name)
            canonical |= canonical_names(m.model)

        pretty = sorted(m.pretty() for m in models)
        if pretty:
            logger.info(
                f"Installed models ({len(pretty)} total, showing up to {self.max_log_models}): "
                f"{pretty[:self.max_log_models]}"
            )
        else:
            logger.info("No models reported by /api/tags")
        logger.debug(f"Canonical model names (lowercase, tagless variants included): {sorted(canonical)}")

        report = HealthReport(self.base_url, reachable=True, installed=pretty)
        if self.embedding_model is not None:
            report.embedding_ok = is_installed(self.embedding_model, canonical)
            logger.info(
                f"Configured embedding model: {_shown(self.embedding_model)} "
                f"[{'OK' if report.embedding_ok else 'MISSING'}]"
            )
        report.chat_ok = is_installed(self.chat_model, canonical)
        logger.info(f"Configured chat model     : {_shown(self.chat_model)} [{'OK' if report.chat_ok else 'MISSING'}]")

        missing = []
        if report.embedding_ok is False:
            missing.append(("embedding", self.embedding_model))
        if not report.chat_ok:
            missing.append(("chat", self.chat_model))
        if missing:
            listed = " ".join(f"[{kind}={_shown(name)}]" for kind, name in missing)
            hints = " ".join(f"`ollama pull {name.strip()}`" for _, name in missing if name and name.strip())
            msg = f"Required Ollama models not installed: {listed}" + (f". Try: {hints}" if hints else "")
            if self.require_models:
                raise ConfigError(msg)
            logger.warning(f"{msg}; continuing because ollama.health.require_models is off")

        report.version = self.fetch_version()
        if report.version:
            logger.info(f"Ollama version: {report.version}")
        return report

    def fetch_installed_models(self) -> List[InstalledModel]:
        """``GET /api/tags``; servers that reject the GET are asked with ``POST {}``."""
        url = f"{self.base_url}/api/tags"
        try:
            response = self.session.get(url, headers={"Accept": "application/json"}, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else "?"
            logger.debug(f"GET /api/tags failed with {status}, retrying with POST")
            response = self.session.post(url, json={}, timeout=self.timeout)
            response.raise_for_status()
        return parse_tags(response.json())

    def fetch_version(self) -> Optional[str]:
        try:
            response = self.session.get(
                f"{self.base_url}/api/version", headers={"Accept": "application/json"}, timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.debug(f"Ollama version unavailable: {e}")
            return None
        version = data.get("version") if isinstance(data, dict) else None
        return str(version) if version else None


def make_health_check(cfg: Dict, session: Optional[requests.Session] = None) -> Optional[OllamaHealthCheck]:
    """Health check for ``cfg``, or None when ``ollama.health.enabled`` is off."""
    ollama_cfg = cfg.get("ollama", {})
    health_cfg = ollama_cfg.get("health", {})
    if not health_cfg.get("enabled", True):
        return None
    backend = str(cfg.get("embedding", {}).get("backend", "ollama")).strip().lower()
    return OllamaHealthCheck(
        base_url=ollama_cfg.get("base_url", "http://localhost:11434"),
        embedding_model=(ollama_cfg.get("embedding_model") or "") if backend == "ollama" else None,
        chat_model=ollama_cfg.get("chat_model") or "",
        required=bool(health_cfg.get("required", True)),
        require_models=bool(health_cfg.get("require_models", True)),
        max_log_models=int(health_cfg.get("max_log_models", 100)),
        timeout=float(health_cfg.get("timeout", 10.0)),
        session=session,
    )
