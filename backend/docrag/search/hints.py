"""Entity hint extraction for multi-query retrieval.

A hint is a short string (a proper name or a domain keyword) pulled out of the user's
question and searched on its own, so that e.g. "Is Pikachu smaller than Blastoise?"
also retrieves the chunks about each creature separately.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

HINTS_SYSTEM_PROMPT = """Extract concise entity hints from the USER text.
- Include proper names (people, products, characters), AND domain keywords useful for retrieval.
- Do not include stopwords or filler.
- Return ONLY a compact JSON array of strings on a single line, no prose, no code fences.
Example: ["EntityA","CountryB","PersonC"]
"""

STOP_WORDS = frozenset({
    "Who", "What", "When", "Where", "Which", "Why", "How", "Is", "Are", "Do", "Does", "Did",
    "And", "Or", "The", "A", "An", "About", "Please", "Tell", "Me", "You", "It", "This", "That",
    "Vs", "Than", "Smaller", "Bigger", "Greater", "Larger", "Less", "More", "Pokemon", "Pokémon",
})

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")
_ARRAY_RE = re.compile(r"\[.*\]", re.DOTALL)
# runs of capitalized words, e.g. "New York" or "Pikachu"
_CAPS_RE = re.compile(r"\b([A-Z][\w-]*(?:\s+[A-Z][\w-]*)*)\b")
_LIKE_RE = re.compile(r"\blike\s+(?:a|an)\s+([a-z][a-z-]{2,})\b", re.IGNORECASE)


def clean_to_json_array(raw: Optional[str]) -> Optional[str]:
    """Isolate the first ``[...]`` block of a model answer, stripping code fences."""
    if raw is None:
        return None
    t = raw.strip()
    if t.startswith("```"):
        t = _FENCE_RE.sub("", t)
    m = _ARRAY_RE.search(t)
    return m.group(0).strip() if m else None


def singularize(word: str) -> str:
    if word.endswith("ies") and len(word) > 3:
        return word[:-3] + "y"
    if word.endswith("ses") or word.endswith("xes"):
        return word[:-2]
    if word.endswith("s") and not word.endswith("ss"):
        return word[:-1]
    return word


def heuristic_hints(text: str, cap: int) -> List[str]:
    """Capitalized word runs plus "like a/an X" nouns, deduplicated, at most ``cap``."""
    out: Dict[str, None] = {}
    if not text:
        return []

    for m in _CAPS_RE.finditer(text):
        s = m.group(1).strip()
        if s not in STOP_WORDS:
            out[s] = None
        if len(out) >= cap:
            break

    for m in _LIKE_RE.finditer(text):
        if len(out) >= cap:
            break
        w = singularize(m.group(1))
        out[w[:1].upper() + w[1:]] = None

    return list(out)[:cap]


class EntityHintExtractor:
    """Asks a local Ollama model for entity hints, via ``/api/generate``.

    Never raises: an unreachable model, a non-JSON answer or anything else unexpected
    falls back to :func:`heuristic_hints`.
    """

    def __init__(
        self,
        base_url: str,
        model: Optional[str],
        max_default: int = 6,
        timeout: float = 120.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = (model or "").strip()
        self.max_default = max_default
        self.timeout = timeout
        self.session = session or requests.Session()

    def extract_hints(self, text: str, max_entities: int = 0) -> List[str]:
        if not text or not text.strip():
            return []
        cap = max(1, max_entities if max_entities > 0 else self.max_default)
        if not self.model:
            return heuristic_hints(text, cap)

        try:
            raw = self._generate(text, cap)
        except Exception as e:
            logger.debug(f"Hint model call failed ({e}); using heuristic hints")
            return heuristic_hints(text, cap)

        block = clean_to_json_array(raw)
        if block is None:
            return heuristic_hints(text, cap)
        try:
            arr = json.loads(block)
        except ValueError:
            return heuristic_hints(text, cap)
        if not isinstance(arr, list):
            return heuristic_hints(text, cap)

        out: Dict[str, None] = {}
        for el in arr:
            if not isinstance(el, str):
                continue
            s = el.strip()
            if s:
                out[s] = None
            if len(out) >= cap:
                break
        return list(out)

    def _generate(self, text: str, cap: int) -> str:
        payload = {
            "model": self.model,
            "prompt": f"USER: {text}\nNow return a JSON array with at most {cap} items.",
            "system": HINTS_SYSTEM_PROMPT,
            "stream": False,
            "options": {"temperature": 0.1, "num_predict": 128},
        }
        response = self.session.post(f"{self.base_url}/api/generate", json=payload, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()
        if isinstance(data, dict) and isinstance(data.get("response"), str):
            return data["response"]
        return ""


def make_hint_extractor(cfg: Dict) -> EntityHintExtractor:
    ollama_cfg = cfg.get("ollama", {})
    model = ollama_cfg.get("hints_model") or ollama_cfg.get("chat_model")
    return EntityHintExtractor(
        base_url=ollama_cfg.get("base_url", "http://localhost:11434"),
        model=model,
        max_default=int(cfg.get("retrieval", {}).get("hints", {}).get("max", 6)),
        timeout=float(ollama_cfg.get("timeout", 120)),
    )
