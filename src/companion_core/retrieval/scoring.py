"""Similarity, query expansion and relevance boosting helpers."""

from __future__ import annotations

import math
import re
from math import sqrt

from companion_core.config import RetrievalConfig

_SYNONYMS: dict[str, tuple[str, ...]] = {
    "find": ("search", "locate", "discover"),
    "show": ("display", "list", "present"),
    "about": ("regarding", "concerning", "related to"),
    "how": ("what is the way", "steps to", "method for"),
}
_NAME_PATTERN = re.compile(r"\b[A-Z][a-z]+\s+[A-Z][a-z]+\b")
_REFORMULATE = re.compile(r"biography|about")


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if len(a) != len(b):
        raise ValueError(f"Vector length mismatch: {len(a)} != {len(b)}")
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def expand_query(query: str, limit: int = 3) -> list[str]:
    """Build up to `limit` paraphrases of `query` (the original is not included)."""

    lowered = query.lower()
    expansions: list[str] = []
    for word, replacements in _SYNONYMS.items():
        if word in lowered:
            for replacement in replacements:
                expansions.append(lowered.replace(word, replacement, 1))

    if _REFORMULATE.search(lowered):
        subject = _REFORMULATE.sub("", lowered).strip()
        expansions.append(f"information about {subject}")
        expansions.append(f"details about {subject}")

    return expansions[:limit]


def content_boost(
    query: str,
    text: str,
    title: str,
    config: RetrievalConfig | None = None,
) -> float:
    """Additive relevance bonus for literal title/text/name matches, capped."""

    cfg = config or RetrievalConfig()
    needle = query.lower()
    boost = 0.0
    if needle and needle in title.lower():
        boost += cfg.title_boost
    if needle and needle in text.lower():
        boost += cfg.content_boost

    chunk_names = {name.lower() for name in _NAME_PATTERN.findall(text)}
    for name in _NAME_PATTERN.findall(query):
        if name.lower() in chunk_names:
            boost += cfg.entity_boost

    return min(boost, cfg.max_boost)


def lexical_score(query: str, text: str) -> float:
    """Share of query words that occur in `text` (substring match per word)."""

    words = query.lower().split()
    haystack = text.lower()
    matches = sum(1 for word in words if word in haystack)
    return min(matches / max(len(words), 1), 1.0)


def score_percent(score: float) -> int:
    # Half-up, so 0.125 -> 13 rather than banker's rounding.
    return int(math.floor(score * 100 + 0.5))
