"""Deduplication helpers for aggregated records.

Two layers are provided.  :func:`dedupe_by_id` is the exact, order-preserving
pass every dataset goes through (first occurrence wins).  The title helpers
catch the same story syndicated by several outlets under slightly different
headlines; they compare word sets rather than raw strings.
"""

from __future__ import annotations

import hashlib
import re
import time
from typing import Any, Callable, Iterable, List, Optional, Sequence, TypeVar

T = TypeVar("T")


def _default_id(item: Any) -> Any:
    if isinstance(item, dict):
        return item.get("id")
    return getattr(item, "id", None)


def dedupe_by_id(
    items: Iterable[T], key: Callable[[T], Any] = _default_id
) -> List[T]:
    """Drop later items whose id was already seen.

    Items without an id are kept; there is nothing to compare them on.
    """
    seen = set()
    out: List[T] = []
    for item in items:
        k = key(item)
        if k is None:
            out.append(item)
            continue
        if k in seen:
            continue
        seen.add(k)
        out.append(item)
    return out


def short_hash(value: str) -> str:
    """Stable 10-char id fragment for a URL or title."""
    return hashlib.sha1((value or "").encode("utf-8")).hexdigest()[:10]


def normalize_title(title: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    clean = re.sub(r"[^\w]+", " ", title or "").lower()
    return " ".join(clean.split())


def _significant_words(title: str) -> set:
    return {w for w in normalize_title(title).split() if len(w) > 3}


def title_similarity(a: str, b: str) -> float:
    """Jaccard similarity over words longer than three characters."""
    words_a = _significant_words(a)
    words_b = _significant_words(b)
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def is_near_duplicate(
    title: str, existing: Iterable[str], threshold: float = 0.6
) -> bool:
    return any(title_similarity(title, prev) > threshold for prev in existing)


def dedupe_titles(items: Sequence[Any], threshold: float = 0.6) -> List[Any]:
    """Keep the first of each group of near-duplicate titles.

    Callers sort newest first beforehand so the freshest copy survives.
    """
    kept: List[Any] = []
    kept_titles: List[str] = []
    for item in items:
        title = getattr(item, "title", "") or ""
        if is_near_duplicate(title, kept_titles, threshold):
            continue
        kept.append(item)
        kept_titles.append(title)
    return kept


def filter_news(
    items: Sequence[Any],
    max_items: int = 10,
    max_age_days: float = 7,
    max_sources: int = 5,
    now: Optional[float] = None,
    threshold: float = 0.6,
) -> List[Any]:
    """Recent, de-duplicated headlines with variety across sources.

    Items older than ``max_age_days`` are dropped, near-duplicate titles are
    collapsed (``threshold`` is the similarity cut-off), then up to
    ``max_sources`` distinct sources get one slot each before the remaining
    slots are filled newest first.
    """
    now = time.time() if now is None else now
    max_age = max_age_days * 24 * 60 * 60
    recent = [it for it in items if now - it.timestamp <= max_age]
    recent.sort(key=lambda it: it.timestamp, reverse=True)
    unique = dedupe_titles(recent, threshold)

    result: List[Any] = []
    seen_sources = set()
    for it in unique:
        if len(result) >= max_items:
            break
        if len(seen_sources) < max_sources and it.source not in seen_sources:
            result.append(it)
            seen_sources.add(it.source)

    for it in unique:
        if len(result) >= max_items:
            break
        if not any(it is r for r in result):
            result.append(it)

    result.sort(key=lambda it: it.timestamp, reverse=True)
    return result
