from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode


class Provenance(str, Enum):
    """Where the items of an :class:`AggregationResult` came from."""

    FRESH = "fresh"
    CACHED = "cached"
    STALE_FALLBACK = "stale-fallback"
    EMPTY_FALLBACK = "empty-fallback"

    @property
    def is_fallback(self) -> bool:
        return self in (Provenance.STALE_FALLBACK, Provenance.EMPTY_FALLBACK)


@dataclass
class Record:
    """Minimal content item.  ``id`` is the dedup key within one pass."""

    id: str
    text: str
    volume: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Prediction:
    id: str
    question: str
    yes: int
    volume: float
    url: str
    category: str = "politics"
    volume_24hr: float = 0.0
    end_date: Optional[str] = None

    @property
    def text(self) -> str:
        return self.question


@dataclass
class NewsItem:
    id: str
    title: str
    link: str
    timestamp: float
    source: str
    category: str
    pub_date: str = ""
    description: str = ""
    is_alert: bool = False
    alert_keyword: Optional[str] = None
    region: Optional[str] = None
    topics: List[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return f"{self.title} {self.description}".strip()


@dataclass(frozen=True)
class SourceDescriptor:
    """One upstream call within a dataset's fan-out.

    ``kind`` tells the dataset mapper how to read the payload (e.g. ``rss``
    versus ``gdelt``).  ``via_proxy`` routes the call through the
    :class:`~situation_monitor.proxy.ProxyFallbackAdapter`.  A positive
    ``limit`` caps how many mapped records the source contributes.
    """

    name: str
    url: str
    params: tuple = ()
    limit: int = 0
    kind: str = "json"
    via_proxy: bool = False

    def full_url(self) -> str:
        if not self.params:
            return self.url
        sep = "&" if "?" in self.url else "?"
        return f"{self.url}{sep}{urlencode(list(self.params))}"


@dataclass
class AggregationResult:
    key: str
    items: List[Any]
    provenance: Provenance
    errors: Dict[str, str] = field(default_factory=dict)
    fetched_at: float = field(default_factory=time.time)

    @property
    def is_fallback(self) -> bool:
        return self.provenance.is_fallback

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)
