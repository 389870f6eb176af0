"""Polymarket prediction markets.

Open markets are pulled from the Gamma ``/markets`` endpoint, one request per
tag, through the proxy adapter (the allowlisting proxy does not always carry
the Gamma host).  Markets appearing under several tags are merged by id,
off-topic markets (sports, meme coins, entertainment) are excluded, and the
rest are categorised from the question text and ranked by volume.
"""

from __future__ import annotations

import json
import math
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional

from .config import Settings
from .keywords import categorize_market, should_exclude
from .logging_utils import get_logger
from .models import Prediction, SourceDescriptor
from .pipeline import DatasetSpec
from .proxy import ProxyFallbackAdapter

log = get_logger("polymarket")

DATASET_KEY = "polymarket_predictions"
EVENT_URL = "https://polymarket.com/event/"


def _as_list(value: Any) -> Optional[list]:
    # Gamma encodes outcome arrays as JSON strings: '["0.65","0.35"]'
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        parsed = json.loads(value)
        if isinstance(parsed, list):
            return parsed
    return None


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        out = float(value)
    except (TypeError, ValueError):
        return default
    return out if math.isfinite(out) else default


def _pct(price: Any) -> int:
    # half-up, not banker's rounding
    return int(math.floor(_to_float(price) * 100 + 0.5))


def parse_yes_probability(outcome_prices: Any, outcomes: Any) -> int:
    """Return the "Yes" probability as an integer percentage.

    Falls back to the first outcome's price when there is no "Yes" outcome,
    and to 0 whenever either field is missing or malformed.
    """
    try:
        prices = _as_list(outcome_prices)
        names = _as_list(outcomes) or []
        if not prices:
            return 0
        for i, name in enumerate(names):
            if str(name).strip().lower() == "yes" and i < len(prices):
                if prices[i] not in (None, ""):
                    return _pct(prices[i])
        if prices[0] not in (None, ""):
            return _pct(prices[0])
        return 0
    except (ValueError, TypeError):
        return 0


def market_url(market: Dict[str, Any]) -> str:
    events = market.get("events") or []
    slug = None
    if isinstance(events, list) and events and isinstance(events[0], dict):
        slug = events[0].get("slug")
    return EVENT_URL + str(slug or market.get("slug") or "")


def to_prediction(market: Dict[str, Any]) -> Optional[Prediction]:
    """Map one Gamma market to a :class:`Prediction`; ``None`` if unusable."""
    if not isinstance(market, dict):
        return None
    market_id = market.get("id")
    question = market.get("question")
    if market_id in (None, "") or not question:
        return None
    return Prediction(
        id=str(market_id),
        question=str(question),
        yes=parse_yes_probability(market.get("outcomePrices"), market.get("outcomes")),
        volume=_to_float(market.get("volumeNum")),
        volume_24hr=_to_float(market.get("volume24hr")),
        url=market_url(market),
        end_date=market.get("endDate"),
    )


def map_markets(source: SourceDescriptor, payload: Any) -> List[Prediction]:
    if not isinstance(payload, list):
        raise ValueError(f"{source.name}: expected a list of markets")
    out: List[Prediction] = []
    dropped = 0
    for market in payload:
        pred = to_prediction(market)
        if pred is None:
            dropped += 1
            continue
        out.append(pred)
    if dropped:
        log.debug("polymarket_records_dropped source=%s count=%d", source.name, dropped)
    return out


def build_sources(settings: Settings) -> List[SourceDescriptor]:
    url = settings.polymarket_base_url.rstrip("/") + "/markets"
    return [
        SourceDescriptor(
            name=f"polymarket-tag-{tag}",
            url=url,
            params=(
                ("tag_id", str(tag)),
                ("closed", "false"),
                ("order", "volumeNum"),
                ("ascending", "false"),
                ("limit", str(settings.polymarket_per_tag_limit)),
            ),
            limit=settings.polymarket_per_tag_limit,
            via_proxy=True,
        )
        for tag in settings.polymarket_tags
    ]


def categorize(pred: Prediction) -> Prediction:
    return replace(pred, category=categorize_market(pred.question))


def dataset(settings: Settings, adapter: ProxyFallbackAdapter) -> DatasetSpec:
    # each proxy hop gets half the source timeout so the secondary can run
    hop_timeout = settings.markets_timeout_sec / 2

    async def fetch(source: SourceDescriptor) -> Any:
        resp = await adapter.request(
            source.full_url(), accept="application/json", timeout=hop_timeout
        )
        resp.raise_for_status(source.name)
        return resp.json()

    return DatasetSpec(
        key=DATASET_KEY,
        sources=build_sources(settings),
        fetch=fetch,
        map_records=map_markets,
        ttl=settings.cache_ttl_markets_sec,
        rank=lambda p: p.volume,
        max_items=settings.polymarket_max_items,
        exclude=lambda p: should_exclude(p.question),
        enrich=categorize,
        timeout=settings.markets_timeout_sec,
    )


def top_by_category(predictions: Iterable[Prediction], limit: int = 5) -> Dict[str, List[Prediction]]:
    """Group ranked predictions by category, keeping the first ``limit`` each."""
    grouped: Dict[str, List[Prediction]] = {}
    for p in predictions:
        bucket = grouped.setdefault(p.category, [])
        if len(bucket) < limit:
            bucket.append(p)
    return grouped
