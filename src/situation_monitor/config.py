import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


def _env_float_opt(name: str) -> Optional[float]:
    """
    Read an optional float from env. Returns None if unset, blank, or non-numeric.
    """
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    if raw == "" or raw.lower() in {"none", "null"} or raw.startswith("#"):
        return None
    try:
        return float(raw)
    except Exception:
        return None


def _f(name: str, default: float) -> float:
    val = _env_float_opt(name)
    return default if val is None else val


def _i(name: str, default: int) -> int:
    val = _env_float_opt(name)
    return default if val is None else int(val)


def _b(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).strip().lower() in {
        "1",
        "true",
        "yes",
        "y",
        "on",
    }


def _int_list(name: str, default: List[int]) -> List[int]:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return list(default)
    out: List[int] = []
    for part in raw.split(","):
        part = part.strip()
        if part.isdigit():
            out.append(int(part))
    return out or list(default)


@dataclass
class Settings:
    # --- Logging ---
    # LOG_LEVEL overrides the level passed to setup_logging().  LOG_PLAIN=1
    # switches console output from JSON lines to a colourised single line.
    log_level: str = os.getenv("LOG_LEVEL", "")
    log_plain: bool = _b("LOG_PLAIN", False)

    # Rotating JSON log files are written to <data_dir>/logs.
    data_dir: Path = Path(os.getenv("DATA_DIR", "data"))

    # --- Cache ---
    # Zero (the default) leaves the in-memory cache unbounded.  A positive
    # value enables least-recently-used eviction at that many entries.
    cache_max_entries: int = _i("CACHE_MAX_ENTRIES", 0)

    # TTLs in seconds per dataset class.
    cache_ttl_news_sec: float = _f("CACHE_TTL_NEWS_SEC", 5 * 60)
    cache_ttl_markets_sec: float = _f("CACHE_TTL_MARKETS_SEC", 5 * 60)

    # --- Fixed delay (ms) between sequential news category refreshes ---
    api_delay_between_categories_ms: int = _i("API_DELAY_BETWEEN_CATEGORIES_MS", 500)

    # --- Proxy paths ---
    # Both are URL prefixes; the URL-encoded target is appended verbatim.
    # The primary is a self-hosted allowlisting proxy which answers
    # "Domain not allowed" for hosts missing from its allowlist.
    proxy_primary_url: str = os.getenv(
        "PROXY_PRIMARY_URL", "https://situation-monitor-proxy.workers.dev/?url="
    )
    proxy_fallback_url: str = os.getenv(
        "PROXY_FALLBACK_URL", "https://corsproxy.io/?url="
    )
    proxy_rejection_marker: str = os.getenv(
        "PROXY_REJECTION_MARKER", "Domain not allowed"
    )

    # --- Timeouts (seconds) ---
    source_timeout_sec: float = _f("SOURCE_TIMEOUT_SEC", 30.0)
    markets_timeout_sec: float = _f("MARKETS_TIMEOUT_SEC", 10.0)

    user_agent: str = os.getenv(
        "HTTP_USER_AGENT", "Mozilla/5.0 (compatible; SituationMonitor/2.0)"
    )

    # --- Prediction markets ---
    # Gamma tag ids: politics, geopolitics, finance, tech, elections
    polymarket_tags: List[int] = field(
        default_factory=lambda: _int_list(
            "POLYMARKET_TAGS", [2, 100265, 120, 100056, 100001]
        )
    )
    polymarket_per_tag_limit: int = _i("POLYMARKET_PER_TAG_LIMIT", 50)
    polymarket_max_items: int = _i("POLYMARKET_MAX_ITEMS", 75)
    polymarket_base_url: str = os.getenv(
        "POLYMARKET_BASE_URL", "https://gamma-api.polymarket.com"
    )

    # --- News ---
    news_max_items: int = _i("NEWS_MAX_ITEMS", 150)
    news_max_age_days: float = _f("NEWS_MAX_AGE_DAYS", 7)
    news_max_sources: int = _i("NEWS_MAX_SOURCES", 5)
    news_title_similarity: float = _f("NEWS_TITLE_SIMILARITY", 0.6)
    gdelt_base_url: str = os.getenv(
        "GDELT_BASE_URL", "https://api.gdeltproject.org/api/v2/doc/doc"
    )
    gdelt_max_records: int = _i("GDELT_MAX_RECORDS", 50)

    # --- Feed health ---
    # After this many consecutive failures a feed is skipped until
    # feed_health_retry_after_sec has passed since its last attempt.
    feed_health_max_failures: int = _i("FEED_HEALTH_MAX_FAILURES", 5)
    feed_health_retry_after_sec: float = _f("FEED_HEALTH_RETRY_AFTER_SEC", 60 * 60)

    @property
    def between_categories_delay_sec(self) -> float:
        return max(0, self.api_delay_between_categories_ms) / 1000.0


SETTINGS = Settings()


def get_settings() -> Settings:
    return SETTINGS
