"""Composition root for dataset refreshes.

A :class:`Dashboard` owns the cache, feed-health tracker, HTTP session and
proxy adapter shared by every dataset, and exposes one coroutine per dataset
for panels and scripts to call.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Dict, Iterable, Optional

import aiohttp

from . import news, polymarket
from .cache import CacheStore
from .config import Settings, get_settings
from .feed_health import FeedHealth, FeedHealthTracker
from .logging_utils import get_logger
from .models import AggregationResult
from .pipeline import FetchPipeline
from .proxy import ProxyFallbackAdapter

log = get_logger("dashboard")


class Dashboard:
    """Entry point for collaborators.

    Use as an async context manager, or call :meth:`close` when done, so the
    aiohttp session is released::

        async with Dashboard() as dash:
            result = await dash.fetch_polymarket()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        cache: Optional[CacheStore] = None,
        health: Optional[FeedHealthTracker] = None,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings if settings is not None else get_settings()
        self.cache = (
            cache
            if cache is not None
            else CacheStore(max_entries=self.settings.cache_max_entries)
        )
        self.health = (
            health
            if health is not None
            else FeedHealthTracker(
                max_failures=self.settings.feed_health_max_failures,
                retry_after=self.settings.feed_health_retry_after_sec,
            )
        )
        self.pipeline = FetchPipeline(self.cache, self.health)
        self._clock = clock
        self._session = session
        self._owns_session = session is None
        self._adapter: Optional[ProxyFallbackAdapter] = None

    # --- resources ---------------------------------------------------------

    def _get_session(self) -> aiohttp.ClientSession:
        # ClientSession must be created inside the running loop.
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
            self._adapter = None
        return self._session

    @property
    def adapter(self) -> ProxyFallbackAdapter:
        session = self._get_session()
        if self._adapter is None or self._adapter.session is not session:
            s = self.settings
            self._adapter = ProxyFallbackAdapter(
                session,
                primary_prefix=s.proxy_primary_url,
                fallback_prefix=s.proxy_fallback_url,
                rejection_marker=s.proxy_rejection_marker,
                timeout=s.source_timeout_sec,
                user_agent=s.user_agent,
            )
        return self._adapter

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
        self._adapter = None

    async def __aenter__(self) -> "Dashboard":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # --- datasets ----------------------------------------------------------

    async def fetch_polymarket(self, force: bool = False) -> AggregationResult:
        spec = polymarket.dataset(self.settings, self.adapter)
        return await self.pipeline.aggregate(spec, force=force)

    async def fetch_category_news(
        self, category: str, force: bool = False
    ) -> AggregationResult:
        """Refresh one news category; unknown categories raise ``ValueError``."""
        news.check_category(category)
        spec = news.dataset(
            category,
            self.settings,
            self._get_session(),
            self.adapter,
            clock=self._clock,
        )
        return await self.pipeline.aggregate(spec, force=force)

    async def fetch_all_news(
        self, categories: Optional[Iterable[str]] = None, force: bool = False
    ) -> Dict[str, AggregationResult]:
        """Refresh categories one after another with a fixed pause between them."""
        cats = list(categories) if categories is not None else list(news.NEWS_CATEGORIES)
        for c in cats:
            news.check_category(c)

        delay = self.settings.between_categories_delay_sec
        results: Dict[str, AggregationResult] = {}
        for i, category in enumerate(cats):
            if i and delay > 0:
                await asyncio.sleep(delay)
            results[category] = await self.fetch_category_news(category, force=force)

        log.info(
            "news_refresh_complete categories=%d items=%d fallbacks=%d",
            len(results),
            sum(len(r) for r in results.values()),
            sum(1 for r in results.values() if r.is_fallback),
        )
        return results

    def dataset_keys(self) -> list:
        return [polymarket.DATASET_KEY] + [news.dataset_key(c) for c in news.NEWS_CATEGORIES]

    async def fetch_dataset(self, key: str, force: bool = False) -> AggregationResult:
        """Dispatch on a dataset key; unknown keys raise ``KeyError``."""
        if key == polymarket.DATASET_KEY:
            return await self.fetch_polymarket(force=force)
        if key.startswith("news_") and key[len("news_"):] in news.NEWS_FEEDS:
            return await self.fetch_category_news(key[len("news_"):], force=force)
        raise KeyError(key)

    def health_snapshot(self) -> Dict[str, FeedHealth]:
        return self.health.snapshot()


def run_dataset(
    key: str, settings: Optional[Settings] = None, force: bool = False
) -> AggregationResult:
    """Blocking helper for scripts: refresh one dataset in a fresh event loop."""

    async def _run() -> AggregationResult:
        async with Dashboard(settings) as dash:
            return await dash.fetch_dataset(key, force=force)

    return asyncio.run(_run())
