# src/situation_monitor/pipeline.py
"""Resilient fan-out / merge / classify / cache pipeline.

One call to :meth:`FetchPipeline.aggregate` produces an
:class:`~situation_monitor.models.AggregationResult` for a dataset:

1. a fresh cache entry is returned as-is;
2. otherwise every source in the dataset is fetched concurrently, each with
   its own timeout, and the pipeline waits for all of them to settle;
3. records from the sources that succeeded are merged in source order and
   de-duplicated by id (first copy wins);
4. excluded records are dropped and the rest are classified;
5. the list is ranked, post-processed, capped and written to the cache.

When no source succeeds, or merging/classifying blows up, the last cached
value (even stale) is returned, else an empty list.  Data-sourcing failures
never escape this module; they only show up as provenance and ``errors``.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from .cache import CacheStore
from .dedupe import dedupe_by_id
from .feed_health import FeedHealthTracker
from .logging_utils import get_logger
from .models import AggregationResult, Provenance, SourceDescriptor

log = get_logger("pipeline")

FetchSource = Callable[[SourceDescriptor], Awaitable[Any]]
MapRecords = Callable[[SourceDescriptor, Any], Iterable[Any]]


@dataclass
class DatasetSpec:
    """Everything the pipeline needs to build one dataset.

    ``fetch`` returns a source's raw payload; ``map_records`` turns it into
    canonical records.  An exception from either marks that source failed.
    """

    key: str
    sources: Sequence[SourceDescriptor]
    fetch: FetchSource
    map_records: MapRecords
    ttl: float
    rank: Callable[[Any], Any]
    max_items: int = 0
    exclude: Optional[Callable[[Any], bool]] = None
    enrich: Optional[Callable[[Any], Any]] = None
    post_process: Optional[Callable[[List[Any]], List[Any]]] = None
    timeout: float = 30.0


@dataclass
class _Settled:
    source: SourceDescriptor
    records: Optional[List[Any]] = None
    error: Optional[BaseException] = None
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


def _health_key(spec: DatasetSpec, src: SourceDescriptor) -> str:
    return f"{spec.key}:{src.name}"


def _describe(err: BaseException) -> str:
    if isinstance(err, asyncio.TimeoutError):
        return "timeout"
    msg = str(err)
    return f"{err.__class__.__name__}: {msg}" if msg else err.__class__.__name__


class FetchPipeline:
    """Aggregates datasets against a shared :class:`CacheStore`.

    Args:
        cache: Store shared by every dataset of the owning dashboard.
        health: Optional tracker; sources it reports as dead are skipped and
            every attempt is recorded under ``"<dataset key>:<source name>"``.
    """

    def __init__(
        self, cache: CacheStore, health: Optional[FeedHealthTracker] = None
    ) -> None:
        self.cache = cache
        self.health = health

    async def aggregate(self, spec: DatasetSpec, force: bool = False) -> AggregationResult:
        cached = self.cache.get(spec.key)
        if cached is not None and not cached.is_stale and not force:
            log.debug("pipeline_cache_hit key=%s items=%d", spec.key, len(cached.data))
            return AggregationResult(spec.key, list(cached.data), Provenance.CACHED)

        errors: Dict[str, str] = {}
        try:
            settled = await self._fan_out(spec)
            for s in settled:
                if not s.ok:
                    errors[s.source.name] = _describe(s.error)
            succeeded = [s for s in settled if s.ok]
            if not succeeded:
                log.warning(
                    "pipeline_all_sources_failed key=%s sources=%d",
                    spec.key,
                    len(spec.sources),
                )
                return self._fallback(spec.key, cached, errors)

            items = self._process(spec, succeeded)
        except Exception as e:
            log.error(
                "pipeline_unexpected_error key=%s err=%s",
                spec.key,
                _describe(e),
                exc_info=True,
            )
            errors["_pipeline"] = _describe(e)
            return self._fallback(spec.key, cached, errors)

        self.cache.set(spec.key, items, spec.ttl)
        log.info(
            "pipeline_refreshed key=%s items=%d ok_sources=%d failed_sources=%d",
            spec.key,
            len(items),
            len(succeeded),
            len(errors),
        )
        return AggregationResult(spec.key, list(items), Provenance.FRESH, errors)

    async def _fan_out(self, spec: DatasetSpec) -> List[_Settled]:
        sources = list(spec.sources)
        if self.health is not None:
            live = [
                s for s in sources if not self.health.should_skip(_health_key(spec, s))
            ]
            if len(live) < len(sources):
                log.info(
                    "pipeline_sources_skipped key=%s skipped=%d",
                    spec.key,
                    len(sources) - len(live),
                )
            sources = live

        # gather() keeps source order, and return_exceptions stops one
        # failure from cancelling its siblings.
        outcomes = await asyncio.gather(
            *(self._call(spec, src) for src in sources), return_exceptions=True
        )
        settled: List[_Settled] = []
        for src, outcome in zip(sources, outcomes):
            if isinstance(outcome, _Settled):
                settled.append(outcome)
            else:
                settled.append(_Settled(src, error=outcome))
        return settled

    async def _call(self, spec: DatasetSpec, src: SourceDescriptor) -> _Settled:
        st = time.monotonic()
        try:
            payload = await asyncio.wait_for(spec.fetch(src), timeout=spec.timeout)
            records = list(spec.map_records(src, payload))
            if src.limit > 0:
                records = records[: src.limit]
        except Exception as e:
            elapsed = round((time.monotonic() - st) * 1000.0, 1)
            log.warning(
                "pipeline_source_failed key=%s source=%s err=%s t_ms=%.1f",
                spec.key,
                src.name,
                _describe(e),
                elapsed,
            )
            if self.health is not None:
                self.health.record(_health_key(spec, src), False, elapsed, _describe(e))
            return _Settled(src, error=e, elapsed_ms=elapsed)

        elapsed = round((time.monotonic() - st) * 1000.0, 1)
        if self.health is not None:
            self.health.record(_health_key(spec, src), True, elapsed)
        log.debug(
            "pipeline_source_ok key=%s source=%s records=%d t_ms=%.1f",
            spec.key,
            src.name,
            len(records),
            elapsed,
        )
        return _Settled(src, records=records, elapsed_ms=elapsed)

    def _process(self, spec: DatasetSpec, succeeded: List[_Settled]) -> List[Any]:
        merged = dedupe_by_id(r for s in succeeded for r in (s.records or []))
        if spec.exclude is not None:
            merged = [r for r in merged if not spec.exclude(r)]
        if spec.enrich is not None:
            merged = [spec.enrich(r) for r in merged]
        ranked = sorted(merged, key=spec.rank, reverse=True)
        if spec.post_process is not None:
            ranked = spec.post_process(ranked)
        if spec.max_items > 0:
            ranked = ranked[: spec.max_items]
        return ranked

    def _fallback(
        self, key: str, cached: Optional[Any], errors: Dict[str, str]
    ) -> AggregationResult:
        if cached is not None:
            log.warning("pipeline_stale_fallback key=%s items=%d", key, len(cached.data))
            return AggregationResult(
                key, list(cached.data), Provenance.STALE_FALLBACK, errors
            )
        log.warning("pipeline_empty_fallback key=%s", key)
        return AggregationResult(key, [], Provenance.EMPTY_FALLBACK, errors)
