"""Per-source health bookkeeping for upstream feeds.

A feed that fails ``max_failures`` times in a row is skipped until
``retry_after`` seconds have passed since its last attempt; the next attempt
after the cooldown either resets it (success) or restarts the cooldown.
State lives in memory for the life of the process.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .logging_utils import get_logger

log = get_logger("feed_health")


@dataclass
class FeedHealth:
    last_attempt: float = 0.0
    last_success: float = 0.0
    consecutive_failures: int = 0
    avg_response_ms: float = 0.0
    last_error: Optional[str] = None
    total_requests: int = 0
    total_successes: int = 0


class FeedHealthTracker:
    def __init__(
        self,
        max_failures: int = 5,
        retry_after: float = 60 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_failures = max_failures
        self.retry_after = retry_after
        self._clock = clock
        self._lock = threading.Lock()
        self._health: Dict[str, FeedHealth] = {}

    def get(self, source: str) -> FeedHealth:
        with self._lock:
            return self._health.setdefault(source, FeedHealth())

    def record(
        self,
        source: str,
        success: bool,
        elapsed_ms: float = 0.0,
        error: Optional[str] = None,
    ) -> FeedHealth:
        now = self._clock()
        with self._lock:
            h = self._health.setdefault(source, FeedHealth())
            h.last_attempt = now
            h.total_requests += 1
            if success:
                h.last_success = now
                h.consecutive_failures = 0
                h.total_successes += 1
                h.last_error = None
                # Rolling average, seeded by the first success.
                if h.total_successes == 1:
                    h.avg_response_ms = elapsed_ms
                else:
                    h.avg_response_ms = h.avg_response_ms * 0.8 + elapsed_ms * 0.2
            else:
                h.consecutive_failures += 1
                h.last_error = error or "unknown error"
        if not success and h.consecutive_failures == self.max_failures:
            log.warning(
                "feed_health_tripped source=%s failures=%d err=%s",
                source,
                h.consecutive_failures,
                h.last_error,
            )
        return h

    def should_skip(self, source: str) -> bool:
        with self._lock:
            h = self._health.get(source)
            if h is None or h.consecutive_failures < self.max_failures:
                return False
            return self._clock() - h.last_attempt < self.retry_after

    def snapshot(self) -> Dict[str, FeedHealth]:
        with self._lock:
            return {k: FeedHealth(**vars(v)) for k, v in self._health.items()}
