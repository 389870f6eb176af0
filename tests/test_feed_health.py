from situation_monitor.feed_health import FeedHealthTracker


def test_unknown_source_is_not_skipped(clock):
    tracker = FeedHealthTracker(clock=clock)
    assert tracker.should_skip("nobody") is False


def test_skip_after_consecutive_failures(clock):
    tracker = FeedHealthTracker(max_failures=3, retry_after=100, clock=clock)
    for _ in range(2):
        tracker.record("feed", False, error="boom")
    assert tracker.should_skip("feed") is False

    tracker.record("feed", False, error="boom")
    assert tracker.should_skip("feed") is True
    assert tracker.get("feed").last_error == "boom"


def test_retry_after_cooldown(clock):
    tracker = FeedHealthTracker(max_failures=1, retry_after=100, clock=clock)
    tracker.record("feed", False)
    assert tracker.should_skip("feed") is True

    clock.advance(101)
    assert tracker.should_skip("feed") is False

    # a failed retry restarts the cooldown
    tracker.record("feed", False)
    assert tracker.should_skip("feed") is True


def test_success_resets_failures(clock):
    tracker = FeedHealthTracker(max_failures=2, clock=clock)
    tracker.record("feed", False)
    tracker.record("feed", True, elapsed_ms=50)
    h = tracker.get("feed")
    assert h.consecutive_failures == 0
    assert h.last_error is None
    assert h.total_requests == 2
    assert h.total_successes == 1


def test_rolling_average_response_time(clock):
    tracker = FeedHealthTracker(clock=clock)
    tracker.record("feed", True, elapsed_ms=100)
    assert tracker.get("feed").avg_response_ms == 100
    tracker.record("feed", True, elapsed_ms=200)
    assert tracker.get("feed").avg_response_ms == 120


def test_snapshot_is_a_copy(clock):
    tracker = FeedHealthTracker(clock=clock)
    tracker.record("feed", False)
    snap = tracker.snapshot()
    snap["feed"].consecutive_failures = 99
    assert tracker.get("feed").consecutive_failures == 1
