from __future__ import annotations

import threading

import pytest

from ordersync.sync import ExponentialBackoff, ThreadingScheduler


def test_backoff_doubles_up_to_the_cap() -> None:
    backoff = ExponentialBackoff()

    delays = [backoff.next_delay() for _ in range(7)]

    assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]
    assert backoff.failures == 7
    assert backoff.current_delay == 30.0


def test_backoff_reset_returns_to_floor() -> None:
    backoff = ExponentialBackoff(min_seconds=0.5, max_seconds=4.0)
    backoff.next_delay()
    backoff.next_delay()
    assert backoff.current_delay == 2.0

    backoff.reset()

    assert backoff.current_delay == 0.5
    assert backoff.failures == 0
    assert backoff.next_delay() == 0.5


def test_backoff_rejects_invalid_bounds() -> None:
    with pytest.raises(ValueError, match="min_seconds"):
        ExponentialBackoff(min_seconds=0)
    with pytest.raises(ValueError, match="max_seconds"):
        ExponentialBackoff(min_seconds=5.0, max_seconds=1.0)
    with pytest.raises(ValueError, match="factor"):
        ExponentialBackoff(factor=0.5)


def test_threading_scheduler_runs_and_cancels_callbacks() -> None:
    scheduler = ThreadingScheduler(thread_name_prefix="test-timer")
    fired = threading.Event()
    cancelled_fired = threading.Event()

    timer = scheduler.call_later(0.01, fired.set)
    cancelled = scheduler.call_later(0.2, cancelled_fired.set)
    cancelled.cancel()

    assert fired.wait(timeout=2.0)
    assert timer.name == "test-timer-1"
    assert timer.daemon is True
    cancelled.join(timeout=2.0)
    assert cancelled_fired.is_set() is False
    with pytest.raises(ValueError, match="negative"):
        scheduler.call_later(-1.0, fired.set)
