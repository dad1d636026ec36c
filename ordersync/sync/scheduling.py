"""Timer scheduling with explicit cancellation handles."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Protocol


class TimerHandle(Protocol):
    """Handle returned by `Scheduler.call_later`."""

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Runs a callback once after a delay."""

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle: ...


class ThreadingScheduler:
    """Scheduler backed by daemon `threading.Timer` instances."""

    def __init__(self, thread_name_prefix: str = "ordersync-timer") -> None:
        self.thread_name_prefix = thread_name_prefix
        self._counter = 0
        self._lock = threading.Lock()

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> threading.Timer:
        if delay_seconds < 0:
            msg = "delay_seconds cannot be negative."
            raise ValueError(msg)
        with self._lock:
            self._counter += 1
            name = f"{self.thread_name_prefix}-{self._counter}"
        timer = threading.Timer(float(delay_seconds), callback)
        timer.name = name
        timer.daemon = True
        timer.start()
        return timer
