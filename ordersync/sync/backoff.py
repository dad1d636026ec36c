"""Exponential reconnect delay policy."""

from __future__ import annotations

DEFAULT_RECONNECT_MIN_SECONDS = 1.0
DEFAULT_RECONNECT_MAX_SECONDS = 30.0


class ExponentialBackoff:
    """Doubling delay between `min_seconds` and `max_seconds`.

    `next_delay()` returns the delay to wait now and advances the policy;
    `reset()` returns it to the floor after a successful connection.
    """

    def __init__(
        self,
        min_seconds: float = DEFAULT_RECONNECT_MIN_SECONDS,
        max_seconds: float = DEFAULT_RECONNECT_MAX_SECONDS,
        factor: float = 2.0,
    ) -> None:
        if min_seconds <= 0:
            msg = "min_seconds must be positive."
            raise ValueError(msg)
        if max_seconds < min_seconds:
            msg = "max_seconds must be >= min_seconds."
            raise ValueError(msg)
        if factor < 1:
            msg = "factor must be >= 1."
            raise ValueError(msg)

        self.min_seconds = float(min_seconds)
        self.max_seconds = float(max_seconds)
        self.factor = float(factor)
        self._current = self.min_seconds
        self.failures = 0

    @property
    def current_delay(self) -> float:
        return self._current

    def next_delay(self) -> float:
        delay = self._current
        self._current = min(self._current * self.factor, self.max_seconds)
        self.failures += 1
        return delay

    def reset(self) -> None:
        self._current = self.min_seconds
        self.failures = 0
