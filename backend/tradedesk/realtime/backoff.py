"""
Reconnect backoff policies
"""

import random
from typing import Callable, Optional
from tradedesk.core.config import Settings, get_realtime_config


class LinearBackoff:
    """Wait ``attempt * base_delay`` before attempt number ``attempt``"""

    def __init__(self, base_delay: float = 1.0, max_attempts: int = 5):
        if base_delay < 0:
            raise ValueError("base_delay must be non-negative")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.base_delay = base_delay
        self.max_attempts = max_attempts

    def allows(self, attempt: int) -> bool:
        return attempt <= self.max_attempts

    def delay(self, attempt: int) -> float:
        return attempt * self.base_delay

    def __repr__(self) -> str:
        return f"LinearBackoff(base_delay={self.base_delay}, max_attempts={self.max_attempts})"


class ExponentialBackoff:
    """Exponential backoff with full jitter.

    The ceiling for attempt ``n`` is ``min(max_delay, base_delay * 2 ** (n - 1))``;
    with jitter the actual delay is drawn uniformly from ``[0, ceiling]``.
    ``max_attempts=None`` retries forever.
    """

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        max_attempts: Optional[int] = None,
        jitter: bool = True,
        rng: Optional[Callable[[float, float], float]] = None
    ):
        if base_delay < 0 or max_delay < 0:
            raise ValueError("delays must be non-negative")
        if max_attempts is not None and max_attempts < 1:
            raise ValueError("max_attempts must be at least 1 or None")
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_attempts = max_attempts
        self.jitter = jitter
        self._uniform = rng or random.uniform

    def allows(self, attempt: int) -> bool:
        return self.max_attempts is None or attempt <= self.max_attempts

    def delay(self, attempt: int) -> float:
        ceiling = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        if not self.jitter:
            return ceiling
        return self._uniform(0, ceiling)

    def __repr__(self) -> str:
        return (
            f"ExponentialBackoff(base_delay={self.base_delay}, max_delay={self.max_delay}, "
            f"max_attempts={self.max_attempts}, jitter={self.jitter})"
        )


def build_backoff(config: Optional[Settings] = None):
    """Build the reconnect policy named by RECONNECT_STRATEGY"""
    realtime = get_realtime_config(config)
    if realtime["reconnect_strategy"] == "exponential":
        return ExponentialBackoff(
            base_delay=realtime["reconnect_base_delay"],
            max_delay=realtime["reconnect_max_delay"],
            max_attempts=realtime["max_reconnect_attempts"] or None
        )
    return LinearBackoff(
        base_delay=realtime["reconnect_base_delay"],
        max_attempts=realtime["max_reconnect_attempts"] or 5
    )


__all__ = ["LinearBackoff", "ExponentialBackoff", "build_backoff"]
