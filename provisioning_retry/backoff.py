"""
Retry Backoff
=============
Backoff policies mapping a retry number to the delay before it may run.
"""

import random
from typing import Optional, Protocol, Sequence, Tuple

DEFAULT_SCHEDULE: Tuple[int, ...] = (60, 300, 1800)  # 1min, 5min, 30min
DEFAULT_FALLBACK_SECONDS = 3600  # 1 hour


class BackoffPolicy(Protocol):
    """Maps a 1-based attempt number to a delay in seconds."""

    def delay_seconds(self, attempt: int) -> int:
        ...


class StaircaseBackoff:
    """
    Fixed step table of delays.

    Attempt ``n`` waits ``schedule[n - 1]`` seconds. Attempts past the end of
    the table wait ``fallback_seconds``. Attempts below 1 use the first step.

    Example:
        policy = StaircaseBackoff((60, 300, 1800), fallback_seconds=3600)
        policy.delay_seconds(2)  # 300
    """

    def __init__(
        self,
        schedule: Sequence[int] = DEFAULT_SCHEDULE,
        fallback_seconds: int = DEFAULT_FALLBACK_SECONDS,
    ):
        schedule = tuple(int(step) for step in schedule)
        if not schedule:
            raise ValueError("backoff schedule must not be empty")
        if any(step < 0 for step in schedule):
            raise ValueError("backoff delays must be >= 0")
        if any(a > b for a, b in zip(schedule, schedule[1:])):
            raise ValueError("backoff schedule must be non-decreasing")
        if fallback_seconds < schedule[-1]:
            raise ValueError("fallback delay must be >= the last scheduled delay")

        self.schedule = schedule
        self.fallback_seconds = int(fallback_seconds)

    def delay_seconds(self, attempt: int) -> int:
        if attempt < 1:
            return self.schedule[0]
        if attempt > len(self.schedule):
            return self.fallback_seconds
        return self.schedule[attempt - 1]

    def __repr__(self) -> str:
        return f"StaircaseBackoff(schedule={self.schedule}, fallback_seconds={self.fallback_seconds})"


class ExponentialBackoff:
    """
    Exponential backoff with optional jitter.

    delay = min(base_delay * exponential_base ** (attempt - 1), max_delay),
    scaled by a random factor in [0.5, 1.5) when jitter is on.
    """

    def __init__(
        self,
        base_delay: float = 60.0,
        max_delay: float = 3600.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        rng: Optional[random.Random] = None,
    ):
        if base_delay <= 0 or max_delay < base_delay:
            raise ValueError("require 0 < base_delay <= max_delay")
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self._rng = rng or random.Random()

    def delay_seconds(self, attempt: int) -> int:
        attempt = max(attempt, 1)
        try:
            delay = min(
                self.base_delay * (self.exponential_base ** (attempt - 1)),
                self.max_delay,
            )
        except OverflowError:
            delay = self.max_delay
        if self.jitter:
            delay = min(delay * (0.5 + self._rng.random()), self.max_delay)
        return int(delay)


DEFAULT_BACKOFF = StaircaseBackoff()


def calculate_backoff_seconds(attempt: int) -> int:
    """Delay for ``attempt`` under the default 1min/5min/30min staircase."""
    return DEFAULT_BACKOFF.delay_seconds(attempt)
