"""Sliding-window usage accounting for the enrichment API quota."""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Optional


@dataclass(frozen=True)
class UsageSample:
    timestamp: float
    cost: int


class UsageTracker:
    """Tracks tokens and requests consumed in a trailing window.

    Not thread-safe on its own; the scheduler owns the single instance and
    only touches it while holding its lock.
    """

    def __init__(self, window_seconds: float = 60.0, clock: Optional[Callable[[], float]] = None):
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.window_seconds = float(window_seconds)
        self._clock = clock or time.monotonic
        self._samples: Deque[UsageSample] = deque()

    def record(self, cost: int) -> None:
        """Record one completed request that consumed `cost` tokens."""
        self._prune()
        self._samples.append(UsageSample(timestamp=self._clock(), cost=max(0, int(cost))))

    def tokens_used(self) -> int:
        self._prune()
        return sum(s.cost for s in self._samples)

    def requests_used(self) -> int:
        self._prune()
        return len(self._samples)

    def seconds_until_reset(self) -> float:
        """Seconds until the oldest sample leaves the window (0 when empty)."""
        self._prune()
        if not self._samples:
            return 0.0
        expires_at = self._samples[0].timestamp + self.window_seconds
        return max(0.0, expires_at - self._clock())

    def _prune(self) -> None:
        horizon = self._clock() - self.window_seconds
        while self._samples and self._samples[0].timestamp <= horizon:
            self._samples.popleft()
