"""Sliding-window quota on how often new jobs may be started."""
from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a quota check."""

    allowed: bool
    remaining: int
    retry_after: Optional[timedelta] = None


def can_start(
    history: Iterable[datetime],
    now: datetime,
    window_hours: float = 1.0,
    max_per_window: int = 5,
) -> RateLimitDecision:
    """Count starts inside the trailing window and decide whether another may begin.

    Pure query: recording the new start is left to the caller so that rejected
    attempts never count against the quota.
    """

    window = timedelta(hours=window_hours)
    recent = sorted(timestamp for timestamp in history if now - timestamp < window)
    remaining = max(0, max_per_window - len(recent))
    if len(recent) < max_per_window:
        return RateLimitDecision(allowed=True, remaining=remaining)

    # The slot frees up once the oldest start that keeps us at the cap ages out.
    blocking = recent[len(recent) - max_per_window]
    return RateLimitDecision(allowed=False, remaining=0, retry_after=blocking + window - now)


class SlidingWindowRateLimiter:
    """Thread-safe start history evaluated with :func:`can_start`."""

    def __init__(
        self,
        *,
        window_hours: float = 1.0,
        max_per_window: int = 5,
        history: Optional[Iterable[datetime]] = None,
    ) -> None:
        self._window_hours = window_hours
        self._max_per_window = max_per_window
        self._history: List[datetime] = list(history or [])
        self._lock = threading.Lock()

    @property
    def max_per_window(self) -> int:
        return self._max_per_window

    @property
    def history(self) -> List[datetime]:
        with self._lock:
            return list(self._history)

    def check(self, now: datetime) -> RateLimitDecision:
        with self._lock:
            return can_start(self._history, now, self._window_hours, self._max_per_window)

    def record(self, now: datetime) -> None:
        with self._lock:
            self._history.append(now)

    def prune(self, now: datetime) -> List[datetime]:
        """Drop starts that have left the window and return what is kept."""

        window = timedelta(hours=self._window_hours)
        with self._lock:
            self._history = [timestamp for timestamp in self._history if now - timestamp < window]
            return list(self._history)


__all__ = ["RateLimitDecision", "SlidingWindowRateLimiter", "can_start"]
