from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass
from threading import Lock
import time


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after_seconds: int


class SlidingWindowRateLimiter:
    """In-process limiter keyed by client; one deque of hit timestamps per key."""

    def __init__(self, *, max_requests: int, window_seconds: int, clock=time.monotonic):
        self._max_requests = max(1, int(max_requests))
        self._window_seconds = max(1, int(window_seconds))
        self._clock = clock
        self._events: dict[str, deque[float]] = defaultdict(deque)
        self._lock = Lock()

    def evaluate(self, key: str) -> RateLimitDecision:
        now = self._clock()
        cutoff = now - self._window_seconds

        with self._lock:
            queue = self._events[key]
            while queue and queue[0] <= cutoff:
                queue.popleft()

            if len(queue) >= self._max_requests:
                retry_after = max(1, int(self._window_seconds - (now - queue[0])))
                return RateLimitDecision(allowed=False, retry_after_seconds=retry_after)

            queue.append(now)
            return RateLimitDecision(allowed=True, retry_after_seconds=0)

    def forget(self, key: str) -> None:
        """Drop the history for a key, e.g. after a successful login."""
        with self._lock:
            self._events.pop(key, None)
