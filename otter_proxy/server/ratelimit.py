"""Fixed-window request rate limiter keyed by client address.

WHY: The proxy forwards every request to Otter with a real user's
credentials. Limiting request volume per client address protects both the
proxy and the Otter account, and a much tighter limit on the login route
slows down credential guessing.

HOW: RateLimiter keeps, per key, the start of the current window and the
number of hits in it. hit() counts a request and returns a RateLimitResult
carrying the values for the RateLimit-* response headers.

RULES:
- Windows are fixed per key and start at the key's first hit
- The request that exceeds the limit is rejected (allowed=False) and still
  counted
- All state changes happen under threading.Lock
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Dict, Tuple


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_seconds: int

    def headers(self) -> Dict[str, str]:
        return {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.reset_seconds),
        }


class RateLimiter:
    """Count hits per key inside fixed windows of ``window_seconds``."""

    def __init__(self, limit: int, window_seconds: float) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> RateLimitResult:
        now = time.monotonic()
        with self._lock:
            start, count = self._windows.get(key, (now, 0))
            if now - start >= self.window_seconds:
                start, count = now, 0
            count += 1
            self._windows[key] = (start, count)

        reset = max(0, math.ceil(start + self.window_seconds - now))
        return RateLimitResult(
            allowed=count <= self.limit,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            reset_seconds=reset,
        )

    def prune(self) -> int:
        """Drop windows that have already ended. Returns how many."""
        now = time.monotonic()
        with self._lock:
            stale = [
                key for key, (start, _) in self._windows.items()
                if now - start >= self.window_seconds
            ]
            for key in stale:
                del self._windows[key]
        return len(stale)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()
