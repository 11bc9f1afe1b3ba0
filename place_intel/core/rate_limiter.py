"""
Sliding window rate limiter

Bounds how often the telemetry sampler may record a snapshot, both per
venue and across the whole process, so a hot venue or a batch enrichment
run cannot flood the telemetry sink.

Usage:
    limiter = RateLimiter("telemetry_per_venue", max_requests=2, window_seconds=3600)
    if limiter.is_allowed(venue_key):
        ...
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class RateLimiterStats:
    """Statistics for rate limiter"""
    name: str
    total_requests: int = 0
    total_allowed: int = 0
    total_rejected: int = 0

    @property
    def rejection_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.total_rejected / self.total_requests

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "total_requests": self.total_requests,
            "total_allowed": self.total_allowed,
            "total_rejected": self.total_rejected,
            "rejection_rate": self.rejection_rate,
        }


class RateLimiter:
    """
    Sliding window rate limiter.

    Attributes:
        name: Identifier for this rate limiter
        max_requests: Maximum requests allowed per window and key
        window_seconds: Window size in seconds
    """

    def __init__(
        self,
        name: str,
        max_requests: int = 1,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock

        # {key: deque of timestamps}
        self._windows: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()
        self._stats = RateLimiterStats(name=name)

    @property
    def stats(self) -> RateLimiterStats:
        return self._stats

    @property
    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._windows)

    def _trim(self, window: Deque[float], now: float) -> None:
        cutoff = now - self.window_seconds
        while window and window[0] <= cutoff:
            window.popleft()

    def is_allowed(self, key: str = "global") -> bool:
        """Record an attempt for key; True if it fits in the current window."""
        with self._lock:
            self._stats.total_requests += 1
            now = self._clock()
            window = self._windows.setdefault(key, deque())
            self._trim(window, now)

            if len(window) < self.max_requests:
                window.append(now)
                self._stats.total_allowed += 1
                return True

            self._stats.total_rejected += 1
            logger.debug(
                f"Rate limited key '{key}' in limiter '{self.name}': "
                f"{len(window)}/{self.max_requests} in window"
            )
            return False

    def get_current_count(self, key: str = "global") -> int:
        with self._lock:
            window = self._windows.get(key)
            if not window:
                return 0
            self._trim(window, self._clock())
            return len(window)

    def reset(self, key: Optional[str] = None):
        """Reset one key, or every key when none is given."""
        with self._lock:
            if key:
                self._windows.pop(key, None)
            else:
                self._windows.clear()

    def cleanup_expired(self) -> int:
        """Drop keys whose windows have fully expired. Returns count removed."""
        with self._lock:
            now = self._clock()
            empty = []
            for key, window in self._windows.items():
                self._trim(window, now)
                if not window:
                    empty.append(key)
            for key in empty:
                del self._windows[key]
            return len(empty)
