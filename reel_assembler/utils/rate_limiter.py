"""Rate Limiter - throttles provider calls to stay inside published quotas."""

import time
from collections import defaultdict, deque
from threading import Lock
from typing import Optional


class RateLimiter:
    """Thread-safe sliding-window rate limiter."""

    def __init__(self, max_calls: int = 60, time_window: float = 60.0):
        """
        Initialize rate limiter.

        Args:
            max_calls: Maximum number of calls allowed in time_window
            time_window: Time window in seconds (default: 60 seconds)
        """
        self.max_calls = max_calls
        self.time_window = time_window
        self.calls: dict[str, deque] = defaultdict(deque)
        self.lock = Lock()

    def _prune(self, endpoint: str, now: float) -> deque:
        calls = self.calls[endpoint]
        while calls and now - calls[0] >= self.time_window:
            calls.popleft()
        return calls

    def wait_if_needed(self, endpoint: str = "default") -> float:
        """
        Block until a call to ``endpoint`` fits in the window, then record it.

        Returns:
            Seconds spent waiting
        """
        waited = 0.0
        while True:
            with self.lock:
                now = time.monotonic()
                calls = self._prune(endpoint, now)
                if len(calls) < self.max_calls:
                    calls.append(now)
                    return waited
                wait_time = calls[0] + self.time_window - now
            # Sleep outside the lock so other endpoints are not blocked
            time.sleep(max(wait_time, 0.01))
            waited += max(wait_time, 0.01)

    def can_proceed(self, endpoint: str = "default") -> bool:
        with self.lock:
            return len(self._prune(endpoint, time.monotonic())) < self.max_calls

    def reset(self, endpoint: Optional[str] = None) -> None:
        with self.lock:
            if endpoint:
                self.calls.pop(endpoint, None)
            else:
                self.calls.clear()


# Global rate limiters, one per provider
_limiters: dict[str, RateLimiter] = {}
_limiters_lock = Lock()


def get_provider_limiter(provider: str, max_calls: int = 60, time_window: float = 60.0) -> RateLimiter:
    """Get or create the shared limiter for a provider (pexels, pixabay, jamendo)."""
    with _limiters_lock:
        limiter = _limiters.get(provider)
        if limiter is None:
            limiter = RateLimiter(max_calls=max_calls, time_window=time_window)
            _limiters[provider] = limiter
        return limiter
