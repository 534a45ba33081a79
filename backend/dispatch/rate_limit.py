"""
Fixed-window rate limiting keyed by caller identity.

One limiter instance lives on the application context; the dispatcher
checks it before authentication. Pass limiter=None to the context to
disable the check. Expired windows are dropped on each check, so only
callers seen within the last window are tracked.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass


@dataclass
class _Window:
    started_at: float
    count: int


class FixedWindowRateLimiter:
    def __init__(self, max_requests: int, window_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, _Window] = {}

    def __len__(self) -> int:
        return len(self._windows)

    def check(self, caller: str) -> float | None:
        """Count one request for `caller`.

        Returns None when allowed, otherwise the seconds until the window resets.
        """
        now = self._clock()
        self._drop_expired(now)
        window = self._windows.get(caller)
        if window is None:
            self._windows[caller] = _Window(started_at=now, count=1)
            return None
        if window.count >= self.max_requests:
            return self.window_seconds - (now - window.started_at)
        window.count += 1
        return None

    def reset(self, caller: str | None = None) -> None:
        if caller is None:
            self._windows.clear()
        else:
            self._windows.pop(caller, None)
        self._drop_expired(self._clock())

    def _drop_expired(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if now - window.started_at >= self.window_seconds]
        for key in expired:
            del self._windows[key]
