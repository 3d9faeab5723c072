"""
Stock Analysis — Rate Limiter
───────────────────────────────
Fixed one-minute window per client origin. Over budget means reject (429),
never queue.

Budgets:
  standard   MAX_REQUESTS_PER_MINUTE per origin   (trending)
  strict     5 per minute per origin              (anything that may call the AI)

Origin = first X-Forwarded-For hop, else the socket peer, else "unknown".
"""

import logging
import math
import time
from typing import Callable, Dict, Optional, Tuple

from fastapi import Request

log = logging.getLogger("fintrack.rate_limiter")

WINDOW_S = 60.0
IDLE_WINDOW_TTL_S = 10 * 60   # forget origins idle this long


class RateLimitExceeded(Exception):
    """Raised before the request reaches the service. Rendered as HTTP 429."""

    def __init__(self, message: str, retry_after: int):
        super().__init__(message)
        self.message     = message
        self.retry_after = retry_after


class FixedWindow:
    """
    At most `limit` hits per window. A window opens on the first hit after
    the previous one closed, so no window_s span starting at a window open
    ever admits more than `limit`.
    """

    def __init__(self, limit: int, window_s: float = WINDOW_S,
                 clock: Callable[[], float] = time.monotonic):
        self.limit    = limit
        self.window_s = window_s
        self._clock   = clock
        self._start   = clock()
        self._count   = 0
        self._last    = self._start

    def try_acquire(self) -> Tuple[bool, float]:
        """
        Count a hit if the window has room. Returns (allowed, retry_after_seconds).
        Never blocks.
        """
        now = self._clock()
        self._last = now
        if now - self._start >= self.window_s:
            self._start = now
            self._count = 0
        if self._count < self.limit:
            self._count += 1
            return True, 0.0
        return False, self._start + self.window_s - now

    @property
    def idle_for(self) -> float:
        return self._clock() - self._last


def client_origin(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class RateLimiter:
    """
    `per_minute` requests per origin per fixed window.
    Use an instance as a FastAPI dependency.
    """

    def __init__(self, name: str, per_minute: int, message: str,
                 clock: Callable[[], float] = time.monotonic):
        self.name       = name
        self.per_minute = per_minute
        self.message    = message
        self._clock     = clock
        self._windows: Dict[str, FixedWindow] = {}
        self._last_prune = clock()

    def _window(self, origin: str) -> FixedWindow:
        window = self._windows.get(origin)
        if window is None:
            window = FixedWindow(self.per_minute, WINDOW_S, clock=self._clock)
            self._windows[origin] = window
        return window

    def _prune(self) -> None:
        if self._clock() - self._last_prune < IDLE_WINDOW_TTL_S:
            return
        self._last_prune = self._clock()
        stale = [o for o, w in self._windows.items() if w.idle_for > IDLE_WINDOW_TTL_S]
        for origin in stale:
            del self._windows[origin]

    def check(self, origin: str) -> Optional[int]:
        """None if allowed, else whole seconds until the window reopens."""
        self._prune()
        allowed, wait = self._window(origin).try_acquire()
        if allowed:
            return None
        return max(1, math.ceil(wait))

    async def __call__(self, request: Request) -> None:
        origin = client_origin(request)
        retry_after = self.check(origin)
        if retry_after is not None:
            log.warning(f"Rate limit ({self.name}) hit by {origin}, retry in {retry_after}s")
            raise RateLimitExceeded(self.message, retry_after)


def build_limiters(standard_per_minute: int, strict_per_minute: int,
                   clock: Callable[[], float] = time.monotonic) -> Tuple[RateLimiter, RateLimiter]:
    standard = RateLimiter(
        "standard", standard_per_minute,
        "Too many requests, please try again later.",
        clock=clock,
    )
    strict = RateLimiter(
        "strict", strict_per_minute,
        "Rate limit exceeded for AI analysis. Please wait before making more requests.",
        clock=clock,
    )
    return standard, strict
