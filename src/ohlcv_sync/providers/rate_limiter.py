"""Per-provider call budgets.

Provider quotas are phrased as "N calls per minute", so the default limiter
bursts up to N calls with no delay and then waits for the next window
boundary instead of spacing every call evenly.

The fixed window is an approximation of a rolling limit: a burst at the end
of one window followed by a burst at the start of the next can briefly
exceed the nominal rate across the boundary.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from aiolimiter import AsyncLimiter

from ohlcv_sync.core.config import RateLimitConfig, RateLimitStrategy

logger = logging.getLogger(__name__)


@runtime_checkable
class RateLimiter(Protocol):
    """Anything an adapter can await before a network call."""

    async def acquire(self) -> None: ...


@dataclass
class RateBudget:
    """Mutable budget state. Only the owning limiter touches it."""

    window_length_seconds: float
    max_requests_per_window: int
    window_start: float = 0.0
    requests_in_window: int = 0

    def bucket_of(self, now: float) -> float:
        """Start of the epoch-aligned window containing ``now``."""
        return math.floor(now / self.window_length_seconds) * self.window_length_seconds

    @property
    def exhausted(self) -> bool:
        return self.requests_in_window >= self.max_requests_per_window


class FixedWindowRateLimiter:
    """Batch-then-wait limiter over epoch-aligned windows.

    The counter and window start are updated under an ``asyncio.Lock``, so
    concurrent callers sharing one adapter can never overrun the budget.
    Callers that arrive while another is waiting for the boundary queue on
    the lock.

    Parameters
    ----------
    max_requests : int
        Calls allowed per window.
    window_seconds : float
        Window length. Windows are aligned to multiples of this value.
    safety_margin : float
        Extra seconds slept past the boundary to absorb clock skew with
        the provider.
    clock, sleep :
        Injectable for tests. Default to ``time.time`` / ``asyncio.sleep``.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float = 60.0,
        safety_margin: float = 0.5,
        *,
        name: str = "provider",
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self._budget = RateBudget(
            window_length_seconds=window_seconds,
            max_requests_per_window=max_requests,
        )
        self._margin = safety_margin
        self._name = name
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()

    @property
    def requests_in_window(self) -> int:
        return self._budget.requests_in_window

    @property
    def max_requests(self) -> int:
        return self._budget.max_requests_per_window

    async def acquire(self) -> None:
        """Count one call against the budget, waiting for the next window if spent."""
        async with self._lock:
            budget = self._budget
            now = self._clock()
            bucket = budget.bucket_of(now)
            if bucket != budget.window_start:
                budget.window_start = bucket
                budget.requests_in_window = 0

            if budget.exhausted:
                boundary = budget.window_start + budget.window_length_seconds
                wait = boundary - now + self._margin
                logger.warning(
                    "%s rate limit: %d/%d requests used, waiting %.1fs for next window",
                    self._name,
                    budget.requests_in_window,
                    budget.max_requests_per_window,
                    wait,
                )
                await self._sleep(wait)
                budget.window_start = budget.bucket_of(max(self._clock(), boundary))
                budget.requests_in_window = 0

            budget.requests_in_window += 1
            logger.debug(
                "%s request %d/%d in current window",
                self._name,
                budget.requests_in_window,
                budget.max_requests_per_window,
            )


def build_rate_limiter(config: RateLimitConfig, name: str = "provider") -> RateLimiter:
    """Create the limiter described by ``config``.

    ``window`` gives a :class:`FixedWindowRateLimiter`; ``token_bucket``
    gives an ``aiolimiter.AsyncLimiter`` for providers without a published
    per-window quota.
    """
    if config.strategy == RateLimitStrategy.TOKEN_BUCKET:
        return AsyncLimiter(max_rate=config.max_requests, time_period=config.window_seconds)
    return FixedWindowRateLimiter(
        max_requests=config.max_requests,
        window_seconds=config.window_seconds,
        safety_margin=config.safety_margin_seconds,
        name=name,
    )
