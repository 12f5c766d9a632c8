"""Tests for ohlcv_sync.providers.rate_limiter."""

from __future__ import annotations

import asyncio

import pytest
from aiolimiter import AsyncLimiter

from ohlcv_sync.core.config import RateLimitConfig, RateLimitStrategy
from ohlcv_sync.providers.rate_limiter import (
    FixedWindowRateLimiter,
    RateBudget,
    RateLimiter,
    build_rate_limiter,
)


class FakeClock:
    """Manual clock whose sleep advances time."""

    def __init__(self, now: float = 0.0):
        self.now = now
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    # 10s into a 60s window
    return FakeClock(now=6010.0)


def _limiter(clock: FakeClock, max_requests: int = 8) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(
        max_requests=max_requests,
        window_seconds=60.0,
        safety_margin=0.5,
        clock=clock,
        sleep=clock.sleep,
    )


class TestRateBudget:
    def test_bucket_alignment(self):
        budget = RateBudget(window_length_seconds=60.0, max_requests_per_window=8)
        assert budget.bucket_of(6010.0) == 6000.0
        assert budget.bucket_of(6059.9) == 6000.0
        assert budget.bucket_of(6060.0) == 6060.0

    def test_exhausted(self):
        budget = RateBudget(60.0, 2, requests_in_window=2)
        assert budget.exhausted


class TestFixedWindowRateLimiter:
    async def test_burst_within_budget_has_no_delay(self, clock):
        limiter = _limiter(clock)
        for _ in range(8):
            await limiter.acquire()
        assert clock.sleeps == []
        assert limiter.requests_in_window == 8

    async def test_ninth_call_waits_for_boundary_plus_margin(self, clock):
        limiter = _limiter(clock)
        for _ in range(9):
            await limiter.acquire()
        # boundary at 6060, now 6010, margin 0.5
        assert clock.sleeps == [pytest.approx(50.5)]
        assert limiter.requests_in_window == 1

    async def test_new_window_resets_counter(self, clock):
        limiter = _limiter(clock)
        for _ in range(8):
            await limiter.acquire()
        clock.now = 6075.0
        await limiter.acquire()
        assert clock.sleeps == []
        assert limiter.requests_in_window == 1

    async def test_never_exceeds_budget_per_window(self, clock):
        limiter = _limiter(clock, max_requests=3)
        stamps: list[float] = []
        for _ in range(10):
            await limiter.acquire()
            stamps.append(clock.now)
        per_window: dict[int, int] = {}
        for t in stamps:
            per_window[int(t // 60)] = per_window.get(int(t // 60), 0) + 1
        assert max(per_window.values()) <= 3

    async def test_concurrent_callers_share_budget(self, clock):
        limiter = _limiter(clock, max_requests=2)
        await asyncio.gather(*(limiter.acquire() for _ in range(5)))
        # 2 in the first window, 2 in the next, 1 in the third
        assert len(clock.sleeps) == 2

    def test_rejects_bad_arguments(self):
        with pytest.raises(ValueError):
            FixedWindowRateLimiter(max_requests=0)
        with pytest.raises(ValueError):
            FixedWindowRateLimiter(max_requests=1, window_seconds=0)

    def test_satisfies_protocol(self, clock):
        assert isinstance(_limiter(clock), RateLimiter)


class TestBuildRateLimiter:
    def test_window_strategy(self):
        limiter = build_rate_limiter(RateLimitConfig(max_requests=5), name="alpha_vantage")
        assert isinstance(limiter, FixedWindowRateLimiter)
        assert limiter.max_requests == 5

    def test_token_bucket_strategy(self):
        limiter = build_rate_limiter(
            RateLimitConfig(strategy=RateLimitStrategy.TOKEN_BUCKET, max_requests=2, window_seconds=1.0)
        )
        assert isinstance(limiter, AsyncLimiter)
        assert isinstance(limiter, RateLimiter)
