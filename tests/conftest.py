"""Shared pytest fixtures for ohlcv-sync."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from ohlcv_sync.core.config import StorageConfig, SyncConfig
from ohlcv_sync.core.models import FALLBACK_START_DATE, ErrorKind, PricePoint, ProviderFailure, ProviderIdentity
from ohlcv_sync.store import SqlitePriceStore


def make_point(day: date, close: float = 100.0, **overrides) -> PricePoint:
    fields = dict(
        date=day,
        open=close - 1,
        high=close + 1,
        low=close - 2,
        close=close,
        volume=1_000_000,
    )
    fields.update(overrides)
    return PricePoint(**fields)


def make_series(start: date, days: int, close: float = 100.0) -> list[PricePoint]:
    """One point per calendar day, closes increasing by 1."""
    return [make_point(start + timedelta(days=i), close + i) for i in range(days)]


class FakeProvider:
    """Scripted ProviderAdapter.

    ``responses`` is consumed in order by ``fetch_range``; each item is a list
    of points, a ``ProviderFailure`` kind, or a callable ``(symbol, start, end)``
    returning either. Once exhausted, ``default`` is used.
    """

    def __init__(
        self,
        name: str,
        priority: int = 0,
        responses=None,
        default=None,
        configured: bool = True,
        earliest: date = FALLBACK_START_DATE,
        healthy: bool = True,
    ):
        self._name = name
        self._priority = priority
        self._responses = list(responses or [])
        self._default = default if default is not None else []
        self._configured = configured
        self._earliest = earliest
        self._healthy = healthy
        self.calls: list[tuple[str, date, date]] = []
        self.closed = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def identity(self) -> ProviderIdentity:
        return ProviderIdentity(name=self._name, priority=self._priority)

    @property
    def is_configured(self) -> bool:
        return self._configured

    async def fetch_range(self, symbol, start, end):
        self.calls.append((symbol, start, end))
        if not self._configured:
            return ProviderFailure(kind=ErrorKind.CONFIG_MISSING, provider=self._name, message="no key")
        item = self._responses.pop(0) if self._responses else self._default
        if callable(item):
            item = item(symbol, start, end)
        if isinstance(item, ErrorKind):
            return ProviderFailure(kind=item, provider=self._name, message=item.value)
        return item

    async def earliest_available(self, symbol):
        return self._earliest

    async def health_check(self):
        return self._healthy

    async def aclose(self):
        self.closed = True


def serve_window(points: list[PricePoint]):
    """FakeProvider response that filters ``points`` to the requested window."""

    def _serve(symbol, start, end):
        return [p for p in points if start <= p.date <= end]

    return _serve


class RecordingSleep:
    """Async sleep stand-in that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def point():
    """Factory: ``point(day, close=100.0, **overrides)``."""
    return make_point


@pytest.fixture
def series():
    """Factory: ``series(start, days, close=100.0)``."""
    return make_series


@pytest.fixture
def fake_provider():
    """Factory for scripted providers; see ``FakeProvider``."""
    return FakeProvider


@pytest.fixture
def window():
    """Factory: ``window(points)`` serves the requested date window."""
    return serve_window


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig(rate_limit_cooldown_seconds=60.0)


@pytest.fixture
async def store():
    """An in-memory SqlitePriceStore."""
    s = SqlitePriceStore(StorageConfig(sqlite_path=":memory:"))
    await s.initialize()
    yield s
    await s.close()
