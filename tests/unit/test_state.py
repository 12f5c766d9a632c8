"""Tests for ohlcv_sync.sync.state."""

from __future__ import annotations

from datetime import date

from ohlcv_sync.sync.orchestrator import FallbackOrchestrator
from ohlcv_sync.sync.state import SyncStateResolver

TODAY = date(2024, 6, 14)


def _resolver(store, provider, sleep) -> SyncStateResolver:
    return SyncStateResolver(store, FallbackOrchestrator([provider], sleep=sleep), today=lambda: TODAY)


async def test_resume_after_last_stored_date(store, fake_provider, recording_sleep, point):
    await store.upsert_prices("AAPL", [point(date(2024, 6, 10))])
    resolver = _resolver(store, fake_provider("p", earliest=date(1980, 12, 12)), recording_sleep)

    state = await resolver.resolve("AAPL")

    assert state.start == date(2024, 6, 11)
    assert state.end == TODAY
    assert state.last_stored_date == date(2024, 6, 10)
    assert state.earliest_available_date is None
    assert not state.is_current


async def test_full_sync_from_earliest_available(store, fake_provider, recording_sleep):
    resolver = _resolver(store, fake_provider("p", earliest=date(1999, 5, 3)), recording_sleep)

    state = await resolver.resolve("NEWCO")

    assert state.start == date(1999, 5, 3)
    assert state.earliest_available_date == date(1999, 5, 3)
    assert state.last_stored_date is None


async def test_forced_resync_ignores_stored_data(store, fake_provider, recording_sleep, point):
    await store.upsert_prices("AAPL", [point(date(2024, 6, 10))])
    resolver = _resolver(store, fake_provider("p", earliest=date(1980, 12, 12)), recording_sleep)

    state = await resolver.resolve("AAPL", force_full_resync=True)

    assert state.start == date(1980, 12, 12)


async def test_up_to_date_is_current(store, fake_provider, recording_sleep, point):
    await store.upsert_prices("AAPL", [point(date(2024, 6, 13))])
    resolver = _resolver(store, fake_provider("p"), recording_sleep)

    state = await resolver.resolve("AAPL")

    assert state.start == TODAY
    assert state.is_current


async def test_explicit_end(store, fake_provider, recording_sleep):
    resolver = _resolver(store, fake_provider("p", earliest=date(2000, 1, 3)), recording_sleep)
    state = await resolver.resolve("AAPL", end=date(2010, 12, 31))
    assert state.end == date(2010, 12, 31)


async def test_floor_limits_full_sync(store, fake_provider, recording_sleep):
    resolver = _resolver(store, fake_provider("p", earliest=date(1980, 12, 12)), recording_sleep)
    state = await resolver.resolve("AAPL", force_full_resync=True, floor=date(2019, 6, 15))
    assert state.start == date(2019, 6, 15)


async def test_floor_never_moves_start_before_earliest(store, fake_provider, recording_sleep):
    resolver = _resolver(store, fake_provider("p", earliest=date(2021, 3, 1)), recording_sleep)
    state = await resolver.resolve("NEWCO", floor=date(2019, 6, 15))
    assert state.start == date(2021, 3, 1)
