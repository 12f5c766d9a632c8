"""Tests for ohlcv_sync.sync.job."""

from __future__ import annotations

import asyncio
from datetime import date

import pytest

from ohlcv_sync.core.config import SyncConfig
from ohlcv_sync.core.exceptions import StorageError, SyncError
from ohlcv_sync.core.models import ErrorKind
from ohlcv_sync.sync.job import IncrementalSyncJob, normalize_symbols
from ohlcv_sync.sync.orchestrator import FallbackOrchestrator

TODAY = date(2024, 6, 14)


@pytest.fixture
def history(series):
    """Daily points from 2024-01-01 up to the day before TODAY."""
    return series(date(2024, 1, 1), (TODAY - date(2024, 1, 1)).days)


def _job(store, providers, sleep, **kwargs) -> IncrementalSyncJob:
    return IncrementalSyncJob(
        store,
        FallbackOrchestrator(providers, sleep=sleep),
        SyncConfig(),
        today=lambda: TODAY,
        **kwargs,
    )


class TestNormalizeSymbols:
    def test_strip_upper_dedupe(self):
        assert normalize_symbols([" aapl", "MSFT", "", "AAPL ", "  ", "msft"]) == ["AAPL", "MSFT"]


class TestSyncSymbols:
    async def test_initial_sync_writes_history(self, store, fake_provider, recording_sleep, window, history):
        provider = fake_provider("primary", earliest=date(2024, 1, 1), default=window(history))
        job = _job(store, [provider], recording_sleep)

        summary = await job.sync_symbols(["aapl"])

        (result,) = summary.results
        assert result.success
        assert result.symbol == "AAPL"
        assert result.records_written == len(history)
        assert result.range_start == date(2024, 1, 1)
        assert result.range_end == TODAY
        assert result.provider == "primary"
        assert summary.total_records == len(history)
        assert summary.completed_at is not None

        meta = await store.get_or_create_symbol_metadata("AAPL")
        assert meta.earliest_date == date(2024, 1, 1)
        assert meta.last_sync_date == TODAY

    async def test_second_run_is_idempotent(self, store, fake_provider, recording_sleep, window, history):
        provider = fake_provider("primary", earliest=date(2024, 1, 1), default=window(history))
        job = _job(store, [provider], recording_sleep)

        await job.sync_symbols(["AAPL"])
        calls_after_first = len(provider.calls)
        summary = await job.sync_symbols(["AAPL"])

        assert summary.results[0].success
        assert summary.total_records == 0
        # Already current: no provider traffic at all
        assert len(provider.calls) == calls_after_first

    async def test_forced_resync_never_overwrites(self, store, fake_provider, recording_sleep, window, history):
        provider = fake_provider("primary", earliest=date(2024, 1, 1), default=window(history))
        job = _job(store, [provider], recording_sleep)

        await job.sync_symbols(["AAPL"])
        summary = await job.sync_symbols(["AAPL"], force_full_resync=True)

        assert summary.total_records == 0
        assert await store.count_prices("AAPL") == len(history)

    async def test_incremental_resume(self, store, fake_provider, recording_sleep, window, history):
        await store.upsert_prices("AAPL", history[:100])
        provider = fake_provider("primary", default=window(history))
        job = _job(store, [provider], recording_sleep)

        summary = await job.sync_symbols(["AAPL"])

        # Resumes the day after the last stored point
        assert provider.calls[0][1] == history[100].date
        assert summary.total_records == len(history) - 100

    async def test_failure_isolated_per_symbol(self, store, fake_provider, recording_sleep, window, history):
        def by_symbol(symbol, start, end):
            if symbol == "BAD":
                return ErrorKind.NOT_FOUND
            return window(history)(symbol, start, end)

        provider = fake_provider("primary", earliest=date(2024, 1, 1), default=by_symbol)
        job = _job(store, [provider], recording_sleep)

        summary = await job.sync_symbols(["AAPL", "BAD", "MSFT"])

        assert [r.symbol for r in summary.results] == ["AAPL", "BAD", "MSFT"]
        assert summary.success_count == 2
        assert summary.failure_count == 1
        bad = summary.failures[0]
        assert bad.error_kind == ErrorKind.EXHAUSTED_PROVIDERS
        assert "primary: not_found" in bad.message
        assert await store.count_prices("BAD") == 0

    async def test_storage_error_recorded(self, store, fake_provider, recording_sleep, window, history, monkeypatch):
        async def broken_upsert(symbol, points):
            raise StorageError("disk full", context={"operation": "upsert"})

        monkeypatch.setattr(store, "upsert_prices", broken_upsert)
        provider = fake_provider("primary", earliest=date(2024, 1, 1), default=window(history))
        job = _job(store, [provider], recording_sleep)

        summary = await job.sync_symbols(["AAPL"])

        assert summary.results[0].error_kind == ErrorKind.STORAGE
        assert summary.results[0].message == "disk full"

    async def test_unexpected_error_recorded(self, store, fake_provider, recording_sleep):
        def explode(symbol, start, end):
            raise RuntimeError("kaboom")

        provider = fake_provider("primary", earliest=date(2024, 1, 1), default=explode)
        job = _job(store, [provider], recording_sleep)

        summary = await job.sync_symbols(["AAPL"])

        result = summary.results[0]
        assert result.error_kind == ErrorKind.UNEXPECTED
        assert result.message == "RuntimeError: kaboom"

    async def test_empty_symbol_list_rejected(self, store, fake_provider, recording_sleep):
        job = _job(store, [fake_provider("primary")], recording_sleep)
        with pytest.raises(SyncError):
            await job.sync_symbols(["", "  "])

    async def test_cancellation_before_next_symbol(self, store, fake_provider, recording_sleep, window, history):
        stop = asyncio.Event()

        def serve_then_stop(symbol, start, end):
            stop.set()
            return window(history)(symbol, start, end)

        provider = fake_provider("primary", earliest=date(2024, 1, 1), default=serve_then_stop)
        job = _job(store, [provider], recording_sleep, stop_event=stop)

        summary = await job.sync_symbols(["AAPL", "MSFT", "GOOG"])

        assert summary.cancelled
        assert [r.symbol for r in summary.results] == ["AAPL"]
        assert summary.not_started == ["MSFT", "GOOG"]
        assert await store.count_prices("AAPL") == len(history)

    async def test_cancel_method(self, store, fake_provider, recording_sleep):
        job = _job(store, [fake_provider("primary")], recording_sleep)
        job.cancel()
        summary = await job.sync_symbols(["AAPL"])
        assert summary.cancelled
        assert summary.results == []
        assert summary.not_started == ["AAPL"]


class TestSyncAll:
    async def test_incremental_over_stored_symbols(self, store, fake_provider, recording_sleep, window, history):
        await store.upsert_prices("AAPL", history[:10])
        await store.get_or_create_symbol_metadata("MSFT")
        provider = fake_provider("primary", earliest=date(2024, 1, 1), default=window(history))
        job = _job(store, [provider], recording_sleep)

        summary = await job.sync_all()

        assert [r.symbol for r in summary.results] == ["AAPL", "MSFT"]
        assert summary.results[0].records_written == len(history) - 10
        assert summary.results[1].records_written == len(history)

    async def test_years_back_limits_start(self, store, fake_provider, recording_sleep):
        await store.get_or_create_symbol_metadata("AAPL")
        provider = fake_provider("primary", earliest=date(1980, 12, 12), default=[])
        job = _job(store, [provider], recording_sleep)

        await job.sync_all(years_back=2)

        assert provider.calls[0][1] == date(2022, 6, 15)

    async def test_no_stored_symbols(self, store, fake_provider, recording_sleep):
        job = _job(store, [fake_provider("primary")], recording_sleep)
        summary = await job.sync_all()
        assert summary.results == []
        assert not summary.cancelled

    async def test_invalid_years_back(self, store, fake_provider, recording_sleep):
        await store.get_or_create_symbol_metadata("AAPL")
        job = _job(store, [fake_provider("primary")], recording_sleep)
        with pytest.raises(SyncError):
            await job.sync_all(years_back=0)
