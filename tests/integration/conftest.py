"""Integration test fixtures — real adapters, store and job; HTTP mocked."""

from __future__ import annotations

from datetime import date, timedelta
from pathlib import Path

import pytest

from ohlcv_sync.core.config import AppConfig
from ohlcv_sync.store import SqlitePriceStore, create_store


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    return AppConfig.model_validate(
        {
            "providers": {
                "twelve_data": {"api_key": "td-key"},
                "alpha_vantage": {"api_key": "av-key"},
                "yahoo": {"enabled": False},
            },
            "storage": {"sqlite_path": str(tmp_path / "integration.db")},
        }
    )


@pytest.fixture
async def integration_store(app_config: AppConfig) -> SqlitePriceStore:
    store = await create_store(app_config.storage)
    yield store
    await store.close()


def _business_days(start: date, end: date) -> list[date]:
    days = []
    current = start
    while current <= end:
        if current.weekday() < 5:
            days.append(current)
        current += timedelta(days=1)
    return days


@pytest.fixture
def trading_days():
    """Factory: weekdays in ``[start, end]``."""
    return _business_days


@pytest.fixture
def twelve_data_payload():
    """Factory: Twelve Data ``/time_series`` body for the given days (newest first)."""

    def _make(days: list[date]) -> dict:
        return {
            "meta": {"symbol": "AAPL", "interval": "1day"},
            "values": [
                {
                    "datetime": d.isoformat(),
                    "open": "100.0",
                    "high": "101.0",
                    "low": "99.0",
                    "close": f"{100 + i * 0.1:.2f}",
                    "volume": "1000000",
                }
                for i, d in enumerate(sorted(days, reverse=True))
            ],
            "status": "ok",
        }

    return _make


@pytest.fixture
def alpha_vantage_payload():
    """Factory: Alpha Vantage daily adjusted body for the given days."""

    def _make(days: list[date]) -> dict:
        return {
            "Meta Data": {"2. Symbol": "AAPL"},
            "Time Series (Daily)": {
                d.isoformat(): {
                    "1. open": "100.0",
                    "2. high": "101.0",
                    "3. low": "99.0",
                    "4. close": "100.5",
                    "5. adjusted close": "100.4",
                    "6. volume": "1000000",
                }
                for d in days
            },
        }

    return _make
