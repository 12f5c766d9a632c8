"""Alpha Vantage adapter — first backup provider.

Uses ``TIME_SERIES_DAILY_ADJUSTED`` with ``outputsize=full``. The endpoint
ignores date windows and always returns the whole history, so the adapter
filters locally and keeps the last full series in a short-lived cache:
a chunked fetch asks for several windows of the same symbol in a row, and the
free tier allows only a handful of calls.

Alpha Vantage reports every problem as HTTP 200 with a keyed message:

- ``"Error Message"``: unknown symbol or bad call
- ``"Note"`` / ``"Information"``: call frequency exceeded (or premium endpoint)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import date
from typing import Any, ClassVar

from ohlcv_sync.core.config import AlphaVantageConfig
from ohlcv_sync.core.models import ErrorKind, PricePoint, ProviderFailure
from ohlcv_sync.providers.base import FetchOutcome, HttpProviderAdapter, parse_float, parse_volume

logger = logging.getLogger(__name__)

_SERIES_KEY = "Time Series (Daily)"
_SERIES_CACHE_TTL = 300.0
_RATE_LIMIT_HINTS = ("call frequency", "rate limit", "requests per")


class AlphaVantageAdapter(HttpProviderAdapter):
    """Fetches daily adjusted bars from Alpha Vantage."""

    provider_name: ClassVar[str] = "alpha_vantage"
    requires_api_key: ClassVar[bool] = True

    def __init__(
        self,
        config: AlphaVantageConfig,
        *,
        monotonic: Callable[[], float] = time.monotonic,
        **kwargs: Any,
    ) -> None:
        super().__init__(config, **kwargs)
        self._monotonic = monotonic
        self._series_cache: tuple[str, float, dict[str, Any]] | None = None

    async def _fetch(self, symbol: str, start: date, end: date) -> FetchOutcome:
        series = await self._daily_series(symbol)
        if isinstance(series, ProviderFailure):
            return series
        if series is None:
            logger.warning("No time series data returned from Alpha Vantage for %s", symbol)
            return []
        return self._parse_series(series, symbol, start, end)

    async def _daily_series(self, symbol: str) -> dict[str, Any] | ProviderFailure | None:
        """Full daily series for ``symbol``, served from cache when fresh."""
        now = self._monotonic()
        if self._series_cache is not None:
            cached_symbol, fetched_at, cached = self._series_cache
            if cached_symbol == symbol and now - fetched_at < _SERIES_CACHE_TTL:
                return cached

        params = {
            "function": "TIME_SERIES_DAILY_ADJUSTED",
            "symbol": symbol,
            "outputsize": "full",
            "apikey": self._config.api_key or "",
        }
        payload = await self._get_json("/query", params)
        if isinstance(payload, ProviderFailure):
            return payload
        if not isinstance(payload, dict):
            return self._failure(ErrorKind.INVALID, "response is not an object")

        failure = self._envelope_failure(payload)
        if failure is not None:
            return failure

        series = payload.get(_SERIES_KEY)
        if series is None:
            return None
        if not isinstance(series, dict):
            return self._failure(ErrorKind.INVALID, f"'{_SERIES_KEY}' is not an object")

        self._series_cache = (symbol, now, series)
        return series

    def _envelope_failure(self, payload: dict[str, Any]) -> ProviderFailure | None:
        if "Error Message" in payload:
            return self._failure(ErrorKind.NOT_FOUND, str(payload["Error Message"]))
        if "Note" in payload:
            return self._failure(ErrorKind.RATE_LIMITED, str(payload["Note"]))
        if "Information" in payload:
            info = str(payload["Information"])
            if any(hint in info.lower() for hint in _RATE_LIMIT_HINTS):
                return self._failure(ErrorKind.RATE_LIMITED, info)
            return self._failure(ErrorKind.INVALID, info)
        return None

    def _parse_series(
        self, series: dict[str, Any], symbol: str, start: date, end: date
    ) -> list[PricePoint]:
        """Parse the ``"YYYY-MM-DD" -> {"1. open": ...}`` map inside the window."""
        points: list[PricePoint] = []
        skipped = 0
        for day, fields in series.items():
            try:
                point_date = date.fromisoformat(day)
                if point_date < start or point_date > end:
                    continue
                points.append(
                    PricePoint(
                        date=point_date,
                        open=parse_float(fields.get("1. open")),
                        high=parse_float(fields.get("2. high")),
                        low=parse_float(fields.get("3. low")),
                        close=parse_float(fields["4. close"]),
                        adjusted_close=parse_float(fields.get("5. adjusted close")),
                        volume=parse_volume(fields.get("6. volume")),
                    )
                )
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                skipped += 1
                logger.debug("Skipping malformed Alpha Vantage row %s for %s: %s", day, symbol, e)
        if skipped:
            logger.warning("Skipped %d malformed rows for %s", skipped, symbol)
        return points
