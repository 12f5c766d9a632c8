"""Twelve Data adapter — the primary provider.

Endpoints used:

- ``/time_series`` with ``interval=1day``, an explicit date window,
  ``outputsize`` (max 5000 rows) and ``adjust=all``.
- ``/earliest_timestamp`` for the first available trading day.

When a window holds more rows than ``outputsize``, Twelve Data silently
returns only the most recent ones; callers must keep windows small enough
(see ``ohlcv_sync.sync.chunking``).

Errors arrive either as HTTP statuses or as a 200 response with an envelope::

    {"status": "error", "code": 404, "message": "symbol not found"}
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, ClassVar

from ohlcv_sync.core.config import TwelveDataConfig
from ohlcv_sync.core.models import ErrorKind, PricePoint, ProviderFailure
from ohlcv_sync.providers.base import FetchOutcome, HttpProviderAdapter, parse_float, parse_volume

logger = logging.getLogger(__name__)

# Envelope message Twelve Data uses for a valid symbol with no rows in the window
_NO_DATA_HINTS = ("no data is available", "data not found for the specified")
_NOT_FOUND_HINTS = ("not found", "invalid symbol", "symbol or figi parameter is missing or invalid")


class TwelveDataAdapter(HttpProviderAdapter):
    """Fetches daily bars from the Twelve Data REST API."""

    provider_name: ClassVar[str] = "twelve_data"
    requires_api_key: ClassVar[bool] = True

    def __init__(self, config: TwelveDataConfig, **kwargs: Any) -> None:
        super().__init__(config, **kwargs)
        self._output_size = config.output_size

    async def _fetch(self, symbol: str, start: date, end: date) -> FetchOutcome:
        params = {
            "symbol": symbol,
            "interval": "1day",
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "outputsize": str(self._output_size),
            "adjust": "all",
            "apikey": self._config.api_key or "",
        }
        payload = await self._get_json("/time_series", params)
        if isinstance(payload, ProviderFailure):
            return payload
        if not isinstance(payload, dict):
            return self._failure(ErrorKind.INVALID, "time_series response is not an object")

        if payload.get("status") == "error":
            message = str(payload.get("message", "unknown error"))
            if any(hint in message.lower() for hint in _NO_DATA_HINTS):
                return []
            return self._envelope_failure(payload)

        values = payload.get("values")
        if not values:
            logger.info("Twelve Data returned no values for %s (%s to %s)", symbol, start, end)
            return []
        if not isinstance(values, list):
            return self._failure(ErrorKind.INVALID, "time_series 'values' is not a list")

        if len(values) >= self._output_size:
            logger.warning(
                "Twelve Data hit the %d-row cap for %s (%s to %s); older rows may be missing",
                self._output_size,
                symbol,
                start,
                end,
            )

        return self._parse_values(values, symbol)

    async def _lookup_earliest(self, symbol: str) -> date | None:
        params = {
            "symbol": symbol,
            "interval": "1day",
            "apikey": self._config.api_key or "",
        }
        payload = await self._get_json("/earliest_timestamp", params)
        if isinstance(payload, ProviderFailure):
            logger.warning("Earliest date lookup failed for %s: %s", symbol, payload.message)
            return None
        if not isinstance(payload, dict):
            return None
        if payload.get("status") == "error":
            logger.warning(
                "Twelve Data error on earliest date for %s: %s",
                symbol,
                payload.get("message", "unknown error"),
            )
            return None

        raw = payload.get("datetime")
        if not raw:
            logger.warning("No datetime field in earliest_timestamp response for %s", symbol)
            return None
        try:
            earliest = date.fromisoformat(str(raw)[:10])
        except ValueError:
            logger.warning("Unparseable earliest datetime for %s: %r", symbol, raw)
            return None
        logger.info("Earliest date for %s: %s", symbol, earliest)
        return earliest

    def _envelope_failure(self, payload: dict[str, Any]) -> ProviderFailure:
        """Classify a ``{"status": "error"}`` envelope."""
        message = str(payload.get("message", "unknown error"))
        try:
            code = int(payload.get("code", 0))
        except (TypeError, ValueError):
            code = 0

        if code == 429 or "api credits" in message.lower():
            kind = ErrorKind.RATE_LIMITED
        elif code in (401, 403):
            kind = ErrorKind.CONFIG_MISSING
        elif code == 404 or any(hint in message.lower() for hint in _NOT_FOUND_HINTS):
            kind = ErrorKind.NOT_FOUND
        elif code >= 500:
            kind = ErrorKind.TRANSIENT
        else:
            kind = ErrorKind.INVALID
        return self._failure(kind, message, status_code=code or None)

    def _parse_values(self, values: list[Any], symbol: str) -> list[PricePoint]:
        """Parse ``values`` rows, skipping malformed ones.

        ``adjust=all`` is documented to adjust OHLC for splits and dividends,
        but nothing here verifies it, so ``adjusted_close`` is left unset
        rather than copied from ``close``.
        """
        points: list[PricePoint] = []
        skipped = 0
        for row in values:
            try:
                points.append(
                    PricePoint(
                        date=date.fromisoformat(str(row["datetime"])[:10]),
                        open=parse_float(row.get("open")),
                        high=parse_float(row.get("high")),
                        low=parse_float(row.get("low")),
                        close=parse_float(row["close"]),
                        volume=parse_volume(row.get("volume")),
                    )
                )
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                skipped += 1
                logger.debug("Skipping malformed Twelve Data row for %s: %s", symbol, e)
        if skipped:
            logger.warning("Skipped %d malformed rows for %s", skipped, symbol)
        return points
