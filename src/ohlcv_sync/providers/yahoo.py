"""Yahoo Finance adapter — last-resort provider.

Uses the unauthenticated ``/v8/finance/chart/`` endpoint via httpx. No API
key is needed, so this adapter is always configured; it is the least
dependable source and runs last in the fallback order.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, ClassVar

from ohlcv_sync.core.models import ErrorKind, PricePoint, ProviderFailure
from ohlcv_sync.providers.base import FetchOutcome, HttpProviderAdapter, parse_float, parse_volume

logger = logging.getLogger(__name__)

_CHART_PATH = "/v8/finance/chart"
_USER_AGENT = "Mozilla/5.0 (compatible; ohlcv-sync/0.1)"


def _epoch(day: date) -> int:
    return int(datetime.combine(day, datetime.min.time(), tzinfo=timezone.utc).timestamp())


class YahooAdapter(HttpProviderAdapter):
    """Fetches daily bars from Yahoo Finance's chart API."""

    provider_name: ClassVar[str] = "yahoo"
    requires_api_key: ClassVar[bool] = False

    async def _fetch(self, symbol: str, start: date, end: date) -> FetchOutcome:
        params = {
            "interval": "1d",
            "period1": str(_epoch(start)),
            # period2 is exclusive
            "period2": str(_epoch(end + timedelta(days=1))),
            "events": "div,split",
        }
        result = await self._fetch_chart(symbol, params)
        if isinstance(result, ProviderFailure):
            return result
        if result is None:
            logger.info("Yahoo Finance returned no results for %s", symbol)
            return []
        return self._parse_chart(result, symbol)

    async def _lookup_earliest(self, symbol: str) -> date | None:
        result = await self._fetch_chart(symbol, {"interval": "1d", "range": "5d"})
        if not isinstance(result, dict):
            return None
        first_trade = (result.get("meta") or {}).get("firstTradeDate")
        if first_trade is None:
            return None
        try:
            # Negative for listings before 1970
            return datetime.fromtimestamp(int(first_trade), tz=timezone.utc).date()
        except (TypeError, ValueError, OverflowError, OSError):
            logger.warning("Unparseable firstTradeDate for %s: %r", symbol, first_trade)
            return None

    async def _fetch_chart(
        self, symbol: str, params: dict[str, str]
    ) -> dict[str, Any] | ProviderFailure | None:
        """Return ``chart.result[0]``, None when empty, or a failure."""
        payload = await self._get_json(
            f"{_CHART_PATH}/{symbol}", params, headers={"User-Agent": _USER_AGENT}
        )
        if isinstance(payload, ProviderFailure):
            return payload
        if not isinstance(payload, dict):
            return self._failure(ErrorKind.INVALID, "chart response is not an object")

        chart = payload.get("chart") or {}
        err = chart.get("error")
        if err:
            code = str(err.get("code", "")) if isinstance(err, dict) else ""
            description = err.get("description", "") if isinstance(err, dict) else str(err)
            kind = ErrorKind.NOT_FOUND if code.lower() == "not found" else ErrorKind.INVALID
            return self._failure(kind, f"{code}: {description}".strip(": "))

        results = chart.get("result")
        if not results:
            return None
        return results[0]

    def _parse_chart(self, raw: dict[str, Any], symbol: str) -> FetchOutcome:
        """Turn the parallel timestamp/quote arrays into points.

        Bars are dated in the exchange's timezone (``meta.gmtoffset``) so a
        16:00 New York close is not shifted to the next UTC day.
        """
        timestamps: list[int] = raw.get("timestamp") or []
        if not timestamps:
            return []

        offset = timedelta(seconds=int((raw.get("meta") or {}).get("gmtoffset") or 0))
        indicators = raw.get("indicators") or {}
        quote = (indicators.get("quote") or [{}])[0] or {}
        if quote.get("close") is None:
            return self._failure(
                ErrorKind.INVALID, f"chart for {symbol} has timestamps but no quotes"
            )
        adjclose_data = indicators.get("adjclose") or [{}]
        adj_closes: list[Any] = (adjclose_data[0] or {}).get("adjclose") or []

        def at(values: list[Any] | None, i: int) -> Any:
            return values[i] if values is not None and i < len(values) else None

        points: list[PricePoint] = []
        skipped = 0
        for i, ts in enumerate(timestamps):
            close = at(quote.get("close"), i)
            # Holidays and halted sessions come back as null bars
            if close is None:
                continue
            try:
                points.append(
                    PricePoint(
                        date=(datetime.fromtimestamp(ts, tz=timezone.utc) + offset).date(),
                        open=parse_float(at(quote.get("open"), i)),
                        high=parse_float(at(quote.get("high"), i)),
                        low=parse_float(at(quote.get("low"), i)),
                        close=parse_float(close),
                        adjusted_close=parse_float(at(adj_closes, i)),
                        volume=parse_volume(at(quote.get("volume"), i)),
                    )
                )
            except (TypeError, ValueError, OverflowError, OSError) as e:
                skipped += 1
                logger.debug("Skipping malformed Yahoo bar for %s: %s", symbol, e)
        if skipped:
            logger.warning("Skipped %d malformed rows for %s", skipped, symbol)
        return points
