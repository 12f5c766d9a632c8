"""Chunked pagination over long date ranges.

Providers cap the rows returned per call (Twelve Data: 5000, about 20 years
of trading days), and silently drop the oldest rows past the cap. Long
ranges are therefore requested as consecutive windows of ``chunk_years``
calendar years and merged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta

from ohlcv_sync.core.models import PricePoint
from ohlcv_sync.sync.orchestrator import FallbackOrchestrator

logger = logging.getLogger(__name__)


def add_years(day: date, years: int) -> date:
    """Same month/day ``years`` later; Feb 29 becomes Feb 28 in common years."""
    try:
        return day.replace(year=day.year + years)
    except ValueError:
        return day.replace(year=day.year + years, day=28)


def plan_chunks(start: date, end: date, chunk_years: int) -> list[tuple[date, date]]:
    """Split ``[start, end]`` into consecutive inclusive windows.

    >>> plan_chunks(date(1990, 1, 1), date(2024, 1, 1), 15)  # doctest: +NORMALIZE_WHITESPACE
    [(datetime.date(1990, 1, 1), datetime.date(2005, 1, 1)),
     (datetime.date(2005, 1, 2), datetime.date(2020, 1, 2)),
     (datetime.date(2020, 1, 3), datetime.date(2024, 1, 1))]
    """
    if chunk_years < 1:
        raise ValueError("chunk_years must be >= 1")
    chunks: list[tuple[date, date]] = []
    current = start
    while current <= end:
        chunk_end = min(add_years(current, chunk_years), end)
        chunks.append((current, chunk_end))
        current = chunk_end + timedelta(days=1)
    return chunks


@dataclass
class RangeFetch:
    """Merged points of a chunked fetch and the providers that served them."""

    points: list[PricePoint] = field(default_factory=list)
    providers: list[str] = field(default_factory=list)

    @property
    def provider(self) -> str | None:
        return ",".join(self.providers) or None


class ChunkedRangeFetcher:
    """Fetches a long range chunk by chunk through the orchestrator."""

    def __init__(self, orchestrator: FallbackOrchestrator, chunk_years: int = 15) -> None:
        if chunk_years < 1:
            raise ValueError("chunk_years must be >= 1")
        self._orchestrator = orchestrator
        self._chunk_years = chunk_years

    async def fetch(self, symbol: str, start: date, end: date) -> RangeFetch:
        """Fetch ``[start, end]`` in chronological chunks.

        An empty chunk ends pagination: the provider has nothing past that
        point. ``ExhaustedProvidersError`` from any chunk propagates.
        """
        chunks = plan_chunks(start, end, self._chunk_years)
        merged: dict[date, PricePoint] = {}
        result = RangeFetch()

        for index, (chunk_start, chunk_end) in enumerate(chunks, start=1):
            logger.info(
                "Fetching %s chunk %d/%d: %s to %s",
                symbol,
                index,
                len(chunks),
                chunk_start,
                chunk_end,
            )
            provider, points = await self._orchestrator.fetch_with_provider(
                symbol, chunk_start, chunk_end
            )
            if not points:
                if index == 1 and len(chunks) > 1:
                    logger.warning(
                        "First chunk for %s (%s to %s) is empty; later chunks are not requested",
                        symbol,
                        chunk_start,
                        chunk_end,
                    )
                else:
                    logger.info("No data for %s from %s, stopping pagination", symbol, chunk_start)
                break

            for point in points:
                merged.setdefault(point.date, point)
            if provider not in result.providers:
                result.providers.append(provider)

        result.points = [merged[d] for d in sorted(merged)]
        logger.info("Fetched %d points for %s across %d chunk(s)", len(result.points), symbol, len(chunks))
        return result
