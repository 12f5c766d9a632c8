"""Incremental sync job: the entry point that ties the pipeline together.

For each symbol, in isolation::

    resolve state → chunked fetch (with fallback) → insert new rows → metadata

A failing symbol becomes a failed ``SyncResult``; the batch always moves on.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime, timedelta, timezone

from ohlcv_sync.core.config import SyncConfig
from ohlcv_sync.core.exceptions import ExhaustedProvidersError, StorageError, SyncError
from ohlcv_sync.core.models import ErrorKind, SyncResult, SyncSummary
from ohlcv_sync.store import PriceStore
from ohlcv_sync.sync.chunking import ChunkedRangeFetcher
from ohlcv_sync.sync.orchestrator import FallbackOrchestrator
from ohlcv_sync.sync.state import SyncStateResolver

logger = logging.getLogger(__name__)


def normalize_symbols(symbols: Iterable[str]) -> list[str]:
    """Strip and upper-case symbols, dropping blanks and duplicates (order kept)."""
    seen: dict[str, None] = {}
    for raw in symbols:
        symbol = (raw or "").strip().upper()
        if symbol:
            seen.setdefault(symbol, None)
    return list(seen)


class IncrementalSyncJob:
    """Synchronizes stored price history with the providers.

    Parameters
    ----------
    store : PriceStore
        Persistence collaborator. Must already be initialized.
    orchestrator : FallbackOrchestrator
        Provider chain used for every fetch.
    config : SyncConfig | None
        Chunk size and retry settings. Defaults apply when None.
    today : Callable[[], date]
        Clock used for range ends and ``last_sync_date``.
    stop_event : asyncio.Event | None
        Set it to stop the job before its next symbol.
    """

    def __init__(
        self,
        store: PriceStore,
        orchestrator: FallbackOrchestrator,
        config: SyncConfig | None = None,
        *,
        today: Callable[[], date] = date.today,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        config = config or SyncConfig()
        self._store = store
        self._today = today
        self._resolver = SyncStateResolver(store, orchestrator, today=today)
        self._fetcher = ChunkedRangeFetcher(orchestrator, chunk_years=config.chunk_years)
        self.stop_event = stop_event or asyncio.Event()

    def cancel(self) -> None:
        """Ask the job to stop before the next symbol."""
        self.stop_event.set()

    async def sync_symbols(
        self,
        symbols: Iterable[str],
        force_full_resync: bool = False,
        end: date | None = None,
    ) -> SyncSummary:
        """Sync the given symbols one after another.

        Raises
        ------
        SyncError
            No usable symbol was given.
        """
        normalized = normalize_symbols(symbols)
        if not normalized:
            raise SyncError("No symbols to sync", context={"reason": "empty symbol list"})
        return await self._run(normalized, force_full_resync=force_full_resync, end=end)

    async def sync_all(self, years_back: int | None = None) -> SyncSummary:
        """Sync every stored symbol.

        With ``years_back`` each symbol is fully re-synced, reaching back at
        most that many years; without it the run is incremental.
        """
        symbols = await self._store.list_symbols()
        if not symbols:
            logger.info("No stored symbols to sync")
            now = datetime.now(timezone.utc)
            return SyncSummary(started_at=now, completed_at=now)

        floor: date | None = None
        if years_back is not None:
            if years_back < 1:
                raise SyncError(
                    "years_back must be >= 1",
                    context={"reason": "invalid years_back", "value": years_back},
                )
            floor = self._today() - timedelta(days=365 * years_back)
        return await self._run(symbols, force_full_resync=floor is not None, floor=floor)

    async def _run(
        self,
        symbols: list[str],
        *,
        force_full_resync: bool,
        end: date | None = None,
        floor: date | None = None,
    ) -> SyncSummary:
        summary = SyncSummary(started_at=datetime.now(timezone.utc))
        logger.info("Starting sync of %d symbol(s)", len(symbols))

        for index, symbol in enumerate(symbols):
            if self.stop_event.is_set():
                summary.cancelled = True
                summary.not_started = symbols[index:]
                logger.warning(
                    "Sync cancelled; %d symbol(s) not started", len(summary.not_started)
                )
                break
            result = await self.sync_one(symbol, force_full_resync, end=end, floor=floor)
            summary.add(result)

        summary.completed_at = datetime.now(timezone.utc)
        logger.info(
            "Sync complete: %d succeeded, %d failed, %d records written",
            summary.success_count,
            summary.failure_count,
            summary.total_records,
        )
        for failure in summary.failures:
            logger.info("  %s: %s", failure.symbol, failure.message)
        return summary

    async def sync_one(
        self,
        symbol: str,
        force_full_resync: bool = False,
        end: date | None = None,
        floor: date | None = None,
    ) -> SyncResult:
        """Sync a single symbol. Never raises."""
        try:
            state = await self._resolver.resolve(
                symbol, force_full_resync=force_full_resync, end=end, floor=floor
            )
            if state.is_current:
                logger.info("%s is up to date (last stored %s)", symbol, state.last_stored_date)
                return SyncResult.ok(symbol, 0, None, None)

            fetched = await self._fetcher.fetch(symbol, state.start, state.end)
            await self._store.get_or_create_symbol_metadata(symbol)
            written = await self._store.upsert_prices(symbol, fetched.points)
            earliest = fetched.points[0].date if fetched.points else None
            await self._store.update_symbol_metadata(symbol, earliest, self._today())

            logger.info(
                "%s: wrote %d new of %d fetched (%s to %s)",
                symbol,
                written,
                len(fetched.points),
                state.start,
                state.end,
            )
            return SyncResult.ok(symbol, written, state.start, state.end, fetched.provider)

        except ExhaustedProvidersError as e:
            logger.error("%s: %s", symbol, e.describe())
            return SyncResult.failed(symbol, ErrorKind.EXHAUSTED_PROVIDERS, e.describe())
        except StorageError as e:
            logger.error("%s: storage failure: %s", symbol, e)
            return SyncResult.failed(symbol, ErrorKind.STORAGE, str(e))
        except Exception as e:
            logger.error("%s: unexpected %s: %s", symbol, type(e).__name__, e)
            return SyncResult.failed(
                symbol, ErrorKind.UNEXPECTED, f"{type(e).__name__}: {e}"
            )
