"""Work out the smallest date range a symbol still needs."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, timedelta

from ohlcv_sync.core.models import SyncState
from ohlcv_sync.store import PriceStore
from ohlcv_sync.sync.orchestrator import FallbackOrchestrator

logger = logging.getLogger(__name__)


class SyncStateResolver:
    """Resolves ``SyncState`` from stored data and provider metadata."""

    def __init__(
        self,
        store: PriceStore,
        orchestrator: FallbackOrchestrator,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._store = store
        self._orchestrator = orchestrator
        self._today = today

    async def resolve(
        self,
        symbol: str,
        force_full_resync: bool = False,
        end: date | None = None,
        floor: date | None = None,
    ) -> SyncState:
        """Resume after the last stored date, or start from the earliest available one.

        ``floor`` bounds how far back a full sync reaches; it has no effect on
        a resumed sync.
        """
        today = self._today()
        end = end or today
        last_stored = await self._store.last_stored_date(symbol)

        earliest: date | None = None
        if force_full_resync or last_stored is None:
            earliest = await self._orchestrator.earliest_available(symbol)
            start = max(earliest, floor) if floor else earliest
            logger.info(
                "%s: %s sync from %s",
                symbol,
                "forced full" if force_full_resync else "initial",
                start,
            )
        else:
            start = last_stored + timedelta(days=1)
            logger.debug("%s: resuming after %s", symbol, last_stored)

        return SyncState(
            symbol=symbol,
            last_stored_date=last_stored,
            earliest_available_date=earliest,
            today=today,
            start=start,
            end=end,
        )
