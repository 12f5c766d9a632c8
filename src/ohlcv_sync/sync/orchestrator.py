"""Fallback orchestration across an ordered chain of providers.

The orchestrator is the only place that interprets ``ErrorKind``:

- ``RATE_LIMITED``: cool down, retry the same provider, then move on
- ``TRANSIENT``: retry the same provider a bounded number of times
- ``NOT_FOUND`` / ``INVALID``: move on immediately
- ``CONFIG_MISSING``: skip the provider without spending any retries

When every provider has failed it raises ``ExhaustedProvidersError`` with
the last failure seen from each provider it tried. Unconfigured providers
are listed separately as skipped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from datetime import date

import httpx

from ohlcv_sync.core.config import AppConfig, SyncConfig
from ohlcv_sync.core.exceptions import ExhaustedProvidersError
from ohlcv_sync.core.models import ErrorKind, PricePoint, ProviderFailure
from ohlcv_sync.providers.base import ProviderAdapter
from ohlcv_sync.providers.registry import create_providers

logger = logging.getLogger(__name__)


class FallbackOrchestrator:
    """Serves range requests from the first provider that can answer them.

    Parameters
    ----------
    providers : Sequence[ProviderAdapter]
        Adapters in any order; sorted by ``identity.priority`` once here.
    config : SyncConfig | None
        Cooldown and retry budgets. Defaults apply when None.
    sleep : Callable[[float], Awaitable[None]]
        Injectable for tests.
    """

    def __init__(
        self,
        providers: Sequence[ProviderAdapter],
        config: SyncConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if not providers:
            raise ValueError("at least one provider is required")
        config = config or SyncConfig()
        self._providers: tuple[ProviderAdapter, ...] = tuple(
            sorted(providers, key=lambda p: p.identity.priority)
        )
        self._cooldown = config.rate_limit_cooldown_seconds
        self._rate_limit_retries = config.rate_limit_retries
        self._transient_retries = config.transient_retries
        self._fallback_start = config.fallback_start_date
        self._sleep = sleep

    @property
    def providers(self) -> tuple[ProviderAdapter, ...]:
        return self._providers

    async def fetch_range(self, symbol: str, start: date, end: date) -> list[PricePoint]:
        """Fetch ``[start, end]`` for ``symbol``; see ``fetch_with_provider``."""
        _, points = await self.fetch_with_provider(symbol, start, end)
        return points

    async def fetch_with_provider(
        self, symbol: str, start: date, end: date
    ) -> tuple[str, list[PricePoint]]:
        """Fetch ``[start, end]`` and report which provider answered.

        Raises
        ------
        ExhaustedProvidersError
            No provider produced a successful response.
        """
        failures: dict[str, ProviderFailure] = {}
        skipped: list[str] = []

        for provider in self._providers:
            outcome = await self._attempt(provider, symbol, start, end)
            if not isinstance(outcome, ProviderFailure):
                if failures:
                    logger.info(
                        "%s served %s (%s to %s) after fallback", provider.name, symbol, start, end
                    )
                return provider.name, outcome
            if outcome.kind == ErrorKind.CONFIG_MISSING:
                skipped.append(provider.name)
                continue
            failures[provider.name] = outcome
            logger.warning("Escalating %s past %s: %s", symbol, provider.name, outcome.message)

        raise ExhaustedProvidersError(
            f"All providers failed for {symbol} ({start} to {end})",
            failures=failures,
            skipped=skipped,
            context={"symbol": symbol, "start": start.isoformat(), "end": end.isoformat()},
        )

    async def _attempt(
        self, provider: ProviderAdapter, symbol: str, start: date, end: date
    ) -> list[PricePoint] | ProviderFailure:
        """Call one provider, applying its retry policy."""
        rate_limit_retries = 0
        transient_retries = 0
        while True:
            outcome = await provider.fetch_range(symbol, start, end)
            if not isinstance(outcome, ProviderFailure):
                return outcome

            if outcome.kind == ErrorKind.RATE_LIMITED and rate_limit_retries < self._rate_limit_retries:
                rate_limit_retries += 1
                logger.warning(
                    "%s rate limited on %s, cooling down %.0fs (retry %d/%d)",
                    provider.name,
                    symbol,
                    self._cooldown,
                    rate_limit_retries,
                    self._rate_limit_retries,
                )
                await self._sleep(self._cooldown)
                continue

            if outcome.kind == ErrorKind.TRANSIENT and transient_retries < self._transient_retries:
                transient_retries += 1
                logger.warning(
                    "%s transient failure on %s, retrying (%d/%d): %s",
                    provider.name,
                    symbol,
                    transient_retries,
                    self._transient_retries,
                    outcome.message,
                )
                continue

            return outcome

    async def earliest_available(self, symbol: str) -> date:
        """First non-fallback earliest date among configured providers."""
        for provider in self._providers:
            if not provider.is_configured:
                continue
            earliest = await provider.earliest_available(symbol)
            if earliest != self._fallback_start:
                logger.debug("Earliest date for %s from %s: %s", symbol, provider.name, earliest)
                return earliest
        logger.info("No provider reported an earliest date for %s, using %s", symbol, self._fallback_start)
        return self._fallback_start

    async def health(self) -> dict[str, bool]:
        """Probe every provider."""
        return {provider.name: await provider.health_check() for provider in self._providers}

    async def aclose(self) -> None:
        for provider in self._providers:
            await provider.aclose()


def create_orchestrator(
    config: AppConfig,
    client: httpx.AsyncClient | None = None,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> FallbackOrchestrator:
    """Build the orchestrator over every enabled provider in ``config``."""
    return FallbackOrchestrator(create_providers(config, client=client), config.sync, sleep=sleep)
