"""Build the enabled adapters from configuration."""

from __future__ import annotations

import logging

import httpx

from ohlcv_sync.core.config import AppConfig
from ohlcv_sync.providers.alpha_vantage import AlphaVantageAdapter
from ohlcv_sync.providers.base import HttpProviderAdapter
from ohlcv_sync.providers.twelve_data import TwelveDataAdapter
from ohlcv_sync.providers.yahoo import YahooAdapter

logger = logging.getLogger(__name__)


def create_providers(
    config: AppConfig, client: httpx.AsyncClient | None = None
) -> list[HttpProviderAdapter]:
    """Instantiate every enabled provider, ordered by priority.

    Parameters
    ----------
    config : AppConfig
        Full application config.
    client : httpx.AsyncClient | None
        Shared client for all adapters. Each adapter creates its own when None.
    """
    common = {
        "client": client,
        "fallback_start": config.sync.fallback_start_date,
        "health_check_symbol": config.sync.health_check_symbol,
    }
    providers_cfg = config.providers
    adapters: list[HttpProviderAdapter] = []
    if providers_cfg.twelve_data.enabled:
        adapters.append(TwelveDataAdapter(providers_cfg.twelve_data, **common))
    if providers_cfg.alpha_vantage.enabled:
        adapters.append(AlphaVantageAdapter(providers_cfg.alpha_vantage, **common))
    if providers_cfg.yahoo.enabled:
        adapters.append(YahooAdapter(providers_cfg.yahoo, **common))

    adapters.sort(key=lambda a: a.identity.priority)
    logger.info("Providers enabled: %s", ", ".join(a.name for a in adapters))
    return adapters
