"""Market-data provider adapters.

Architecture
------------
Each external API is wrapped by one adapter so the rest of the engine only
sees the provider-neutral contract:

    HTTP API → adapter (→ rate limiter) → list[PricePoint] | ProviderFailure

Key abstractions:

- ``ProviderAdapter``: Protocol the fallback orchestrator depends on.
- ``HttpProviderAdapter``: Shared httpx plumbing, status classification
  and output normalization.
- ``RateLimiter``: Anything with ``async acquire()``; the default is the
  batch-then-wait ``FixedWindowRateLimiter``.

Built-in implementations:

- ``TwelveDataAdapter``: primary source, date-windowed requests.
- ``AlphaVantageAdapter``: full-history backup, filtered locally.
- ``YahooAdapter``: keyless chart API, last resort.

Adding a new provider:
1. Subclass ``HttpProviderAdapter`` and implement ``_fetch`` (and
   ``_lookup_earliest`` if the API can report a first trading day).
2. Give it a config section and register it in ``create_providers``.
"""

from ohlcv_sync.providers.alpha_vantage import AlphaVantageAdapter
from ohlcv_sync.providers.base import (
    FetchOutcome,
    HttpProviderAdapter,
    ProviderAdapter,
    classify_status,
    normalize_points,
)
from ohlcv_sync.providers.rate_limiter import (
    FixedWindowRateLimiter,
    RateBudget,
    RateLimiter,
    build_rate_limiter,
)
from ohlcv_sync.providers.registry import create_providers
from ohlcv_sync.providers.twelve_data import TwelveDataAdapter
from ohlcv_sync.providers.yahoo import YahooAdapter

__all__ = [
    # Protocols
    "ProviderAdapter",
    "RateLimiter",
    # Base
    "HttpProviderAdapter",
    "FetchOutcome",
    "classify_status",
    "normalize_points",
    # Rate limiting
    "FixedWindowRateLimiter",
    "RateBudget",
    "build_rate_limiter",
    # Adapters
    "TwelveDataAdapter",
    "AlphaVantageAdapter",
    "YahooAdapter",
    "create_providers",
]
