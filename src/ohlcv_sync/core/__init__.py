"""ohlcv_sync.core — Foundation types, config, and exceptions."""

from ohlcv_sync.core.config import (
    AlphaVantageConfig,
    APIConfig,
    AppConfig,
    ProviderConfig,
    ProvidersConfig,
    RateLimitConfig,
    RateLimitStrategy,
    StorageConfig,
    SyncConfig,
    TwelveDataConfig,
    YahooConfig,
    load_config,
)
from ohlcv_sync.core.exceptions import (
    ConfigError,
    ExhaustedProvidersError,
    OhlcvSyncError,
    ProviderError,
    StorageError,
    SyncError,
)
from ohlcv_sync.core.models import (
    FALLBACK_START_DATE,
    AssetType,
    ErrorKind,
    PricePoint,
    ProviderFailure,
    ProviderIdentity,
    ProviderName,
    Symbol,
    SymbolMetadata,
    SyncResult,
    SyncState,
    SyncSummary,
)

__all__ = [
    # Type aliases
    "Symbol",
    "ProviderName",
    # Constants
    "FALLBACK_START_DATE",
    # Enums
    "ErrorKind",
    "AssetType",
    "RateLimitStrategy",
    # Models
    "PricePoint",
    "ProviderIdentity",
    "ProviderFailure",
    "SyncState",
    "SyncResult",
    "SyncSummary",
    "SymbolMetadata",
    # Config
    "AppConfig",
    "ProvidersConfig",
    "ProviderConfig",
    "TwelveDataConfig",
    "AlphaVantageConfig",
    "YahooConfig",
    "RateLimitConfig",
    "SyncConfig",
    "StorageConfig",
    "APIConfig",
    "load_config",
    # Exceptions
    "OhlcvSyncError",
    "ConfigError",
    "ProviderError",
    "ExhaustedProvidersError",
    "StorageError",
    "SyncError",
]
