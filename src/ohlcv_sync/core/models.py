"""Pydantic data models — the engine's type contracts."""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, computed_field, field_validator

# --- Type Aliases ---

Symbol = str
ProviderName = str

# Conservative start date used when a provider cannot report the earliest
# available trading day for a symbol.
FALLBACK_START_DATE = date(1980, 1, 1)

# --- Enumerations ---


class ErrorKind(StrEnum):
    """Classified failure kinds.

    The first five are produced by provider adapters; the rest are produced
    further up the stack and only ever appear in a ``SyncResult``.
    """

    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    INVALID = "invalid"
    CONFIG_MISSING = "config_missing"
    EXHAUSTED_PROVIDERS = "exhausted_providers"
    STORAGE = "storage"
    UNEXPECTED = "unexpected"


class AssetType(StrEnum):
    """Coarse classification of a tradeable symbol."""

    STOCK = "stock"
    ETF = "etf"
    INDEX = "index"

    @classmethod
    def infer(cls, symbol: str, name: str | None = None) -> AssetType:
        """Guess the asset type from the ticker and (optional) display name.

        ``^``-prefixed tickers are indexes; fund-like names and a short list
        of well-known ETF tickers are ETFs; everything else is a stock.
        """
        upper = (symbol or "").strip().upper()
        if not upper:
            return cls.STOCK
        if upper.startswith("^"):
            return cls.INDEX
        lowered = (name or "").lower()
        if any(word in lowered for word in _ETF_NAME_HINTS):
            return cls.ETF
        if upper in _KNOWN_ETFS:
            return cls.ETF
        return cls.STOCK


_ETF_NAME_HINTS = ("etf", "trust", "fund", "spdr", "ishares", "vanguard", "invesco")

_KNOWN_ETFS = frozenset(
    {
        "SPY", "QQQ", "VOO", "VTI", "IVV", "IWM", "EEM", "VEA", "VWO",
        "AGG", "BND", "TLT", "GLD", "SLV", "USO", "VNQ", "XLF", "XLK",
        "XLE", "XLV", "XLI", "XLY", "XLP", "XLU", "XLB", "XLRE",
        "DIA", "MDY", "IJH", "IJR", "ARKK", "ARKW", "ARKG", "ARKF",
        "SCHD", "VYM", "VIG", "DGRO",
    }
)


# --- Price Models ---


class PricePoint(BaseModel):
    """One trading day of OHLCV data, independent of the provider it came from."""

    model_config = ConfigDict(frozen=True)

    date: date
    open: float | None = None
    high: float | None = None
    low: float | None = None
    close: float
    adjusted_close: float | None = None
    volume: int | None = None

    @field_validator("volume")
    @classmethod
    def volume_non_negative(cls, v: int | None) -> int | None:
        if v is not None and v < 0:
            raise ValueError(f"volume must be >= 0, got {v}")
        return v


class ProviderIdentity(BaseModel):
    """Name and fixed fallback priority of a provider (lower goes first)."""

    model_config = ConfigDict(frozen=True)

    name: ProviderName
    priority: int = 0


class ProviderFailure(BaseModel):
    """Classified failure returned by an adapter instead of raising.

    Adapters never let transport exceptions escape; they hand back one of
    these so the orchestrator can branch on ``kind``.
    """

    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    provider: ProviderName
    message: str
    status_code: int | None = None

    def __str__(self) -> str:
        return f"{self.provider}: {self.kind.value} ({self.message})"


# --- Sync Models ---


class SyncState(BaseModel):
    """The minimal date range still needed for one symbol."""

    model_config = ConfigDict(frozen=True)

    symbol: Symbol
    last_stored_date: date | None = None
    earliest_available_date: date | None = None
    today: date
    start: date
    end: date

    @property
    def is_current(self) -> bool:
        """True when there is nothing left to fetch."""
        return self.start >= self.end


class SyncResult(BaseModel):
    """Outcome of syncing a single symbol."""

    model_config = ConfigDict(frozen=True)

    symbol: Symbol
    records_written: int = 0
    range_start: date | None = None
    range_end: date | None = None
    provider: ProviderName | None = None
    error_kind: ErrorKind | None = None
    message: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success(self) -> bool:
        return self.error_kind is None

    @classmethod
    def ok(
        cls,
        symbol: Symbol,
        records_written: int,
        range_start: date | None,
        range_end: date | None,
        provider: ProviderName | None = None,
    ) -> SyncResult:
        return cls(
            symbol=symbol,
            records_written=records_written,
            range_start=range_start,
            range_end=range_end,
            provider=provider,
        )

    @classmethod
    def failed(cls, symbol: Symbol, error_kind: ErrorKind, message: str) -> SyncResult:
        return cls(symbol=symbol, error_kind=error_kind, message=message)


class SyncSummary(BaseModel):
    """Aggregated results for one sync invocation."""

    started_at: datetime
    completed_at: datetime | None = None
    results: list[SyncResult] = []
    cancelled: bool = False
    not_started: list[Symbol] = []

    def add(self, result: SyncResult) -> None:
        self.results.append(result)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_records(self) -> int:
        return sum(r.records_written for r in self.results)

    @property
    def failures(self) -> list[SyncResult]:
        return [r for r in self.results if not r.success]


class SymbolMetadata(BaseModel):
    """Per-symbol bookkeeping kept alongside the price rows."""

    model_config = ConfigDict(frozen=True)

    symbol: Symbol
    name: str
    asset_type: AssetType = AssetType.STOCK
    earliest_date: date | None = None
    last_sync_date: date | None = None
    is_active: bool = True
