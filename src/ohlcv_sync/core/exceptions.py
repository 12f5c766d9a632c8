"""Custom exception hierarchy for ohlcv-sync."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ohlcv_sync.core.models import ProviderFailure


class OhlcvSyncError(Exception):
    """Base exception for all ohlcv-sync errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(OhlcvSyncError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field: str — the config field that failed validation
        value: Any — the invalid value (redacted for secrets)
    """


class ProviderError(OhlcvSyncError):
    """A market-data provider could not serve a request.

    Adapters report failures as ``ProviderFailure`` values; this class only
    exists for errors that have to travel as exceptions past the
    orchestrator.

    Context keys:
        symbol: str — the symbol being fetched
    """


class ExhaustedProvidersError(ProviderError):
    """Every provider in the fallback chain failed for one request.

    Policy: terminal for the symbol only. The sync job records it and moves
    on to the next symbol.

    Context keys:
        symbol: str
        start: str — ISO date
        end: str — ISO date
    """

    def __init__(
        self,
        message: str,
        failures: dict[str, ProviderFailure] | None = None,
        context: dict[str, Any] | None = None,
        skipped: list[str] | None = None,
    ):
        super().__init__(message, context=context)
        self.failures = failures or {}
        # Providers passed over because their API key is missing or rejected
        self.skipped = skipped or []

    def describe(self) -> str:
        """Human-readable one-liner listing each provider's last failure."""
        parts = [
            f"{name}: {failure.kind.value} ({failure.message})"
            for name, failure in self.failures.items()
        ]
        if self.skipped:
            parts.append(f"skipped (API key missing or rejected): {', '.join(self.skipped)}")
        if not parts:
            return str(self)
        return f"{self}; " + "; ".join(parts)


class StorageError(OhlcvSyncError):
    """Database operation failed.

    Policy: raise immediately. Data integrity is critical.

    Context keys:
        operation: str — "upsert", "query", "migrate", etc.
        table: str — the table involved
    """


class SyncError(OhlcvSyncError):
    """A sync invocation could not be started.

    Context keys:
        reason: str
    """
