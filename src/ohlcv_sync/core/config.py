"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from datetime import date
from enum import StrEnum
from pathlib import Path

import yaml
from apscheduler.triggers.cron import CronTrigger
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from ohlcv_sync.core.exceptions import ConfigError
from ohlcv_sync.core.models import FALLBACK_START_DATE


class RateLimitStrategy(StrEnum):
    """How an adapter spaces its requests."""

    WINDOW = "window"
    TOKEN_BUCKET = "token_bucket"


class RateLimitConfig(BaseModel):
    """Per-provider call budget."""

    model_config = ConfigDict(frozen=True)

    strategy: RateLimitStrategy = RateLimitStrategy.WINDOW
    max_requests: int = 8
    window_seconds: float = 60.0
    safety_margin_seconds: float = 0.5

    @field_validator("max_requests")
    @classmethod
    def max_requests_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_requests must be >= 1")
        return v

    @field_validator("window_seconds")
    @classmethod
    def window_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("window_seconds must be > 0")
        return v


class ProviderConfig(BaseModel):
    """Settings shared by every provider adapter."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    api_key: str | None = None
    base_url: str
    priority: int = 0
    request_timeout: float = 30.0
    rate_limit: RateLimitConfig = RateLimitConfig()


class TwelveDataConfig(ProviderConfig):
    base_url: str = "https://api.twelvedata.com"
    priority: int = 0
    rate_limit: RateLimitConfig = RateLimitConfig(max_requests=8, window_seconds=60.0)
    output_size: int = 5000

    @field_validator("output_size")
    @classmethod
    def output_size_within_cap(cls, v: int) -> int:
        if v < 1 or v > 5000:
            raise ValueError("output_size must be between 1 and 5000")
        return v


class AlphaVantageConfig(ProviderConfig):
    base_url: str = "https://www.alphavantage.co"
    priority: int = 1
    rate_limit: RateLimitConfig = RateLimitConfig(max_requests=5, window_seconds=60.0)


class YahooConfig(ProviderConfig):
    base_url: str = "https://query2.finance.yahoo.com"
    priority: int = 2
    request_timeout: float = 15.0
    rate_limit: RateLimitConfig = RateLimitConfig(
        strategy=RateLimitStrategy.TOKEN_BUCKET, max_requests=2, window_seconds=1.0
    )


class ProvidersConfig(BaseModel):
    """All provider adapters. Priority decides the fallback order."""

    model_config = ConfigDict(frozen=True)

    twelve_data: TwelveDataConfig = TwelveDataConfig()
    alpha_vantage: AlphaVantageConfig = AlphaVantageConfig()
    yahoo: YahooConfig = YahooConfig()

    @model_validator(mode="after")
    def at_least_one_enabled(self) -> ProvidersConfig:
        if not (self.twelve_data.enabled or self.alpha_vantage.enabled or self.yahoo.enabled):
            raise ValueError("at least one provider must be enabled")
        return self


class ScheduleConfig(BaseModel):
    """Recurring incremental sync of every stored symbol (API server only)."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    # Standard 5-field crontab: minute hour day-of-month month day-of-week
    cron: str = "0 2 1 * *"
    timezone: str = "UTC"

    @model_validator(mode="after")
    def trigger_parses(self) -> ScheduleConfig:
        try:
            CronTrigger.from_crontab(self.cron, timezone=self.timezone)
        except KeyError as e:
            # Unknown timezone names surface as KeyError subclasses
            raise ValueError(f"unknown timezone: {self.timezone}") from e
        except ValueError as e:
            raise ValueError(f"invalid cron expression {self.cron!r}: {e}") from e
        return self


class SyncConfig(BaseModel):
    """Chunking, retry, and resume behaviour."""

    model_config = ConfigDict(frozen=True)

    chunk_years: int = 15
    rate_limit_cooldown_seconds: float = 60.0
    rate_limit_retries: int = 1
    transient_retries: int = 1
    fallback_start_date: date = FALLBACK_START_DATE
    health_check_symbol: str = "SPY"
    schedule: ScheduleConfig = ScheduleConfig()

    @field_validator("chunk_years")
    @classmethod
    def chunk_years_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("chunk_years must be >= 1")
        return v

    @field_validator("rate_limit_retries", "transient_retries")
    @classmethod
    def retries_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("retry counts must be >= 0")
        return v

    @field_validator("rate_limit_cooldown_seconds")
    @classmethod
    def cooldown_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("rate_limit_cooldown_seconds must be >= 0")
        return v


class StorageConfig(BaseModel):
    """Storage backend configuration."""

    model_config = ConfigDict(frozen=True)

    sqlite_path: str = "./data/ohlcv_sync.db"


class APIConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 8000
    api_key: str | None = None


class AppConfig(BaseModel):
    """Root configuration for the entire ohlcv-sync system."""

    model_config = ConfigDict(frozen=True)

    providers: ProvidersConfig = ProvidersConfig()
    sync: SyncConfig = SyncConfig()
    storage: StorageConfig = StorageConfig()
    api: APIConfig = APIConfig()


def load_config(
    config_path: str | None = None,
    env_prefix: str = "OHLCV_SYNC_",
) -> AppConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables (OHLCV_SYNC_PROVIDERS__TWELVE_DATA__API_KEY, etc.)
    2. YAML file at config_path
    3. Built-in defaults

    Nested keys use double-underscore in env vars:
        OHLCV_SYNC_SYNC__CHUNK_YEARS=10  ->  sync.chunk_years = 10
    """
    try:
        yaml_path = _resolve_config_path(config_path, env_prefix)
        base: dict = {}
        if yaml_path is not None:
            base = _load_yaml(yaml_path)

        merged = _merge_env_vars(base, env_prefix)
        return AppConfig.model_validate(merged)
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _resolve_config_path(explicit: str | None, env_prefix: str) -> Path | None:
    """Determine config file path."""
    if explicit is not None:
        p = Path(explicit)
        if not p.exists():
            raise ConfigError(
                f"Config file not found: {explicit}",
                context={"field": "config_path", "value": explicit},
            )
        return p

    env_var = f"{env_prefix}CONFIG"
    env_path = os.environ.get(env_var)
    if env_path:
        p = Path(env_path)
        if not p.exists():
            raise ConfigError(
                f"Config file from {env_var} not found: {env_path}",
                context={"field": env_var, "value": env_path},
            )
        return p

    default = Path("ohlcv-sync.yml")
    if default.exists():
        return default

    return None


def _load_yaml(path: Path) -> dict:
    """Load and parse YAML file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"YAML config must be a mapping, got {type(data).__name__}",
                context={"field": "config_file", "value": str(path)},
            )
        return data
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML config: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Overlay environment variables onto base config dict.

    Double-underscore separates nesting levels.
    Values are auto-cast: "true"/"false" -> bool, numeric strings -> int.
    """
    result = dict(base)

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        remainder = key[len(prefix) :]
        parts = [p.lower() for p in remainder.split("__")]

        # Skip the CONFIG env var itself
        if parts == ["config"]:
            continue

        cast_value = _auto_cast(value)

        target = result
        for part in parts[:-1]:
            # Copy on the way down so the YAML dict is never mutated
            child = target.get(part)
            target[part] = dict(child) if isinstance(child, dict) else {}
            target = target[part]
        target[parts[-1]] = cast_value

    return result


def _auto_cast(value: str) -> str | int | float | bool:
    """Auto-cast string values from environment variables."""
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value
