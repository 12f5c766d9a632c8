"""API-specific request/response schemas (Pydantic v2)."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field


# -- Error --


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: str
    detail: str | None = None


# -- Symbols --


class SymbolResponse(BaseModel):
    """Stored symbol with its coverage."""

    symbol: str
    name: str
    asset_type: str
    earliest_date: date | None = None
    last_sync_date: date | None = None
    is_active: bool
    price_count: int


# -- Sync Requests --


class SyncRequest(BaseModel):
    """Request body for POST /api/sync."""

    symbols: list[str] = Field(..., min_length=1, max_length=500)
    force_full_resync: bool = False
    end: date | None = None


class SyncAllRequest(BaseModel):
    """Request body for POST /api/sync-all."""

    years_back: int | None = Field(default=None, ge=1, le=100, description="None = incremental")


# -- Jobs --


class JobResponse(BaseModel):
    """Response for async sync job submission."""

    job_id: str
    status: str
    created_at: datetime
    message: str


class JobStatusResponse(BaseModel):
    """Response for job status polling."""

    job_id: str
    status: str
    created_at: datetime
    completed_at: datetime | None = None
    result: dict | None = None
    error: str | None = None


# -- Health --


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    status: str = "ok"
    version: str
    storage_ok: bool
    total_symbols: int
    total_prices: int
    providers: dict[str, bool] | None = None


# -- Schedule --


class ScheduleResponse(BaseModel):
    """Response for GET /api/schedule."""

    enabled: bool
    running: bool
    cron: str
    timezone: str
    next_run_time: datetime | None = None
