"""Dependency injection for FastAPI routes."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from fastapi import Request
from fastapi.responses import JSONResponse

from ohlcv_sync.core.config import AppConfig
from ohlcv_sync.store import PriceStore
from ohlcv_sync.sync.orchestrator import FallbackOrchestrator
from ohlcv_sync.sync.scheduler import SyncScheduler


@dataclass
class JobStatus:
    """Tracks a background sync job."""

    job_id: str
    status: str  # "pending" | "running" | "completed" | "cancelled" | "failed"
    created_at: str  # ISO-8601
    completed_at: str | None = None
    result: dict | None = None
    error: str | None = None
    stop_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan."""

    config: AppConfig
    store: PriceStore
    orchestrator: FallbackOrchestrator
    jobs: dict[str, JobStatus] = field(default_factory=dict)
    # One sync at a time: rate budgets are per provider, not per job
    sync_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    scheduler: SyncScheduler | None = None


def get_app_state(request: Request) -> AppState:
    """Dependency: retrieve AppState from the request."""
    return request.app.state.app_state


def get_config(request: Request) -> AppConfig:
    """Dependency: retrieve config."""
    return request.app.state.app_state.config


def get_store(request: Request) -> PriceStore:
    """Dependency: retrieve storage backend."""
    return request.app.state.app_state.store


EXEMPT_PATHS = {"/api/health"}


async def api_key_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware: validate X-API-Key header when authentication is enabled."""
    if request.url.path in EXEMPT_PATHS:
        return await call_next(request)

    config = request.app.state.app_state.config
    if config.api.api_key:
        api_key = request.headers.get("X-API-Key")
        if api_key != config.api.api_key:
            return JSONResponse(
                status_code=401,
                content={"error": "Unauthorized", "detail": "Invalid or missing API key"},
            )
    return await call_next(request)
