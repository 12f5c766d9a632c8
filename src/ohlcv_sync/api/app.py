"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from functools import partial

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ohlcv_sync.api.deps import AppState, api_key_middleware
from ohlcv_sync.api.routes import router, run_scheduled_sync
from ohlcv_sync.core.config import AppConfig, load_config
from ohlcv_sync.core.exceptions import (
    ConfigError,
    ExhaustedProvidersError,
    OhlcvSyncError,
    StorageError,
    SyncError,
)
from ohlcv_sync.store import create_store
from ohlcv_sync.sync.orchestrator import FallbackOrchestrator, create_orchestrator
from ohlcv_sync.sync.scheduler import SyncScheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the store and provider clients, start the scheduler; undo all on shutdown."""
    config = app.state._pending_config or load_config()
    store = await create_store(config.storage)
    orchestrator = app.state._pending_orchestrator or create_orchestrator(config)

    state = AppState(config=config, store=store, orchestrator=orchestrator)
    state.scheduler = SyncScheduler(config.sync.schedule, partial(run_scheduled_sync, state))
    app.state.app_state = state
    state.scheduler.start()
    logger.info("ohlcv-sync API ready (db=%s)", config.storage.sqlite_path)

    yield

    state.scheduler.shutdown()
    await orchestrator.aclose()
    await store.close()


def create_app(
    config: AppConfig | None = None,
    orchestrator: FallbackOrchestrator | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    import ohlcv_sync

    app = FastAPI(
        title="ohlcv-sync API",
        description="Admin surface for daily price history sync",
        version=ohlcv_sync.__version__,
        lifespan=lifespan,
    )

    # Stash config so lifespan can retrieve it
    app.state._pending_config = config
    app.state._pending_orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Optional API key middleware
    if config and config.api.api_key:
        app.middleware("http")(api_key_middleware)

    app.include_router(router, prefix="/api")

    @app.exception_handler(OhlcvSyncError)
    async def ohlcv_sync_exception_handler(request: Request, exc: OhlcvSyncError):
        status_map = {
            ConfigError: 400,
            SyncError: 400,
            ExhaustedProvidersError: 502,
            StorageError: 500,
        }
        status = status_map.get(type(exc), 500)
        return JSONResponse(
            status_code=status,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    return app
