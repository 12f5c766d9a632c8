"""FastAPI route definitions for the ohlcv-sync admin API."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC as _UTC, datetime
from uuid import uuid4

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query

import ohlcv_sync
from ohlcv_sync.api.deps import AppState, JobStatus, get_app_state, get_store
from ohlcv_sync.api.schemas import (
    HealthResponse,
    JobResponse,
    JobStatusResponse,
    ScheduleResponse,
    SymbolResponse,
    SyncAllRequest,
    SyncRequest,
)
from ohlcv_sync.core.models import SyncSummary
from ohlcv_sync.store import PriceStore
from ohlcv_sync.sync.job import IncrementalSyncJob, normalize_symbols

logger = logging.getLogger(__name__)

router = APIRouter()


# -- Health --


@router.get("/health", response_model=HealthResponse)
async def health_check(
    probe: bool = Query(default=False, description="Also probe every provider (costs API calls)"),
    state: AppState = Depends(get_app_state),
):
    """System health and basic statistics."""
    store_ok = await state.store.health_check()
    symbols = await state.store.list_symbols() if store_ok else []
    total_prices = await state.store.count_prices() if store_ok else 0
    providers = await state.orchestrator.health() if probe else None
    return HealthResponse(
        status="ok" if store_ok else "degraded",
        version=ohlcv_sync.__version__,
        storage_ok=store_ok,
        total_symbols=len(symbols),
        total_prices=total_prices,
        providers=providers,
    )


# -- Symbols --


@router.get("/symbols", response_model=list[SymbolResponse])
async def list_symbols(store: PriceStore = Depends(get_store)):
    """Tracked symbols with row counts and sync dates."""
    metadata = await store.list_metadata()
    return [
        SymbolResponse(
            symbol=m.symbol,
            name=m.name,
            asset_type=m.asset_type.value,
            earliest_date=m.earliest_date,
            last_sync_date=m.last_sync_date,
            is_active=m.is_active,
            price_count=await store.count_prices(m.symbol),
        )
        for m in metadata
    ]


# -- Sync Triggers --


@router.post("/sync", response_model=JobResponse, status_code=202)
async def trigger_sync(
    request: SyncRequest,
    background_tasks: BackgroundTasks,
    state: AppState = Depends(get_app_state),
):
    """Sync the given symbols (async job)."""
    symbols = normalize_symbols(request.symbols)
    if not symbols:
        raise HTTPException(status_code=422, detail="No usable symbols in request")

    job = create_job(state, "sync")
    background_tasks.add_task(
        run_sync_job,
        state,
        job,
        lambda sync_job: sync_job.sync_symbols(
            symbols, force_full_resync=request.force_full_resync, end=request.end
        ),
    )
    return JobResponse(
        job_id=job.job_id,
        status=job.status,
        created_at=datetime.fromisoformat(job.created_at),
        message=f"Sync job queued for {len(symbols)} symbol(s)",
    )


@router.post("/sync-all", response_model=JobResponse, status_code=202)
async def trigger_sync_all(
    background_tasks: BackgroundTasks,
    request: SyncAllRequest | None = None,
    state: AppState = Depends(get_app_state),
):
    """Sync every stored symbol (async job)."""
    years_back = request.years_back if request else None
    job = create_job(state, "sync-all")
    background_tasks.add_task(
        run_sync_job,
        state,
        job,
        lambda sync_job: sync_job.sync_all(years_back=years_back),
    )
    return JobResponse(
        job_id=job.job_id,
        status=job.status,
        created_at=datetime.fromisoformat(job.created_at),
        message=(
            f"Full re-sync queued for the last {years_back} year(s)"
            if years_back
            else "Incremental sync queued for all stored symbols"
        ),
    )


# -- Schedule --


@router.get("/schedule", response_model=ScheduleResponse)
async def get_schedule(state: AppState = Depends(get_app_state)):
    """Recurring sync settings and the next fire time."""
    schedule = state.config.sync.schedule
    scheduler = state.scheduler
    return ScheduleResponse(
        enabled=schedule.enabled,
        running=bool(scheduler and scheduler.running),
        cron=schedule.cron,
        timezone=schedule.timezone,
        next_run_time=scheduler.next_run_time if scheduler else None,
    )


@router.post("/schedule/run", response_model=JobResponse, status_code=202)
async def run_schedule_now(
    background_tasks: BackgroundTasks,
    state: AppState = Depends(get_app_state),
):
    """Run the scheduled sync immediately, whether or not scheduling is enabled."""
    job = create_job(state, "scheduled")
    background_tasks.add_task(run_scheduled_sync, state, job)
    logger.info("Manual run of scheduled sync requested (job %s)", job.job_id)
    return JobResponse(
        job_id=job.job_id,
        status=job.status,
        created_at=datetime.fromisoformat(job.created_at),
        message="Scheduled sync queued",
    )


# -- Jobs --


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def get_job_status(
    job_id: str,
    state: AppState = Depends(get_app_state),
):
    """Poll job status."""
    job = _get_job(state, job_id)
    return _job_status_response(job)


@router.post("/jobs/{job_id}/cancel", response_model=JobStatusResponse)
async def cancel_job(
    job_id: str,
    state: AppState = Depends(get_app_state),
):
    """Stop a job before its next symbol. Already-synced symbols are kept."""
    job = _get_job(state, job_id)
    if job.status in ("pending", "running"):
        job.stop_event.set()
        logger.info("Cancellation requested for job %s", job_id)
    return _job_status_response(job)


# -- Helpers --


def create_job(state: AppState, kind: str) -> JobStatus:
    job_id = f"{kind}-{uuid4().hex[:8]}"
    job = JobStatus(job_id=job_id, status="pending", created_at=datetime.now(tz=_UTC).isoformat())
    state.jobs[job_id] = job
    return job


def _get_job(state: AppState, job_id: str) -> JobStatus:
    job = state.jobs.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job '{job_id}' not found")
    return job


def _job_status_response(job: JobStatus) -> JobStatusResponse:
    return JobStatusResponse(
        job_id=job.job_id,
        status=job.status,
        created_at=datetime.fromisoformat(job.created_at),
        completed_at=(datetime.fromisoformat(job.completed_at) if job.completed_at else None),
        result=job.result,
        error=job.error,
    )


async def run_sync_job(
    state: AppState,
    job: JobStatus,
    action: Callable[[IncrementalSyncJob], Awaitable[SyncSummary]],
) -> None:
    """Execute a sync in background, one job at a time."""
    async with state.sync_lock:
        if job.stop_event.is_set():
            job.status = "cancelled"
            job.completed_at = datetime.now(tz=_UTC).isoformat()
            return
        job.status = "running"
        try:
            sync_job = IncrementalSyncJob(
                state.store, state.orchestrator, state.config.sync, stop_event=job.stop_event
            )
            summary = await action(sync_job)
            job.status = "cancelled" if summary.cancelled else "completed"
            job.result = summary.model_dump(mode="json")
        except Exception as e:
            logger.error("Job %s failed: %s", job.job_id, e)
            job.status = "failed"
            job.error = str(e)
        finally:
            job.completed_at = datetime.now(tz=_UTC).isoformat()


async def run_scheduled_sync(state: AppState, job: JobStatus | None = None) -> None:
    """Incremental sync of every stored symbol, tracked like any other job."""
    job = job or create_job(state, "scheduled")
    await run_sync_job(state, job, lambda sync_job: sync_job.sync_all())
    result = job.result or {}
    logger.info(
        "Scheduled sync %s %s: %s succeeded, %s failed, %s records written",
        job.job_id,
        job.status,
        result.get("success_count", 0),
        result.get("failure_count", 0),
        result.get("total_records", 0),
    )
