"""Sync pipeline: fallback orchestration, chunked fetching, state, and the job."""

from ohlcv_sync.sync.chunking import ChunkedRangeFetcher, RangeFetch, add_years, plan_chunks
from ohlcv_sync.sync.job import IncrementalSyncJob, normalize_symbols
from ohlcv_sync.sync.orchestrator import FallbackOrchestrator, create_orchestrator
from ohlcv_sync.sync.scheduler import SyncScheduler
from ohlcv_sync.sync.state import SyncStateResolver

__all__ = [
    "FallbackOrchestrator",
    "create_orchestrator",
    "ChunkedRangeFetcher",
    "RangeFetch",
    "plan_chunks",
    "add_years",
    "SyncStateResolver",
    "IncrementalSyncJob",
    "normalize_symbols",
    "SyncScheduler",
]
