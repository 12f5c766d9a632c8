"""Tests for the FastAPI admin API."""

from __future__ import annotations

from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient

from ohlcv_sync.api.app import create_app
from ohlcv_sync.core.config import (
    APIConfig,
    AppConfig,
    ScheduleConfig,
    StorageConfig,
    SyncConfig,
)
from ohlcv_sync.core.models import ErrorKind
from ohlcv_sync.sync.orchestrator import FallbackOrchestrator


# -- Fixtures --


def _make_config(tmp_path, api_key=None, schedule=None):
    return AppConfig(
        storage=StorageConfig(sqlite_path=str(tmp_path / "api.db")),
        api=APIConfig(api_key=api_key),
        sync=SyncConfig(schedule=schedule or ScheduleConfig()),
    )


@pytest.fixture
def provider(fake_provider, window, series):
    return fake_provider(
        "primary", earliest=date(2024, 1, 1), default=window(series(date(2024, 1, 1), 10))
    )


@pytest.fixture
def orchestrator(provider, recording_sleep):
    return FallbackOrchestrator([provider], SyncConfig(), sleep=recording_sleep)


@pytest.fixture
def client(tmp_path, orchestrator):
    app = create_app(config=_make_config(tmp_path), orchestrator=orchestrator)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def secured_client(tmp_path, orchestrator):
    app = create_app(config=_make_config(tmp_path, api_key="secret"), orchestrator=orchestrator)
    with TestClient(app) as c:
        yield c


# -- Health --


class TestHealth:
    def test_health_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["storage_ok"] is True
        assert body["total_symbols"] == 0
        assert body["providers"] is None

    def test_health_probe(self, client):
        body = client.get("/api/health", params={"probe": True}).json()
        assert body["providers"] == {"primary": True}


# -- Sync jobs --


class TestSyncJobs:
    def test_sync_job_completes(self, client):
        resp = client.post("/api/sync", json={"symbols": ["aapl"], "end": "2024-01-31"})
        assert resp.status_code == 202
        job_id = resp.json()["job_id"]
        assert job_id.startswith("sync-")

        job = client.get(f"/api/jobs/{job_id}").json()
        assert job["status"] == "completed"
        assert job["result"]["success_count"] == 1
        assert job["result"]["total_records"] == 10
        assert job["completed_at"] is not None

    def test_symbols_listed_after_sync(self, client):
        client.post("/api/sync", json={"symbols": ["SPY"], "end": "2024-01-31"})
        symbols = client.get("/api/symbols").json()
        assert len(symbols) == 1
        assert symbols[0]["symbol"] == "SPY"
        assert symbols[0]["asset_type"] == "etf"
        assert symbols[0]["price_count"] == 10
        assert symbols[0]["earliest_date"] == "2024-01-01"

    def test_failed_symbol_in_result(self, tmp_path, fake_provider, recording_sleep):
        orch = FallbackOrchestrator(
            [fake_provider("primary", default=ErrorKind.NOT_FOUND)], sleep=recording_sleep
        )
        app = create_app(config=_make_config(tmp_path), orchestrator=orch)
        with TestClient(app) as c:
            job_id = c.post("/api/sync", json={"symbols": ["ZZZZ"]}).json()["job_id"]
            job = c.get(f"/api/jobs/{job_id}").json()

        assert job["status"] == "completed"
        (result,) = job["result"]["results"]
        assert result["error_kind"] == "exhausted_providers"
        assert result["success"] is False

    def test_sync_all(self, client):
        client.post("/api/sync", json={"symbols": ["AAPL"], "end": "2024-01-05"})
        resp = client.post("/api/sync-all", json={})
        assert resp.status_code == 202
        job = client.get(f"/api/jobs/{resp.json()['job_id']}").json()
        assert job["status"] == "completed"
        assert [r["symbol"] for r in job["result"]["results"]] == ["AAPL"]

    def test_sync_all_without_body(self, client):
        resp = client.post("/api/sync-all")
        assert resp.status_code == 202

    def test_blank_symbols_rejected(self, client):
        resp = client.post("/api/sync", json={"symbols": ["", " "]})
        assert resp.status_code == 422

    def test_empty_list_rejected(self, client):
        resp = client.post("/api/sync", json={"symbols": []})
        assert resp.status_code == 422

    def test_unknown_job(self, client):
        assert client.get("/api/jobs/nope").status_code == 404

    def test_cancel_finished_job_is_noop(self, client):
        job_id = client.post("/api/sync", json={"symbols": ["AAPL"]}).json()["job_id"]
        resp = client.post(f"/api/jobs/{job_id}/cancel")
        assert resp.status_code == 200
        assert resp.json()["status"] == "completed"


# -- Schedule --


class TestSchedule:
    def test_schedule_running_by_default(self, client):
        body = client.get("/api/schedule").json()
        assert body["enabled"] is True
        assert body["running"] is True
        assert body["cron"] == "0 2 1 * *"
        assert body["timezone"] == "UTC"
        next_run = datetime.fromisoformat(body["next_run_time"])
        assert (next_run.day, next_run.hour, next_run.minute) == (1, 2, 0)

    def test_disabled_schedule_not_started(self, tmp_path, orchestrator):
        config = _make_config(tmp_path, schedule=ScheduleConfig(enabled=False))
        with TestClient(create_app(config=config, orchestrator=orchestrator)) as c:
            body = c.get("/api/schedule").json()
        assert body["enabled"] is False
        assert body["running"] is False
        assert body["next_run_time"] is None

    def test_run_now_syncs_stored_symbols(self, client):
        client.post("/api/sync", json={"symbols": ["AAPL", "SPY"], "end": "2024-01-05"})
        resp = client.post("/api/schedule/run")
        assert resp.status_code == 202
        job_id = resp.json()["job_id"]
        assert job_id.startswith("scheduled-")

        job = client.get(f"/api/jobs/{job_id}").json()
        assert job["status"] == "completed"
        assert sorted(r["symbol"] for r in job["result"]["results"]) == ["AAPL", "SPY"]

    def test_run_now_works_while_disabled(self, tmp_path, orchestrator):
        config = _make_config(tmp_path, schedule=ScheduleConfig(enabled=False))
        with TestClient(create_app(config=config, orchestrator=orchestrator)) as c:
            job_id = c.post("/api/schedule/run").json()["job_id"]
            job = c.get(f"/api/jobs/{job_id}").json()
        assert job["status"] == "completed"
        assert job["result"]["results"] == []


# -- Auth --


class TestApiKey:
    def test_health_exempt(self, secured_client):
        assert secured_client.get("/api/health").status_code == 200

    def test_missing_key_rejected(self, secured_client):
        resp = secured_client.get("/api/symbols")
        assert resp.status_code == 401
        assert resp.json()["error"] == "Unauthorized"

    def test_valid_key_accepted(self, secured_client):
        resp = secured_client.get("/api/symbols", headers={"X-API-Key": "secret"})
        assert resp.status_code == 200
