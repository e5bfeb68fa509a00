"""API tests. The worker pool is replaced so queued work is only recorded."""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from oidsync.database import get_engine
from oidsync.main import app
from oidsync.scheduler import jobs
from oidsync.scheduler.config_service import SchedulerConfigService
from oidsync.sync.ledger import RunLedger
from oidsync.sync.records import OidRecordRepository
from oidsync.sync.versions import ResponseVersionStore

GLUCOSE_OID = "2.16.840.1.113883.6.1:2345-7"


class JobRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, func, *args, name=None):
        self.calls.append((func, args))
        return f"job-{len(self.calls)}"


@pytest.fixture
def queued(monkeypatch):
    recorder = JobRecorder()
    monkeypatch.setattr(jobs, "submit_job", recorder)
    return recorder


@pytest.fixture
def client(engine, monkeypatch):
    monkeypatch.setattr(jobs, "config_service", SchedulerConfigService(engine))
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


class TestSyncRoutes:
    def test_sweep_is_queued(self, client, queued):
        resp = client.post("/sync/run")

        assert resp.status_code == 202
        assert resp.json()["job_id"] == "job-1"
        assert queued.calls == [(jobs.manual_processing, ())]

    def test_oids_are_queued(self, client, queued):
        resp = client.post("/sync/oids", json={"oids": ["1.2.3", "1.2.4"]})

        assert resp.status_code == 202
        assert resp.json()["submitted"] == 2
        func, args = queued.calls[0]
        assert func is jobs.on_demand_processing
        assert args == (["1.2.3", "1.2.4"],)

    def test_empty_oid_list_is_rejected(self, client, queued):
        assert client.post("/sync/oids", json={"oids": []}).status_code == 422
        assert queued.calls == []

    def test_request_template_is_queued(self, client, queued):
        resp = client.post(
            "/sync/request",
            json={"id": "req-1", "oids": ["1.2.3"], "includeRetired": True},
        )

        assert resp.status_code == 202
        func, (request,) = queued.calls[0]
        assert func is jobs.on_demand_request_processing
        assert request.id == "req-1"
        assert request.include_retired is True

    def test_request_without_oids_is_rejected(self, client, queued):
        assert client.post("/sync/request", json={"id": "req-2"}).status_code == 422
        assert queued.calls == []

    def test_stopped_worker_pool_returns_503(self, client):
        # TestClient without a context manager never runs the lifespan
        assert not jobs.scheduler.running
        assert client.post("/sync/run").status_code == 503

    def test_runs_listing_and_lookup(self, client, engine):
        batch_id = RunLedger(engine).open_run(["a", "b"])

        listing = client.get("/sync/runs").json()
        assert listing["count"] == 1
        assert listing["runs"][0]["batch_id"] == batch_id
        assert listing["runs"][0]["status"] == "PROCESSING"

        run = client.get(f"/sync/runs/{batch_id}").json()["run"]
        assert run["total_oids"] == 2
        assert run["batch_end_time"] is None

    def test_unknown_run_is_404(self, client):
        assert client.get("/sync/runs/nope").status_code == 404


class TestOidRoutes:
    def test_register_then_read_versions(self, client, engine):
        resp = client.post(
            "/oids",
            json={"records": [{"oid": GLUCOSE_OID, "code_group_name": "Glucose"}]},
        )
        assert resp.json() == {"status": "success", "created": 1, "updated": 0}

        record = OidRecordRepository(engine).get_by_oid(GLUCOSE_OID)
        assert record.processing_strategy == "processLoincOid"
        assert record.code == "2345-7"
        assert record.hl7_uri == "urn:oid:2.16.840.1.113883.6.1"

        assert client.get(f"/oids/{GLUCOSE_OID}/current").json()["status"] == "no_data"

        ResponseVersionStore(engine).save_success(record.id, '{"results": []}', 200, 12)
        current = client.get(f"/oids/{GLUCOSE_OID}/current").json()["current"]
        assert current["version"] == 1
        assert current["response"] == {"results": []}

        versions = client.get(f"/oids/{GLUCOSE_OID}/versions").json()
        assert versions["count"] == 1

    def test_register_twice_updates(self, client):
        body = {"records": [{"oid": "1.2.3"}]}
        client.post("/oids", json=body)
        assert client.post("/oids", json=body).json()["updated"] == 1

    def test_unknown_oid_is_404(self, client):
        assert client.get("/oids/9.9.9/versions").status_code == 404
        assert client.get("/oids/9.9.9/current").status_code == 404


class TestSchedulerRoutes:
    def test_unconfigured_job_reads_as_disabled(self, client):
        body = client.get("/scheduler/config/oidProcessing").json()

        assert body["exists"] is False
        assert body["config"]["enabled"] is False
        assert body["config"]["cron_expression"] == "0 0 2 * * ?"

    def test_invalid_cron_is_rejected(self, client):
        resp = client.put(
            "/scheduler/config/oidProcessing",
            json={"cron_expression": "every night", "enabled": True},
        )
        assert resp.status_code == 422

    def test_update_reschedules_sync_job(self, client, monkeypatch):
        next_run = datetime(2026, 1, 4, 3, 0, tzinfo=timezone.utc)
        monkeypatch.setattr(jobs, "refresh_schedule", lambda: next_run)

        resp = client.put(
            "/scheduler/config/oidProcessing",
            json={"cron_expression": "0 0 3 * * ?", "enabled": True},
        )

        body = resp.json()
        assert resp.status_code == 200
        assert body["config"] == {
            "job_name": "oidProcessing",
            "cron_expression": "0 0 3 * * ?",
            "enabled": True,
        }
        assert body["next_run_time"] == next_run.isoformat()

    def test_update_other_job_does_not_reschedule(self, client, monkeypatch):
        def fail():
            raise AssertionError("should not reschedule")

        monkeypatch.setattr(jobs, "refresh_schedule", fail)

        resp = client.put(
            "/scheduler/config/cleanup",
            json={"cron_expression": "0 4 * * *", "enabled": False},
        )

        assert resp.status_code == 200
        assert resp.json()["next_run_time"] is None
        assert client.get("/scheduler/config/cleanup").json()["exists"] is True
