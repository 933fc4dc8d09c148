"""Tests for the pipeline trigger endpoints."""

from datetime import datetime, timezone
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from cardscout.api.deps import get_identity_client, get_lock_manager, get_runner, get_store
from cardscout.api.identity import Owner
from cardscout.api.routes.pipelines import PipelineRunResponse
from cardscout.db.store import RunRecord
from cardscout.errors import IdentityError, SetupError
from cardscout.main import app
from cardscout.worker.orchestrator import ProspectRunSummary, ScanRunSummary


class FakeIdentity:
    def __init__(self, owners: dict[str, Owner], down: bool = False):
        self.owners = owners
        self.down = down

    async def resolve(self, token: str) -> Optional[Owner]:
        if self.down:
            raise IdentityError("Identity provider unreachable")
        return self.owners.get(token)


class FakeStore:
    def __init__(self):
        self.owners: dict[str, Optional[str]] = {}
        self.runs: list[RunRecord] = []

    async def ensure_owner(self, owner_id: str, email: Optional[str] = None) -> None:
        self.owners[owner_id] = email

    async def list_runs(self, pipeline: Optional[str] = None, limit: int = 20) -> list[RunRecord]:
        runs = [r for r in self.runs if pipeline is None or r.pipeline == pipeline]
        return runs[:limit]


class FakeLockManager:
    def __init__(self, locks: Optional[dict] = None):
        self.locks = locks or {}

    async def get_lock_info(self, pipeline: str):
        return self.locks.get(pipeline)

    async def force_unlock(self, pipeline: str) -> bool:
        self.locks.pop(pipeline, None)
        return True


class FakeRunner:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[tuple] = []

    async def run_prospect_analysis(self, owner_id=None, trigger="manual"):
        self.calls.append(("prospect_analyzer", owner_id, trigger))
        if self.fail:
            raise SetupError("store unreachable: connection refused")
        return ProspectRunSummary(processed=3, inserted=2, updated=1, data_sources={"fangraphs": 3})

    async def run_market_scan(self, trigger="manual"):
        self.calls.append(("market_scanner", trigger))
        if self.fail:
            raise SetupError("store unreachable: connection refused")
        return ScanRunSummary(deals_found=4, deals_inserted=3, duplicates=1, users_scanned=2,
                              subjects_scanned=5, connector_errors=1)


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def fake_locks():
    return FakeLockManager({"market_scanner": {"run_id": "stuck-run", "ttl_seconds": 1200}})


@pytest.fixture
def client(fake_store, fake_runner, fake_locks):
    identity = FakeIdentity({"good-token": Owner(id="owner-1", email="o@example.test")})
    app.dependency_overrides[get_store] = lambda: fake_store
    app.dependency_overrides[get_runner] = lambda: fake_runner
    app.dependency_overrides[get_identity_client] = lambda: identity
    app.dependency_overrides[get_lock_manager] = lambda: fake_locks
    yield TestClient(app)
    app.dependency_overrides.clear()


AUTH = {"Authorization": "Bearer good-token"}


def test_prospect_analyzer_runs_for_caller(client, fake_store, fake_runner):
    response = client.post("/api/pipelines/prospect-analyzer", headers=AUTH)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["processed"] == 3
    assert body["inserted"] == 2
    assert body["updated"] == 1
    assert body["data_sources"] == {"fangraphs": 3}
    assert body["top_prospects"] == []
    assert "timestamp" in body
    assert fake_runner.calls == [("prospect_analyzer", "owner-1", "manual")]
    assert fake_store.owners == {"owner-1": "o@example.test"}


def test_market_scanner_response(client, fake_runner):
    response = client.post("/api/pipelines/market-scanner", headers=AUTH)

    assert response.status_code == 200
    body = response.json()
    assert body["deals_found"] == 4
    assert body["deals_inserted"] == 3
    assert body["duplicates"] == 1
    assert body["users_scanned"] == 2
    assert body["connector_errors"] == 1
    assert fake_runner.calls == [("market_scanner", "manual")]


@pytest.mark.parametrize("headers", [
    {},
    {"Authorization": "good-token"},
    {"Authorization": "Basic good-token"},
    {"Authorization": "Bearer unknown"},
])
def test_unauthenticated_calls_are_rejected(client, fake_runner, headers):
    response = client.post("/api/pipelines/prospect-analyzer", headers=headers)

    assert response.status_code == 401
    assert fake_runner.calls == []


def test_identity_outage_is_503(client, fake_runner):
    app.dependency_overrides[get_identity_client] = lambda: FakeIdentity({}, down=True)

    response = client.post("/api/pipelines/market-scanner", headers=AUTH)

    assert response.status_code == 503
    assert response.json()["success"] is False
    assert fake_runner.calls == []


def test_setup_failure_is_500(client):
    app.dependency_overrides[get_runner] = lambda: FakeRunner(fail=True)

    response = client.post("/api/pipelines/prospect-analyzer", headers=AUTH)

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "store unreachable: connection refused"}


def test_list_runs(client, fake_store):
    now = datetime.now(timezone.utc)
    fake_store.runs = [
        RunRecord(id=2, pipeline="market_scanner", status="completed", started_at=now,
                  completed_at=now, summary={"deals_found": 1}),
        RunRecord(id=1, pipeline="prospect_analyzer", status="failed", started_at=now,
                  trigger="scheduled", error_message="store unreachable"),
    ]

    response = client.get("/api/pipelines/runs")
    assert response.status_code == 200
    assert [r["id"] for r in response.json()] == [2, 1]

    response = client.get("/api/pipelines/runs", params={"pipeline": "prospect_analyzer"})
    body = response.json()
    assert len(body) == 1
    assert body[0]["trigger"] == "scheduled"
    assert body[0]["completed_at"] is None

    assert client.get("/api/pipelines/runs", params={"limit": 0}).status_code == 422


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_force_unlock_clears_held_lock(client, fake_locks):
    response = client.post("/api/pipelines/market_scanner/force-unlock", headers=AUTH)

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Lock force-unlocked"
    assert body["lock_info"]["run_id"] == "stuck-run"
    assert fake_locks.locks == {}

    again = client.post("/api/pipelines/market_scanner/force-unlock", headers=AUTH)
    assert again.json()["message"] == "No lock found"


def test_force_unlock_rejects_unknown_pipeline_and_anonymous_callers(client, fake_locks):
    assert client.post("/api/pipelines/nope/force-unlock", headers=AUTH).status_code == 404
    assert client.post("/api/pipelines/market_scanner/force-unlock").status_code == 401
    assert "market_scanner" in fake_locks.locks


def test_run_response_reads_attributes():
    now = datetime.now(timezone.utc)
    run = RunRecord(id=7, pipeline="market_scanner", status="completed", started_at=now)

    assert PipelineRunResponse.model_config["from_attributes"] is True
    assert PipelineRunResponse.model_validate(run).id == 7
