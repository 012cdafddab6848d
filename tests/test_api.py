"""Tests for the admin API endpoints."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from portal_sync.api.checkpoints import get_checkpoint_store
from portal_sync.api.integration_logs import get_ledger
from portal_sync.database.database import get_db
from portal_sync.main import app
from portal_sync.services.outcome_ledger import LedgerEntry


@pytest.fixture
def client(store, ledger, session_factory):
    store.create("Members", "SugarCRMAccountToPortalMember")
    store.update("Members", {"status": "success", "last_sync_at": datetime(2025, 9, 1, tzinfo=timezone.utc)})

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_checkpoint_store] = lambda: store
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealth:
    def test_healthy(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["database"] == "connected"

    def test_unhealthy(self, client):
        broken = MagicMock()
        broken.execute.side_effect = Exception("database is locked")
        app.dependency_overrides[get_db] = lambda: broken

        response = client.get("/api/health")

        assert response.json() == {
            "status": "unhealthy",
            "database": "disconnected",
            "message": "database is locked",
        }


class TestPipelinesEndpoint:
    def test_lists_pipelines(self, client):
        response = client.get("/api/pipelines")

        assert response.status_code == 200
        by_task = {p["task_name"]: p for p in response.json()}
        assert by_task["SugarAuditorToPortalAuditor"]["require_checkpoint"] is True
        assert by_task["SugarCRMAccountToPortalMember"]["source_module"] == "Accounts"


class TestCheckpointsEndpoints:
    """Tests for /api/checkpoints."""

    def test_list(self, client):
        response = client.get("/api/checkpoints")

        assert response.status_code == 200
        assert response.json()[0]["last_sync_at"] == "2025-09-01T00:00:00Z"

    def test_list_filtered(self, client):
        assert client.get("/api/checkpoints", params={"status": "failed"}).json() == []
        assert len(client.get("/api/checkpoints", params={"direction": "inbound"}).json()) == 1

    def test_list_invalid_filter(self, client):
        assert client.get("/api/checkpoints", params={"status": "running"}).status_code == 422

    def test_stats(self, client):
        stats = client.get("/api/checkpoints/stats").json()

        assert stats["total"] == 1
        assert stats["by_status"]["success"] == 1
        assert stats["last_updated"].endswith("Z")

    def test_get_by_integration_name(self, client):
        response = client.get("/api/checkpoints/SugarCRMAccountToPortalMember")

        assert response.status_code == 200
        assert response.json()["module_name"] == "Members"

    def test_get_missing(self, client):
        assert client.get("/api/checkpoints/Auditors").status_code == 404

    def test_create(self, client, store):
        response = client.post(
            "/api/checkpoints",
            json={"module_name": "Auditors", "integration_name": "SugarAuditorToPortalAuditor"},
        )

        assert response.status_code == 201
        assert response.json()["status"] == "pending"
        assert store.get("Auditors") is not None

    def test_create_duplicate(self, client):
        response = client.post("/api/checkpoints", json={"module_name": "Members"})

        assert response.status_code == 409

    def test_reset_one(self, client):
        response = client.post("/api/checkpoints/Members/reset")

        assert response.status_code == 200
        assert response.json()["status"] == "pending"
        assert response.json()["last_sync_at"] is None

    def test_reset_missing(self, client):
        assert client.post("/api/checkpoints/Auditors/reset").status_code == 404

    def test_reset_all(self, client):
        response = client.post("/api/checkpoints/reset")

        assert response.json() == {"reset_count": 1}

    def test_delete(self, client, store):
        assert client.delete("/api/checkpoints/Members").status_code == 204
        assert store.get("Members") is None

    def test_delete_missing(self, client):
        assert client.delete("/api/checkpoints/Auditors").status_code == 404


class TestIntegrationLogsEndpoint:
    """Tests for /api/integration-logs."""

    def test_list_logs(self, client, ledger):
        ledger.record(
            LedgerEntry(
                log_type="Info",
                module_name="Members",
                source_id="0b6c2f8e-1a2b-4c3d-9e8f-001122334455",
                internal_status="Created",
                message="Member created",
            )
        )
        ledger.record(LedgerEntry(log_type="Error", module_name="Cases", internal_status="Failed", message="boom"))

        response = client.get("/api/integration-logs", params={"module_name": "Members"})

        assert response.status_code == 200
        rows = response.json()
        assert len(rows) == 1
        assert rows[0]["source_id"] == "0b6c2f8e-1a2b-4c3d-9e8f-001122334455"
        assert rows[0]["internal_status"] == "Created"

    def test_limit_bounds(self, client):
        assert client.get("/api/integration-logs", params={"limit": 0}).status_code == 422
        assert client.get("/api/integration-logs", params={"limit": 1001}).status_code == 422
