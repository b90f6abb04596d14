"""Tests for the HTTP trigger API."""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from conftest import FakeFetcher, drive_link, make_item
from publisher.api.routes import get_orchestrator, get_run_history
from publisher.config import get_settings
from publisher.main import app
from publisher.models.schemas import RecordStatus, utc_now
from publisher.services.pipeline import PipelineOrchestrator
from publisher.services.run_history import RunHistory

HEADERS = {"X-API-Key": "test-secret"}


@pytest.fixture
def history(settings):
    return RunHistory(settings.history_file)


@pytest.fixture
def client(store, source, target, settings, publish_config, history):
    """TestClient with in-memory services. The lifespan is not started."""
    orchestrator = PipelineOrchestrator(
        store, source, target,
        settings=settings,
        fetcher=FakeFetcher(settings),
        publish_config=publish_config,
    )

    async def override_orchestrator():
        yield orchestrator

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_orchestrator] = override_orchestrator
    app.dependency_overrides[get_run_history] = lambda: history
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestAuthentication:
    """Test API key checks."""

    def test_missing_key_rejected(self, client):
        response = client.post("/api/pipeline/run", json={})
        assert response.status_code == 401

    def test_wrong_key_rejected(self, client):
        response = client.get("/api/records/stats", headers={"X-API-Key": "nope"})
        assert response.status_code == 401

    def test_query_secret_accepted(self, client):
        response = client.get("/api/records/stats", params={"secret": "test-secret"})
        assert response.status_code == 200

    def test_unconfigured_secret_refuses(self, client, settings):
        """Without API_SECRET every protected route answers 503."""
        settings.api_secret = ""

        response = client.get("/api/records/stats", headers=HEADERS)

        assert response.status_code == 503

    def test_health_is_public(self, client):
        assert client.get("/health").json() == {"status": "ok"}


class TestPipelineRun:
    """Test the run trigger."""

    def test_run_publishes_and_logs_history(self, client, store, history, pending_record):
        """A successful run returns the result and records it."""
        response = client.post("/api/pipeline/run", json={"sync": False}, headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["step"] == "complete"
        assert body["publish"]["url"] == "https://www.youtube.com/watch?v=yt-123"
        assert store.records[pending_record.record_id].status == RecordStatus.UPLOADED
        assert history.last_upload().record_id == pending_record.record_id

    def test_empty_queue(self, client):
        response = client.post("/api/pipeline/run", json={}, headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["step"] == "no_video"

    def test_failed_run_returns_500(self, client, source):
        """A failed run still returns the result body."""
        source.fail = True

        response = client.post("/api/pipeline/run", json={}, headers=HEADERS)

        assert response.status_code == 500
        assert response.json()["step"] == "sync"

    def test_preview(self, client, store, pending_record):
        response = client.post("/api/pipeline/run", json={"preview": True}, headers=HEADERS)

        assert response.json()["step"] == "preview"
        assert store.records[pending_record.record_id].status == RecordStatus.PENDING


class TestMaintenanceRoutes:
    """Test sync, reset and stats routes."""

    def test_sync_dry_run(self, client, source, store):
        source.items = [make_item("id-1", "New.mp4")]

        response = client.post("/api/sync", json={"dry_run": True}, headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["created"] == 1
        assert store.records == {}

    def test_sync_failure_is_502(self, client, source):
        source.fail = True

        response = client.post("/api/sync", json={}, headers=HEADERS)

        assert response.status_code == 502

    def test_reset_errors(self, client, store):
        store.add(title="Old", source_link=drive_link("o"), status=RecordStatus.ERROR,
                  error_at=utc_now() - timedelta(days=30))

        response = client.post("/api/records/reset-errors", json={"max_age_days": 7}, headers=HEADERS)

        assert response.json() == {"reset": 1}

    def test_stats(self, client, store, pending_record):
        response = client.get("/api/records/stats", headers=HEADERS)

        assert response.json()["pending"] == 1


class TestLastUploadStatus:
    """Test the recent upload check."""

    def test_no_history(self, client):
        body = client.get("/api/status/last-upload", headers=HEADERS).json()

        assert body["upload_executed_recently"] is False

    def test_after_upload(self, client, pending_record):
        client.post("/api/pipeline/run", json={"sync": False}, headers=HEADERS)

        body = client.get("/api/status/last-upload", headers=HEADERS).json()

        assert body["upload_executed_recently"] is True
        assert "yt-123" in body["message"]
