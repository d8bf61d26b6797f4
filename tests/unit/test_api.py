"""Unit tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from creatorpulse.api.main import create_app
from creatorpulse.config.settings import Settings
from creatorpulse.core.container import DependencyContainer
from creatorpulse.core.rate_limiter import InMemoryRateLimiter
from creatorpulse.queue import InMemoryQueueBackend, QueueOrchestrator
from creatorpulse.store import InMemoryContentTable, InMemoryCreatorTable, InMemorySnapshotTable


@pytest.fixture
def client(container):
    """Test client over the in-memory container, scheduler off."""
    app = create_app(container=container, enable_scheduler=False)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def secured_client(creator_row):
    settings = Settings(_env_file=None, cron_secret="s3cret")
    container = DependencyContainer(
        settings,
        content_table=InMemoryContentTable(),
        creator_table=InMemoryCreatorTable([creator_row]),
        snapshot_table=InMemorySnapshotTable(),
        orchestrator=QueueOrchestrator(InMemoryQueueBackend()),
        rate_limiter=InMemoryRateLimiter(),
    )
    app = create_app(container=container, enable_scheduler=False)
    with TestClient(app) as test_client:
        yield test_client


class TestCreateContent:
    """Test POST /api/v1/content."""

    def test_created(self, client, sample_content):
        response = client.post("/api/v1/content", json=sample_content)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["content"]["platform_content_id"] == "post-1"
        assert body["content"]["id"]

    def test_duplicate_conflicts(self, client, sample_content):
        client.post("/api/v1/content", json=sample_content)

        response = client.post("/api/v1/content", json=sample_content)

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "duplicate_content"

    def test_invalid_payload(self, client, sample_content):
        del sample_content["url"]

        response = client.post("/api/v1/content", json=sample_content)

        assert response.status_code == 422
        assert any(error["field"].endswith("url") for error in response.json()["errors"])

    def test_unknown_creator(self, client, sample_content):
        sample_content["creator_id"] = "00000000-0000-0000-0000-000000000000"

        response = client.post("/api/v1/content", json=sample_content)

        assert response.status_code == 404
        assert response.json()["detail"] == "Creator not found"


class TestBatchContent:
    """Test POST /api/v1/content/batch."""

    def test_all_stored(self, client, sample_content):
        second = {**sample_content, "platform_content_id": "post-2", "url": "https://blog.example.com/posts/2"}

        response = client.post("/api/v1/content/batch", json={"contents": [sample_content, second]})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["created"] == 2
        assert body["updated"] == 0

    def test_resubmission_updates(self, client, sample_content):
        """Posting the same batch twice updates instead of duplicating."""
        client.post("/api/v1/content/batch", json={"contents": [sample_content]})

        response = client.post("/api/v1/content/batch", json={"contents": [sample_content]})

        assert response.status_code == 200
        assert response.json()["created"] == 0
        assert response.json()["updated"] == 1

    def test_partial_failure(self, client, sample_content):
        broken = {"platform": "rss", "platform_content_id": "x"}

        response = client.post("/api/v1/content/batch", json={"contents": [sample_content, broken]})

        assert response.status_code == 207
        body = response.json()
        assert body["created"] == 1
        assert body["errors"][0]["index"] == 1

    def test_all_failed(self, client, sample_content):
        sample_content["creator_id"] = "00000000-0000-0000-0000-000000000000"

        response = client.post("/api/v1/content/batch", json={"contents": [sample_content]})

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_empty_batch(self, client):
        response = client.post("/api/v1/content/batch", json={"contents": []})

        assert response.status_code == 400


class TestCron:
    """Test the cron trigger endpoints."""

    def test_queue_creators(self, client):
        response = client.post("/api/v1/cron/queue-creators")

        assert response.status_code == 200
        assert response.json()["result"] == {"found": 1, "queued": 1, "skipped": 0}

    def test_cleanup_queues(self, client):
        response = client.post("/api/v1/cron/cleanup-queues")

        assert response.status_code == 200
        assert "creator-processing" in response.json()["result"]

    def test_dedupe_content(self, client):
        response = client.post("/api/v1/cron/dedupe-content")

        assert response.status_code == 200
        assert response.json()["result"] == {"processed": 0, "grouped": 0, "errors": 0}

    def test_unconfigured_integration(self, client):
        """Triggers that need a missing key answer 503."""
        assert client.post("/api/v1/cron/score-relevancy").status_code == 503
        assert client.post("/api/v1/cron/process-snapshots").status_code == 503
        assert client.post("/api/v1/cron/halt-snapshots").status_code == 503

    def test_secret_required(self, secured_client):
        assert secured_client.post("/api/v1/cron/queue-creators").status_code == 401

        response = secured_client.post(
            "/api/v1/cron/queue-creators",
            headers={"Authorization": "Bearer wrong"},
        )
        assert response.status_code == 401

    def test_secret_accepted(self, secured_client):
        response = secured_client.post(
            "/api/v1/cron/queue-creators",
            headers={"Authorization": "Bearer s3cret"},
        )

        assert response.status_code == 200


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["services"]["queue"]["status"] == "unconfigured"

    def test_liveness(self, client):
        assert client.get("/health/live").json()["status"] == "alive"

    def test_readiness(self, client):
        assert client.get("/health/ready").status_code == 200

    def test_metrics(self, client):
        response = client.get("/metrics/")

        assert response.status_code == 200
