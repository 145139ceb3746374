"""Integration tests for API endpoints."""

import pytest

from fastapi.testclient import TestClient

from scm_bitbucket.main import create_app
from scm_bitbucket.scm.registry import ScmRegistry

PR_HEADERS = {"x-event-key": "pullrequest:created", "x-request-uuid": "abc-123"}


def pr_payload(href="https://bitbucket.org/batman/test"):
    return {
        "actor": {"uuid": "robin"},
        "repository": {"links": {"html": {"href": href}}},
        "pullrequest": {
            "id": 3,
            "destination": {"branch": {"name": "master"}},
            "source": {"branch": {"name": "mynewbranch"}, "commit": {"hash": "40171b678527"}},
        },
    }


@pytest.fixture
def registry(scm):
    registry = ScmRegistry()
    registry.register(scm)
    return registry


@pytest.fixture
def client(registry):
    with TestClient(create_app(registry=registry)) as test_client:
        yield test_client


class TestHealthEndpoint:
    """Test health check endpoint."""

    def test_health_check(self, client: TestClient):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data
        assert data["version"] == "0.1.0"


class TestWebhookEndpoint:
    """Test the webhook receiver."""

    def test_pull_request_event(self, client: TestClient):
        response = client.post("/api/v1/webhooks", json=pr_payload(), headers=PR_HEADERS)

        assert response.status_code == 200
        assert response.json() == {
            "type": "pr",
            "action": "opened",
            "username": "robin",
            "checkoutUrl": "https://bitbucket.org/batman/test.git",
            "branch": "master",
            "sha": "40171b678527",
            "prNum": 3,
            "prRef": "mynewbranch",
            "hookId": "abc-123",
            "scmContext": "bitbucket:bitbucket.org",
        }

    def test_unsupported_event(self, client: TestClient):
        response = client.post(
            "/api/v1/webhooks",
            json=pr_payload(),
            headers={"x-event-key": "pullrequest:comment_created"},
        )

        assert response.status_code == 204

    def test_other_host(self, client: TestClient):
        response = client.post(
            "/api/v1/webhooks",
            json=pr_payload(href="https://bitbucket.example.com/batman/test"),
            headers=PR_HEADERS,
        )

        assert response.status_code == 204

    def test_push_without_changes_returns_400(self, client: TestClient):
        payload = {
            "actor": {"uuid": "robin"},
            "repository": {"links": {"html": {"href": "https://bitbucket.org/batman/test"}}},
            "push": {"changes": []},
        }

        response = client.post(
            "/api/v1/webhooks", json=payload, headers={"x-event-key": "repo:push"}
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "repo:push payload has no push.changes"

    def test_changes_mapping_returns_400(self, client: TestClient):
        payload = {
            "repository": {"links": {"html": {"href": "https://bitbucket.org/batman/test"}}},
            "push": {"changes": {"a": 1}},
        }

        response = client.post(
            "/api/v1/webhooks", json=payload, headers={"x-event-key": "repo:push"}
        )

        assert response.status_code == 400
        assert "not a list" in response.json()["detail"]

    def test_pull_request_without_repository_returns_400(self, client: TestClient):
        payload = pr_payload()
        del payload["repository"]

        response = client.post("/api/v1/webhooks", json=payload, headers=PR_HEADERS)

        assert response.status_code == 400

    def test_invalid_json(self, client: TestClient):
        response = client.post(
            "/api/v1/webhooks",
            content=b"{not json",
            headers={**PR_HEADERS, "content-type": "application/json"},
        )

        assert response.status_code == 400


class TestStatsEndpoint:
    def test_stats(self, client: TestClient):
        response = client.get("/api/v1/stats")

        assert response.status_code == 200
        stats = response.json()["bitbucket:bitbucket.org"]
        assert stats["breaker"] == {"isClosed": True, "state": "closed", "trips": 0}
        assert stats["requests"]["total"] == 1
