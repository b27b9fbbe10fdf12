"""
Name: Application Endpoint Tests (healthz, metrics, request context)

Responsibilities:
  - /healthz reports liveness and in-memory state
  - /metrics exposes Prometheus text (404 when disabled)
  - X-Request-Id is generated or propagated
"""

import pytest

pytestmark = pytest.mark.api


def test_healthz_on_empty_state(client):
    response = client.get("/healthz")

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["active_sessions"] == 0
    assert body["indexed_subjects"] == 0
    assert body["request_id"] == response.headers["X-Request-Id"]


def test_healthz_counts_sessions_and_indexes(indexed_api):
    indexed_api.new_session_id()
    ended = indexed_api.new_session_id()
    indexed_api.end(ended)

    body = indexed_api.client.get("/healthz").json()

    assert body["active_sessions"] == 1
    assert body["indexed_subjects"] == 1


def test_request_id_is_propagated(client):
    response = client.get("/healthz", headers={"X-Request-Id": "abc-123"})

    assert response.headers["X-Request-Id"] == "abc-123"


def test_metrics_exposed(indexed_api):
    indexed_api.send(indexed_api.skills_question)

    response = indexed_api.client.get("/metrics")

    assert response.status_code == 200
    assert "portal_chat_requests_total" in response.text
    assert "portal_chat_sessions_created_total" in response.text


class TestMetricsDisabled:
    @pytest.fixture
    def api_env(self, api_env):
        api_env.setenv("METRICS_ENABLED", "false")
        return api_env

    def test_metrics_not_found(self, client):
        assert client.get("/metrics").status_code == 404


def test_unknown_route_is_not_found(client):
    assert client.get("/v1/nothing-here").status_code == 404
