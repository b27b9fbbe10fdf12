"""
Name: HTTP Test Fixtures

Responsibilities:
  - Fresh settings and container singletons per test
  - A TestClient running the app lifespan (startup checks, shutdown hooks)
  - A small request helper shared by the API tests

Notes:
  - Providers are the offline fakes (FAKE_LLM / FAKE_EMBEDDINGS from
    tests/conftest.py); retries are shortened so failures stay fast
"""

import pytest
from fastapi.testclient import TestClient

from portal_chat.api.main import app
from portal_chat.container import reset_container
from portal_chat.crosscutting.config import get_settings


class ChatApi:
    """R: Thin wrapper over the TestClient for the chat/indexing routes."""

    subject = "ada"
    cv_sections = [
        {"name": "Experience", "items": ["Worked at Acme as engineer"]},
        {"name": "Skills", "items": ["Skilled in Python and Go"]},
        {"name": "Education", "items": ["MBA from State University"]},
    ]
    # Identical to the skills entry: the offline embedding scores it 1.0
    skills_question = "Skilled in Python and Go"

    def __init__(self, client: TestClient):
        self.client = client

    def build_index(self, sections=None, subject=None):
        return self.client.put(
            f"/v1/subjects/{subject or self.subject}/index",
            json={"sections": self.cv_sections if sections is None else sections},
        )

    def create_session(self, subject=None, **body):
        return self.client.post(
            f"/v1/subjects/{subject or self.subject}/chat/sessions", json=body or None
        )

    def new_session_id(self, subject=None, **body) -> str:
        response = self.create_session(subject, **body)
        assert response.status_code == 201, response.text
        return response.json()["session"]["session_id"]

    def send(self, message, subject=None, **body):
        return self.client.post(
            f"/v1/subjects/{subject or self.subject}/chat/messages",
            json={"message": message, **body},
        )

    def history(self, session_id):
        return self.client.get(f"/v1/chat/sessions/{session_id}/history")

    def end(self, session_id, **body):
        return self.client.post(f"/v1/chat/sessions/{session_id}/end", json=body or None)


@pytest.fixture
def api_env(monkeypatch):
    """Hook for tests to override settings before the client starts."""
    monkeypatch.setenv("RETRY_BASE_DELAY_SECONDS", "0.01")
    monkeypatch.setenv("RETRY_MAX_DELAY_SECONDS", "0.05")
    monkeypatch.setenv("METRICS_ENABLED", "true")
    return monkeypatch


@pytest.fixture
def client(api_env):
    get_settings.cache_clear()
    reset_container()
    with TestClient(app) as test_client:
        yield test_client
    reset_container()
    get_settings.cache_clear()


@pytest.fixture
def api(client) -> ChatApi:
    return ChatApi(client)


@pytest.fixture
def indexed_api(api) -> ChatApi:
    response = api.build_index()
    assert response.status_code == 200, response.text
    return api
