"""
Name: Indexing Endpoint Tests (HTTP)

Responsibilities:
  - PUT builds (and replaces) a subject index from CV sections
  - POST refresh rebuilds from stored content
  - DELETE removes index and stored content
  - Invalid content maps to 422 INVALID_CONTENT
"""

import pytest

pytestmark = pytest.mark.api


def test_build_index(api):
    response = api.build_index()

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["subject_id"] == api.subject
    assert body["chunk_count"] == 3
    assert body["generation"] >= 1
    assert body["embedding_model"] == "fake-embedding-v1"
    assert body["dimension"] == 768
    assert body["skipped"] == []


def test_rebuild_bumps_generation(api):
    first = api.build_index().json()
    second = api.build_index(
        [{"name": "Projects", "items": ["Built an open source project"]}]
    ).json()

    assert second["generation"] > first["generation"]
    assert second["chunk_count"] == 1


def test_skipped_entries_are_reported(api):
    body = api.build_index(
        [{"name": "Skills", "items": ["Skilled in Python and Go", "Go"]}]
    ).json()

    assert body["chunk_count"] == 1
    assert body["skipped"][0]["reason"] == "too_short"
    assert body["skipped"][0]["section"] == "skills"


def test_content_without_indexable_text(api):
    response = api.build_index([{"name": "Skills", "items": ["Go", "  "]}])

    assert response.status_code == 422
    assert response.json()["code"] == "INVALID_CONTENT"


def test_missing_sections_is_a_validation_error(api):
    response = api.client.put(f"/v1/subjects/{api.subject}/index", json={})

    assert response.status_code == 422


def test_refresh_rebuilds_from_stored_content(api):
    built = api.build_index().json()

    response = api.client.post(f"/v1/subjects/{api.subject}/index/refresh")

    assert response.status_code == 200
    body = response.json()
    assert body["chunk_count"] == built["chunk_count"]
    assert body["generation"] > built["generation"]


def test_refresh_without_content(api):
    response = api.client.post("/v1/subjects/nobody/index/refresh")

    assert response.status_code == 422
    assert response.json()["code"] == "INVALID_CONTENT"


def test_delete_index(api):
    api.build_index()

    first = api.client.delete(f"/v1/subjects/{api.subject}/index")
    second = api.client.delete(f"/v1/subjects/{api.subject}/index")

    assert first.json() == {"subject_id": api.subject, "deleted": True}
    assert second.json()["deleted"] is False
    # Stored content is gone too
    refresh = api.client.post(f"/v1/subjects/{api.subject}/index/refresh")
    assert refresh.status_code == 422


def test_questions_after_delete_get_fallback(api):
    api.build_index()
    api.client.delete(f"/v1/subjects/{api.subject}/index")

    body = api.send(api.skills_question).json()

    assert body["status"] == "low_confidence"
    assert body["sources"] == []
