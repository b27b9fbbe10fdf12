"""
Name: In-Memory Vector Store Unit Tests

Responsibilities:
  - Ranking (similarity desc, position asc on ties) and threshold filtering
  - Dimension checks on publish and query
  - Atomic index swap under concurrent queries

Notes:
  - Embeddings are tiny hand-written vectors; cosine is easy to reason about
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from portal_chat.domain.entities import ContentChunk
from portal_chat.infrastructure.repositories.in_memory import InMemoryVectorStore

pytestmark = pytest.mark.unit


def _chunk(chunk_id, embedding, position, section="skills", subject_id="ada"):
    return ContentChunk(
        chunk_id=chunk_id,
        subject_id=subject_id,
        source_section=section,
        text=f"text {chunk_id}",
        embedding=tuple(embedding),
        position=position,
    )


def test_query_orders_by_similarity_then_position():
    store = InMemoryVectorStore()
    store.upsert_index(
        "ada",
        [
            _chunk("a", (1.0, 0.0), 0),
            _chunk("b", (1.0, 1.0), 1),
            _chunk("c", (2.0, 0.0), 2),  # same direction as "a"
        ],
        "model-x",
    )

    matches = store.query("ada", [1.0, 0.0], top_k=3, similarity_threshold=0.0)

    assert [m.chunk.chunk_id for m in matches] == ["a", "c", "b"]
    assert matches[0].similarity == pytest.approx(1.0)
    assert matches[2].similarity == pytest.approx(0.7071, abs=1e-4)


def test_query_applies_threshold_and_top_k():
    store = InMemoryVectorStore()
    store.upsert_index(
        "ada",
        [
            _chunk("a", (1.0, 0.0), 0),
            _chunk("b", (1.0, 1.0), 1),
            _chunk("c", (0.0, 1.0), 2),
        ],
        "model-x",
    )

    above = store.query("ada", [1.0, 0.0], top_k=5, similarity_threshold=0.7)
    assert [m.chunk.chunk_id for m in above] == ["a", "b"]

    limited = store.query("ada", [1.0, 0.0], top_k=1, similarity_threshold=0.0)
    assert [m.chunk.chunk_id for m in limited] == ["a"]


def test_query_unknown_subject_or_zero_vector_returns_empty():
    store = InMemoryVectorStore()
    assert store.query("nobody", [1.0, 0.0], top_k=3, similarity_threshold=0.0) == []

    store.upsert_index("ada", [_chunk("a", (1.0, 0.0), 0)], "model-x")
    assert store.query("ada", [0.0, 0.0], top_k=3, similarity_threshold=0.0) == []
    assert store.query("ada", [1.0, 0.0], top_k=0, similarity_threshold=0.0) == []


def test_query_dimension_mismatch_raises():
    store = InMemoryVectorStore()
    store.upsert_index("ada", [_chunk("a", (1.0, 0.0), 0)], "model-x")

    with pytest.raises(ValueError):
        store.query("ada", [1.0, 0.0, 0.0], top_k=1, similarity_threshold=0.0)


def test_upsert_rejects_empty_and_mixed_dimensions():
    store = InMemoryVectorStore()

    with pytest.raises(ValueError):
        store.upsert_index("ada", [], "model-x")

    with pytest.raises(ValueError):
        store.upsert_index(
            "ada",
            [_chunk("a", (1.0, 0.0), 0), _chunk("b", (1.0, 0.0, 0.0), 1)],
            "model-x",
        )
    assert store.get_index("ada") is None


def test_upsert_replaces_index_and_bumps_generation():
    store = InMemoryVectorStore()
    first = store.upsert_index("ada", [_chunk("a", (1.0, 0.0), 0)], "model-x")
    second = store.upsert_index("ada", [_chunk("b", (0.0, 1.0), 0)], "model-x")

    assert second.generation > first.generation
    current = store.get_index("ada")
    assert current is not None
    assert [c.chunk_id for c in current.chunks] == ["b"]
    assert current.embedding_model == "model-x"


def test_delete_index():
    store = InMemoryVectorStore()
    store.upsert_index("ada", [_chunk("a", (1.0, 0.0), 0)], "model-x")

    assert store.delete_index("ada") is True
    assert store.delete_index("ada") is False
    assert store.get_index("ada") is None
    assert store.subject_ids() == []


def test_subjects_are_isolated():
    store = InMemoryVectorStore()
    store.upsert_index("ada", [_chunk("a", (1.0, 0.0), 0)], "model-x")
    store.upsert_index(
        "bob", [_chunk("b", (1.0, 0.0), 0, subject_id="bob")], "model-x"
    )

    matches = store.query("bob", [1.0, 0.0], top_k=5, similarity_threshold=0.0)

    assert [m.chunk.chunk_id for m in matches] == ["b"]
    assert store.subject_ids() == ["ada", "bob"]


def test_swap_during_query_burst_never_mixes_generations():
    """50 concurrent queries while a 5-chunk index is replaced by a 50-chunk one."""
    store = InMemoryVectorStore()
    old = [_chunk(f"old-{i}", (1.0, 0.01 * i), i) for i in range(5)]
    new = [_chunk(f"new-{i}", (1.0, 0.01 * i), i) for i in range(50)]
    store.upsert_index("ada", old, "model-x")

    start = threading.Barrier(51)

    def run_query():
        start.wait()
        return store.query("ada", [1.0, 0.0], top_k=100, similarity_threshold=0.5)

    def swap():
        start.wait()
        store.upsert_index("ada", new, "model-x")

    with ThreadPoolExecutor(max_workers=51) as pool:
        futures = [pool.submit(run_query) for _ in range(50)]
        swapper = pool.submit(swap)
        results = [f.result(timeout=10) for f in futures]
        swapper.result(timeout=10)

    assert len(results) == 50
    for matches in results:
        prefixes = {m.chunk.chunk_id.split("-")[0] for m in matches}
        assert len(prefixes) == 1
        expected = 5 if prefixes == {"old"} else 50
        assert len(matches) == expected

    final = store.query("ada", [1.0, 0.0], top_k=100, similarity_threshold=0.5)
    assert len(final) == 50
