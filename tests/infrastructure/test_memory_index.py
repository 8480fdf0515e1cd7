"""Tests for the in-memory vector index."""

import pytest

from chat_recall.domain.errors import CollectionNotFound, InvalidInput, SchemaMismatch
from chat_recall.domain.models import IndexedPoint
from chat_recall.infrastructure.vectorstore.memory_index import InMemoryVectorIndex


def point(vid: str, user: str, vector, **payload) -> IndexedPoint:
    return IndexedPoint(
        vector_id=vid,
        vector=tuple(vector),
        payload={"user_id": user, "message_id": vid, "text": vid, "timestamp": "2024-01-01T00:00:00+00:00", **payload},
    )


@pytest.fixture
def index():
    idx = InMemoryVectorIndex(max_limit=3)
    idx.ensure_collection(2)
    return idx


def test_operations_before_ensure_raise_collection_not_found():
    idx = InMemoryVectorIndex()
    with pytest.raises(CollectionNotFound):
        idx.query("u1", (1.0, 0.0), 5)
    with pytest.raises(CollectionNotFound):
        idx.upsert(point("a", "u1", (1.0, 0.0)))


def test_ensure_collection_is_idempotent_but_checks_schema(index):
    index.ensure_collection(2)
    with pytest.raises(SchemaMismatch):
        index.ensure_collection(3)
    with pytest.raises(SchemaMismatch):
        index.ensure_collection(2, metric="dot")


def test_upsert_overwrites_by_vector_id(index):
    index.upsert(point("a", "u1", (1.0, 0.0), text="v1"))
    index.upsert(point("a", "u1", (0.0, 1.0), text="v2"))

    assert index.count() == 1
    hits = index.query("u1", (0.0, 1.0), 5)
    assert hits[0].point.payload["text"] == "v2"


def test_query_is_user_scoped_and_sorted(index):
    index.upsert_batch(
        [
            point("a", "u1", (1.0, 0.0)),
            point("b", "u1", (0.7, 0.7)),
            point("c", "u2", (1.0, 0.0)),
        ]
    )

    hits = index.query("u1", (1.0, 0.0), 5)

    assert [h.point.vector_id for h in hits] == ["a", "b"]
    assert hits[0].score > hits[1].score


def test_extra_filters_and_threshold(index):
    index.upsert_batch(
        [
            point("a", "u1", (1.0, 0.0), receiver_id="bob"),
            point("b", "u1", (1.0, 0.1), receiver_id="carol"),
            point("c", "u1", (0.0, 1.0), receiver_id="bob"),
        ]
    )

    assert [h.point.vector_id for h in index.query("u1", (1.0, 0.0), 5, {"receiver_id": "bob"})] == ["a", "c"]
    assert [h.point.vector_id for h in index.query("u1", (1.0, 0.0), 5, score_threshold=0.5)] == ["a", "b"]


def test_limit_validation_and_clamp(index):
    index.upsert_batch([point(f"p{i}", "u1", (1.0, float(i))) for i in range(5)])
    with pytest.raises(InvalidInput):
        index.query("u1", (1.0, 0.0), 0)
    assert len(index.query("u1", (1.0, 0.0), 50)) == 3


def test_dimension_mismatch(index):
    with pytest.raises(SchemaMismatch):
        index.upsert(point("a", "u1", (1.0, 0.0, 0.0)))
    with pytest.raises(SchemaMismatch):
        index.query("u1", (1.0,), 5)


def test_delete_and_count(index):
    index.upsert_batch([point("a", "u1", (1.0, 0.0)), point("b", "u2", (1.0, 0.0))])
    index.delete("a")
    index.delete("missing")

    assert index.count() == 1
    assert index.count(user_id="u1") == 0
    assert index.count(user_id="u2") == 1


def test_extra_filters_cannot_replace_user_scope(index):
    index.upsert_batch([point("a", "u1", (1.0, 0.0)), point("b", "u2", (1.0, 0.0))])

    with pytest.raises(InvalidInput):
        index.query("u1", (1.0, 0.0), 5, extra_filters={"user_id": "u2"})
