"""HTTP API tests with FastAPI's TestClient over in-memory adapters."""

from collections.abc import Sequence

import pytest
from fastapi.testclient import TestClient

from chat_recall.config.compose import Container
from chat_recall.config.settings import AppSettings
from chat_recall.domain.errors import IndexUnavailable
from chat_recall.infrastructure.vectorstore.memory_index import InMemoryVectorIndex
from chat_recall.interface.http.api import create_app

VOCAB = ("pizza", "dinner", "flight")


class KeywordProvider:
    model = "keyword-embed"
    dimension = len(VOCAB) + 1

    def embed(self, texts: Sequence[str], ctx=None):
        return [tuple(float(t.lower().split().count(w)) for w in VOCAB) + (0.1,) for t in texts]


class DownIndex(InMemoryVectorIndex):
    def query(self, *args, **kwargs):
        raise IndexUnavailable("qdrant unreachable")


class FlakyIndex(InMemoryVectorIndex):
    def __init__(self) -> None:
        super().__init__()
        self.down = False

    def upsert_batch(self, points, ctx=None):
        if self.down:
            raise IndexUnavailable("qdrant unreachable")
        super().upsert_batch(points, ctx)


def make_container(index=None, drain_interval_s: float = 0) -> Container:
    settings = AppSettings(
        vector_backend="memory",
        cache_backend="memory",
        workqueue_backend="memory",
        telemetry_enabled=False,
        embedding_dimension=KeywordProvider.dimension,
        result_limit_max=5,
        ingest_backlog_drain_interval_s=drain_interval_s,
    )
    return Container(settings, embedding=KeywordProvider(), vector_index=index)


@pytest.fixture
def client():
    with TestClient(create_app(make_container())) as c:
        yield c


def message(mid: str, text: str, owner: str = "alice") -> dict:
    return {
        "message_id": mid,
        "sender_id": owner,
        "receiver_id": "bob",
        "text": text,
        "created_at": "2024-08-01T19:00:00Z",
    }


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy", "service": "chat-recall"}


def test_ingest_then_search(client):
    r = client.post("/v1/messages", json=message("m-1", "pizza tonight?"))
    assert r.status_code == 200
    assert r.json()["status"] == "indexed"

    r = client.post("/v1/search", json={"user_id": "alice", "query": "pizza"})

    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "success"
    assert [x["message_id"] for x in body["results"]] == ["m-1"]
    assert set(body["results"][0]) == {"message_id", "text", "score", "timestamp"}


def test_search_is_user_scoped(client):
    client.post("/v1/messages", json=message("b-1", "pizza", owner="bob"))
    r = client.post("/v1/search", json={"user_id": "alice", "query": "pizza"})
    assert r.json()["results"] == []


def test_empty_query_is_400(client):
    r = client.post("/v1/search", json={"user_id": "alice", "query": "  "})

    assert r.status_code == 400
    body = r.json()
    assert body["status"] == "error"
    assert body["error_kind"] == "InvalidQuery"
    assert body["category"] == "caller"
    assert body["retry"] is None


def test_limit_is_clamped_to_server_maximum(client):
    for i in range(8):
        client.post("/v1/messages", json=message(f"m-{i}", "pizza dinner"))
    r = client.post("/v1/search", json={"user_id": "alice", "query": "pizza", "limit": 1000})
    assert r.status_code == 200
    assert len(r.json()["results"]) == 5


def test_index_outage_is_503_with_retry_hint():
    container = make_container(index=DownIndex())
    with TestClient(create_app(container)) as c:
        r = c.post("/v1/search", json={"user_id": "alice", "query": "pizza"})

    assert r.status_code == 503
    assert r.json()["error_kind"] == "IndexUnavailable"
    assert r.json()["retry"] == "now"


def test_missing_collection_is_500_for_operator():
    with TestClient(create_app(make_container(), bootstrap=False)) as c:
        r = c.post("/v1/search", json={"user_id": "alice", "query": "pizza"})

    assert r.status_code == 500
    assert r.json()["category"] == "configuration"
    assert r.json()["retry"] == "contact operator"


def test_empty_message_text_is_400(client):
    r = client.post("/v1/messages", json=message("m-1", "   "))
    assert r.status_code == 400
    assert r.json()["error_kind"] == "InvalidInput"


def test_delete_removes_message_from_results(client):
    client.post("/v1/messages", json=message("m-1", "pizza"))

    r = client.delete("/v1/messages/m-1")
    assert r.status_code == 200
    assert r.json()["status"] == "deleted"

    r = client.post("/v1/search", json={"user_id": "alice", "query": "pizza"})
    assert r.json()["results"] == []


def test_malformed_body_is_rejected_by_schema(client):
    r = client.post("/v1/search", json={"query": "pizza"})
    assert r.status_code == 422


def test_parked_message_is_indexed_by_drain_endpoint():
    index = FlakyIndex()
    with TestClient(create_app(make_container(index=index))) as c:
        index.down = True
        r = c.post("/v1/messages", json=message("m-1", "pizza tonight"))
        assert r.status_code == 503

        index.down = False
        r = c.post("/v1/backlog/drain")

        assert r.status_code == 200
        assert r.json()["succeeded"] == 1
        assert r.json()["failed"] == 0
        r = c.post("/v1/search", json={"user_id": "alice", "query": "pizza"})
        assert [x["message_id"] for x in r.json()["results"]] == ["m-1"]


def test_drainer_runs_for_app_lifetime():
    app = create_app(make_container(drain_interval_s=60))
    with TestClient(app):
        assert app.state.drainer is not None
        assert app.state.drainer.running
    assert app.state.drainer is None


def test_drainer_disabled_with_zero_interval(client):
    assert client.app.state.drainer is None
