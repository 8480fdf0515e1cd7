"""Qdrant vector index adapter.

Encapsulates qdrant-client: every call is bounded by the caller's deadline,
transient failures are retried a bounded number of times, and only domain
errors leave this module.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from importlib import import_module
from typing import Any

from chat_recall.application.call_context import CallContext
from chat_recall.application.ports.vector_index_port import VectorIndexPort
from chat_recall.domain.errors import (
    CollectionNotFound,
    DomainError,
    IndexUnavailable,
    InvalidInput,
    SchemaMismatch,
    Timeout,
)
from chat_recall.domain.models import IndexedPoint, ScoredPoint, scoped_filters
from chat_recall.domain.types import Vector
from chat_recall.infrastructure.retry import RetryPolicy, call_bounded, retry_call

logger = logging.getLogger(__name__)

_METRICS = ("cosine", "dot", "euclid")


@dataclass
class QdrantConfig:
    """Configuration for Qdrant client connection.

    location=":memory:" runs qdrant-client's in-process engine (tests, demos).
    """

    url: str = "http://localhost:6333"
    api_key: str | None = None
    prefer_grpc: bool = False
    timeout_s: float = 10.0
    location: str | None = None


class QdrantVectorIndex(VectorIndexPort):
    """User-scoped similarity index on one Qdrant collection.

    Points are keyed by the deterministic vector_id, so upserts overwrite.
    user_id carries a keyword payload index and is always part of the
    query filter.
    """

    def __init__(
        self,
        cfg: QdrantConfig,
        collection: str,
        max_limit: int = 100,
        retry: RetryPolicy | None = None,
        client: Any | None = None,
    ) -> None:
        self._cfg = cfg
        self.collection = collection
        self.max_limit = max_limit
        self._retry = retry or RetryPolicy(max_attempts=3, base_delay_s=1.0)
        self._client = client
        self._dimension: int | None = None

    # ---- client plumbing ----

    def _get_client(self) -> Any:
        if self._client is None:
            try:
                qdrant_client = import_module("qdrant_client")
            except Exception as ex:  # pragma: no cover
                raise IndexUnavailable(
                    "qdrant-client not available; install runtime deps", retryable=False
                ) from ex
            if self._cfg.location:
                self._client = qdrant_client.QdrantClient(location=self._cfg.location)
            else:
                self._client = qdrant_client.QdrantClient(
                    url=self._cfg.url,
                    api_key=self._cfg.api_key,
                    prefer_grpc=self._cfg.prefer_grpc,
                    timeout=int(self._cfg.timeout_s),
                )
        return self._client

    @staticmethod
    def _models() -> Any:
        return import_module("qdrant_client.models")

    def _run(self, fn: Any, ctx: CallContext | None, what: str) -> Any:
        ctx = ctx or CallContext.background()
        return retry_call(
            lambda: call_bounded(fn, ctx, self._cfg.timeout_s, what),
            policy=self._retry,
            ctx=ctx,
            classify=self._classify,
            what=what,
        )

    def _classify(self, ex: Exception) -> DomainError:
        """Map qdrant-client / httpx / local-mode exceptions onto domain errors."""
        httpx = import_module("httpx")
        source = getattr(ex, "source", None)  # ResponseHandlingException wraps the httpx error
        cause = source if isinstance(source, Exception) else ex
        status = getattr(ex, "status_code", None)
        text = str(ex).lower()
        ctx = {"collection": self.collection}

        if isinstance(cause, httpx.TimeoutException):
            return Timeout(f"qdrant request timed out: {ex}", **ctx)
        if status == 404 or (isinstance(ex, ValueError) and "not found" in text):
            return CollectionNotFound(f"collection {self.collection!r} not found", **ctx)
        if "dimension" in text or "vector size" in text:
            return SchemaMismatch(f"qdrant rejected vector shape: {ex}", **ctx)
        if isinstance(cause, httpx.TransportError | ConnectionError):
            return IndexUnavailable(f"qdrant unreachable: {ex}", **ctx)
        if status is not None:
            retryable = status == 429 or status >= 500
            return IndexUnavailable(f"qdrant returned HTTP {status}: {ex}", retryable=retryable, **ctx)
        return IndexUnavailable(f"qdrant call failed: {ex}", retryable=False, **ctx)

    # ---- VectorIndexPort ----

    def ensure_collection(
        self, dimension: int, metric: str = "cosine", ctx: CallContext | None = None
    ) -> None:
        if metric not in _METRICS:
            raise InvalidInput(f"unsupported metric {metric!r}", collection=self.collection)
        client = self._get_client()
        models = self._models()
        distance = {
            "cosine": models.Distance.COSINE,
            "dot": models.Distance.DOT,
            "euclid": models.Distance.EUCLID,
        }[metric]

        def op() -> None:
            if client.collection_exists(self.collection):
                vectors = client.get_collection(self.collection).config.params.vectors
                size = getattr(vectors, "size", None)
                found = getattr(vectors, "distance", None)
                if size != dimension or found != distance:
                    raise SchemaMismatch(
                        f"collection {self.collection!r} has size={size} distance={found}, "
                        f"expected size={dimension} distance={distance}",
                        collection=self.collection,
                    )
            else:
                logger.info("Creating collection %s (dim=%d, %s)", self.collection, dimension, metric)
                client.create_collection(
                    collection_name=self.collection,
                    vectors_config=models.VectorParams(size=dimension, distance=distance),
                )
            client.create_payload_index(
                collection_name=self.collection,
                field_name="user_id",
                field_schema=models.PayloadSchemaType.KEYWORD,
            )

        self._run(op, ctx, f"ensure_collection({self.collection})")
        self._dimension = dimension

    def upsert(self, point: IndexedPoint, ctx: CallContext | None = None) -> None:
        self.upsert_batch([point], ctx)

    def upsert_batch(self, points: Sequence[IndexedPoint], ctx: CallContext | None = None) -> None:
        if not points:
            return
        for p in points:
            self._check_dim(p.vector)
        client = self._get_client()
        models = self._models()
        structs = [
            models.PointStruct(id=p.vector_id, vector=list(p.vector), payload=dict(p.payload))
            for p in points
        ]
        self._run(
            lambda: client.upsert(collection_name=self.collection, points=structs, wait=True),
            ctx,
            f"upsert({len(structs)} points)",
        )

    def query(
        self,
        user_id: str,
        vector: Vector,
        limit: int,
        extra_filters: Mapping[str, Any] | None = None,
        score_threshold: float | None = None,
        ctx: CallContext | None = None,
    ) -> list[ScoredPoint]:
        if limit < 1:
            raise InvalidInput(f"limit must be >= 1, got {limit}")
        flt = self._filter(scoped_filters(user_id, extra_filters))
        self._check_dim(vector)
        limit = min(limit, self.max_limit)
        client = self._get_client()

        resp = self._run(
            lambda: client.query_points(
                collection_name=self.collection,
                query=list(vector),
                query_filter=flt,
                limit=limit,
                score_threshold=score_threshold,
                with_payload=True,
            ),
            ctx,
            "query",
        )
        hits = [
            ScoredPoint(
                point=IndexedPoint(vector_id=str(p.id), vector=(), payload=dict(p.payload or {})),
                score=float(p.score),
            )
            for p in resp.points
        ]
        hits.sort(key=lambda h: -h.score)
        return hits

    def delete(self, vector_id: str, ctx: CallContext | None = None) -> None:
        client = self._get_client()
        selector = self._models().PointIdsList(points=[vector_id])
        self._run(
            lambda: client.delete(
                collection_name=self.collection, points_selector=selector, wait=True
            ),
            ctx,
            f"delete({vector_id})",
        )

    def count(self, user_id: str | None = None, ctx: CallContext | None = None) -> int:
        client = self._get_client()
        flt = None if user_id is None else self._filter({"user_id": user_id})
        resp = self._run(
            lambda: client.count(collection_name=self.collection, count_filter=flt, exact=True),
            ctx,
            "count",
        )
        return int(resp.count)

    # ---- helpers ----

    def _filter(self, conditions: Mapping[str, Any]) -> Any:
        models = self._models()
        return models.Filter(
            must=[
                models.FieldCondition(key=key, match=models.MatchValue(value=value))
                for key, value in conditions.items()
            ]
        )

    def _check_dim(self, vector: Vector) -> None:
        if self._dimension is not None and len(vector) != self._dimension:
            raise SchemaMismatch(
                f"vector dimension {len(vector)} does not match collection dimension "
                f"{self._dimension}",
                collection=self.collection,
            )
