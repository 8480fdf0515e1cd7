"""Pure-Python vector index with the same contract as the Qdrant adapter.

Brute-force scan; meant for local development and tests.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping, Sequence
from typing import Any

from chat_recall.application.call_context import CallContext
from chat_recall.application.ports.vector_index_port import VectorIndexPort
from chat_recall.domain.errors import CollectionNotFound, InvalidInput, SchemaMismatch
from chat_recall.domain.models import IndexedPoint, ScoredPoint, scoped_filters
from chat_recall.domain.similarity import METRICS
from chat_recall.domain.types import Vector


class InMemoryVectorIndex(VectorIndexPort):
    def __init__(self, collection: str = "chat_messages", max_limit: int = 100) -> None:
        self.collection = collection
        self.max_limit = max_limit
        self._lock = threading.RLock()
        self._dimension: int | None = None
        self._metric: str | None = None
        self._points: dict[str, IndexedPoint] = {}

    def ensure_collection(
        self, dimension: int, metric: str = "cosine", ctx: CallContext | None = None
    ) -> None:
        if metric not in METRICS:
            raise InvalidInput(f"unsupported metric {metric!r}", collection=self.collection)
        with self._lock:
            if self._dimension is None:
                self._dimension = dimension
                self._metric = metric
                return
            if (self._dimension, self._metric) != (dimension, metric):
                raise SchemaMismatch(
                    f"collection has dimension {self._dimension}/{self._metric}, "
                    f"requested {dimension}/{metric}",
                    collection=self.collection,
                )

    def upsert(self, point: IndexedPoint, ctx: CallContext | None = None) -> None:
        self.upsert_batch([point], ctx)

    def upsert_batch(self, points: Sequence[IndexedPoint], ctx: CallContext | None = None) -> None:
        with self._lock:
            dim = self._require_collection()
            for p in points:
                self._check_dim(p.vector, dim)
            for p in points:
                self._points[p.vector_id] = p

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
        wanted = scoped_filters(user_id, extra_filters)
        limit = min(limit, self.max_limit)
        with self._lock:
            dim = self._require_collection()
            self._check_dim(vector, dim)
            score_fn = METRICS[self._metric or "cosine"]
            candidates = list(self._points.values())

        hits: list[ScoredPoint] = []
        for p in candidates:
            if any(p.payload.get(k) != v for k, v in wanted.items()):
                continue
            score = score_fn(vector, p.vector)
            if score_threshold is not None and score < score_threshold:
                continue
            hits.append(ScoredPoint(point=p, score=score))
        hits.sort(key=lambda h: (-h.score, h.point.vector_id))
        return hits[:limit]

    def delete(self, vector_id: str, ctx: CallContext | None = None) -> None:
        with self._lock:
            self._require_collection()
            self._points.pop(vector_id, None)

    def count(self, user_id: str | None = None, ctx: CallContext | None = None) -> int:
        with self._lock:
            self._require_collection()
            if user_id is None:
                return len(self._points)
            return sum(1 for p in self._points.values() if p.user_id == user_id)

    def _require_collection(self) -> int:
        if self._dimension is None:
            raise CollectionNotFound(
                f"collection {self.collection!r} does not exist", collection=self.collection
            )
        return self._dimension

    def _check_dim(self, vector: Vector, dim: int) -> None:
        if len(vector) != dim:
            raise SchemaMismatch(
                f"vector dimension {len(vector)} does not match collection dimension {dim}",
                collection=self.collection,
            )
