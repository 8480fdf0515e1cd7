from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from chat_recall.domain.models import IndexedPoint, ScoredPoint
from chat_recall.domain.types import Vector

if TYPE_CHECKING:
    from chat_recall.application.call_context import CallContext

__all__ = ["IndexedPoint", "ScoredPoint", "VectorIndexPort"]


@runtime_checkable
class VectorIndexPort(Protocol):
    def ensure_collection(
        self, dimension: int, metric: str = "cosine", ctx: CallContext | None = None
    ) -> None: ...

    def upsert(self, point: IndexedPoint, ctx: CallContext | None = None) -> None: ...

    def upsert_batch(
        self, points: Sequence[IndexedPoint], ctx: CallContext | None = None
    ) -> None: ...

    def query(
        self,
        user_id: str,
        vector: Vector,
        limit: int,
        extra_filters: Mapping[str, Any] | None = None,
        score_threshold: float | None = None,
        ctx: CallContext | None = None,
    ) -> list[ScoredPoint]: ...

    def delete(self, vector_id: str, ctx: CallContext | None = None) -> None: ...

    def count(self, user_id: str | None = None, ctx: CallContext | None = None) -> int: ...
