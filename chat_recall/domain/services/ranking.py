# chat_recall/domain/services/ranking.py
# Pure domain services: no I/O, deterministic, no external libraries.
from __future__ import annotations

from collections.abc import Iterable, Sequence

from chat_recall.domain.models import ScoredPoint, SearchResult, parse_timestamp


def to_search_result(hit: ScoredPoint) -> SearchResult:
    payload = hit.point.payload
    return SearchResult(
        message_id=str(payload.get("message_id", "")),
        text=str(payload.get("text", "")),
        score=float(hit.score),
        timestamp=parse_timestamp(payload["timestamp"]),
    )


def rank_results(results: Iterable[SearchResult]) -> list[SearchResult]:
    """
    Order by descending similarity; ties go to the more recent message, then
    to message_id so identical queries always come back in the same order.
    """
    return sorted(
        results,
        key=lambda r: (-r.score, -r.timestamp.timestamp(), r.message_id),
    )


def rank_hits(hits: Sequence[ScoredPoint]) -> list[SearchResult]:
    return rank_results(to_search_result(h) for h in hits)
