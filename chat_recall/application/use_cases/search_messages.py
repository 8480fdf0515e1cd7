# chat_recall/application/use_cases/search_messages.py
from __future__ import annotations

import logging
import time

from chat_recall.application.call_context import CallContext
from chat_recall.application.dto.search_dto import SearchRequest
from chat_recall.application.ports.telemetry_port import TelemetryPort
from chat_recall.application.ports.vector_index_port import VectorIndexPort
from chat_recall.application.services.cached_embedder import CachedEmbedder
from chat_recall.domain.errors import DomainError, InvalidQuery
from chat_recall.domain.models import SearchResult
from chat_recall.domain.services.ranking import rank_hits
from chat_recall.domain.services.text import normalize_text
from chat_recall.domain.types import Result

logger = logging.getLogger(__name__)


class SearchMessages:
    """
    Application use case for user-scoped semantic search over chat messages.
    Uses only ports; fails fast once collaborators exhausted their own retries.
    """

    def __init__(
        self,
        embedder: CachedEmbedder,
        index: VectorIndexPort,
        telemetry: TelemetryPort | None = None,
        timeout_s: float | None = None,
    ) -> None:
        self.embedder = embedder
        self.index = index
        self.telemetry = telemetry
        self.timeout_s = timeout_s

    def execute(
        self, req: SearchRequest, ctx: CallContext | None = None
    ) -> Result[list[SearchResult], DomainError]:
        # 1) Validate (no network calls before this passes)
        query = normalize_text(req.query)
        if not query:
            return Result.failure(InvalidQuery("query must not be empty", user_id=req.user_id))
        if not req.user_id or not req.user_id.strip():
            return Result.failure(InvalidQuery("user_id must not be empty", query=req.query))
        if req.limit < 1:
            return Result.failure(
                InvalidQuery(f"limit must be >= 1, got {req.limit}", user_id=req.user_id)
            )
        if req.extra_filters and "user_id" in req.extra_filters:
            return Result.failure(
                InvalidQuery("extra_filters must not override user_id", user_id=req.user_id)
            )

        ctx = ctx or CallContext(self.timeout_s)
        started = time.perf_counter()
        try:
            # 2) Embed query (cache-first, exact match)
            q_vec = self.embedder.embed_one(query, ctx)

            # 3) Retrieve, user filter applied by the index
            ctx.check("search")
            hits = self.index.query(
                req.user_id,
                q_vec,
                req.limit,
                extra_filters=req.extra_filters,
                score_threshold=req.score_threshold,
                ctx=ctx,
            )
        except DomainError as err:
            err.with_context(user_id=req.user_id, query=req.query)
            logger.warning("Search failed: %s", err)
            self._incr("chat_recall.search.failures", kind=type(err).__name__, category=err.category)
            return Result.failure(err)

        # 4) Map & rank (score desc, newer first on ties)
        results = rank_hits(hits)[: req.limit]

        elapsed_ms = (time.perf_counter() - started) * 1000.0
        if self.telemetry is not None:
            self.telemetry.observe("chat_recall.search.latency_ms", elapsed_ms)
            self.telemetry.observe("chat_recall.search.results", float(len(results)))
        logger.debug(
            "Search for user %s returned %d results in %.1f ms",
            req.user_id,
            len(results),
            elapsed_ms,
        )
        return Result.success(results)

    def _incr(self, name: str, **tags: str) -> None:
        if self.telemetry is not None:
            self.telemetry.incr(name, tags)
