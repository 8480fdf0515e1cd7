"""Cache-first embedding path shared by ingestion and search."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from chat_recall.application.call_context import CallContext
from chat_recall.application.ports.embedding_cache_port import EmbeddingCachePort
from chat_recall.application.ports.embedding_port import EmbeddingProviderPort
from chat_recall.application.ports.telemetry_port import TelemetryPort
from chat_recall.domain.services.text import normalize_text
from chat_recall.domain.types import Vector

logger = logging.getLogger(__name__)


class CachedEmbedder:
    """Looks texts up in the cache and sends only the misses to the provider.

    The cache is written only after the provider returned the whole request,
    so a failed call never leaves partial entries behind.
    """

    def __init__(
        self,
        provider: EmbeddingProviderPort,
        cache: EmbeddingCachePort,
        ttl_s: float | None = None,
        telemetry: TelemetryPort | None = None,
    ) -> None:
        self.provider = provider
        self.cache = cache
        self.ttl_s = ttl_s
        self.telemetry = telemetry

    def embed_one(self, text: str, ctx: CallContext | None = None) -> Vector:
        return self.embed_many([text], ctx=ctx)[0]

    def embed_many(self, texts: Sequence[str], ctx: CallContext | None = None) -> list[Vector]:
        normalized = [normalize_text(t) for t in texts]
        vectors: list[Vector | None] = [None] * len(normalized)
        misses: dict[str, list[int]] = {}

        for i, text in enumerate(normalized):
            hit = self._lookup(text)
            if hit is not None:
                vectors[i] = hit
            else:
                misses.setdefault(text, []).append(i)

        n_misses = sum(len(idx) for idx in misses.values())
        self._count("chat_recall.embedding_cache.hits", len(normalized) - n_misses)
        self._count("chat_recall.embedding_cache.misses", n_misses)

        if misses:
            if ctx is not None:
                ctx.check("embedding")
            pending = list(misses)
            fresh = self.provider.embed(pending, ctx=ctx)
            for text, vector in zip(pending, fresh, strict=True):
                self.cache.put(text, vector, ttl_s=self.ttl_s)
                for i in misses[text]:
                    vectors[i] = vector

        return [v for v in vectors if v is not None]

    def _lookup(self, text: str) -> Vector | None:
        if not text:
            return None
        hit = self.cache.get(text)
        if hit is None:
            return None
        if len(hit) != self.provider.dimension:
            logger.debug(
                "Ignoring cached vector with dimension %d (expected %d)",
                len(hit),
                self.provider.dimension,
            )
            return None
        return hit

    def _count(self, name: str, n: int) -> None:
        if self.telemetry is not None and n:
            self.telemetry.incr(name, {"model": self.provider.model}, value=n)
