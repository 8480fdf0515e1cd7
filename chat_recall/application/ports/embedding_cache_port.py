"""Embedding cache port (content-addressed, time-limited)."""

from typing import Protocol, runtime_checkable

from chat_recall.domain.types import Vector


@runtime_checkable
class EmbeddingCachePort(Protocol):
    """Port for the normalized-text -> vector cache.

    Implementations never raise on backing-store failures; they degrade to
    always-miss so embedding generation is never blocked.
    """

    def get(self, text: str) -> Vector | None:
        """Return the cached vector or None on miss/expiry."""
        ...

    def put(self, text: str, vector: Vector, ttl_s: float | None = None) -> None:
        """Store vector for text; ttl_s=None uses the adapter default."""
        ...

    def expire(self, text: str) -> None:
        """Drop the entry for text, if any."""
        ...
