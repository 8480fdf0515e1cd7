"""In-process embedding cache (LRU bounded, TTL via ClockPort)."""

from __future__ import annotations

import threading
from collections import OrderedDict
from datetime import datetime, timedelta

from chat_recall.application.ports.clock_port import ClockPort
from chat_recall.application.ports.embedding_cache_port import EmbeddingCachePort
from chat_recall.domain.services.text import cache_key
from chat_recall.domain.types import Vector
from chat_recall.infrastructure.time.system_clock import SystemClock


class InMemoryEmbeddingCache(EmbeddingCachePort):
    """Thread-safe dict cache for local development, tests and single-process use.

    Keys are hashes of the normalized text within the model namespace;
    max_entries=None means unbounded.
    """

    def __init__(
        self,
        namespace: str,
        default_ttl_s: float | None = None,
        max_entries: int | None = None,
        casefold: bool = False,
        clock: ClockPort | None = None,
    ) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.namespace = namespace
        self.default_ttl_s = default_ttl_s
        self.max_entries = max_entries
        self.casefold = casefold
        self._clock = clock or SystemClock()
        self._lock = threading.Lock()
        self._entries: OrderedDict[str, tuple[Vector, datetime | None]] = OrderedDict()

    def _key(self, text: str) -> str:
        return cache_key(text, self.namespace, casefold=self.casefold)

    def get(self, text: str) -> Vector | None:
        key = self._key(text)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            vector, expires_at = entry
            if expires_at is not None and self._clock.now() >= expires_at:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return vector

    def put(self, text: str, vector: Vector, ttl_s: float | None = None) -> None:
        ttl = self.default_ttl_s if ttl_s is None else ttl_s
        expires_at = None if ttl is None else self._clock.now() + timedelta(seconds=ttl)
        key = self._key(text)
        with self._lock:
            if ttl is not None and ttl <= 0:
                # already expired
                self._entries.pop(key, None)
                return
            self._entries[key] = (tuple(vector), expires_at)
            self._entries.move_to_end(key)
            if self.max_entries is not None:
                while len(self._entries) > self.max_entries:
                    self._entries.popitem(last=False)

    def expire(self, text: str) -> None:
        with self._lock:
            self._entries.pop(self._key(text), None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class NullEmbeddingCache(EmbeddingCachePort):
    """Always-miss cache used when caching is switched off."""

    def get(self, text: str) -> Vector | None:
        return None

    def put(self, text: str, vector: Vector, ttl_s: float | None = None) -> None:
        return None

    def expire(self, text: str) -> None:
        return None
