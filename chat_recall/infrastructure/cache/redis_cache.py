"""Redis-backed embedding cache.

Vectors are stored as JSON under emb:{namespace}:{sha256} with SETEX, so
expiry is handled by Redis. Any Redis failure degrades to a miss.
"""

from __future__ import annotations

import json
import logging
import math
from importlib import import_module
from typing import Any

from chat_recall.application.ports.embedding_cache_port import EmbeddingCachePort
from chat_recall.domain.services.text import cache_key
from chat_recall.domain.types import Vector
from chat_recall.infrastructure.queues.redis_streams_adapter import RedisConfig

logger = logging.getLogger(__name__)

KEY_PREFIX = "emb"


class RedisEmbeddingCache(EmbeddingCachePort):
    """Shared cache across worker processes. Never raises on backend errors."""

    def __init__(
        self,
        cfg: RedisConfig,
        namespace: str,
        default_ttl_s: float | None = None,
        casefold: bool = False,
        client: Any | None = None,
    ) -> None:
        self._cfg = cfg
        self.namespace = namespace
        self.default_ttl_s = default_ttl_s
        self.casefold = casefold
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            redis = import_module("redis")
            self._client = redis.Redis(
                host=self._cfg.host,
                port=self._cfg.port,
                db=self._cfg.db,
                password=self._cfg.password,
                decode_responses=self._cfg.decode_responses,
                socket_timeout=self._cfg.socket_timeout_s,
            )
        return self._client

    def key_for(self, text: str) -> str:
        return f"{KEY_PREFIX}:{self.namespace}:{cache_key(text, self.namespace, self.casefold)}"

    def get(self, text: str) -> Vector | None:
        try:
            raw = self._get_client().get(self.key_for(text))
        except Exception as ex:  # noqa: BLE001
            logger.warning("Embedding cache read failed, treating as miss: %s", ex)
            return None
        if raw is None:
            return None
        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            return tuple(float(x) for x in json.loads(raw))
        except (TypeError, ValueError) as ex:
            logger.warning("Discarding undecodable cache entry: %s", ex)
            return None

    def put(self, text: str, vector: Vector, ttl_s: float | None = None) -> None:
        ttl = self.default_ttl_s if ttl_s is None else ttl_s
        key = self.key_for(text)
        value = json.dumps(list(vector))
        try:
            client = self._get_client()
            if ttl is None:
                client.set(key, value)
            elif ttl <= 0:
                # already expired
                client.delete(key)
            else:
                client.setex(key, math.ceil(ttl), value)
        except Exception as ex:  # noqa: BLE001
            logger.warning("Embedding cache write failed, skipping: %s", ex)

    def expire(self, text: str) -> None:
        try:
            self._get_client().delete(self.key_for(text))
        except Exception as ex:  # noqa: BLE001
            logger.warning("Embedding cache expire failed: %s", ex)
