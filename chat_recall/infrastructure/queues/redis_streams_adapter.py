"""Redis Streams work queue adapter for the ingestion backlog.

Tasks are JSON-encoded into a single stream field and read through a
consumer group, so several drain workers can share one backlog.
"""

from __future__ import annotations

import json
import os
import socket
from dataclasses import dataclass
from importlib import import_module
from typing import Any

from chat_recall.application.ports.work_queue_port import WorkQueuePort
from chat_recall.domain.errors import DomainError
from chat_recall.domain.types import Result


class WorkQueueError(DomainError):
    """Error in work queue operations."""

    retryable = True


@dataclass
class RedisConfig:
    """Configuration for Redis connection (shared by cache and backlog)."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: str | None = None
    decode_responses: bool = True
    socket_timeout_s: float | None = 5.0


class RedisWorkQueueAdapter(WorkQueuePort):
    """Redis Streams adapter for work queue operations.

    Uses Redis Streams for:
    - Consumer groups for parallel drain workers
    - At-least-once delivery (entries stay pending until acked)
    - Bounded stream length (MAXLEN ~ max_len)
    """

    def __init__(
        self,
        cfg: RedisConfig,
        max_len: int = 100_000,
        consumer_name: str | None = None,
        client: Any | None = None,
    ) -> None:
        self._cfg = cfg
        self._max_len = max_len
        self._consumer = consumer_name or f"{socket.gethostname()}-{os.getpid()}"
        self._client = client if client is not None else self._init_client(cfg)
        self._groups: set[str] = set()

    def _init_client(self, cfg: RedisConfig) -> Any:
        try:
            redis = import_module("redis")
            return redis.Redis(
                host=cfg.host,
                port=cfg.port,
                db=cfg.db,
                password=cfg.password,
                decode_responses=cfg.decode_responses,
                socket_timeout=cfg.socket_timeout_s,
            )
        except Exception as ex:
            raise WorkQueueError(f"Redis init failed: {ex}") from ex

    @staticmethod
    def group_for(topic: str) -> str:
        return f"{topic}-workers"

    def enqueue(self, topic: str, payload: dict[str, Any]) -> Result[str, DomainError]:
        try:
            msg_id = self._client.xadd(
                topic,
                {"payload": json.dumps(payload)},
                maxlen=self._max_len,
                approximate=True,
            )
            return Result.success(_as_str(msg_id))
        except Exception as ex:  # noqa: BLE001
            return Result.failure(WorkQueueError(f"enqueue failed: {ex}", topic=topic))

    def dequeue_batch(self, topic: str, max_n: int) -> Result[list[dict[str, Any]], DomainError]:
        """Read up to max_n new entries for this consumer without blocking."""
        try:
            group = self.group_for(topic)
            self._ensure_group(topic, group)

            # no `block` argument: return immediately when the stream is empty
            messages = self._client.xreadgroup(group, self._consumer, {topic: ">"}, count=max_n)

            tasks: list[dict[str, Any]] = []
            for stream_name, stream_messages in messages or []:
                for msg_id, fields in stream_messages:
                    raw = fields.get("payload") or fields.get(b"payload") or "{}"
                    payload = json.loads(_as_str(raw))
                    tasks.append({"_msg_id": _as_str(msg_id), "_stream": _as_str(stream_name), **payload})
            return Result.success(tasks)
        except Exception as ex:  # noqa: BLE001
            return Result.failure(WorkQueueError(f"dequeue failed: {ex}", topic=topic))

    def ack(self, topic: str, ack_ids: list[str]) -> Result[None, DomainError]:
        try:
            if ack_ids:
                self._client.xack(topic, self.group_for(topic), *ack_ids)
            return Result.success(None)
        except Exception as ex:  # noqa: BLE001
            return Result.failure(WorkQueueError(f"ack failed: {ex}", topic=topic))

    def _ensure_group(self, topic: str, group: str) -> None:
        if group in self._groups:
            return
        try:
            self._client.xgroup_create(topic, group, id="0", mkstream=True)
        except Exception as ex:
            if "BUSYGROUP" not in str(ex):
                raise
        self._groups.add(group)


def _as_str(value: Any) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)
