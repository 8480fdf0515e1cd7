"""In-process work queue with the same ack semantics as the Redis adapter."""

from __future__ import annotations

import itertools
import threading
from collections import defaultdict, deque
from typing import Any

from chat_recall.application.ports.work_queue_port import WorkQueuePort
from chat_recall.domain.errors import DomainError
from chat_recall.domain.types import Result


class InMemoryWorkQueue(WorkQueuePort):
    """FIFO per topic; dequeued tasks stay pending until acked."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._ready: dict[str, deque[tuple[str, dict[str, Any]]]] = defaultdict(deque)
        self._pending: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)

    def enqueue(self, topic: str, payload: dict[str, Any]) -> Result[str, DomainError]:
        with self._lock:
            msg_id = f"{next(self._ids)}-0"
            self._ready[topic].append((msg_id, dict(payload)))
        return Result.success(msg_id)

    def dequeue_batch(self, topic: str, max_n: int) -> Result[list[dict[str, Any]], DomainError]:
        tasks: list[dict[str, Any]] = []
        with self._lock:
            ready = self._ready[topic]
            while ready and len(tasks) < max_n:
                msg_id, payload = ready.popleft()
                self._pending[topic][msg_id] = payload
                tasks.append({"_msg_id": msg_id, "_stream": topic, **payload})
        return Result.success(tasks)

    def ack(self, topic: str, ack_ids: list[str]) -> Result[None, DomainError]:
        with self._lock:
            for msg_id in ack_ids:
                self._pending[topic].pop(msg_id, None)
        return Result.success(None)

    def size(self, topic: str) -> int:
        with self._lock:
            return len(self._ready[topic])

    def pending(self, topic: str) -> int:
        with self._lock:
            return len(self._pending[topic])
