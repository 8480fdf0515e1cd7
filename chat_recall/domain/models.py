# chat_recall/domain/models.py
# Domain models must be pure (no I/O, no external libs)
from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from chat_recall.domain.errors import InvalidInput
from chat_recall.domain.types import Vector

# Fixed namespace: vector ids must stay stable across deployments.
MESSAGE_NAMESPACE = uuid.UUID("6f1c3b7e-2a4d-5e8f-9b0a-1c2d3e4f5a6b")

PAYLOAD_FIELDS = ("user_id", "message_id", "text", "timestamp", "sender_id", "receiver_id")


def vector_id_for(message_id: str) -> str:
    """Deterministic point id so re-ingestion overwrites instead of duplicating."""
    return str(uuid.uuid5(MESSAGE_NAMESPACE, f"message:{message_id}"))


def scoped_filters(user_id: str, extra_filters: Mapping[str, Any] | None) -> dict[str, Any]:
    """Exact-match payload filters for a search, always pinned to the owner."""
    extra = dict(extra_filters or {})
    if "user_id" in extra:
        raise InvalidInput("extra_filters must not override user_id", user_id=user_id)
    return {**extra, "user_id": user_id}


def format_timestamp(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat()


def parse_timestamp(raw: str | datetime) -> datetime:
    if isinstance(raw, datetime):
        ts = raw
    else:
        ts = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


@dataclass(frozen=True)
class Message:
    """
    A persisted chat message as handed over by the message-send workflow.

    - user_id:  owner used for search scoping; falls back to sender_id when unset
    """

    message_id: str
    sender_id: str
    receiver_id: str
    text: str
    created_at: datetime
    user_id: str | None = None

    @property
    def owner_id(self) -> str:
        return self.user_id or self.sender_id

    def to_payload(self) -> dict[str, Any]:
        """JSON-friendly form used by the ingestion backlog."""
        return {
            "message_id": self.message_id,
            "sender_id": self.sender_id,
            "receiver_id": self.receiver_id,
            "text": self.text,
            "created_at": format_timestamp(self.created_at),
            "user_id": self.user_id,
        }

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> Message:
        return cls(
            message_id=str(data["message_id"]),
            sender_id=str(data["sender_id"]),
            receiver_id=str(data["receiver_id"]),
            text=str(data["text"]),
            created_at=parse_timestamp(data["created_at"]),
            user_id=data.get("user_id") or None,
        )


@dataclass(frozen=True)
class IndexedPoint:
    """Vector plus payload as stored in the similarity index."""

    vector_id: str
    vector: Vector
    payload: Mapping[str, Any]

    @classmethod
    def from_message(cls, message: Message, vector: Vector, text: str | None = None) -> IndexedPoint:
        return cls(
            vector_id=vector_id_for(message.message_id),
            vector=tuple(vector),
            payload={
                "user_id": message.owner_id,
                "message_id": message.message_id,
                "text": message.text if text is None else text,
                "timestamp": format_timestamp(message.created_at),
                "sender_id": message.sender_id,
                "receiver_id": message.receiver_id,
            },
        )

    @property
    def user_id(self) -> str:
        return str(self.payload.get("user_id", ""))

    @property
    def message_id(self) -> str:
        return str(self.payload.get("message_id", ""))


@dataclass(frozen=True)
class ScoredPoint:
    """Index hit: the stored point and its raw similarity score."""

    point: IndexedPoint
    score: float


@dataclass(frozen=True)
class SearchResult:
    message_id: str
    text: str
    score: float
    timestamp: datetime
