"""Domain tests for messages and indexed points."""

import uuid
from datetime import UTC, datetime, timedelta, timezone

import pytest

from chat_recall.domain.errors import InvalidInput
from chat_recall.domain.models import (
    PAYLOAD_FIELDS,
    IndexedPoint,
    Message,
    parse_timestamp,
    scoped_filters,
    vector_id_for,
)


def _message(**overrides) -> Message:
    data = {
        "message_id": "m-1",
        "sender_id": "alice",
        "receiver_id": "bob",
        "text": "dinner at 8?",
        "created_at": datetime(2024, 5, 1, 18, 30, tzinfo=UTC),
    }
    data.update(overrides)
    return Message(**data)


def test_vector_id_is_deterministic_uuid():
    a = vector_id_for("m-1")
    assert a == vector_id_for("m-1")
    assert a != vector_id_for("m-2")
    assert uuid.UUID(a).version == 5


def test_owner_falls_back_to_sender():
    assert _message().owner_id == "alice"
    assert _message(user_id="bob").owner_id == "bob"


def test_message_is_frozen():
    m = _message()
    with pytest.raises(AttributeError):
        m.text = "edited"  # type: ignore[misc]


def test_payload_round_trip_preserves_message():
    m = _message(user_id="bob")
    assert Message.from_payload(m.to_payload()) == m


def test_from_payload_missing_field_raises():
    payload = _message().to_payload()
    del payload["text"]
    with pytest.raises(KeyError):
        Message.from_payload(payload)


def test_indexed_point_carries_all_payload_fields():
    point = IndexedPoint.from_message(_message(), (0.1, 0.2))

    assert point.vector_id == vector_id_for("m-1")
    assert set(point.payload) == set(PAYLOAD_FIELDS)
    assert point.user_id == "alice"
    assert point.message_id == "m-1"
    assert point.payload["timestamp"] == "2024-05-01T18:30:00+00:00"


def test_timestamps_normalized_to_utc():
    cet = timezone(timedelta(hours=2))
    point = IndexedPoint.from_message(
        _message(created_at=datetime(2024, 5, 1, 20, 30, tzinfo=cet)), (1.0,)
    )
    assert point.payload["timestamp"] == "2024-05-01T18:30:00+00:00"


def test_parse_timestamp_accepts_z_and_naive():
    assert parse_timestamp("2024-05-01T18:30:00Z") == datetime(2024, 5, 1, 18, 30, tzinfo=UTC)
    assert parse_timestamp("2024-05-01T18:30:00").tzinfo is not None


def test_scoped_filters_pins_owner():
    assert scoped_filters("alice", {"receiver_id": "bob"}) == {
        "receiver_id": "bob",
        "user_id": "alice",
    }
    assert scoped_filters("alice", None) == {"user_id": "alice"}


def test_scoped_filters_rejects_user_override():
    with pytest.raises(InvalidInput):
        scoped_filters("alice", {"user_id": "bob"})
