from __future__ import annotations

import uuid
from datetime import datetime, timezone

import pytest

from anonpro_dm.application.exceptions import ValidationError
from anonpro_dm.domain.value_objects.enums import ChangeEvent, MessageType
from anonpro_dm.infrastructure.bus.channels import (
    ALL_CHANNELS_PATTERN,
    CONVERSATIONS_CHANNEL,
    channel_for,
    messages_channel,
    typing_channel,
)
from anonpro_dm.infrastructure.bus.serializer import deserialize_event, serialize_event
from anonpro_dm.infrastructure.db.repositories._cursor import decode_cursor, encode_cursor


def test_channel_names():
    cid = uuid.UUID("00000000-0000-0000-0000-000000000001")

    assert messages_channel(cid) == "dm.messages.00000000-0000-0000-0000-000000000001"
    assert typing_channel(cid) == "dm.typing.00000000-0000-0000-0000-000000000001"
    assert CONVERSATIONS_CHANNEL == "dm.conversations"
    assert ALL_CHANNELS_PATTERN == "dm.*"


@pytest.mark.parametrize(
    "event_type",
    [
        ChangeEvent.MESSAGE_INSERTED,
        ChangeEvent.MESSAGE_UPDATED,
        ChangeEvent.MESSAGE_DELETED,
        ChangeEvent.MESSAGES_READ,
        ChangeEvent.CONVERSATION_CLEARED,
    ],
)
def test_message_events_go_to_conversation_channel(event_type):
    cid = str(uuid.uuid4())
    assert channel_for(event_type, {"conversation_id": cid}) == f"dm.messages.{cid}"


def test_typing_is_not_mixed_with_messages():
    cid = str(uuid.uuid4())
    assert channel_for(ChangeEvent.TYPING, {"conversation_id": cid}) == f"dm.typing.{cid}"


def test_unknown_event_has_no_channel():
    with pytest.raises(ValueError):
        channel_for("dm.something_else", {})


def test_serializer_envelope_handles_uuid_datetime_enum():
    cid = uuid.uuid4()
    ts = datetime(2025, 3, 4, 5, 6, 7, tzinfo=timezone.utc)

    raw = serialize_event(
        ChangeEvent.MESSAGE_INSERTED,
        {"conversation_id": cid, "created_at": ts, "message_type": MessageType.VIDEO},
    )
    event_type, data = deserialize_event(raw)

    assert event_type == "dm.message_inserted"
    assert data == {
        "conversation_id": str(cid),
        "created_at": "2025-03-04T05:06:07+00:00",
        "message_type": "video",
    }


def test_cursor_roundtrip_without_padding():
    ts = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    uid = uuid.uuid4()

    cursor = encode_cursor(ts, uid)

    assert "=" not in cursor
    assert decode_cursor(cursor) == (ts, uid)


@pytest.mark.parametrize("cursor", ["not-a-cursor", "", "bm8tcGlwZQ"])
def test_malformed_cursor_is_a_validation_error(cursor):
    with pytest.raises(ValidationError):
        decode_cursor(cursor)
