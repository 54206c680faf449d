"""Redis channel names of the realtime change feed."""
from __future__ import annotations

from typing import Any
from uuid import UUID

from anonpro_dm.domain.value_objects.enums import ChangeEvent

PREFIX = "dm"
CONVERSATIONS_CHANNEL = f"{PREFIX}.conversations"
ALL_CHANNELS_PATTERN = f"{PREFIX}.*"

_MESSAGE_EVENTS = frozenset(
    {
        ChangeEvent.MESSAGE_INSERTED,
        ChangeEvent.MESSAGE_UPDATED,
        ChangeEvent.MESSAGE_DELETED,
        ChangeEvent.MESSAGES_READ,
        ChangeEvent.CONVERSATION_CLEARED,
    }
)


def messages_channel(conversation_id: UUID | str) -> str:
    return f"{PREFIX}.messages.{conversation_id}"


def typing_channel(conversation_id: UUID | str) -> str:
    return f"{PREFIX}.typing.{conversation_id}"


def notifications_channel(alias: str) -> str:
    return f"{PREFIX}.notifications.{alias}"


def channel_for(event_type: str, payload: dict[str, Any]) -> str:
    """Route an outbox event to the channel its subscribers listen on."""
    if event_type in _MESSAGE_EVENTS:
        return messages_channel(payload["conversation_id"])
    if event_type == ChangeEvent.CONVERSATION_CHANGED:
        return CONVERSATIONS_CHANNEL
    if event_type == ChangeEvent.NOTIFICATION_CREATED:
        return notifications_channel(payload["user_alias"])
    if event_type == ChangeEvent.TYPING:
        return typing_channel(payload["conversation_id"])
    raise ValueError(f"No channel for event type {event_type!r}")
