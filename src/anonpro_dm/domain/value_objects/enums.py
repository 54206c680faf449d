from __future__ import annotations

from enum import StrEnum


class MessageType(StrEnum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"


class DeliveryStatus(StrEnum):
    """Client-side lifecycle of an outbound message."""

    SENDING = "sending"
    SENT = "sent"
    ERROR = "error"


class DeleteMode(StrEnum):
    FOR_ME = "for_me"
    FOR_EVERYONE = "for_everyone"


class ChangeEvent(StrEnum):
    """Event types carried on the realtime change feed."""

    MESSAGE_INSERTED = "dm.message_inserted"
    MESSAGE_UPDATED = "dm.message_updated"
    MESSAGE_DELETED = "dm.message_deleted"
    MESSAGES_READ = "dm.messages_read"
    CONVERSATION_CLEARED = "dm.conversation_cleared"
    CONVERSATION_CHANGED = "dm.conversation_changed"
    NOTIFICATION_CREATED = "dm.notification_created"
    TYPING = "dm.typing"
