"""JSON-ready dicts for outbox events and WebSocket frames."""
from __future__ import annotations

from typing import Any

from anonpro_dm.domain.entities.conversation import Conversation
from anonpro_dm.domain.entities.message import Message


def message_payload(msg: Message) -> dict[str, Any]:
    return {
        "id": str(msg.id),
        "conversation_id": str(msg.conversation_id),
        "sender_alias": msg.sender_alias,
        "receiver_alias": msg.receiver_alias,
        "content": msg.content,
        "message_type": msg.message_type,
        "reply_to": str(msg.reply_to) if msg.reply_to else None,
        "is_read": msg.is_read,
        "is_edited": msg.is_edited,
        "edited_at": msg.edited_at.isoformat() if msg.edited_at else None,
        "deleted_for": list(msg.deleted_for),
        "client_msg_id": str(msg.client_msg_id),
        "created_at": msg.created_at.isoformat(),
    }


def conversation_payload(conv: Conversation, action: str) -> dict[str, Any]:
    return {
        "conversation_id": str(conv.id),
        "user_one": conv.user_one,
        "user_two": conv.user_two,
        "updated_at": conv.updated_at.isoformat(),
        "action": action,
    }
