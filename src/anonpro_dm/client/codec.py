"""Decode service JSON (REST bodies and change-feed payloads) into domain entities."""
from __future__ import annotations

from typing import Any

from anonpro_dm.api.v1.schemas.conversation import ConversationResponse
from anonpro_dm.api.v1.schemas.message import MessageResponse
from anonpro_dm.domain.entities.conversation import Conversation
from anonpro_dm.domain.entities.message import Message


def message_from_dict(data: dict[str, Any]) -> Message:
    parsed = MessageResponse.model_validate(data)
    return Message(
        id=parsed.id,
        conversation_id=parsed.conversation_id,
        sender_alias=parsed.sender_alias,
        receiver_alias=parsed.receiver_alias,
        content=parsed.content,
        message_type=parsed.message_type.value,
        reply_to=parsed.reply_to,
        is_read=parsed.is_read,
        is_edited=parsed.is_edited,
        edited_at=parsed.edited_at,
        deleted_for=tuple(parsed.deleted_for),
        client_msg_id=parsed.client_msg_id,
        created_at=parsed.created_at,
    )


def conversation_from_dict(data: dict[str, Any]) -> Conversation:
    parsed = ConversationResponse.model_validate(data)
    return Conversation(
        id=parsed.id,
        user_one=parsed.user_one,
        user_two=parsed.user_two,
        created_at=parsed.created_at,
        updated_at=parsed.updated_at,
    )
