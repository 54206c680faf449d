from __future__ import annotations

from anonpro_dm.domain.entities.message import Message
from anonpro_dm.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=model.id,
        conversation_id=model.conversation_id,
        sender_alias=model.sender_alias,
        receiver_alias=model.receiver_alias,
        content=model.content,
        message_type=model.message_type,
        reply_to=model.reply_to,
        is_read=model.is_read,
        is_edited=model.is_edited,
        edited_at=model.edited_at,
        deleted_for=tuple(model.deleted_for or ()),
        client_msg_id=model.client_msg_id,
        created_at=model.created_at,
    )


def entity_to_values(entity: Message) -> dict:
    """Column values for an INSERT .. ON CONFLICT statement."""
    return {
        "id": entity.id,
        "conversation_id": entity.conversation_id,
        "sender_alias": entity.sender_alias,
        "receiver_alias": entity.receiver_alias,
        "content": entity.content,
        "message_type": entity.message_type,
        "reply_to": entity.reply_to,
        "is_read": entity.is_read,
        "is_edited": entity.is_edited,
        "edited_at": entity.edited_at,
        "deleted_for": list(entity.deleted_for),
        "client_msg_id": entity.client_msg_id,
        "created_at": entity.created_at,
    }
