from __future__ import annotations

import dataclasses
import uuid
from datetime import datetime, timezone

from anonpro_dm.application.dto.message import SendMessageDTO
from anonpro_dm.application.dto.principal import Principal
from anonpro_dm.application.exceptions import ValidationError
from anonpro_dm.application.policies.permissions import (
    assert_conversation_access,
    assert_message_found,
    assert_receiver,
    assert_sender,
)
from anonpro_dm.application.uow import UnitOfWork
from anonpro_dm.domain.entities.message import Message
from anonpro_dm.domain.value_objects.enums import ChangeEvent, DeleteMode, MessageType
from anonpro_dm.services._payloads import conversation_payload, message_payload

_MEDIA_LABELS = {
    MessageType.IMAGE: "an image",
    MessageType.VIDEO: "a video",
}


def _clean_content(content: str | None) -> str:
    cleaned = (content or "").strip()
    if not cleaned:
        raise ValidationError("Message content must not be empty")
    return cleaned


async def send_message(
    dto: SendMessageDTO,
    principal: Principal,
    uow: UnitOfWork,
) -> tuple[Message, bool]:
    """Create a message idempotently.

    Returns (message, created). If a message with the same client_msg_id
    already exists for this sender the existing one is returned with
    created=False and nothing is published.
    """
    content = _clean_content(dto.content)
    conversation = await uow.conversations.get_by_id(dto.conversation_id)
    conversation = assert_conversation_access(principal, conversation)

    if dto.reply_to is not None:
        target = await uow.messages.get_by_id(dto.reply_to)
        if target is None or target.conversation_id != conversation.id:
            raise ValidationError("reply_to must reference a message in this conversation")

    now = datetime.now(timezone.utc)
    msg = Message(
        id=uuid.uuid4(),
        conversation_id=conversation.id,
        sender_alias=principal.alias,
        receiver_alias=conversation.peer_of(principal.alias),
        content=content,
        message_type=dto.message_type.value,
        reply_to=dto.reply_to,
        is_read=False,
        is_edited=False,
        edited_at=None,
        deleted_for=(),
        client_msg_id=dto.client_msg_id,
        created_at=now,
    )

    msg, created = await uow.messages_w.create_if_not_exists(msg)

    if created:
        await uow.conversations_w.touch_updated_at(conversation.id, msg.created_at)
        await uow.outbox.add(
            ChangeEvent.CONVERSATION_CHANGED,
            conversation_payload(
                dataclasses.replace(conversation, updated_at=msg.created_at), "updated",
            ),
        )
        await uow.outbox.add(
            ChangeEvent.MESSAGE_INSERTED,
            {"conversation_id": str(msg.conversation_id), "message": message_payload(msg)},
        )
        what = _MEDIA_LABELS.get(MessageType(msg.message_type), "a message")
        await uow.outbox.add(
            ChangeEvent.NOTIFICATION_CREATED,
            {
                "user_alias": msg.receiver_alias,
                "from_alias": msg.sender_alias,
                "type": "dm",
                "title": "New Message",
                "content": f"@{msg.sender_alias} sent you {what}",
                "conversation_id": str(msg.conversation_id),
            },
        )
        await uow.commit()

    return msg, created


async def list_messages(
    conversation_id: uuid.UUID,
    principal: Principal,
    cursor: str | None,
    limit: int,
    uow: UnitOfWork,
) -> list[Message]:
    conversation = await uow.conversations.get_by_id(conversation_id)
    assert_conversation_access(principal, conversation)
    return await uow.messages.list_messages(
        conversation_id, principal.alias, cursor=cursor, limit=limit,
    )


async def mark_conversation_read(
    conversation_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> int:
    """Flag everything addressed to the caller as read. Returns how many messages changed."""
    conversation = await uow.conversations.get_by_id(conversation_id)
    assert_conversation_access(principal, conversation)

    ids = await uow.messages_w.mark_conversation_read(conversation_id, principal.alias)
    if ids:
        await uow.outbox.add(
            ChangeEvent.MESSAGES_READ,
            {
                "conversation_id": str(conversation_id),
                "reader_alias": principal.alias,
                "message_ids": [str(i) for i in ids],
            },
        )
        await uow.commit()
    return len(ids)


async def mark_message_read(
    message_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> Message:
    msg = assert_message_found(await uow.messages.get_by_id(message_id))
    assert_receiver(principal, msg)
    if msg.is_read:
        return msg

    updated = assert_message_found(await uow.messages_w.mark_read(message_id))
    await uow.outbox.add(
        ChangeEvent.MESSAGES_READ,
        {
            "conversation_id": str(updated.conversation_id),
            "reader_alias": principal.alias,
            "message_ids": [str(updated.id)],
        },
    )
    await uow.commit()
    return updated


async def edit_message(
    message_id: uuid.UUID,
    principal: Principal,
    content: str,
    uow: UnitOfWork,
) -> Message:
    content = _clean_content(content)
    msg = assert_message_found(await uow.messages.get_by_id(message_id))
    assert_sender(principal, msg)

    updated = await uow.messages_w.update_content(
        message_id, content, datetime.now(timezone.utc),
    )
    updated = assert_message_found(updated)
    await uow.outbox.add(
        ChangeEvent.MESSAGE_UPDATED,
        {"conversation_id": str(updated.conversation_id), "message": message_payload(updated)},
    )
    await uow.commit()
    return updated


async def delete_message(
    message_id: uuid.UUID,
    principal: Principal,
    mode: DeleteMode,
    uow: UnitOfWork,
) -> None:
    """Delete for everyone (sender only) or hide for the caller only."""
    msg = assert_message_found(await uow.messages.get_by_id(message_id))
    conversation = await uow.conversations.get_by_id(msg.conversation_id)
    assert_conversation_access(principal, conversation)

    if mode == DeleteMode.FOR_EVERYONE:
        assert_sender(principal, msg)
        await uow.messages_w.delete(message_id)
        await uow.outbox.add(
            ChangeEvent.MESSAGE_DELETED,
            {"conversation_id": str(msg.conversation_id), "message_id": str(msg.id)},
        )
    else:
        if principal.alias in msg.deleted_for:
            return
        updated = assert_message_found(
            await uow.messages_w.add_deleted_for(message_id, principal.alias)
        )
        await uow.outbox.add(
            ChangeEvent.MESSAGE_UPDATED,
            {"conversation_id": str(updated.conversation_id), "message": message_payload(updated)},
        )
    await uow.commit()


async def clear_conversation(
    conversation_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> int:
    """Delete every message in the conversation for both participants."""
    conversation = await uow.conversations.get_by_id(conversation_id)
    assert_conversation_access(principal, conversation)

    removed = await uow.messages_w.delete_for_conversation(conversation_id)
    await uow.outbox.add(
        ChangeEvent.CONVERSATION_CLEARED,
        {"conversation_id": str(conversation_id), "cleared_by": principal.alias},
    )
    await uow.commit()
    return removed
