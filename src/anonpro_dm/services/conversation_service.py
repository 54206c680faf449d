from __future__ import annotations

import uuid
from datetime import datetime, timezone

from anonpro_dm.application.dto.principal import Principal
from anonpro_dm.application.exceptions import ValidationError
from anonpro_dm.application.policies.permissions import assert_conversation_access
from anonpro_dm.application.uow import UnitOfWork
from anonpro_dm.domain.entities.conversation import Conversation, ordered_pair
from anonpro_dm.domain.entities.message import Message
from anonpro_dm.domain.value_objects.enums import ChangeEvent
from anonpro_dm.services._payloads import conversation_payload


async def get_or_create_conversation(
    principal: Principal,
    peer_alias: str,
    uow: UnitOfWork,
) -> tuple[Conversation, bool]:
    """Return the conversation between the caller and peer, creating it on first contact.

    The pair is unordered: (a, b) and (b, a) resolve to the same row.
    Returns (conversation, created).
    """
    peer_alias = peer_alias.strip()
    if not peer_alias:
        raise ValidationError("peer_alias must not be empty")
    if peer_alias == principal.alias:
        raise ValidationError("Cannot start a conversation with yourself")

    existing = await uow.conversations.get_by_pair(principal.alias, peer_alias)
    if existing is not None:
        return existing, False

    user_one, user_two = ordered_pair(principal.alias, peer_alias)
    now = datetime.now(timezone.utc)
    conversation, created = await uow.conversations_w.create_if_not_exists(
        Conversation(
            id=uuid.uuid4(),
            user_one=user_one,
            user_two=user_two,
            created_at=now,
            updated_at=now,
        )
    )
    if created:
        await uow.outbox.add(
            ChangeEvent.CONVERSATION_CHANGED,
            conversation_payload(conversation, "created"),
        )
        await uow.commit()
    return conversation, created


async def list_conversations(
    principal: Principal,
    cursor: str | None,
    limit: int,
    uow: UnitOfWork,
) -> list[Conversation]:
    return await uow.conversations.list_for_alias(
        principal.alias, cursor=cursor, limit=limit,
    )


async def get_conversation(
    conversation_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> Conversation:
    conversation = await uow.conversations.get_by_id(conversation_id)
    return assert_conversation_access(principal, conversation)


async def get_last_message(
    conversation_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> Message | None:
    await get_conversation(conversation_id, principal, uow)
    return await uow.messages.get_last_message(conversation_id, principal.alias)


async def count_unread(
    conversation_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> int:
    await get_conversation(conversation_id, principal, uow)
    return await uow.messages.count_unread(conversation_id, principal.alias)


async def delete_conversation(
    conversation_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> None:
    """Permanently remove the conversation and every message in it, for both participants."""
    conversation = await get_conversation(conversation_id, principal, uow)

    await uow.messages_w.delete_for_conversation(conversation_id)
    await uow.conversations_w.delete(conversation_id)
    await uow.outbox.add(
        ChangeEvent.CONVERSATION_CHANGED,
        conversation_payload(conversation, "deleted"),
    )
    await uow.commit()
