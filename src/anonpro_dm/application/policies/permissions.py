from __future__ import annotations

from anonpro_dm.application.dto.principal import Principal
from anonpro_dm.application.exceptions import ForbiddenError, NotFoundError
from anonpro_dm.domain.entities.conversation import Conversation
from anonpro_dm.domain.entities.message import Message


def assert_conversation_access(
    principal: Principal,
    conversation: Conversation | None,
) -> Conversation:
    """Raise if conversation doesn't exist or principal is not one of its two participants."""
    if conversation is None:
        raise NotFoundError("Conversation not found")
    if not conversation.has_participant(principal.alias):
        raise ForbiddenError("Not a participant of this conversation")
    return conversation


def assert_message_found(message: Message | None) -> Message:
    if message is None:
        raise NotFoundError("Message not found")
    return message


def assert_sender(principal: Principal, message: Message) -> None:
    if message.sender_alias != principal.alias:
        raise ForbiddenError("Only the sender can change this message")


def assert_receiver(principal: Principal, message: Message) -> None:
    if message.receiver_alias != principal.alias:
        raise ForbiddenError("Only the receiver can mark this message read")
