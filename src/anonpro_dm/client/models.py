"""Client-side view models and the outbound delivery state machine."""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable
from uuid import UUID

from anonpro_dm.application.exceptions import InvalidTransitionError
from anonpro_dm.domain.entities.conversation import Conversation
from anonpro_dm.domain.entities.message import Message
from anonpro_dm.domain.value_objects.enums import DeliveryStatus

# sending -> {sent, error}; error -> {sending (retry), sent (late echo)}; sent is terminal
ALLOWED_TRANSITIONS: dict[DeliveryStatus, frozenset[DeliveryStatus]] = {
    DeliveryStatus.SENDING: frozenset({DeliveryStatus.SENT, DeliveryStatus.ERROR}),
    DeliveryStatus.ERROR: frozenset({DeliveryStatus.SENDING, DeliveryStatus.SENT}),
    DeliveryStatus.SENT: frozenset(),
}


@dataclass(frozen=True, slots=True)
class LocalMessage:
    """A message as the local timeline holds it.

    ``id`` stays None until the backend assigns one; ``client_msg_id`` is the
    correlation id carried through the write and the realtime echo.
    """

    client_msg_id: UUID
    id: UUID | None
    conversation_id: UUID | None
    sender_alias: str
    receiver_alias: str
    content: str
    message_type: str
    reply_to: UUID | None
    is_read: bool
    is_edited: bool
    edited_at: datetime | None
    deleted_for: tuple[str, ...]
    created_at: datetime
    status: DeliveryStatus
    reactions: tuple[str, ...] = ()

    @property
    def key(self) -> UUID:
        return self.id or self.client_msg_id

    @property
    def is_pending(self) -> bool:
        return self.status == DeliveryStatus.SENDING

    @classmethod
    def from_message(cls, msg: Message) -> LocalMessage:
        return cls(
            client_msg_id=msg.client_msg_id,
            id=msg.id,
            conversation_id=msg.conversation_id,
            sender_alias=msg.sender_alias,
            receiver_alias=msg.receiver_alias,
            content=msg.content,
            message_type=msg.message_type,
            reply_to=msg.reply_to,
            is_read=msg.is_read,
            is_edited=msg.is_edited,
            edited_at=msg.edited_at,
            deleted_for=msg.deleted_for,
            created_at=msg.created_at,
            status=DeliveryStatus.SENT,
        )

    def with_server_state(self, msg: Message) -> LocalMessage:
        """Overlay persisted fields, keeping the local correlation id and reactions."""
        return dataclasses.replace(
            self,
            id=msg.id,
            conversation_id=msg.conversation_id,
            content=msg.content,
            is_read=msg.is_read,
            is_edited=msg.is_edited,
            edited_at=msg.edited_at,
            deleted_for=msg.deleted_for,
            created_at=msg.created_at,
        )

    def transition(self, target: DeliveryStatus) -> LocalMessage:
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Message {self.client_msg_id} cannot go from {self.status} to {target}"
            )
        return dataclasses.replace(self, status=target)


@dataclass(frozen=True, slots=True)
class ConversationView:
    conversation: Conversation
    peer_alias: str
    last_message: Message | None = None
    unread_count: int = 0
    is_pinned: bool = False

    @property
    def id(self) -> UUID:
        return self.conversation.id

    @property
    def updated_at(self) -> datetime:
        return self.conversation.updated_at


def order_conversations(views: list[ConversationView]) -> list[ConversationView]:
    """Pinned first, then most recently active first within each group."""
    by_activity = sorted(views, key=lambda v: v.updated_at, reverse=True)
    return sorted(by_activity, key=lambda v: not v.is_pinned)


def day_label(day: date, today: date) -> str:
    if day == today:
        return "Today"
    if day == today - timedelta(days=1):
        return "Yesterday"
    return f"{day:%A}, {day:%B} {day.day}"


def group_by_day(
    messages: Iterable[LocalMessage], now: datetime,
) -> list[tuple[str, list[LocalMessage]]]:
    """Split a timeline into consecutive day sections labelled relative to ``now``.

    Days are calendar days in ``now``'s timezone; messages keep their order.
    """
    groups: list[tuple[str, list[LocalMessage]]] = []
    current: date | None = None
    for msg in messages:
        day = msg.created_at.astimezone(now.tzinfo).date()
        if day != current:
            groups.append((day_label(day, now.date()), []))
            current = day
        groups[-1][1].append(msg)
    return groups
