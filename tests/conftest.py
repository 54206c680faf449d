"""Shared test fixtures."""
from __future__ import annotations

import dataclasses
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

import pytest

from anonpro_dm.application.dto.message import SendMessageDTO
from anonpro_dm.application.dto.principal import Principal
from anonpro_dm.application.exceptions import BackendError
from anonpro_dm.application.repositories.outbox import OutboxRecord
from anonpro_dm.domain.entities.conversation import Conversation, ordered_pair
from anonpro_dm.domain.entities.message import Message
from anonpro_dm.domain.value_objects.enums import DeleteMode, MessageType
from anonpro_dm.services import conversation_service, message_service


@pytest.fixture
def alice() -> Principal:
    return Principal(alias="alice")


@pytest.fixture
def bob() -> Principal:
    return Principal(alias="bob")


@pytest.fixture
def mallory() -> Principal:
    return Principal(alias="mallory")


def make_conversation(
    alias_a: str = "alice",
    alias_b: str = "bob",
    *,
    conversation_id: UUID | None = None,
    updated_at: datetime | None = None,
) -> Conversation:
    now = datetime.now(timezone.utc)
    user_one, user_two = ordered_pair(alias_a, alias_b)
    return Conversation(
        id=conversation_id or uuid.uuid4(),
        user_one=user_one,
        user_two=user_two,
        created_at=now,
        updated_at=updated_at or now,
    )


def make_message(
    *,
    conversation_id: UUID | None = None,
    sender_alias: str = "alice",
    receiver_alias: str = "bob",
    content: str = "hello",
    client_msg_id: UUID | None = None,
    is_read: bool = False,
    deleted_for: tuple[str, ...] = (),
    created_at: datetime | None = None,
) -> Message:
    return Message(
        id=uuid.uuid4(),
        conversation_id=conversation_id or uuid.uuid4(),
        sender_alias=sender_alias,
        receiver_alias=receiver_alias,
        content=content,
        message_type=MessageType.TEXT.value,
        reply_to=None,
        is_read=is_read,
        is_edited=False,
        edited_at=None,
        deleted_for=deleted_for,
        client_msg_id=client_msg_id or uuid.uuid4(),
        created_at=created_at or datetime.now(timezone.utc),
    )


@dataclass
class FakeConversationReader:
    _store: dict[UUID, Conversation] = field(default_factory=dict)

    async def get_by_id(self, conversation_id: UUID) -> Conversation | None:
        return self._store.get(conversation_id)

    async def get_by_pair(self, alias_a: str, alias_b: str) -> Conversation | None:
        pair = ordered_pair(alias_a, alias_b)
        for c in self._store.values():
            if (c.user_one, c.user_two) == pair:
                return c
        return None

    async def list_for_alias(self, alias: str, *, cursor: str | None = None, limit: int = 50) -> list[Conversation]:
        own = [c for c in self._store.values() if c.has_participant(alias)]
        return sorted(own, key=lambda c: c.updated_at, reverse=True)[:limit]


@dataclass
class FakeConversationWriter:
    _reader: FakeConversationReader

    async def create_if_not_exists(self, conversation: Conversation) -> tuple[Conversation, bool]:
        existing = await self._reader.get_by_pair(conversation.user_one, conversation.user_two)
        if existing is not None:
            return existing, False
        self._reader._store[conversation.id] = conversation
        return conversation, True

    async def touch_updated_at(self, conversation_id: UUID, ts: datetime) -> None:
        conv = self._reader._store[conversation_id]
        self._reader._store[conversation_id] = dataclasses.replace(conv, updated_at=ts)

    async def delete(self, conversation_id: UUID) -> None:
        self._reader._store.pop(conversation_id, None)


@dataclass
class FakeMessageReader:
    _messages: list[Message] = field(default_factory=list)

    async def get_by_id(self, message_id: UUID) -> Message | None:
        for m in self._messages:
            if m.id == message_id:
                return m
        return None

    async def list_messages(
        self, conversation_id: UUID, viewer_alias: str, *, cursor: str | None = None, limit: int = 100,
    ) -> list[Message]:
        return [
            m for m in self._messages
            if m.conversation_id == conversation_id and m.is_visible_to(viewer_alias)
        ][:limit]

    async def get_last_message(self, conversation_id: UUID, viewer_alias: str) -> Message | None:
        visible = await self.list_messages(conversation_id, viewer_alias)
        return visible[-1] if visible else None

    async def count_unread(self, conversation_id: UUID, receiver_alias: str) -> int:
        return sum(
            1 for m in self._messages
            if m.conversation_id == conversation_id
            and m.receiver_alias == receiver_alias
            and not m.is_read
            and m.is_visible_to(receiver_alias)
        )


@dataclass
class FakeMessageWriter:
    _reader: FakeMessageReader

    def _swap(self, message_id: UUID, **changes: Any) -> Message | None:
        for i, m in enumerate(self._reader._messages):
            if m.id == message_id:
                self._reader._messages[i] = dataclasses.replace(m, **changes)
                return self._reader._messages[i]
        return None

    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        existing = await self.get_by_client_msg_id(
            message.conversation_id, message.sender_alias, message.client_msg_id,
        )
        if existing is not None:
            return existing, False
        self._reader._messages.append(message)
        return message, True

    async def get_by_client_msg_id(self, conversation_id: UUID, sender_alias: str, client_msg_id: UUID) -> Message | None:
        for m in self._reader._messages:
            if (
                m.conversation_id == conversation_id
                and m.sender_alias == sender_alias
                and m.client_msg_id == client_msg_id
            ):
                return m
        return None

    async def update_content(self, message_id: UUID, content: str, edited_at: datetime) -> Message | None:
        return self._swap(message_id, content=content, is_edited=True, edited_at=edited_at)

    async def mark_read(self, message_id: UUID) -> Message | None:
        return self._swap(message_id, is_read=True)

    async def mark_conversation_read(self, conversation_id: UUID, receiver_alias: str) -> list[UUID]:
        ids = [
            m.id for m in self._reader._messages
            if m.conversation_id == conversation_id and m.receiver_alias == receiver_alias and not m.is_read
        ]
        for message_id in ids:
            self._swap(message_id, is_read=True)
        return ids

    async def add_deleted_for(self, message_id: UUID, alias: str) -> Message | None:
        msg = await self._reader.get_by_id(message_id)
        if msg is None:
            return None
        return self._swap(message_id, deleted_for=msg.deleted_for + (alias,))

    async def delete(self, message_id: UUID) -> None:
        self._reader._messages = [m for m in self._reader._messages if m.id != message_id]

    async def delete_for_conversation(self, conversation_id: UUID) -> int:
        before = len(self._reader._messages)
        self._reader._messages = [m for m in self._reader._messages if m.conversation_id != conversation_id]
        return before - len(self._reader._messages)


@dataclass
class FakeOutboxWriter:
    _records: list[dict[str, Any]] = field(default_factory=list)
    _pending: list[OutboxRecord] = field(default_factory=list)
    _sent: list[int] = field(default_factory=list)
    _failed: dict[int, datetime] = field(default_factory=dict)
    _dead: list[int] = field(default_factory=list)

    async def add(self, event_type: str, payload: dict[str, Any]) -> None:
        self._records.append({"event_type": event_type, "payload": payload})

    async def fetch_pending(self, batch_size: int) -> list[OutboxRecord]:
        return self._pending[:batch_size]

    async def mark_sent(self, ids: list[int]) -> None:
        self._sent.extend(ids)

    async def mark_failed(self, record_id: int, next_retry_at: datetime) -> None:
        self._failed[record_id] = next_retry_at

    async def mark_dead(self, record_id: int) -> None:
        self._dead.append(record_id)

    def event_types(self) -> list[str]:
        return [r["event_type"] for r in self._records]


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests."""
    conversations: FakeConversationReader = field(default_factory=FakeConversationReader)
    conversations_w: FakeConversationWriter | None = None
    messages: FakeMessageReader = field(default_factory=FakeMessageReader)
    messages_w: FakeMessageWriter | None = None
    outbox: FakeOutboxWriter = field(default_factory=FakeOutboxWriter)
    _committed: bool = False

    def __post_init__(self) -> None:
        if self.conversations_w is None:
            self.conversations_w = FakeConversationWriter(self.conversations)
        if self.messages_w is None:
            self.messages_w = FakeMessageWriter(self.messages)

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self._committed = True

    async def rollback(self) -> None:
        pass


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2025, 1, 1, tzinfo=timezone.utc)
        self._mono = 1000.0

    def now(self) -> datetime:
        return self._now

    def monotonic(self) -> float:
        return self._mono

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)
        self._mono += seconds


class ServiceBackend:
    """DirectMessageBackend that runs the real services over a FakeUoW as one alias."""

    def __init__(self, uow: FakeUoW, alias: str) -> None:
        self.uow = uow
        self.principal = Principal(alias=alias)
        self.failing: set[str] = set()
        self.drop_send_response = False
        self.on_send: Any = None
        self.calls: list[str] = []

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failing:
            raise BackendError(f"{name} unavailable", status_code=503)

    async def get_or_create_conversation(self, peer_alias: str) -> Conversation:
        self._enter("get_or_create_conversation")
        conv, _ = await conversation_service.get_or_create_conversation(self.principal, peer_alias, self.uow)
        return conv

    async def list_conversations(self) -> list[Conversation]:
        self._enter("list_conversations")
        return await conversation_service.list_conversations(self.principal, None, 50, self.uow)

    async def get_last_message(self, conversation_id: UUID) -> Message | None:
        self._enter("get_last_message")
        return await conversation_service.get_last_message(conversation_id, self.principal, self.uow)

    async def count_unread(self, conversation_id: UUID) -> int:
        self._enter("count_unread")
        return await conversation_service.count_unread(conversation_id, self.principal, self.uow)

    async def delete_conversation(self, conversation_id: UUID) -> None:
        self._enter("delete_conversation")
        await conversation_service.delete_conversation(conversation_id, self.principal, self.uow)

    async def list_messages(self, conversation_id: UUID) -> list[Message]:
        self._enter("list_messages")
        return await message_service.list_messages(conversation_id, self.principal, None, 100, self.uow)

    async def send_message(
        self,
        conversation_id: UUID,
        client_msg_id: UUID,
        content: str,
        *,
        message_type: MessageType = MessageType.TEXT,
        reply_to: UUID | None = None,
    ) -> Message:
        self._enter("send_message")
        msg, _ = await message_service.send_message(
            SendMessageDTO(
                conversation_id=conversation_id,
                client_msg_id=client_msg_id,
                content=content,
                message_type=message_type,
                reply_to=reply_to,
            ),
            self.principal,
            self.uow,
        )
        if self.on_send is not None:
            await self.on_send(msg)
        if self.drop_send_response:
            raise BackendError("connection reset")
        return msg

    async def mark_conversation_read(self, conversation_id: UUID) -> int:
        self._enter("mark_conversation_read")
        return await message_service.mark_conversation_read(conversation_id, self.principal, self.uow)

    async def mark_message_read(self, message_id: UUID) -> None:
        self._enter("mark_message_read")
        await message_service.mark_message_read(message_id, self.principal, self.uow)

    async def edit_message(self, message_id: UUID, content: str) -> Message:
        self._enter("edit_message")
        return await message_service.edit_message(message_id, self.principal, content, self.uow)

    async def delete_message(self, message_id: UUID, mode: DeleteMode) -> None:
        self._enter("delete_message")
        await message_service.delete_message(message_id, self.principal, mode, self.uow)

    async def clear_conversation(self, conversation_id: UUID) -> None:
        self._enter("clear_conversation")
        await message_service.clear_conversation(conversation_id, self.principal, self.uow)


class FakeSubscription:
    def __init__(self, transport: FakeTransport, channel: str, callback: Any) -> None:
        self._transport = transport
        self.channel = channel
        self.callback = callback
        self.stopped = False

    async def stop(self) -> None:
        self.stopped = True
        self._transport._subs.remove(self)


class FakeTransport:
    """In-process RealtimeTransport; events are pushed with ``deliver``."""

    def __init__(self) -> None:
        self._subs: list[FakeSubscription] = []
        self.broadcasts: list[tuple[str, str, dict[str, Any]]] = []

    @property
    def channels(self) -> list[str]:
        return [s.channel for s in self._subs]

    async def subscribe(self, channel: str, callback: Any) -> FakeSubscription:
        sub = FakeSubscription(self, channel, callback)
        self._subs.append(sub)
        return sub

    async def broadcast(self, channel: str, event_type: str, payload: dict[str, Any]) -> None:
        self.broadcasts.append((channel, event_type, payload))

    async def deliver(self, channel: str, event_type: str, payload: dict[str, Any]) -> None:
        for sub in [s for s in self._subs if s.channel == channel]:
            await sub.callback(event_type, payload)
