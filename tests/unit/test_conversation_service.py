from __future__ import annotations

import uuid

import pytest

from anonpro_dm.application.exceptions import ForbiddenError, NotFoundError, ValidationError
from anonpro_dm.services import conversation_service
from tests.conftest import FakeUoW, make_conversation, make_message


@pytest.mark.asyncio
async def test_get_or_create_creates_ordered_pair(bob):
    uow = FakeUoW()

    conv, created = await conversation_service.get_or_create_conversation(bob, "alice", uow)

    assert created is True
    assert (conv.user_one, conv.user_two) == ("alice", "bob")
    assert uow._committed is True
    assert uow.outbox.event_types() == ["dm.conversation_changed"]
    assert uow.outbox._records[0]["payload"]["action"] == "created"


@pytest.mark.asyncio
async def test_get_or_create_is_symmetric(alice, bob):
    uow = FakeUoW()

    first, _ = await conversation_service.get_or_create_conversation(alice, "bob", uow)
    uow._committed = False
    second, created = await conversation_service.get_or_create_conversation(bob, "alice", uow)

    assert created is False
    assert first.id == second.id
    assert uow._committed is False
    assert len(uow.outbox._records) == 1


@pytest.mark.asyncio
async def test_get_or_create_strips_peer_alias(alice):
    uow = FakeUoW()

    conv, _ = await conversation_service.get_or_create_conversation(alice, "  bob ", uow)

    assert conv.peer_of("alice") == "bob"


@pytest.mark.asyncio
@pytest.mark.parametrize("peer", ["", "   ", "alice"])
async def test_get_or_create_rejects_blank_or_self(alice, peer):
    with pytest.raises(ValidationError):
        await conversation_service.get_or_create_conversation(alice, peer, FakeUoW())


@pytest.mark.asyncio
async def test_get_conversation_not_found(alice):
    with pytest.raises(NotFoundError):
        await conversation_service.get_conversation(uuid.uuid4(), alice, FakeUoW())


@pytest.mark.asyncio
async def test_get_conversation_forbidden_for_outsider(mallory):
    uow = FakeUoW()
    conv = make_conversation()
    uow.conversations._store[conv.id] = conv

    with pytest.raises(ForbiddenError):
        await conversation_service.get_conversation(conv.id, mallory, uow)


@pytest.mark.asyncio
async def test_list_conversations_only_own(alice):
    uow = FakeUoW()
    mine = make_conversation("alice", "bob")
    other = make_conversation("carol", "dave")
    uow.conversations._store.update({mine.id: mine, other.id: other})

    result = await conversation_service.list_conversations(alice, None, 50, uow)

    assert [c.id for c in result] == [mine.id]


@pytest.mark.asyncio
async def test_last_message_and_unread_count_are_per_viewer(alice, bob):
    uow = FakeUoW()
    conv = make_conversation()
    uow.conversations._store[conv.id] = conv
    first = make_message(conversation_id=conv.id, content="one")
    hidden = make_message(conversation_id=conv.id, content="two", deleted_for=("alice",))
    uow.messages._messages.extend([first, hidden])

    assert (await conversation_service.get_last_message(conv.id, alice, uow)).id == first.id
    assert (await conversation_service.get_last_message(conv.id, bob, uow)).id == hidden.id
    assert await conversation_service.count_unread(conv.id, bob, uow) == 2
    assert await conversation_service.count_unread(conv.id, alice, uow) == 0


@pytest.mark.asyncio
async def test_delete_conversation_removes_messages(alice):
    uow = FakeUoW()
    conv = make_conversation()
    uow.conversations._store[conv.id] = conv
    uow.messages._messages.append(make_message(conversation_id=conv.id))

    await conversation_service.delete_conversation(conv.id, alice, uow)

    assert conv.id not in uow.conversations._store
    assert uow.messages._messages == []
    assert uow.outbox._records[-1]["payload"]["action"] == "deleted"
    assert uow._committed is True
