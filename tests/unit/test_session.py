from __future__ import annotations

import asyncio

import pytest

from anonpro_dm.application.exceptions import ValidationError
from anonpro_dm.client.session import DirectMessageSession
from anonpro_dm.domain.value_objects.enums import ChangeEvent, DeliveryStatus
from anonpro_dm.services._payloads import message_payload
from tests.conftest import FakeTransport, FakeUoW, ServiceBackend


@pytest.fixture
def uow():
    return FakeUoW()


@pytest.mark.asyncio
async def test_alice_sends_bob_receives(uow):
    transport = FakeTransport()
    alice = DirectMessageSession(ServiceBackend(uow, "alice"), transport, "alice")
    bob = DirectMessageSession(ServiceBackend(uow, "bob"), transport, "bob")
    await alice.start()
    await bob.start()

    conv = await alice.open("bob")
    await bob.open("alice")
    entry = await alice.send("hi")

    assert entry.status == DeliveryStatus.SENT
    stored = uow.messages._messages[0]
    payload = {"conversation_id": str(conv.id), "message": message_payload(stored)}
    await transport.deliver(f"dm.messages.{conv.id}", ChangeEvent.MESSAGE_INSERTED, payload)

    assert [(m.content, m.status) for m in alice.reconciler.messages] == [("hi", DeliveryStatus.SENT)]
    [received] = bob.reconciler.messages
    assert received.content == "hi"
    assert received.is_read is True

    await alice.close()
    await bob.close()
    assert transport.channels == []


@pytest.mark.asyncio
async def test_compose_creates_conversation_on_first_send(uow):
    transport = FakeTransport()
    session = DirectMessageSession(ServiceBackend(uow, "alice"), transport, "alice")
    await session.start()

    await session.compose("bob")
    assert session.bridge.conversation_id is None

    await session.send("first!")

    cid = session.reconciler.conversation_id
    assert cid is not None
    assert session.bridge.conversation_id == cid
    assert f"dm.messages.{cid}" in transport.channels


@pytest.mark.asyncio
async def test_conversation_change_reloads_store(uow):
    transport = FakeTransport()
    session = DirectMessageSession(ServiceBackend(uow, "alice"), transport, "alice")
    await session.start()
    assert session.store.conversations == []

    conv = await session.open("bob")
    await transport.deliver(
        "dm.conversations",
        ChangeEvent.CONVERSATION_CHANGED,
        {"conversation_id": str(conv.id), "user_one": "alice", "user_two": "bob", "action": "created"},
    )

    assert [v.id for v in session.store.conversations] == [conv.id]


@pytest.mark.asyncio
async def test_failed_reload_keeps_list(uow):
    transport = FakeTransport()
    backend = ServiceBackend(uow, "alice")
    session = DirectMessageSession(backend, transport, "alice")
    await session.open("bob")
    await session.start()
    backend.failing.add("list_conversations")

    await session.refresh_conversations()

    assert len(session.store.conversations) == 1


@pytest.mark.asyncio
async def test_send_without_peer_is_rejected(uow):
    session = DirectMessageSession(ServiceBackend(uow, "alice"), FakeTransport(), "alice")

    with pytest.raises(ValidationError):
        await session.send("hello?")


class HeldCreateBackend(ServiceBackend):
    """Parks the first get-or-create for ``peer`` until ``release`` is set."""

    def __init__(self, uow, alias, peer):
        super().__init__(uow, alias)
        self._peer = peer
        self.holding = asyncio.Event()
        self.release = asyncio.Event()

    async def get_or_create_conversation(self, peer_alias):
        conv = await super().get_or_create_conversation(peer_alias)
        if peer_alias == self._peer and not self.holding.is_set():
            self.holding.set()
            await self.release.wait()
        return conv


@pytest.mark.asyncio
async def test_draft_send_survives_opening_another_conversation(uow):
    transport = FakeTransport()
    backend = HeldCreateBackend(uow, "alice", "bob")
    session = DirectMessageSession(backend, transport, "alice")
    await session.start()

    await session.compose("bob")
    sending = asyncio.create_task(session.send("hello bob"))
    await backend.holding.wait()
    carol = await session.open("carol")
    backend.release.set()
    entry = await sending

    assert entry.status == DeliveryStatus.SENT
    assert entry.conversation_id != carol.id
    [stored] = uow.messages._messages
    assert stored.content == "hello bob"
    assert stored.receiver_alias == "bob"
    assert stored.conversation_id == entry.conversation_id

    assert session.reconciler.conversation_id == carol.id
    assert session.reconciler.messages == []
    assert session.bridge.conversation_id == carol.id
    assert f"dm.messages.{entry.conversation_id}" not in transport.channels
    assert session.peer_alias == "carol"
