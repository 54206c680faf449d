from __future__ import annotations

import logging
from typing import Iterable
from uuid import UUID

from anonpro_dm.application.exceptions import AppError, ValidationError
from anonpro_dm.application.ports.clock import Clock
from anonpro_dm.client.conversation_store import ConversationStore
from anonpro_dm.client.models import LocalMessage
from anonpro_dm.client.ports import DirectMessageBackend, RealtimeTransport
from anonpro_dm.client.realtime import OnTypingChanged, RealtimeBridge
from anonpro_dm.client.reconciler import MessageReconciler
from anonpro_dm.domain.entities.conversation import Conversation
from anonpro_dm.domain.value_objects.enums import MessageType

logger = logging.getLogger(__name__)


class DirectMessageSession:
    """One viewer's DM client: conversation list, open timeline and realtime wiring."""

    def __init__(
        self,
        backend: DirectMessageBackend,
        transport: RealtimeTransport,
        me: str,
        *,
        pinned: Iterable[UUID] = (),
        on_typing_changed: OnTypingChanged | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._backend = backend
        self._me = me
        self._peer_alias: str | None = None
        self.store = ConversationStore(backend, me, pinned=pinned)
        self.reconciler = MessageReconciler(backend, me, clock=clock)
        self.bridge = RealtimeBridge(
            transport,
            me,
            on_message_event=self.reconciler.handle_event,
            on_conversations_changed=self.refresh_conversations,
            on_typing_changed=on_typing_changed,
            clock=clock,
        )

    @property
    def peer_alias(self) -> str | None:
        return self._peer_alias

    async def start(self) -> None:
        await self.bridge.start()
        await self.refresh_conversations()

    async def refresh_conversations(self) -> None:
        try:
            await self.store.load()
        except AppError:
            logger.info("Keeping %d previously loaded conversations", len(self.store.conversations))

    async def open(self, peer_alias: str) -> Conversation:
        # in-flight draft sends must not bind to the timeline being replaced
        self.reconciler.reset(None)
        self._peer_alias = peer_alias
        conversation = await self._backend.get_or_create_conversation(peer_alias)
        self._peer_alias = conversation.peer_of(self._me)
        await self.bridge.switch(conversation.id)
        await self.reconciler.load(conversation.id)
        self.store.mark_read(conversation.id)
        return conversation

    async def compose(self, peer_alias: str) -> None:
        """Start a draft; the conversation is created with the first message."""
        self._peer_alias = peer_alias
        self.reconciler.reset(None)
        await self.bridge.switch(None)

    async def send(
        self,
        content: str,
        *,
        reply_to: UUID | None = None,
        message_type: MessageType = MessageType.TEXT,
    ) -> LocalMessage:
        if self._peer_alias is None:
            raise ValidationError("No conversation is open")
        entry = await self.reconciler.send(
            content, self._peer_alias, reply_to=reply_to, message_type=message_type,
        )
        conversation_id = entry.conversation_id
        if (
            conversation_id is not None
            and conversation_id == self.reconciler.conversation_id
            and conversation_id != self.bridge.conversation_id
        ):
            await self.bridge.switch(conversation_id)
        return entry

    async def typing(self) -> None:
        await self.bridge.notify_typing()

    async def close(self) -> None:
        await self.bridge.close()
        self.reconciler.reset(None)
        self._peer_alias = None
