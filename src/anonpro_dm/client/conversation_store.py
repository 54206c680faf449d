from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Iterable
from uuid import UUID

from anonpro_dm.application.exceptions import AppError
from anonpro_dm.client.models import ConversationView, order_conversations
from anonpro_dm.client.ports import DirectMessageBackend
from anonpro_dm.domain.entities.conversation import Conversation
from anonpro_dm.domain.entities.message import Message

logger = logging.getLogger(__name__)


class ConversationStore:
    """The viewer's conversation list with last message, unread count and local pins.

    Pins live only on this client. Per-conversation follow-up reads degrade to
    ``None`` / ``0`` on failure; a failed list read keeps the previous list.
    """

    def __init__(
        self,
        backend: DirectMessageBackend,
        me: str,
        *,
        pinned: Iterable[UUID] = (),
    ) -> None:
        self._backend = backend
        self._me = me
        self._pinned: set[UUID] = set(pinned)
        self._conversations: list[ConversationView] = []
        self._generation = 0

    @property
    def conversations(self) -> list[ConversationView]:
        return list(self._conversations)

    @property
    def pinned(self) -> frozenset[UUID]:
        return frozenset(self._pinned)

    @property
    def total_unread(self) -> int:
        return sum(v.unread_count for v in self._conversations)

    def get(self, conversation_id: UUID) -> ConversationView | None:
        for view in self._conversations:
            if view.id == conversation_id:
                return view
        return None

    def filter(self, query: str) -> list[ConversationView]:
        """Conversations whose peer alias contains ``query``, case-insensitively."""
        needle = query.strip().casefold()
        if not needle:
            return self.conversations
        return [v for v in self._conversations if needle in v.peer_alias.casefold()]

    async def load(self) -> list[ConversationView]:
        """Reload the list. A load overtaken by a newer one leaves the list alone."""
        self._generation += 1
        generation = self._generation
        try:
            conversations = await self._backend.list_conversations()
        except AppError as exc:
            logger.warning("Loading conversations for %s failed: %s", self._me, exc.detail)
            raise

        views = await asyncio.gather(*(self._hydrate(c) for c in conversations))
        if generation != self._generation:
            logger.debug("Dropping superseded conversation list for %s", self._me)
            return self.conversations
        self._conversations = order_conversations(list(views))
        return self.conversations

    async def _hydrate(self, conversation: Conversation) -> ConversationView:
        last_message, unread = await asyncio.gather(
            self._last_message(conversation.id),
            self._unread(conversation.id),
        )
        return ConversationView(
            conversation=conversation,
            peer_alias=conversation.peer_of(self._me),
            last_message=last_message,
            unread_count=unread,
            is_pinned=conversation.id in self._pinned,
        )

    async def _last_message(self, conversation_id: UUID) -> Message | None:
        try:
            return await self._backend.get_last_message(conversation_id)
        except AppError as exc:
            logger.warning("Last message of %s unavailable: %s", conversation_id, exc.detail)
            return None

    async def _unread(self, conversation_id: UUID) -> int:
        try:
            return await self._backend.count_unread(conversation_id)
        except AppError as exc:
            logger.warning("Unread count of %s unavailable: %s", conversation_id, exc.detail)
            return 0

    def toggle_pin(self, conversation_id: UUID) -> bool:
        """Flip the pin and reorder. Returns the new pinned state."""
        if conversation_id in self._pinned:
            self._pinned.discard(conversation_id)
        else:
            self._pinned.add(conversation_id)
        pinned = conversation_id in self._pinned
        self._conversations = order_conversations([
            dataclasses.replace(v, is_pinned=pinned) if v.id == conversation_id else v
            for v in self._conversations
        ])
        return pinned

    def mark_read(self, conversation_id: UUID) -> None:
        self._conversations = [
            dataclasses.replace(v, unread_count=0) if v.id == conversation_id else v
            for v in self._conversations
        ]

    async def delete(self, conversation_id: UUID) -> bool:
        """Delete the conversation and all of its messages for both participants."""
        try:
            await self._backend.delete_conversation(conversation_id)
        except AppError as exc:
            logger.warning("Deleting conversation %s failed: %s", conversation_id, exc.detail)
            return False
        self._pinned.discard(conversation_id)
        self._conversations = [v for v in self._conversations if v.id != conversation_id]
        return True
