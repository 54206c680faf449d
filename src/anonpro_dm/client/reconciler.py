"""Optimistic send + realtime echo reconciliation for one conversation timeline."""
from __future__ import annotations

import dataclasses
import logging
import uuid
from typing import Any, Callable, Iterable
from uuid import UUID

from anonpro_dm.application.exceptions import AppError, NotFoundError, ValidationError
from anonpro_dm.application.ports.clock import Clock, SystemClock
from anonpro_dm.client.codec import message_from_dict
from anonpro_dm.client.models import LocalMessage, group_by_day
from anonpro_dm.client.ports import DirectMessageBackend
from anonpro_dm.domain.entities.message import Message
from anonpro_dm.domain.value_objects.enums import (
    ChangeEvent,
    DeleteMode,
    DeliveryStatus,
    MessageType,
)

logger = logging.getLogger(__name__)


class MessageReconciler:
    """Keeps the viewer's timeline consistent across local writes, acks and echoes.

    Every outbound message is tagged with a fresh ``client_msg_id``. The HTTP
    response and the realtime echo are both matched on it, so whichever
    arrives first promotes the placeholder to ``sent`` and the other one only
    refreshes server fields. Nothing is ever appended twice.
    """

    def __init__(
        self,
        backend: DirectMessageBackend,
        me: str,
        *,
        conversation_id: UUID | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._backend = backend
        self._me = me
        self._conversation_id = conversation_id
        self._clock = clock or SystemClock()
        self._messages: list[LocalMessage] = []

    @property
    def me(self) -> str:
        return self._me

    @property
    def conversation_id(self) -> UUID | None:
        return self._conversation_id

    @property
    def messages(self) -> list[LocalMessage]:
        return list(self._messages)

    def get(self, client_msg_id: UUID) -> LocalMessage | None:
        for entry in self._messages:
            if entry.client_msg_id == client_msg_id:
                return entry
        return None

    def reset(self, conversation_id: UUID | None = None) -> None:
        self._conversation_id = conversation_id
        self._messages = []

    async def load(self, conversation_id: UUID) -> list[LocalMessage]:
        """Replace the timeline with the persisted history and mark it read.

        Entries sent or echoed while the history was in flight are kept after
        it unless the history already holds them.
        """
        self.reset(conversation_id)
        try:
            history = await self._backend.list_messages(conversation_id)
        except AppError as exc:
            logger.warning("Loading messages of %s failed: %s", conversation_id, exc.detail)
            return self.messages

        if self._conversation_id != conversation_id:
            # switched away while the history was in flight
            return self.messages

        persisted = [
            LocalMessage.from_message(m) for m in history if m.is_visible_to(self._me)
        ]
        known = {m.id for m in persisted}
        self._messages = persisted + [
            m for m in self._messages if m.id is None or m.id not in known
        ]
        try:
            await self._backend.mark_conversation_read(conversation_id)
        except AppError as exc:
            logger.warning("Marking %s read failed: %s", conversation_id, exc.detail)
        return self.messages

    async def send(
        self,
        content: str,
        recipient: str,
        *,
        reply_to: UUID | None = None,
        message_type: MessageType = MessageType.TEXT,
    ) -> LocalMessage:
        content = (content or "").strip()
        if not content:
            raise ValidationError("Message content must not be empty")

        placeholder = LocalMessage(
            client_msg_id=uuid.uuid4(),
            id=None,
            conversation_id=self._conversation_id,
            sender_alias=self._me,
            receiver_alias=recipient,
            content=content,
            message_type=message_type.value,
            reply_to=reply_to,
            is_read=False,
            is_edited=False,
            edited_at=None,
            deleted_for=(),
            created_at=self._clock.now(),
            status=DeliveryStatus.SENDING,
        )
        self._messages.append(placeholder)
        return await self._deliver(placeholder)

    async def retry(self, client_msg_id: UUID) -> LocalMessage:
        """Re-send a failed entry under the same correlation id."""
        entry = self.get(client_msg_id)
        if entry is None:
            raise NotFoundError(f"No local message {client_msg_id}")
        entry = self._replace(client_msg_id, lambda m: m.transition(DeliveryStatus.SENDING))
        return await self._deliver(entry)

    async def _deliver(self, entry: LocalMessage) -> LocalMessage:
        cmid = entry.client_msg_id
        conversation_id = entry.conversation_id
        try:
            if conversation_id is None:
                conversation = await self._backend.get_or_create_conversation(
                    entry.receiver_alias,
                )
                conversation_id = conversation.id
                self._adopt(cmid, conversation_id)
            saved = await self._backend.send_message(
                conversation_id,
                cmid,
                entry.content,
                message_type=MessageType(entry.message_type),
                reply_to=entry.reply_to,
            )
        except AppError as exc:
            logger.warning("Sending %s failed: %s", cmid, exc.detail)
            return self._fail(cmid) or dataclasses.replace(entry, status=DeliveryStatus.ERROR)
        return self._confirm(saved) or LocalMessage.from_message(saved)

    def _adopt(self, client_msg_id: UUID, conversation_id: UUID) -> None:
        """Bind the draft timeline to the conversation its first send created."""
        if self._conversation_id is not None or self.get(client_msg_id) is None:
            # the viewer left the draft while the conversation was being created
            return
        self._conversation_id = conversation_id
        self._messages = [
            dataclasses.replace(m, conversation_id=conversation_id) if m.conversation_id is None else m
            for m in self._messages
        ]

    def _fail(self, client_msg_id: UUID) -> LocalMessage | None:
        current = self.get(client_msg_id)
        if current is None or current.status != DeliveryStatus.SENDING:
            # already confirmed by the echo, or removed meanwhile
            return current
        return self._replace(client_msg_id, lambda m: m.transition(DeliveryStatus.ERROR))

    def _confirm(self, saved: Message) -> LocalMessage | None:
        current = self._match(saved)
        if current is None:
            return None

        def promote(m: LocalMessage) -> LocalMessage:
            merged = m.with_server_state(saved)
            if merged.status != DeliveryStatus.SENT:
                merged = merged.transition(DeliveryStatus.SENT)
            return merged

        return self._replace(current.client_msg_id, promote)

    def apply_insert(self, msg: Message) -> LocalMessage | None:
        """Merge an inserted row. Returns the resulting entry, or None if ignored."""
        if msg.conversation_id != self._conversation_id or not msg.is_visible_to(self._me):
            return None
        confirmed = self._confirm(msg)
        if confirmed is not None:
            return confirmed
        entry = LocalMessage.from_message(msg)
        self._messages.append(entry)
        return entry

    def apply_update(self, msg: Message) -> LocalMessage | None:
        current = self._match(msg)
        if current is None:
            return None
        if not msg.is_visible_to(self._me):
            self._remove(lambda m: m.client_msg_id == current.client_msg_id)
            return None
        return self._replace(current.client_msg_id, lambda m: m.with_server_state(msg))

    def apply_delete(self, message_id: UUID) -> None:
        self._remove(lambda m: m.id == message_id)

    def apply_read(self, message_ids: Iterable[UUID]) -> None:
        ids = set(message_ids)
        self._messages = [
            dataclasses.replace(m, is_read=True) if m.id in ids else m for m in self._messages
        ]

    def apply_cleared(self) -> None:
        self._messages = []

    async def handle_event(self, event_type: str, data: dict[str, Any]) -> None:
        """Apply one change-feed event addressed to the active conversation."""
        if self._conversation_id is None or str(data.get("conversation_id")) != str(self._conversation_id):
            return

        if event_type == ChangeEvent.MESSAGE_INSERTED:
            msg = message_from_dict(data["message"])
            entry = self.apply_insert(msg)
            if entry is not None and msg.receiver_alias == self._me and not msg.is_read:
                await self._acknowledge(msg)
        elif event_type == ChangeEvent.MESSAGE_UPDATED:
            self.apply_update(message_from_dict(data["message"]))
        elif event_type == ChangeEvent.MESSAGE_DELETED:
            self.apply_delete(UUID(data["message_id"]))
        elif event_type == ChangeEvent.MESSAGES_READ:
            self.apply_read(UUID(i) for i in data.get("message_ids", []))
        elif event_type == ChangeEvent.CONVERSATION_CLEARED:
            self.apply_cleared()
        else:
            logger.debug("Ignoring %s on conversation %s", event_type, self._conversation_id)

    async def _acknowledge(self, msg: Message) -> None:
        try:
            await self._backend.mark_message_read(msg.id)
        except AppError as exc:
            logger.warning("Read receipt for %s failed: %s", msg.id, exc.detail)
            return
        self.apply_read([msg.id])

    async def edit(self, message_id: UUID, content: str) -> LocalMessage | None:
        content = (content or "").strip()
        if not content:
            raise ValidationError("Message content must not be empty")
        try:
            saved = await self._backend.edit_message(message_id, content)
        except AppError as exc:
            logger.warning("Editing %s failed: %s", message_id, exc.detail)
            return None
        return self.apply_update(saved)

    async def delete(self, message_id: UUID, mode: DeleteMode = DeleteMode.FOR_ME) -> bool:
        try:
            await self._backend.delete_message(message_id, mode)
        except AppError as exc:
            logger.warning("Deleting %s (%s) failed: %s", message_id, mode, exc.detail)
            return False
        # hidden locally in both modes; the peer only loses it for_everyone
        self.apply_delete(message_id)
        return True

    async def clear(self) -> bool:
        if self._conversation_id is None:
            return False
        try:
            await self._backend.clear_conversation(self._conversation_id)
        except AppError as exc:
            logger.warning("Clearing %s failed: %s", self._conversation_id, exc.detail)
            return False
        self.apply_cleared()
        return True

    def add_reaction(self, message_id: UUID, reaction: str) -> LocalMessage | None:
        """Attach a reaction to a message on this client only. Repeats are ignored."""
        reaction = reaction.strip()
        if not reaction:
            raise ValidationError("Reaction must not be empty")
        for entry in self._messages:
            if message_id not in (entry.id, entry.client_msg_id):
                continue
            if reaction in entry.reactions:
                return entry
            return self._replace(
                entry.client_msg_id,
                lambda m: dataclasses.replace(m, reactions=m.reactions + (reaction,)),
            )
        return None

    def search(self, query: str) -> list[LocalMessage]:
        needle = query.strip().casefold()
        if not needle:
            return self.messages
        return [m for m in self._messages if needle in m.content.casefold()]

    def grouped(self, query: str = "") -> list[tuple[str, list[LocalMessage]]]:
        """Matching messages split into "Today" / "Yesterday" / dated sections."""
        return group_by_day(self.search(query), self._clock.now())

    def _match(self, msg: Message) -> LocalMessage | None:
        for entry in self._messages:
            if entry.id is not None and entry.id == msg.id:
                return entry
            if entry.client_msg_id == msg.client_msg_id and entry.sender_alias == msg.sender_alias:
                return entry
        return None

    def _replace(
        self, client_msg_id: UUID, fn: Callable[[LocalMessage], LocalMessage],
    ) -> LocalMessage:
        for i, entry in enumerate(self._messages):
            if entry.client_msg_id == client_msg_id:
                self._messages[i] = fn(entry)
                return self._messages[i]
        raise NotFoundError(f"No local message {client_msg_id}")

    def _remove(self, predicate: Callable[[LocalMessage], bool]) -> None:
        self._messages = [m for m in self._messages if not predicate(m)]
