from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from anonpro_dm.domain.entities.message import Message


class MessageReader(Protocol):
    async def get_by_id(self, message_id: UUID) -> Message | None: ...

    async def list_messages(
        self,
        conversation_id: UUID,
        viewer_alias: str,
        *,
        cursor: str | None = None,
        limit: int = 100,
    ) -> list[Message]:
        """Messages not soft-deleted for the viewer, oldest first."""
        ...

    async def get_last_message(
        self, conversation_id: UUID, viewer_alias: str
    ) -> Message | None: ...

    async def count_unread(self, conversation_id: UUID, receiver_alias: str) -> int: ...


class MessageWriter(Protocol):
    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        """Insert message. Return (message, created). If conflict on client_msg_id → return existing."""
        ...

    async def get_by_client_msg_id(
        self,
        conversation_id: UUID,
        sender_alias: str,
        client_msg_id: UUID,
    ) -> Message | None: ...

    async def update_content(
        self, message_id: UUID, content: str, edited_at: datetime
    ) -> Message | None: ...

    async def mark_read(self, message_id: UUID) -> Message | None: ...

    async def mark_conversation_read(
        self, conversation_id: UUID, receiver_alias: str
    ) -> list[UUID]:
        """Flag every unread message addressed to the receiver. Return affected ids."""
        ...

    async def add_deleted_for(self, message_id: UUID, alias: str) -> Message | None: ...

    async def delete(self, message_id: UUID) -> None: ...

    async def delete_for_conversation(self, conversation_id: UUID) -> int: ...
