from __future__ import annotations

from typing import Any, Callable, Coroutine, Protocol
from uuid import UUID

from anonpro_dm.domain.entities.conversation import Conversation
from anonpro_dm.domain.entities.message import Message
from anonpro_dm.domain.value_objects.enums import DeleteMode, MessageType

OnEventCallback = Callable[[str, dict[str, Any]], Coroutine[Any, Any, None]]


class DirectMessageBackend(Protocol):
    """The DM service as seen by one authenticated client."""

    async def get_or_create_conversation(self, peer_alias: str) -> Conversation: ...

    async def list_conversations(self) -> list[Conversation]: ...

    async def get_last_message(self, conversation_id: UUID) -> Message | None: ...

    async def count_unread(self, conversation_id: UUID) -> int: ...

    async def delete_conversation(self, conversation_id: UUID) -> None: ...

    async def list_messages(self, conversation_id: UUID) -> list[Message]: ...

    async def send_message(
        self,
        conversation_id: UUID,
        client_msg_id: UUID,
        content: str,
        *,
        message_type: MessageType = MessageType.TEXT,
        reply_to: UUID | None = None,
    ) -> Message: ...

    async def mark_conversation_read(self, conversation_id: UUID) -> int: ...

    async def mark_message_read(self, message_id: UUID) -> None: ...

    async def edit_message(self, message_id: UUID, content: str) -> Message: ...

    async def delete_message(self, message_id: UUID, mode: DeleteMode) -> None: ...

    async def clear_conversation(self, conversation_id: UUID) -> None: ...


class Subscription(Protocol):
    async def stop(self) -> None: ...


class RealtimeTransport(Protocol):
    async def subscribe(self, channel: str, callback: OnEventCallback) -> Subscription: ...

    async def broadcast(self, channel: str, event_type: str, payload: dict[str, Any]) -> None: ...
