from __future__ import annotations

from typing import Protocol

from anonpro_dm.application.repositories.conversation import (
    ConversationReader,
    ConversationWriter,
)
from anonpro_dm.application.repositories.message import MessageReader, MessageWriter
from anonpro_dm.application.repositories.outbox import OutboxWriter


class UnitOfWork(Protocol):
    conversations: ConversationReader
    conversations_w: ConversationWriter
    messages: MessageReader
    messages_w: MessageWriter
    outbox: OutboxWriter

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...
