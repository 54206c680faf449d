from __future__ import annotations

from contextlib import asynccontextmanager
from types import TracebackType
from typing import AsyncIterator, Self

from sqlalchemy.ext.asyncio import AsyncSession

from anonpro_dm.infrastructure.db.repositories.conversation import (
    ConversationReaderRepo,
    ConversationWriterRepo,
)
from anonpro_dm.infrastructure.db.repositories.message import (
    MessageReaderRepo,
    MessageWriterRepo,
)
from anonpro_dm.infrastructure.db.repositories.outbox import OutboxWriterRepo
from anonpro_dm.infrastructure.db.session import AsyncSessionLocal


class SqlAlchemyUoW:
    """Conversations, messages and outbox rows written in one transaction.

    Nothing is committed implicitly: services call ``commit`` once the
    state change and its outbox record are both staged. Leaving the
    context with an exception rolls back.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self.conversations = ConversationReaderRepo(session)
        self.conversations_w = ConversationWriterRepo(session)
        self.messages = MessageReaderRepo(session)
        self.messages_w = MessageWriterRepo(session)
        self.outbox = OutboxWriterRepo(session)

    async def flush(self) -> None:
        await self._session.flush()

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            await self.rollback()


@asynccontextmanager
async def uow_scope() -> AsyncIterator[SqlAlchemyUoW]:
    """Fresh session + UoW for one request, socket operation or worker tick."""
    async with AsyncSessionLocal() as session:
        async with SqlAlchemyUoW(session) as uow:
            yield uow
