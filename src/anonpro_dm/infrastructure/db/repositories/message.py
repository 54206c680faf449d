from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, func, not_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from anonpro_dm.domain.entities.message import Message
from anonpro_dm.infrastructure.db.mappers import message as mapper
from anonpro_dm.infrastructure.db.models.message import MessageModel
from anonpro_dm.infrastructure.db.repositories._cursor import decode_cursor


def _visible_to(alias: str):
    return not_(MessageModel.deleted_for.contains([alias]))


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, message_id: UUID) -> Message | None:
        model = await self._session.get(MessageModel, message_id)
        return mapper.model_to_entity(model) if model else None

    async def list_messages(
        self,
        conversation_id: UUID,
        viewer_alias: str,
        *,
        cursor: str | None = None,
        limit: int = 100,
    ) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(
                MessageModel.conversation_id == conversation_id,
                _visible_to(viewer_alias),
            )
            .order_by(MessageModel.created_at.asc(), MessageModel.id.asc())
            .limit(limit)
        )
        if cursor:
            ts, mid = decode_cursor(cursor)
            stmt = stmt.where(
                (MessageModel.created_at > ts)
                | ((MessageModel.created_at == ts) & (MessageModel.id > mid))
            )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def get_last_message(
        self, conversation_id: UUID, viewer_alias: str
    ) -> Message | None:
        stmt = (
            select(MessageModel)
            .where(
                MessageModel.conversation_id == conversation_id,
                _visible_to(viewer_alias),
            )
            .order_by(MessageModel.created_at.desc(), MessageModel.id.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def count_unread(self, conversation_id: UUID, receiver_alias: str) -> int:
        stmt = select(func.count(MessageModel.id)).where(
            MessageModel.conversation_id == conversation_id,
            MessageModel.receiver_alias == receiver_alias,
            MessageModel.is_read.is_(False),
            _visible_to(receiver_alias),
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        """Insert message idempotently. Returns (message, created_flag)."""
        stmt = (
            pg_insert(MessageModel)
            .values(**mapper.entity_to_values(message))
            .on_conflict_do_nothing(constraint="uq_message_idempotency")
            .returning(MessageModel)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()

        if row is not None:
            return mapper.model_to_entity(row), True

        # Conflict: this client_msg_id was already persisted
        existing = await self.get_by_client_msg_id(
            message.conversation_id,
            message.sender_alias,
            message.client_msg_id,
        )
        assert existing is not None
        return existing, False

    async def get_by_client_msg_id(
        self,
        conversation_id: UUID,
        sender_alias: str,
        client_msg_id: UUID,
    ) -> Message | None:
        stmt = select(MessageModel).where(
            MessageModel.conversation_id == conversation_id,
            MessageModel.sender_alias == sender_alias,
            MessageModel.client_msg_id == client_msg_id,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def _update_returning(self, message_id: UUID, **values) -> Message | None:
        stmt = (
            update(MessageModel)
            .where(MessageModel.id == message_id)
            .values(**values)
            .returning(MessageModel)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def update_content(
        self, message_id: UUID, content: str, edited_at: datetime
    ) -> Message | None:
        return await self._update_returning(
            message_id, content=content, is_edited=True, edited_at=edited_at,
        )

    async def mark_read(self, message_id: UUID) -> Message | None:
        return await self._update_returning(message_id, is_read=True)

    async def mark_conversation_read(
        self, conversation_id: UUID, receiver_alias: str
    ) -> list[UUID]:
        stmt = (
            update(MessageModel)
            .where(
                MessageModel.conversation_id == conversation_id,
                MessageModel.receiver_alias == receiver_alias,
                MessageModel.is_read.is_(False),
            )
            .values(is_read=True)
            .returning(MessageModel.id)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def add_deleted_for(self, message_id: UUID, alias: str) -> Message | None:
        stmt = (
            update(MessageModel)
            .where(MessageModel.id == message_id, _visible_to(alias))
            .values(deleted_for=func.array_append(MessageModel.deleted_for, alias))
            .returning(MessageModel)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            model = await self._session.get(MessageModel, message_id)
        return mapper.model_to_entity(model) if model else None

    async def delete(self, message_id: UUID) -> None:
        await self._session.execute(delete(MessageModel).where(MessageModel.id == message_id))

    async def delete_for_conversation(self, conversation_id: UUID) -> int:
        result = await self._session.execute(
            delete(MessageModel).where(MessageModel.conversation_id == conversation_id)
        )
        return result.rowcount or 0
