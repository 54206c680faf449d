from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from anonpro_dm.domain.entities.conversation import Conversation, ordered_pair
from anonpro_dm.infrastructure.db.mappers import conversation as mapper
from anonpro_dm.infrastructure.db.models.conversation import ConversationModel
from anonpro_dm.infrastructure.db.repositories._cursor import decode_cursor


class ConversationReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, conversation_id: UUID) -> Conversation | None:
        result = await self._session.get(ConversationModel, conversation_id)
        return mapper.model_to_entity(result) if result else None

    async def get_by_pair(self, alias_a: str, alias_b: str) -> Conversation | None:
        user_one, user_two = ordered_pair(alias_a, alias_b)
        stmt = select(ConversationModel).where(
            ConversationModel.user_one == user_one,
            ConversationModel.user_two == user_two,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def list_for_alias(
        self,
        alias: str,
        *,
        cursor: str | None = None,
        limit: int = 50,
    ) -> list[Conversation]:
        stmt = (
            select(ConversationModel)
            .where(
                or_(
                    ConversationModel.user_one == alias,
                    ConversationModel.user_two == alias,
                )
            )
            .order_by(ConversationModel.updated_at.desc(), ConversationModel.id)
            .limit(limit)
        )
        if cursor:
            ts, cid = decode_cursor(cursor)
            stmt = stmt.where(
                (ConversationModel.updated_at < ts)
                | (
                    (ConversationModel.updated_at == ts)
                    & (ConversationModel.id > cid)
                )
            )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]


class ConversationWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_if_not_exists(
        self, conversation: Conversation
    ) -> tuple[Conversation, bool]:
        """Insert the pair idempotently. Returns (conversation, created_flag)."""
        stmt = (
            pg_insert(ConversationModel)
            .values(**mapper.entity_to_values(conversation))
            .on_conflict_do_nothing(constraint="uq_conversation_pair")
            .returning(ConversationModel)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is not None:
            return mapper.model_to_entity(row), True

        # Lost the race against the other participant: read the winner
        stmt = select(ConversationModel).where(
            ConversationModel.user_one == conversation.user_one,
            ConversationModel.user_two == conversation.user_two,
        )
        existing = (await self._session.execute(stmt)).scalar_one()
        return mapper.model_to_entity(existing), False

    async def touch_updated_at(self, conversation_id: UUID, ts: datetime) -> None:
        stmt = (
            update(ConversationModel)
            .where(ConversationModel.id == conversation_id)
            .values(updated_at=ts)
        )
        await self._session.execute(stmt)

    async def delete(self, conversation_id: UUID) -> None:
        await self._session.execute(
            delete(ConversationModel).where(ConversationModel.id == conversation_id)
        )
