from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Index, String, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from anonpro_dm.infrastructure.db.base import Base


class ConversationModel(Base):
    __tablename__ = "conversations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    # Stored ordered: user_one < user_two
    user_one: Mapped[str] = mapped_column(String(64), nullable=False)
    user_two: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )

    messages = relationship(
        "MessageModel",
        back_populates="conversation",
        lazy="noload",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("user_one", "user_two", name="uq_conversation_pair"),
        CheckConstraint("user_one < user_two", name="ordered_pair"),
        Index("ix_conversations_user_one_updated", "user_one", updated_at.desc()),
        Index("ix_conversations_user_two_updated", "user_two", updated_at.desc()),
    )
