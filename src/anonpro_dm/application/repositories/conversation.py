from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from anonpro_dm.domain.entities.conversation import Conversation


class ConversationReader(Protocol):
    async def get_by_id(self, conversation_id: UUID) -> Conversation | None: ...

    async def get_by_pair(self, alias_a: str, alias_b: str) -> Conversation | None:
        """Find the conversation between two aliases, in either order."""
        ...

    async def list_for_alias(
        self, alias: str, *, cursor: str | None = None, limit: int = 50
    ) -> list[Conversation]:
        """Conversations the alias takes part in, most recently updated first."""
        ...


class ConversationWriter(Protocol):
    async def create_if_not_exists(
        self, conversation: Conversation
    ) -> tuple[Conversation, bool]:
        """Insert conversation. If the pair already exists → return (existing, False)."""
        ...

    async def touch_updated_at(self, conversation_id: UUID, ts: datetime) -> None: ...

    async def delete(self, conversation_id: UUID) -> None: ...
