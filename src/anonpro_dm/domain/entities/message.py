from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Message:
    id: UUID
    conversation_id: UUID
    sender_alias: str
    receiver_alias: str
    content: str
    message_type: str
    reply_to: UUID | None
    is_read: bool
    is_edited: bool
    edited_at: datetime | None
    deleted_for: tuple[str, ...]
    client_msg_id: UUID
    created_at: datetime

    def is_visible_to(self, alias: str) -> bool:
        return alias not in self.deleted_for
