from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from anonpro_dm.domain.value_objects.enums import MessageType


@dataclass(frozen=True, slots=True)
class SendMessageDTO:
    conversation_id: UUID
    client_msg_id: UUID
    content: str
    message_type: MessageType = MessageType.TEXT
    reply_to: UUID | None = None
