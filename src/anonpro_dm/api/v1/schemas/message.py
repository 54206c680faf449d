from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from anonpro_dm.domain.value_objects.enums import MessageType


class SendMessageRequest(BaseModel):
    client_msg_id: UUID
    content: str = Field(min_length=1)
    message_type: MessageType = MessageType.TEXT
    reply_to: UUID | None = None


class EditMessageRequest(BaseModel):
    content: str = Field(min_length=1)


class MessageResponse(BaseModel):
    id: UUID
    conversation_id: UUID
    sender_alias: str
    receiver_alias: str
    content: str
    message_type: MessageType
    reply_to: UUID | None = None
    is_read: bool
    is_edited: bool = False
    edited_at: datetime | None = None
    deleted_for: list[str] = []
    client_msg_id: UUID
    created_at: datetime

    model_config = {"from_attributes": True}
