from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class StartConversationRequest(BaseModel):
    peer_alias: str = Field(min_length=1, max_length=64)


class ConversationResponse(BaseModel):
    id: UUID
    user_one: str
    user_two: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UnreadCountResponse(BaseModel):
    conversation_id: UUID
    unread_count: int


class ReadReceiptResponse(BaseModel):
    conversation_id: UUID
    marked_read: int
