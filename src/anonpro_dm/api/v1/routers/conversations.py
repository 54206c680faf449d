from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from anonpro_dm.api.deps import CurrentPrincipal, UoWDep
from anonpro_dm.api.v1.schemas.conversation import (
    ConversationResponse,
    ReadReceiptResponse,
    StartConversationRequest,
    UnreadCountResponse,
)
from anonpro_dm.infrastructure.db.repositories._cursor import encode_cursor
from anonpro_dm.services import conversation_service, message_service

router = APIRouter(prefix="/api/v1/dm/conversations", tags=["conversations"])

NEXT_CURSOR_HEADER = "X-Next-Cursor"


@router.post("", response_model=ConversationResponse)
async def start_conversation(
    body: StartConversationRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
    response: Response,
) -> ConversationResponse:
    conv, created = await conversation_service.get_or_create_conversation(
        principal, body.peer_alias, uow,
    )
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return ConversationResponse.model_validate(conv, from_attributes=True)


@router.get("", response_model=list[ConversationResponse])
async def list_conversations(
    principal: CurrentPrincipal,
    uow: UoWDep,
    response: Response,
    cursor: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
) -> list[ConversationResponse]:
    convs = await conversation_service.list_conversations(principal, cursor, limit, uow)
    if len(convs) == limit:
        response.headers[NEXT_CURSOR_HEADER] = encode_cursor(convs[-1].updated_at, convs[-1].id)
    return [ConversationResponse.model_validate(c, from_attributes=True) for c in convs]


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> ConversationResponse:
    conv = await conversation_service.get_conversation(conversation_id, principal, uow)
    return ConversationResponse.model_validate(conv, from_attributes=True)


@router.delete("/{conversation_id}", status_code=204)
async def delete_conversation(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> Response:
    await conversation_service.delete_conversation(conversation_id, principal, uow)
    return Response(status_code=204)


@router.get("/{conversation_id}/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> UnreadCountResponse:
    count = await conversation_service.count_unread(conversation_id, principal, uow)
    return UnreadCountResponse(conversation_id=conversation_id, unread_count=count)


@router.post("/{conversation_id}/read", response_model=ReadReceiptResponse)
async def mark_read(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> ReadReceiptResponse:
    count = await message_service.mark_conversation_read(conversation_id, principal, uow)
    return ReadReceiptResponse(conversation_id=conversation_id, marked_read=count)
