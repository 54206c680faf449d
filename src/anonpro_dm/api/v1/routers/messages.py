from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query, Response

from anonpro_dm.api.deps import CurrentPrincipal, UoWDep
from anonpro_dm.api.v1.routers.conversations import NEXT_CURSOR_HEADER
from anonpro_dm.api.v1.schemas.message import (
    EditMessageRequest,
    MessageResponse,
    SendMessageRequest,
)
from anonpro_dm.application.dto.message import SendMessageDTO
from anonpro_dm.domain.value_objects.enums import DeleteMode
from anonpro_dm.infrastructure.db.repositories._cursor import encode_cursor
from anonpro_dm.services import conversation_service, message_service

router = APIRouter(prefix="/api/v1/dm", tags=["messages"])


@router.get("/conversations/{conversation_id}/messages", response_model=list[MessageResponse])
async def list_messages(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
    response: Response,
    cursor: str | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
) -> list[MessageResponse]:
    messages = await message_service.list_messages(
        conversation_id, principal, cursor, limit, uow,
    )
    if len(messages) == limit:
        response.headers[NEXT_CURSOR_HEADER] = encode_cursor(
            messages[-1].created_at, messages[-1].id,
        )
    return [MessageResponse.model_validate(m, from_attributes=True) for m in messages]


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=201,
)
async def send_message(
    conversation_id: UUID,
    body: SendMessageRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> MessageResponse:
    msg, _created = await message_service.send_message(
        SendMessageDTO(
            conversation_id=conversation_id,
            client_msg_id=body.client_msg_id,
            content=body.content,
            message_type=body.message_type,
            reply_to=body.reply_to,
        ),
        principal,
        uow,
    )
    return MessageResponse.model_validate(msg, from_attributes=True)


@router.get(
    "/conversations/{conversation_id}/messages/last",
    response_model=MessageResponse | None,
)
async def last_message(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> MessageResponse | None:
    msg = await conversation_service.get_last_message(conversation_id, principal, uow)
    return MessageResponse.model_validate(msg, from_attributes=True) if msg else None


@router.delete("/conversations/{conversation_id}/messages", status_code=204)
async def clear_conversation(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> Response:
    await message_service.clear_conversation(conversation_id, principal, uow)
    return Response(status_code=204)


@router.post("/messages/{message_id}/read", response_model=MessageResponse)
async def mark_message_read(
    message_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> MessageResponse:
    msg = await message_service.mark_message_read(message_id, principal, uow)
    return MessageResponse.model_validate(msg, from_attributes=True)


@router.patch("/messages/{message_id}", response_model=MessageResponse)
async def edit_message(
    message_id: UUID,
    body: EditMessageRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> MessageResponse:
    msg = await message_service.edit_message(message_id, principal, body.content, uow)
    return MessageResponse.model_validate(msg, from_attributes=True)


@router.delete("/messages/{message_id}", status_code=204)
async def delete_message(
    message_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
    mode: DeleteMode = Query(DeleteMode.FOR_EVERYONE),
) -> Response:
    await message_service.delete_message(message_id, principal, mode, uow)
    return Response(status_code=204)
