from __future__ import annotations

import asyncio
import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from anonpro_dm.api.deps import get_verifier
from anonpro_dm.application.dto.message import SendMessageDTO
from anonpro_dm.application.dto.principal import Principal
from anonpro_dm.application.exceptions import AppError
from anonpro_dm.config import settings
from anonpro_dm.domain.value_objects.enums import ChangeEvent, MessageType
from anonpro_dm.infrastructure.bus.channels import typing_channel
from anonpro_dm.infrastructure.bus.redis_pubsub import RedisPubSubPublisher
from anonpro_dm.infrastructure.db.uow import uow_scope
from anonpro_dm.infrastructure.ws.manager import ConnectionManager
from anonpro_dm.infrastructure.ws.protocol import WsInbound, WsOutbound
from anonpro_dm.services import conversation_service, message_service
from anonpro_dm.services._payloads import message_payload

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])

manager = ConnectionManager()


def get_manager() -> ConnectionManager:
    return manager


async def _send(ws: WebSocket, event_type: str, data: dict[str, Any]) -> None:
    await ws.send_text(WsOutbound(type=str(event_type), data=data).model_dump_json())


async def _authenticate(token: str) -> Principal | None:
    try:
        return await get_verifier().verify(token)
    except Exception:
        logger.debug("WS auth failed", exc_info=True)
        return None


@router.websocket("/ws/dm")
async def ws_dm(
    websocket: WebSocket,
    token: str = Query(...),
) -> None:
    principal = await _authenticate(token)
    if principal is None:
        await websocket.close(code=4001, reason="Authentication failed")
        return

    pkey = principal.principal_key
    await manager.connect(websocket, pkey)

    heartbeat_task = asyncio.create_task(
        _heartbeat(websocket), name=f"ws-heartbeat-{pkey}",
    )
    try:
        await _read_loop(websocket, principal)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for %s", pkey)
    finally:
        heartbeat_task.cancel()
        manager.disconnect(websocket, pkey)


async def _heartbeat(ws: WebSocket) -> None:
    try:
        while True:
            await asyncio.sleep(settings.WS_HEARTBEAT_SECONDS)
            await _send(ws, "pong", {})
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.debug("WS heartbeat stopped", exc_info=True)


async def _read_loop(ws: WebSocket, principal: Principal) -> None:
    while True:
        raw = await ws.receive_text()
        try:
            msg = WsInbound.model_validate_json(raw)
        except Exception:
            await _send(ws, "error", {"code": "invalid_payload"})
            continue

        if msg.type == "ping":
            await _send(ws, "pong", {})
        elif msg.type == "subscribe":
            await _handle_subscribe(ws, principal, msg.data)
        elif msg.type == "unsubscribe":
            conversation_id = _parse_uuid(msg.data.get("conversation_id"))
            if conversation_id:
                manager.unsubscribe(principal.principal_key, conversation_id)
        elif msg.type == "typing":
            await _handle_typing(ws, principal, msg.data)
        elif msg.type == "message.send":
            await _handle_send(ws, principal, msg.data)
        elif msg.type == "mark_read":
            await _handle_mark_read(principal, msg.data)
        else:
            await _send(ws, "error", {"code": "unknown_type", "type": msg.type})


def _parse_uuid(value: Any) -> UUID | None:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


async def _handle_subscribe(ws: WebSocket, principal: Principal, data: dict) -> None:
    conversation_id = _parse_uuid(data.get("conversation_id"))
    if conversation_id is None:
        await _send(ws, "error", {"code": "invalid_data", "detail": "conversation_id"})
        return
    try:
        async with uow_scope() as uow:
            await conversation_service.get_conversation(conversation_id, principal, uow)
    except AppError as exc:
        await _send(ws, "error", {"code": "subscribe_denied", "detail": exc.detail})
        return
    manager.subscribe(principal.principal_key, conversation_id)


async def _handle_typing(ws: WebSocket, principal: Principal, data: dict) -> None:
    """Relay an ephemeral typing signal; never persisted."""
    conversation_id = _parse_uuid(data.get("conversation_id"))
    if conversation_id is None or principal.principal_key not in manager.subscribers(conversation_id):
        return
    payload = {"conversation_id": str(conversation_id), "alias": principal.alias}
    redis = getattr(ws.app.state, "redis", None)
    if redis is None:
        await manager.broadcast_to_conversation(conversation_id, ChangeEvent.TYPING, payload)
        return
    await RedisPubSubPublisher(redis).publish(
        typing_channel(conversation_id), ChangeEvent.TYPING, payload,
    )


async def _handle_send(ws: WebSocket, principal: Principal, data: dict) -> None:
    try:
        dto = SendMessageDTO(
            conversation_id=UUID(data["conversation_id"]),
            client_msg_id=UUID(data["client_msg_id"]),
            content=data.get("content") or "",
            message_type=MessageType(data.get("message_type", "text")),
            reply_to=UUID(data["reply_to"]) if data.get("reply_to") else None,
        )
    except (KeyError, ValueError) as exc:
        await _send(ws, "error", {"code": "invalid_data", "detail": str(exc)})
        return

    try:
        async with uow_scope() as uow:
            msg, _created = await message_service.send_message(dto, principal, uow)
    except AppError as exc:
        await _send(
            ws,
            "error",
            {"code": "send_failed", "client_msg_id": str(dto.client_msg_id), "detail": exc.detail},
        )
        return

    # Fan-out to the conversation happens through the outbox; the sender gets a direct ack.
    await _send(
        ws,
        "message.ack",
        {"client_msg_id": str(dto.client_msg_id), "message": message_payload(msg)},
    )


async def _handle_mark_read(principal: Principal, data: dict) -> None:
    conversation_id = _parse_uuid(data.get("conversation_id"))
    message_id = _parse_uuid(data.get("message_id"))
    try:
        async with uow_scope() as uow:
            if message_id is not None:
                await message_service.mark_message_read(message_id, principal, uow)
            elif conversation_id is not None:
                await message_service.mark_conversation_read(conversation_id, principal, uow)
    except AppError:
        logger.warning("mark_read rejected for %s", principal.alias, exc_info=True)
    except Exception:
        logger.exception("mark_read failed")
