"""In-process WebSocket connection manager."""
from __future__ import annotations

import logging
from typing import Any, Iterable
from uuid import UUID

from fastapi import WebSocket

from anonpro_dm.infrastructure.ws.protocol import WsOutbound

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks WebSocket connections per principal and their conversation subscriptions."""

    def __init__(self) -> None:
        self._connections: dict[str, set[WebSocket]] = {}
        self._subscriptions: dict[UUID, set[str]] = {}

    async def connect(self, ws: WebSocket, principal_key: str) -> None:
        await ws.accept()
        self._connections.setdefault(principal_key, set()).add(ws)
        logger.debug("WS connected: %s (principals=%d)", principal_key, len(self._connections))

    def disconnect(self, ws: WebSocket, principal_key: str) -> None:
        conns = self._connections.get(principal_key)
        if conns:
            conns.discard(ws)
            if not conns:
                del self._connections[principal_key]
        if principal_key not in self._connections:
            for conversation_id in list(self._subscriptions):
                self.unsubscribe(principal_key, conversation_id)
        logger.debug("WS disconnected: %s", principal_key)

    def subscribe(self, principal_key: str, conversation_id: UUID) -> None:
        self._subscriptions.setdefault(conversation_id, set()).add(principal_key)

    def unsubscribe(self, principal_key: str, conversation_id: UUID) -> None:
        subs = self._subscriptions.get(conversation_id)
        if subs is None:
            return
        subs.discard(principal_key)
        if not subs:
            del self._subscriptions[conversation_id]

    def subscribers(self, conversation_id: UUID) -> frozenset[str]:
        return frozenset(self._subscriptions.get(conversation_id, ()))

    async def broadcast_to_conversation(
        self,
        conversation_id: UUID,
        event_type: str,
        data: dict[str, Any],
    ) -> None:
        """Send a WS message to all principals subscribed to a conversation."""
        await self._send(self.subscribers(conversation_id), event_type, data)

    async def send_to_principal(
        self,
        principal_key: str,
        event_type: str,
        data: dict[str, Any],
    ) -> None:
        """Send a WS message to every connection of one principal."""
        await self._send((principal_key,), event_type, data)

    async def _send(
        self,
        principal_keys: Iterable[str],
        event_type: str,
        data: dict[str, Any],
    ) -> None:
        raw = WsOutbound(type=str(event_type), data=data).model_dump_json()
        dead: list[tuple[str, WebSocket]] = []
        for pkey in principal_keys:
            for ws in list(self._connections.get(pkey, ())):
                try:
                    await ws.send_text(raw)
                except Exception:
                    dead.append((pkey, ws))
        for pkey, ws in dead:
            self.disconnect(ws, pkey)
