"""DirectMessageBackend implemented against the service's HTTP API."""
from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar
from uuid import UUID

import httpx

from anonpro_dm.application.exceptions import BackendError
from anonpro_dm.client.codec import conversation_from_dict, message_from_dict
from anonpro_dm.domain.entities.conversation import Conversation
from anonpro_dm.domain.entities.message import Message
from anonpro_dm.domain.value_objects.enums import DeleteMode, MessageType

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1/dm"

T = TypeVar("T")


class HttpDirectMessageBackend:
    """Thin async client; every failure surfaces as ``BackendError``."""

    def __init__(self, client: httpx.AsyncClient, token: str) -> None:
        self._client = client
        self._headers = {"Authorization": f"Bearer {token}"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(
                method, f"{API_PREFIX}{path}", headers=self._headers, **kwargs,
            )
        except httpx.HTTPError as exc:
            raise BackendError(f"{method} {path}: {exc}") from exc

        if response.is_error:
            raise BackendError(_error_detail(response), status_code=response.status_code)
        return response

    async def get_or_create_conversation(self, peer_alias: str) -> Conversation:
        response = await self._request("POST", "/conversations", json={"peer_alias": peer_alias})
        return _decode(response, conversation_from_dict)

    async def list_conversations(self) -> list[Conversation]:
        conversations: list[Conversation] = []
        params: dict[str, Any] = {}
        while True:
            response = await self._request("GET", "/conversations", params=params)
            conversations.extend(
                _decode(response, lambda body: [conversation_from_dict(c) for c in body]),
            )
            cursor = response.headers.get("X-Next-Cursor")
            if not cursor:
                return conversations
            params = {"cursor": cursor}

    async def get_last_message(self, conversation_id: UUID) -> Message | None:
        response = await self._request("GET", f"/conversations/{conversation_id}/messages/last")
        return _decode(response, lambda body: message_from_dict(body) if body else None)

    async def count_unread(self, conversation_id: UUID) -> int:
        response = await self._request("GET", f"/conversations/{conversation_id}/unread-count")
        return _decode(response, lambda body: int(body["unread_count"]))

    async def delete_conversation(self, conversation_id: UUID) -> None:
        await self._request("DELETE", f"/conversations/{conversation_id}")

    async def list_messages(self, conversation_id: UUID) -> list[Message]:
        messages: list[Message] = []
        params: dict[str, Any] = {}
        while True:
            response = await self._request(
                "GET", f"/conversations/{conversation_id}/messages", params=params,
            )
            messages.extend(
                _decode(response, lambda body: [message_from_dict(m) for m in body]),
            )
            cursor = response.headers.get("X-Next-Cursor")
            if not cursor:
                return messages
            params = {"cursor": cursor}

    async def send_message(
        self,
        conversation_id: UUID,
        client_msg_id: UUID,
        content: str,
        *,
        message_type: MessageType = MessageType.TEXT,
        reply_to: UUID | None = None,
    ) -> Message:
        body = {
            "client_msg_id": str(client_msg_id),
            "content": content,
            "message_type": message_type.value,
            "reply_to": str(reply_to) if reply_to else None,
        }
        response = await self._request(
            "POST", f"/conversations/{conversation_id}/messages", json=body,
        )
        return _decode(response, message_from_dict)

    async def mark_conversation_read(self, conversation_id: UUID) -> int:
        response = await self._request("POST", f"/conversations/{conversation_id}/read")
        return _decode(response, lambda body: int(body["marked_read"]))

    async def mark_message_read(self, message_id: UUID) -> None:
        await self._request("POST", f"/messages/{message_id}/read")

    async def edit_message(self, message_id: UUID, content: str) -> Message:
        response = await self._request("PATCH", f"/messages/{message_id}", json={"content": content})
        return _decode(response, message_from_dict)

    async def delete_message(self, message_id: UUID, mode: DeleteMode) -> None:
        await self._request("DELETE", f"/messages/{message_id}", params={"mode": mode.value})

    async def clear_conversation(self, conversation_id: UUID) -> None:
        await self._request("DELETE", f"/conversations/{conversation_id}/messages")


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)
    return str(body)


def _decode(response: httpx.Response, parse: Callable[[Any], T]) -> T:
    """Parse a success body; malformed JSON or payloads become ``BackendError``."""
    try:
        return parse(response.json())
    except (ValueError, KeyError, TypeError) as exc:
        # pydantic.ValidationError and JSONDecodeError are both ValueErrors
        raise BackendError(
            f"Malformed response from {response.request.url.path}: {exc}",
            status_code=response.status_code,
        ) from exc
