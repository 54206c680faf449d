from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine
from uuid import UUID

from anonpro_dm.application.ports.clock import Clock, SystemClock
from anonpro_dm.client.ports import OnEventCallback, RealtimeTransport, Subscription
from anonpro_dm.domain.value_objects.enums import ChangeEvent
from anonpro_dm.infrastructure.bus.channels import (
    CONVERSATIONS_CHANNEL,
    messages_channel,
    typing_channel,
)

logger = logging.getLogger(__name__)

OnTypingChanged = Callable[[bool], None]
OnConversationsChanged = Callable[[], Coroutine[Any, Any, None]]

TYPING_CLEAR_AFTER = 3.0
TYPING_DEBOUNCE = 2.0


class RealtimeBridge:
    """Per-conversation change-feed and typing subscriptions for one viewer.

    Message events are forwarded to ``on_message_event``. A peer typing signal
    raises ``peer_typing`` until ``typing_clear_after`` seconds pass without a
    renewal. Outgoing typing is debounced: the first keystroke is broadcast,
    later ones only after ``typing_debounce`` seconds of silence.
    """

    def __init__(
        self,
        transport: RealtimeTransport,
        me: str,
        *,
        on_message_event: OnEventCallback,
        on_conversations_changed: OnConversationsChanged | None = None,
        on_typing_changed: OnTypingChanged | None = None,
        typing_clear_after: float = TYPING_CLEAR_AFTER,
        typing_debounce: float = TYPING_DEBOUNCE,
        clock: Clock | None = None,
    ) -> None:
        self._transport = transport
        self._me = me
        self._on_message_event = on_message_event
        self._on_conversations_changed = on_conversations_changed
        self._on_typing_changed = on_typing_changed
        self._typing_clear_after = typing_clear_after
        self._typing_debounce = typing_debounce
        self._clock = clock or SystemClock()

        self._conversation_id: UUID | None = None
        self._conversation_subs: list[Subscription] = []
        self._list_sub: Subscription | None = None
        self._peer_typing = False
        self._typing_timer: asyncio.TimerHandle | None = None
        self._last_keystroke: float | None = None

    @property
    def conversation_id(self) -> UUID | None:
        return self._conversation_id

    @property
    def peer_typing(self) -> bool:
        return self._peer_typing

    async def start(self) -> None:
        if self._list_sub is None:
            self._list_sub = await self._transport.subscribe(
                CONVERSATIONS_CHANNEL, self._on_conversation_event,
            )

    async def switch(self, conversation_id: UUID | None) -> None:
        """Move the per-conversation subscriptions to another conversation (or none)."""
        await self._teardown_conversation()
        self._conversation_id = conversation_id
        if conversation_id is None:
            return
        self._conversation_subs = [
            await self._transport.subscribe(messages_channel(conversation_id), self._on_message),
            await self._transport.subscribe(typing_channel(conversation_id), self._on_typing),
        ]
        logger.debug("%s subscribed to conversation %s", self._me, conversation_id)

    async def notify_typing(self) -> bool:
        """Report a local keystroke. Returns True if a typing signal was broadcast."""
        if self._conversation_id is None:
            return False
        now = self._clock.monotonic()
        quiet = (
            self._last_keystroke is None
            or now - self._last_keystroke >= self._typing_debounce
        )
        self._last_keystroke = now
        if not quiet:
            return False
        await self._transport.broadcast(
            typing_channel(self._conversation_id),
            ChangeEvent.TYPING,
            {"conversation_id": str(self._conversation_id), "alias": self._me},
        )
        return True

    async def close(self) -> None:
        await self._teardown_conversation()
        self._conversation_id = None
        if self._list_sub is not None:
            await self._list_sub.stop()
            self._list_sub = None

    async def _teardown_conversation(self) -> None:
        subs, self._conversation_subs = self._conversation_subs, []
        for sub in subs:
            await sub.stop()
        self._cancel_typing_timer()
        self._set_peer_typing(False)
        self._last_keystroke = None

    async def _on_message(self, event_type: str, data: dict[str, Any]) -> None:
        await self._on_message_event(event_type, data)

    async def _on_typing(self, event_type: str, data: dict[str, Any]) -> None:
        if event_type != ChangeEvent.TYPING or data.get("alias") == self._me:
            return
        if str(data.get("conversation_id")) != str(self._conversation_id):
            return
        self._cancel_typing_timer()
        self._set_peer_typing(True)
        loop = asyncio.get_running_loop()
        self._typing_timer = loop.call_later(self._typing_clear_after, self._expire_typing)

    async def _on_conversation_event(self, event_type: str, data: dict[str, Any]) -> None:
        if event_type != ChangeEvent.CONVERSATION_CHANGED:
            return
        if self._me not in (data.get("user_one"), data.get("user_two")):
            return
        if self._on_conversations_changed is not None:
            await self._on_conversations_changed()

    def _expire_typing(self) -> None:
        self._typing_timer = None
        self._set_peer_typing(False)

    def _cancel_typing_timer(self) -> None:
        if self._typing_timer is not None:
            self._typing_timer.cancel()
            self._typing_timer = None

    def _set_peer_typing(self, value: bool) -> None:
        if self._peer_typing == value:
            return
        self._peer_typing = value
        if self._on_typing_changed is not None:
            self._on_typing_changed(value)
