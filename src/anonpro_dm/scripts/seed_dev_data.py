"""Seed development data: one conversation between two aliases with a short exchange."""
from __future__ import annotations

import asyncio
import logging
import sys
import uuid

from anonpro_dm.application.dto.message import SendMessageDTO
from anonpro_dm.application.dto.principal import Principal
from anonpro_dm.infrastructure.db.uow import uow_scope
from anonpro_dm.services import conversation_service, message_service

logger = logging.getLogger(__name__)


async def seed(alias_a: str, alias_b: str) -> None:
    a, b = Principal(alias_a), Principal(alias_b)
    async with uow_scope() as uow:
        conv, _created = await conversation_service.get_or_create_conversation(a, alias_b, uow)

        exchange = [
            (a, "hey, saw your post on the wall"),
            (b, "haha which one?"),
            (a, "the one about the library wifi"),
            (b, "it's still broken btw"),
        ]
        for sender, content in exchange:
            await message_service.send_message(
                SendMessageDTO(conversation_id=conv.id, client_msg_id=uuid.uuid4(), content=content),
                sender,
                uow,
            )

    logger.info("Seeded conversation %s with %d messages", conv.id, len(exchange))


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    args = sys.argv[1:]
    alias_a = args[0] if len(args) > 0 else "ghost_fox"
    alias_b = args[1] if len(args) > 1 else "quiet_owl"
    asyncio.run(seed(alias_a, alias_b))


if __name__ == "__main__":
    main()
