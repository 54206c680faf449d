"""One-time script: create the DM tables in the configured database."""
from __future__ import annotations

import asyncio
import logging

from anonpro_dm.infrastructure.db.base import Base
from anonpro_dm.infrastructure.db.models import __all__ as model_names
from anonpro_dm.infrastructure.db.session import engine

logger = logging.getLogger(__name__)


async def create_schema() -> None:
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Schema ready (%s)", ", ".join(model_names))
    finally:
        await engine.dispose()


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(create_schema())


if __name__ == "__main__":
    main()
