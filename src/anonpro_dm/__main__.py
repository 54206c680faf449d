"""Entrypoint: python -m anonpro_dm"""
from __future__ import annotations

import uvicorn

from anonpro_dm.config import settings


def main() -> None:
    uvicorn.run(
        "anonpro_dm.app:create_app",
        factory=True,
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level="info",
    )


if __name__ == "__main__":
    main()
