from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator
from uuid import UUID

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from anonpro_dm.api.middleware.request_context import (
    CorrelationIdMiddleware,
    RequestTimingMiddleware,
)
from anonpro_dm.api.v1.routers import conversations, health, messages, ws
from anonpro_dm.application.dto.principal import Principal
from anonpro_dm.application.exceptions import (
    AppError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from anonpro_dm.config import settings
from anonpro_dm.domain.value_objects.enums import ChangeEvent
from anonpro_dm.infrastructure.bus.channels import ALL_CHANNELS_PATTERN
from anonpro_dm.infrastructure.bus.redis_pubsub import RedisPubSubSubscriber

logger = logging.getLogger(__name__)


async def _on_pubsub_event(event_type: str, data: dict[str, Any]) -> None:
    """Dispatch a change-feed event to local WS connections."""
    manager = ws.get_manager()

    if event_type == ChangeEvent.CONVERSATION_CHANGED:
        for alias in (data.get("user_one"), data.get("user_two")):
            if alias:
                await manager.send_to_principal(Principal(alias).principal_key, event_type, data)
        return

    if event_type == ChangeEvent.NOTIFICATION_CREATED:
        alias = data.get("user_alias")
        if alias:
            await manager.send_to_principal(Principal(alias).principal_key, event_type, data)
        return

    try:
        conversation_id = UUID(str(data.get("conversation_id")))
    except ValueError:
        logger.debug("Dropping %s without conversation_id", event_type)
        return
    await manager.broadcast_to_conversation(conversation_id, event_type, data)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    app.state.redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    logger.info("Redis connection pool created")

    subscriber = RedisPubSubSubscriber(
        app.state.redis,
        ALL_CHANNELS_PATTERN,
        _on_pubsub_event,
        pattern=True,
    )
    await subscriber.start()
    app.state.pubsub_subscriber = subscriber

    yield

    await subscriber.stop()
    await app.state.redis.aclose()
    logger.info("Redis connection pool closed")


def create_app() -> FastAPI:
    app = FastAPI(
        title="AnonPro Direct Messages",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestTimingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(conversations.router)
    app.include_router(messages.router)
    app.include_router(ws.router)

    return app


_STATUS_BY_ERROR: dict[type[AppError], int] = {
    NotFoundError: 404,
    ForbiddenError: 403,
    ConflictError: 409,
    ValidationError: 422,
}


def _register_exception_handlers(app: FastAPI) -> None:
    async def _app_error(_req: Request, exc: AppError) -> JSONResponse:
        status_code = next(
            (code for cls, code in _STATUS_BY_ERROR.items() if isinstance(exc, cls)),
            400,
        )
        return JSONResponse(status_code=status_code, content={"error": exc.detail})

    for error_cls in _STATUS_BY_ERROR:
        app.add_exception_handler(error_cls, _app_error)

    async def _validation_error(_req: Request, exc: RequestValidationError) -> JSONResponse:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        return JSONResponse(status_code=422, content={"error": problems})

    async def _http_error(_req: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(StarletteHTTPException, _http_error)
