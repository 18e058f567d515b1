from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from marketplace_chat.api.middleware.correlation_id import CorrelationIdMiddleware, configure_logging
from marketplace_chat.api.v1.routers import conversations, health, messages, ws
from marketplace_chat.api.v1.schemas.common import error_content
from marketplace_chat.application.exceptions import AppError, RateLimitedError
from marketplace_chat.application.ports.auth import TokenVerifier
from marketplace_chat.application.ports.bus import Broadcaster
from marketplace_chat.application.ports.notifier import Notifier
from marketplace_chat.config import Settings, settings
from marketplace_chat.infrastructure.auth.hs256_verifier import HS256Verifier
from marketplace_chat.infrastructure.bus.redis_pubsub import RedisBroadcaster, RedisPubSubSubscriber
from marketplace_chat.infrastructure.crypto.codec import MessageCodec, build_codec
from marketplace_chat.infrastructure.notify.logging_notifier import LoggingNotifier
from marketplace_chat.infrastructure.ws.manager import ConnectionRegistry
from marketplace_chat.infrastructure.ws.rate_limiter import MessageRateLimiter
from marketplace_chat.services.message_service import MessagePipeline

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    subscriber: RedisPubSubSubscriber | None = app.state.pubsub_subscriber
    if subscriber is not None:
        await subscriber.start()

    yield

    if subscriber is not None:
        await subscriber.stop()
    if app.state.redis is not None:
        await app.state.redis.aclose()
        logger.info("Redis connection pool closed")


def _default_uow_factory() -> Callable[[], Any]:
    from marketplace_chat.infrastructure.db.session import session_uow

    return session_uow


async def _default_db_ping() -> None:
    from sqlalchemy import text

    from marketplace_chat.infrastructure.db.session import engine

    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


def create_app(
    *,
    cfg: Settings = settings,
    uow_factory: Callable[[], Any] | None = None,
    verifier: TokenVerifier | None = None,
    codec: MessageCodec | None = None,
    notifier: Notifier | None = None,
) -> FastAPI:
    configure_logging(cfg.LOG_LEVEL)

    app = FastAPI(
        title="Marketplace Chat Service",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    rate_limiter = MessageRateLimiter(cfg.RATE_LIMIT_MAX_MESSAGES, cfg.RATE_LIMIT_WINDOW_SECONDS)
    registry = ConnectionRegistry(rate_limiter)

    broadcaster: Broadcaster = registry
    app.state.redis = None
    app.state.pubsub_subscriber = None
    if cfg.FANOUT_MODE == "redis":
        app.state.redis = aioredis.from_url(cfg.REDIS_URL, decode_responses=True)
        broadcaster = RedisBroadcaster(app.state.redis, cfg.REDIS_PUBSUB_CHANNEL)
        app.state.pubsub_subscriber = RedisPubSubSubscriber(
            app.state.redis, cfg.REDIS_PUBSUB_CHANNEL, registry,
        )

    app.state.registry = registry
    app.state.rate_limiter = rate_limiter
    app.state.verifier = verifier or HS256Verifier(cfg.JWT_SECRET, cfg.JWT_ALGORITHM)
    app.state.uow_factory = uow_factory or _default_uow_factory()
    app.state.db_ping = _default_db_ping
    app.state.pipeline = MessagePipeline(
        codec or build_codec(cfg),
        rate_limiter,
        broadcaster,
        registry,
        notifier or LoggingNotifier(),
        db_timeout=cfg.DB_TIMEOUT_SECONDS,
        codec_timeout=cfg.CODEC_TIMEOUT_SECONDS,
        page_limit=cfg.MESSAGES_PAGE_LIMIT,
    )

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(conversations.router)
    app.include_router(messages.router)
    app.include_router(ws.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def _app_error(_req: Request, exc: AppError) -> JSONResponse:
        headers = None
        if isinstance(exc, RateLimitedError):
            headers = {"Retry-After": str(exc.retry_after_seconds)}
        elif exc.http_status >= 500:
            logger.error("%s: %s", type(exc).__name__, exc.detail)
        return JSONResponse(
            status_code=exc.http_status,
            content=error_content(exc.detail),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def _request_validation(_req: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        return JSONResponse(status_code=400, content=error_content("Validation failed", details))

    @app.exception_handler(SQLAlchemyError)
    async def _store_failure(_req: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.exception("Database operation failed", exc_info=exc)
        return JSONResponse(status_code=500, content=error_content("Database operation failed"))

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(_req: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=error_content(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )
