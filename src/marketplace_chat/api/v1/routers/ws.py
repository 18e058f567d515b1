from __future__ import annotations

import asyncio
import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

from marketplace_chat.application.dto.identity import Identity
from marketplace_chat.application.exceptions import AppError, AuthenticationError, ValidationError
from marketplace_chat.application.ports.auth import TokenVerifier
from marketplace_chat.config import settings
from marketplace_chat.infrastructure.ws.manager import ConnectionRegistry
from marketplace_chat.infrastructure.ws.protocol import WsInbound
from marketplace_chat.services.message_service import MessagePipeline
from marketplace_chat.services.validation import validate_conversation_id

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])

CLOSE_AUTH_FAILED = 4001


async def _authenticate(verifier: TokenVerifier, token: str | None) -> Identity | None:
    if not token:
        return None
    try:
        return await verifier.verify(token)
    except AuthenticationError:
        logger.debug("WS auth failed", exc_info=True)
        return None


@router.websocket("/ws/chat")
async def ws_chat(
    websocket: WebSocket,
    token: str | None = Query(None),
) -> None:
    state = websocket.app.state
    await websocket.accept()
    identity = await _authenticate(state.verifier, token)
    if identity is None:
        await websocket.close(code=CLOSE_AUTH_FAILED, reason="Authentication failed")
        return

    registry: ConnectionRegistry = state.registry
    registry.register(websocket, identity)
    session = _Session(websocket, identity, registry, state.pipeline, state.uow_factory)

    heartbeat_task = asyncio.create_task(
        _heartbeat(websocket), name=f"ws-heartbeat-{identity.user_id}",
    )
    try:
        await session.read_loop()
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for %s", identity.user_id)
    finally:
        heartbeat_task.cancel()
        registry.unregister(websocket)


async def _heartbeat(ws: WebSocket) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    try:
        while True:
            await asyncio.sleep(interval)
            await ws.send_text('{"type":"pong","data":{}}')
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.debug("Heartbeat stopped", exc_info=True)


class _Session:
    """Dispatches inbound frames for one authenticated connection."""

    def __init__(
        self,
        ws: WebSocket,
        identity: Identity,
        registry: ConnectionRegistry,
        pipeline: MessagePipeline,
        uow_factory: Any,
    ) -> None:
        self._ws = ws
        self._identity = identity
        self._registry = registry
        self._pipeline = pipeline
        self._uow_factory = uow_factory
        self._handlers = {
            "ping": self._on_ping,
            "join_conversation": self._on_join,
            "leave_conversation": self._on_leave,
            "send_message": self._on_send,
            "mark_read": self._on_mark_read,
        }

    async def read_loop(self) -> None:
        while True:
            message = await self._ws.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            raw = message.get("text")
            if raw is None:
                await self._error("Binary frames are not supported")
                continue
            try:
                msg = WsInbound.model_validate_json(raw)
            except PydanticValidationError:
                await self._error("Invalid message format")
                continue

            handler = self._handlers.get(msg.type)
            if handler is None:
                await self._error(f"Unknown event type: {msg.type}")
                continue

            try:
                await handler(msg.data)
            except AppError as exc:
                await self._error(exc.detail)
            except SQLAlchemyError:
                logger.exception("Store failure handling %s", msg.type)
                await self._error("Database operation failed")

    async def _reply(self, event: str, data: dict[str, Any]) -> None:
        await self._registry.send(self._ws, event, data)

    async def _error(self, message: str) -> None:
        await self._reply("error", {"message": message})

    async def _on_ping(self, _data: dict[str, Any]) -> None:
        await self._reply("pong", {})

    async def _on_join(self, data: dict[str, Any]) -> None:
        async with self._uow_factory() as uow:
            conversation = await self._pipeline.join_conversation(
                uow, self._identity, data.get("conversationId"),
            )
        self._registry.join_room(self._ws, conversation.id)
        await self._reply("joined_conversation", {"conversationId": str(conversation.id)})

    async def _on_leave(self, data: dict[str, Any]) -> None:
        conversation_id = data.get("conversationId")
        check = validate_conversation_id(conversation_id)
        if not check.valid:
            raise ValidationError(check.error or "Invalid conversation ID")
        self._registry.leave_room(self._ws, UUID(conversation_id))
        await self._reply("left_conversation", {"conversationId": conversation_id})

    async def _on_send(self, data: dict[str, Any]) -> None:
        async with self._uow_factory() as uow:
            await self._pipeline.send_message(
                uow,
                self._identity,
                data.get("conversationId"),
                data.get("content"),
                data.get("clientMsgId"),
            )

    async def _on_mark_read(self, data: dict[str, Any]) -> None:
        conversation_id = data.get("conversationId")
        message_id = data.get("messageId")
        async with self._uow_factory() as uow:
            if message_id is not None:
                await self._pipeline.mark_message_read(uow, self._identity, conversation_id, message_id)
            else:
                await self._pipeline.mark_conversation_read(uow, self._identity, conversation_id)
