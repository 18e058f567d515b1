"""WebSocket message envelope models."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class WsInbound(BaseModel):
    """Client → Server."""

    type: str  # join_conversation | leave_conversation | send_message | mark_read | ping
    data: dict[str, Any] = {}


class WsOutbound(BaseModel):
    """Server → Client."""

    type: str  # joined_conversation | new_message | conversation_updated | messages_read | error | pong
    data: dict[str, Any] = {}


def encode_event(event: str, data: dict[str, Any]) -> str:
    return WsOutbound(type=event, data=data).model_dump_json()
