from __future__ import annotations

from typing import Any, Protocol
from uuid import UUID


class Broadcaster(Protocol):
    """Delivers server events to live connections."""

    async def fan_out(self, room: str, event: str, payload: dict[str, Any]) -> None: ...

    async def notify_user(self, user_id: UUID, event: str, payload: dict[str, Any]) -> None: ...


class Presence(Protocol):
    def is_online(self, user_id: UUID) -> bool: ...
