"""In-process connection registry: presence, rooms and fan-out."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import UUID

from marketplace_chat.application.dto.identity import Identity
from marketplace_chat.domain.value_objects.enums import RoomKind
from marketplace_chat.domain.value_objects.ids import room_key
from marketplace_chat.infrastructure.ws.protocol import encode_event
from marketplace_chat.infrastructure.ws.rate_limiter import MessageRateLimiter

logger = logging.getLogger(__name__)


class Connection(Protocol):
    async def send_text(self, data: str) -> None: ...


@dataclass(slots=True)
class _Registration:
    identity: Identity
    rooms: set[str] = field(default_factory=set)

    @property
    def conversation_ids(self) -> set[str]:
        prefix = f"{RoomKind.CONVERSATION}:"
        return {r[len(prefix):] for r in self.rooms if r.startswith(prefix)}


class ConnectionRegistry:
    """Tracks live connections per user and their room memberships.

    A user may hold several connections (devices); each one joins the
    user's personal room on registration and conversation rooms on demand.
    """

    def __init__(self, rate_limiter: MessageRateLimiter) -> None:
        self._rate_limiter = rate_limiter
        self._by_user: dict[UUID, set[Connection]] = {}
        self._by_connection: dict[Connection, _Registration] = {}
        self._rooms: dict[str, set[Connection]] = {}

    def register(self, connection: Connection, identity: Identity) -> None:
        self._by_user.setdefault(identity.user_id, set()).add(connection)
        self._by_connection[connection] = _Registration(identity=identity)
        self._join(connection, room_key(RoomKind.USER, identity.user_id))
        logger.debug(
            "Connected: %s (%s) connections=%d",
            identity.user_id, identity.role, len(self._by_user[identity.user_id]),
        )

    def unregister(self, connection: Connection) -> None:
        registration = self._by_connection.pop(connection, None)
        if registration is None:
            return
        for room in registration.rooms:
            members = self._rooms.get(room)
            if members is not None:
                members.discard(connection)
                if not members:
                    del self._rooms[room]

        user_id = registration.identity.user_id
        conns = self._by_user.get(user_id)
        if conns is not None:
            conns.discard(connection)
            if not conns:
                del self._by_user[user_id]
                self._rate_limiter.discard(user_id)
        logger.debug("Disconnected: %s", user_id)

    def join_room(self, connection: Connection, conversation_id: UUID | str) -> None:
        if connection not in self._by_connection:
            return
        self._join(connection, room_key(RoomKind.CONVERSATION, conversation_id))

    def leave_room(self, connection: Connection, conversation_id: UUID | str) -> None:
        registration = self._by_connection.get(connection)
        if registration is None:
            return
        room = room_key(RoomKind.CONVERSATION, conversation_id)
        registration.rooms.discard(room)
        members = self._rooms.get(room)
        if members is not None:
            members.discard(connection)
            if not members:
                del self._rooms[room]

    def _join(self, connection: Connection, room: str) -> None:
        self._rooms.setdefault(room, set()).add(connection)
        self._by_connection[connection].rooms.add(room)

    def is_online(self, user_id: UUID) -> bool:
        return user_id in self._by_user

    def identity_of(self, connection: Connection) -> Identity | None:
        registration = self._by_connection.get(connection)
        return registration.identity if registration else None

    def joined_conversations(self, connection: Connection) -> set[str]:
        registration = self._by_connection.get(connection)
        return registration.conversation_ids if registration else set()

    def room_size(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    @property
    def connection_count(self) -> int:
        return len(self._by_connection)

    async def fan_out(self, room: str, event: str, payload: dict[str, Any]) -> None:
        """Send an event to every connection in ``room``."""
        members = list(self._rooms.get(room, ()))
        if not members:
            return
        raw = encode_event(event, payload)
        dead: list[Connection] = []
        for conn in members:
            try:
                await conn.send_text(raw)
            except Exception:
                dead.append(conn)
        for conn in dead:
            logger.debug("Dropping dead connection during fan-out to %s", room)
            self.unregister(conn)

    async def notify_user(self, user_id: UUID, event: str, payload: dict[str, Any]) -> None:
        await self.fan_out(room_key(RoomKind.USER, user_id), event, payload)

    async def send(self, connection: Connection, event: str, payload: dict[str, Any]) -> None:
        """Reply to a single connection."""
        await connection.send_text(encode_event(event, payload))
