"""The message pipeline shared by the REST and WebSocket transports.

A send walks validate, authorize, rate-limit, sanitize, encrypt, persist and
fan out, in that order. Everything that reaches other users is produced by
decrypting the stored ciphertext, so a client only ever sees what was
actually persisted.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from typing import Any, TypeVar
from uuid import UUID

from marketplace_chat.application.dto.conversation import ConversationSummary
from marketplace_chat.application.dto.identity import Identity
from marketplace_chat.application.dto.message import DecryptedMessage
from marketplace_chat.application.exceptions import (
    EncodingError,
    RateLimitedError,
    ValidationError,
)
from marketplace_chat.application.ports.bus import Broadcaster, Presence
from marketplace_chat.application.ports.clock import Clock, SystemClock
from marketplace_chat.application.ports.notifier import Notifier
from marketplace_chat.application.policies.permissions import require_chat_role
from marketplace_chat.application.uow import UnitOfWork
from marketplace_chat.domain.entities.conversation import Conversation
from marketplace_chat.domain.entities.message import Message
from marketplace_chat.domain.value_objects.enums import Role, RoomKind
from marketplace_chat.domain.value_objects.ids import room_key
from marketplace_chat.infrastructure.crypto.codec import MessageCodec
from marketplace_chat.infrastructure.ws.rate_limiter import MessageRateLimiter
from marketplace_chat.services._timeouts import bounded
from marketplace_chat.services import conversation_service, read_state_service
from marketplace_chat.services.conversation_service import get_accessible_conversation
from marketplace_chat.services.validation import (
    sanitize_message_content,
    validate_client_msg_id,
    validate_message_content,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DECRYPTION_PLACEHOLDER = "[Message could not be decrypted]"

EVENT_NEW_MESSAGE = "new_message"
EVENT_CONVERSATION_UPDATED = "conversation_updated"
EVENT_MESSAGES_READ = "messages_read"


class MessagePipeline:
    def __init__(
        self,
        codec: MessageCodec,
        rate_limiter: MessageRateLimiter,
        broadcaster: Broadcaster,
        presence: Presence,
        notifier: Notifier,
        *,
        clock: Clock | None = None,
        db_timeout: float = 10.0,
        codec_timeout: float = 5.0,
        page_limit: int = 1000,
    ) -> None:
        self._codec = codec
        self._rate_limiter = rate_limiter
        self._broadcaster = broadcaster
        self._presence = presence
        self._notifier = notifier
        self._clock = clock or SystemClock()
        self._db_timeout = db_timeout
        self._codec_timeout = codec_timeout
        self._page_limit = page_limit
        self._background: set[asyncio.Task[None]] = set()

    # -- send ----------------------------------------------------------------

    async def send_message(
        self,
        uow: UnitOfWork,
        identity: Identity,
        conversation_id: str,
        content: Any,
        client_msg_id: str | None = None,
    ) -> DecryptedMessage:
        content_check = validate_message_content(content)
        if not content_check.valid:
            raise ValidationError(content_check.error or "Invalid message content")
        client_check = validate_client_msg_id(client_msg_id)
        if not client_check.valid:
            raise ValidationError(client_check.error or "Invalid client message ID")

        conversation = await get_accessible_conversation(
            uow, identity, conversation_id, timeout=self._db_timeout,
        )
        role = require_chat_role(identity)

        decision = self._rate_limiter.check_and_consume(identity.user_id)
        if not decision.allowed:
            raise RateLimitedError(decision.retry_after_seconds or 1)

        text = sanitize_message_content(content)
        if not text:
            raise ValidationError("Message content cannot be empty")

        encoded = await self._run_codec(self._codec.encrypt, text, "encrypt")

        message = Message(
            id=uuid.uuid4(),
            conversation_id=conversation.id,
            sender_id=identity.user_id,
            sender_role=role.value,
            encrypted_content=encoded.ciphertext,
            content_hash=encoded.content_hash,
            is_compressed=encoded.is_compressed,
            created_at=self._clock.now(),
            client_msg_id=UUID(client_msg_id) if client_msg_id else None,
        )
        stored, created = await self._persist(uow, message, role)

        decrypted = (await self._open([stored]))[0]
        if created:
            logger.info(
                "Message %s stored in %s (sender=%s, compressed=%s)",
                stored.id, conversation.id, role, stored.is_compressed,
            )
            await self._announce(conversation, decrypted)
            self._notify_if_offline(conversation, role.counterpart)
        else:
            logger.debug("Duplicate send %s for %s ignored", client_msg_id, conversation.id)
        return decrypted

    async def _persist(self, uow: UnitOfWork, message: Message, role: Role) -> tuple[Message, bool]:
        async def write() -> tuple[Message, bool]:
            stored, created = await uow.messages_w.create_if_not_exists(message)
            if created:
                await uow.conversations_w.record_new_message(
                    message.conversation_id, role, stored.created_at,
                )
            await uow.commit()
            return stored, created

        try:
            return await bounded(write(), "save_message", self._db_timeout)
        except Exception:
            await uow.rollback()
            raise

    async def _announce(self, conversation: Conversation, message: DecryptedMessage) -> None:
        conversation_ref = str(conversation.id)
        try:
            await self._broadcaster.fan_out(
                room_key(RoomKind.CONVERSATION, conversation.id),
                EVENT_NEW_MESSAGE,
                {"conversationId": conversation_ref, "message": message.to_event_payload()},
            )
            for user_id in (conversation.customer_id, conversation.vendor_id):
                await self._broadcaster.notify_user(
                    user_id, EVENT_CONVERSATION_UPDATED, {"conversationId": conversation_ref},
                )
        except Exception:
            logger.exception("Fan-out failed for message %s", message.id)

    def _notify_if_offline(self, conversation: Conversation, recipient_role: Role) -> None:
        recipient_id = conversation.participant_id(recipient_role)
        if self._presence.is_online(recipient_id):
            return
        task = asyncio.create_task(
            self._notify(recipient_id, recipient_role, conversation.id),
            name=f"notify-{recipient_id}",
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _notify(self, recipient_id: UUID, recipient_role: Role, conversation_id: UUID) -> None:
        try:
            await self._notifier.notify_new_message(recipient_id, recipient_role.value, conversation_id)
        except Exception:
            logger.warning("Offline notification to %s failed", recipient_id, exc_info=True)

    # -- conversations -------------------------------------------------------

    async def start_conversation(
        self,
        uow: UnitOfWork,
        identity: Identity,
        vendor_id: str,
    ) -> tuple[Conversation, bool]:
        return await conversation_service.start_conversation(
            uow, identity, vendor_id, timeout=self._db_timeout,
        )

    async def list_conversations(self, uow: UnitOfWork, identity: Identity) -> list[ConversationSummary]:
        return await conversation_service.list_conversations(uow, identity, timeout=self._db_timeout)

    async def unread_total(self, uow: UnitOfWork, identity: Identity) -> int:
        return await conversation_service.unread_total(uow, identity, timeout=self._db_timeout)

    # -- rooms ---------------------------------------------------------------

    async def join_conversation(
        self,
        uow: UnitOfWork,
        identity: Identity,
        conversation_id: str,
    ) -> Conversation:
        """Authorize a room join; the transport adds the connection to the room."""
        return await get_accessible_conversation(
            uow, identity, conversation_id, timeout=self._db_timeout,
        )

    # -- history -------------------------------------------------------------

    async def list_messages(
        self,
        uow: UnitOfWork,
        identity: Identity,
        conversation_id: str,
        *,
        cursor: str | None = None,
        limit: int | None = None,
    ) -> list[DecryptedMessage]:
        conversation = await get_accessible_conversation(
            uow, identity, conversation_id, timeout=self._db_timeout,
        )
        page = self._page_limit if limit is None else max(1, min(limit, self._page_limit))
        messages = await bounded(
            uow.messages.list_messages(conversation.id, cursor=cursor, limit=page),
            "list_messages",
            self._db_timeout,
        )
        return await self._open(messages)

    async def _open(self, messages: list[Message]) -> list[DecryptedMessage]:
        if not messages:
            return []
        return await self._run_codec(self._open_batch, messages, "decrypt")

    def _open_batch(self, messages: list[Message]) -> list[DecryptedMessage]:
        return [self._open_one(m) for m in messages]

    def _open_one(self, message: Message) -> DecryptedMessage:
        try:
            content = self._codec.decrypt(message.encrypted_content)
        except EncodingError as exc:
            logger.warning("Message %s could not be decrypted: %s", message.id, exc.detail)
            return DecryptedMessage.from_message(message, DECRYPTION_PLACEHOLDER, decryption_error=True)
        if self._codec.digest(content) != message.content_hash:
            logger.warning("Message %s failed its integrity check", message.id)
            return DecryptedMessage.from_message(message, DECRYPTION_PLACEHOLDER, decryption_error=True)
        return DecryptedMessage.from_message(message, content)

    async def _run_codec(self, fn: Callable[[Any], T], arg: Any, operation: str) -> T:
        return await bounded(asyncio.to_thread(fn, arg), operation, self._codec_timeout)

    # -- read receipts -------------------------------------------------------

    async def mark_message_read(
        self,
        uow: UnitOfWork,
        identity: Identity,
        conversation_id: str,
        message_id: str,
    ) -> bool:
        conversation = await get_accessible_conversation(
            uow, identity, conversation_id, timeout=self._db_timeout,
        )
        role = require_chat_role(identity)
        try:
            return await bounded(
                read_state_service.mark_message_read(
                    uow, conversation, identity.user_id, role, message_id, self._clock.now(),
                ),
                "mark_message_read",
                self._db_timeout,
            )
        except Exception:
            await uow.rollback()
            raise

    async def mark_conversation_read(
        self,
        uow: UnitOfWork,
        identity: Identity,
        conversation_id: str,
    ) -> int:
        conversation = await get_accessible_conversation(
            uow, identity, conversation_id, timeout=self._db_timeout,
        )
        role = require_chat_role(identity)
        try:
            count = await bounded(
                read_state_service.mark_conversation_read(uow, conversation, role, self._clock.now()),
                "mark_conversation_read",
                self._db_timeout,
            )
        except Exception:
            await uow.rollback()
            raise

        if count:
            await self._notify_read(conversation, role)
        return count

    async def _notify_read(self, conversation: Conversation, reader_role: Role) -> None:
        other = conversation.participant_id(reader_role.counterpart)
        try:
            await self._broadcaster.notify_user(
                other, EVENT_MESSAGES_READ, {"conversationId": str(conversation.id)},
            )
        except Exception:
            logger.warning("messages_read notification to %s failed", other, exc_info=True)
