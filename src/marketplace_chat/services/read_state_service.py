"""Read receipts and the unread counters they drive.

A conversation's ``<role>_unread_count`` equals the number of unread
messages authored by the other role. Sends increment it (see
``MessagePipeline``); the functions here flip ``is_read`` with a guarded
UPDATE and decrement by exactly the number of rows that changed.
"""
from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from marketplace_chat.application.exceptions import NotFoundError, ValidationError
from marketplace_chat.application.uow import UnitOfWork
from marketplace_chat.domain.entities.conversation import Conversation
from marketplace_chat.domain.value_objects.enums import Role
from marketplace_chat.services.validation import is_temporary_message_id, validate_message_id

logger = logging.getLogger(__name__)


async def mark_message_read(
    uow: UnitOfWork,
    conversation: Conversation,
    reader_id: UUID,
    reader_role: Role,
    message_id: str,
    read_at: datetime,
) -> bool:
    """Mark one message read. Returns True only on an unread -> read transition."""
    check = validate_message_id(message_id)
    if not check.valid:
        raise ValidationError(check.error or "Invalid message ID")
    if is_temporary_message_id(message_id):
        # optimistic id the client has not reconciled yet
        return False

    message = await uow.messages.get_by_id(conversation.id, UUID(message_id))
    if message is None:
        raise NotFoundError("Message not found")
    if message.sender_id == reader_id:
        return False

    flipped = await uow.messages_w.mark_read(conversation.id, message.id, reader_id, read_at)
    if flipped:
        await uow.conversations_w.decrement_unread(conversation.id, reader_role, 1)
    await uow.commit()
    return flipped


async def mark_conversation_read(
    uow: UnitOfWork,
    conversation: Conversation,
    reader_role: Role,
    read_at: datetime,
) -> int:
    """Mark every message from the other participant read. Returns rows flipped."""
    count = await uow.messages_w.mark_all_read(conversation.id, reader_role.counterpart, read_at)
    if count:
        await uow.conversations_w.decrement_unread(conversation.id, reader_role, count)
    await uow.commit()
    logger.debug("Marked %d messages read in %s for %s", count, conversation.id, reader_role)
    return count
