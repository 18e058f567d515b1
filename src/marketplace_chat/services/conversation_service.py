from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from uuid import UUID

from marketplace_chat.application.dto.conversation import ConversationSummary
from marketplace_chat.application.dto.identity import Identity
from marketplace_chat.application.exceptions import (
    ConflictError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from marketplace_chat.application.policies.permissions import (
    assert_conversation_access,
    require_chat_role,
    require_customer,
)
from marketplace_chat.application.uow import UnitOfWork
from marketplace_chat.domain.entities.conversation import Conversation
from marketplace_chat.services._timeouts import bounded
from marketplace_chat.services.validation import validate_conversation_id, validate_vendor_id

logger = logging.getLogger(__name__)


async def resolve_conversation(
    uow: UnitOfWork,
    conversation_id: UUID,
    *,
    timeout: float | None = None,
) -> Conversation:
    conversation = await bounded(uow.conversations.get_by_id(conversation_id), "resolve_conversation", timeout)
    if conversation is None:
        raise NotFoundError("Conversation not found")
    return conversation


async def get_accessible_conversation(
    uow: UnitOfWork,
    identity: Identity,
    conversation_id: str,
    *,
    timeout: float | None = None,
) -> Conversation:
    """Validate the id, load the conversation and check the caller is a participant."""
    check = validate_conversation_id(conversation_id)
    if not check.valid:
        raise ValidationError(check.error or "Invalid conversation ID")
    require_chat_role(identity)
    conversation = await resolve_conversation(uow, UUID(conversation_id), timeout=timeout)
    return assert_conversation_access(identity, conversation)


async def get_or_create_conversation(
    uow: UnitOfWork,
    customer_id: UUID,
    vendor_id: UUID,
    *,
    timeout: float | None = None,
) -> tuple[Conversation, bool]:
    """Return the pair's conversation, creating it on first contact.

    Returns (conversation, created). Two concurrent first contacts both end up
    with the single stored row: the loser of the insert race re-reads it.
    """
    if customer_id == vendor_id:
        raise ValidationError("Cannot start a conversation with yourself")

    existing = await bounded(uow.conversations.get_by_pair(customer_id, vendor_id), "get_conversation", timeout)
    if existing is not None:
        return existing, False

    now = datetime.now(timezone.utc)
    conversation = Conversation(
        id=uuid.uuid4(),
        customer_id=customer_id,
        vendor_id=vendor_id,
        created_at=now,
        updated_at=now,
    )
    try:
        conversation = await bounded(uow.conversations_w.create(conversation), "create_conversation", timeout)
    except ConflictError:
        winner = await bounded(uow.conversations.get_by_pair(customer_id, vendor_id), "get_conversation", timeout)
        if winner is None:
            raise StoreError("Conversation conflict could not be resolved") from None
        logger.debug("Conversation for %s/%s created concurrently", customer_id, vendor_id)
        return winner, False

    await bounded(uow.commit(), "create_conversation", timeout)
    logger.info("Conversation %s created (customer=%s vendor=%s)", conversation.id, customer_id, vendor_id)
    return conversation, True


async def start_conversation(
    uow: UnitOfWork,
    identity: Identity,
    vendor_id: str,
    *,
    timeout: float | None = None,
) -> tuple[Conversation, bool]:
    """Customer-initiated get-or-create from a raw vendor id."""
    check = validate_vendor_id(vendor_id)
    if not check.valid:
        raise ValidationError(check.error or "Invalid vendor ID")
    require_customer(identity)
    return await get_or_create_conversation(uow, identity.user_id, UUID(vendor_id), timeout=timeout)


async def list_conversations(
    uow: UnitOfWork,
    identity: Identity,
    *,
    limit: int = 100,
    timeout: float | None = None,
) -> list[ConversationSummary]:
    role = require_chat_role(identity)
    conversations = await bounded(
        uow.conversations.list_for_participant(role, identity.user_id, limit=limit),
        "list_conversations",
        timeout,
    )
    return [
        ConversationSummary(
            id=c.id,
            counterpart_id=c.participant_id(role.counterpart),
            unread_count=c.unread_for(role),
            last_message_at=c.last_message_at,
            created_at=c.created_at,
            updated_at=c.updated_at,
        )
        for c in conversations
    ]


async def unread_total(uow: UnitOfWork, identity: Identity, *, timeout: float | None = None) -> int:
    role = require_chat_role(identity)
    total = await bounded(uow.conversations.unread_total(role, identity.user_id), "unread_total", timeout)
    return max(0, total)
