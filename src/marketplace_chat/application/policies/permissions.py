from __future__ import annotations

from uuid import UUID

from marketplace_chat.application.dto.identity import Identity
from marketplace_chat.application.exceptions import ForbiddenError, NotFoundError
from marketplace_chat.domain.entities.conversation import Conversation
from marketplace_chat.domain.value_objects.enums import Role


def authorize(conversation: Conversation, user_id: UUID, role: str) -> bool:
    """A customer or vendor may act only in conversations where they are that party."""
    if role == Role.CUSTOMER:
        return conversation.customer_id == user_id
    if role == Role.VENDOR:
        return conversation.vendor_id == user_id
    return False


def assert_conversation_access(
    identity: Identity,
    conversation: Conversation | None,
) -> Conversation:
    """Raise if conversation doesn't exist or identity has no access."""
    if conversation is None:
        raise NotFoundError("Conversation not found")

    if not authorize(conversation, identity.user_id, identity.role):
        raise ForbiddenError("Access denied")

    return conversation


def require_chat_role(identity: Identity) -> Role:
    role = identity.chat_role
    if role is None:
        raise ForbiddenError("Invalid role for chat access")
    return role


def require_customer(identity: Identity) -> None:
    if identity.chat_role != Role.CUSTOMER:
        raise ForbiddenError("Only customers can start conversations")
