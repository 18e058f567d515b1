from __future__ import annotations

from marketplace_chat.domain.entities.conversation import Conversation
from marketplace_chat.infrastructure.db.models.conversation import ConversationModel


def model_to_entity(model: ConversationModel) -> Conversation:
    return Conversation(
        id=model.id,
        customer_id=model.customer_id,
        vendor_id=model.vendor_id,
        created_at=model.created_at,
        updated_at=model.updated_at,
        last_message_at=model.last_message_at,
        customer_unread_count=model.customer_unread_count,
        vendor_unread_count=model.vendor_unread_count,
    )


def entity_to_values(entity: Conversation) -> dict:
    return {
        "id": entity.id,
        "customer_id": entity.customer_id,
        "vendor_id": entity.vendor_id,
        "created_at": entity.created_at,
        "updated_at": entity.updated_at,
        "last_message_at": entity.last_message_at,
        "customer_unread_count": entity.customer_unread_count,
        "vendor_unread_count": entity.vendor_unread_count,
    }
