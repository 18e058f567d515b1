from __future__ import annotations

from datetime import datetime

from marketplace_chat.domain.entities.message import ArchivedMessage, Message
from marketplace_chat.infrastructure.db.models.archived_message import ArchivedMessageModel
from marketplace_chat.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=model.id,
        conversation_id=model.conversation_id,
        sender_id=model.sender_id,
        sender_role=model.sender_role,
        encrypted_content=model.encrypted_content,
        content_hash=model.content_hash,
        is_compressed=model.is_compressed,
        created_at=model.created_at,
        is_read=model.is_read,
        read_at=model.read_at,
        client_msg_id=model.client_msg_id,
    )


def archived_to_entity(model: ArchivedMessageModel) -> ArchivedMessage:
    return ArchivedMessage(
        id=model.id,
        conversation_id=model.conversation_id,
        sender_id=model.sender_id,
        sender_role=model.sender_role,
        encrypted_content=model.encrypted_content,
        content_hash=model.content_hash,
        is_compressed=model.is_compressed,
        created_at=model.created_at,
        archived_at=model.archived_at,
        is_read=model.is_read,
        read_at=model.read_at,
        client_msg_id=model.client_msg_id,
    )


def entity_to_values(entity: Message | ArchivedMessage) -> dict:
    """Column values shared by the hot and archive tables."""
    return {
        "id": entity.id,
        "conversation_id": entity.conversation_id,
        "sender_id": entity.sender_id,
        "sender_role": entity.sender_role,
        "encrypted_content": entity.encrypted_content,
        "content_hash": entity.content_hash,
        "is_compressed": entity.is_compressed,
        "is_read": entity.is_read,
        "read_at": entity.read_at,
        "client_msg_id": entity.client_msg_id,
        "created_at": entity.created_at,
    }


def entity_to_archive_values(entity: Message, archived_at: datetime) -> dict:
    return {**entity_to_values(entity), "archived_at": archived_at}
