from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace_chat.application.exceptions import StoreError
from marketplace_chat.domain.entities.message import Message
from marketplace_chat.domain.value_objects.enums import Role
from marketplace_chat.infrastructure.db.mappers import message as mapper
from marketplace_chat.infrastructure.db.models.message import MessageModel
from marketplace_chat.infrastructure.db.repositories._cursor import decode_cursor


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_messages(
        self,
        conversation_id: UUID,
        *,
        cursor: str | None = None,
        limit: int = 50,
    ) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(MessageModel.conversation_id == conversation_id)
            .order_by(MessageModel.created_at.asc(), MessageModel.id.asc())
            .limit(limit)
        )
        if cursor:
            ts, mid = decode_cursor(cursor)
            stmt = stmt.where(
                (MessageModel.created_at > ts)
                | ((MessageModel.created_at == ts) & (MessageModel.id > mid))
            )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def get_by_id(self, conversation_id: UUID, message_id: UUID) -> Message | None:
        stmt = select(MessageModel).where(
            MessageModel.id == message_id,
            MessageModel.conversation_id == conversation_id,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        """Insert message idempotently. Returns (message, created_flag)."""
        stmt = (
            pg_insert(MessageModel)
            .values(**mapper.entity_to_values(message))
            .on_conflict_do_nothing(constraint="uq_message_idempotency")
            .returning(MessageModel)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()

        if row is not None:
            return mapper.model_to_entity(row), True

        existing = await self._get_by_client_msg_id(
            message.conversation_id,
            message.sender_id,
            message.client_msg_id,
        )
        if existing is None:
            raise StoreError("Message insert conflicted but no existing row was found")
        return existing, False

    async def _get_by_client_msg_id(
        self,
        conversation_id: UUID,
        sender_id: UUID,
        client_msg_id: UUID | None,
    ) -> Message | None:
        if client_msg_id is None:
            return None
        stmt = select(MessageModel).where(
            MessageModel.conversation_id == conversation_id,
            MessageModel.sender_id == sender_id,
            MessageModel.client_msg_id == client_msg_id,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def mark_read(
        self,
        conversation_id: UUID,
        message_id: UUID,
        reader_id: UUID,
        read_at: datetime,
    ) -> bool:
        stmt = (
            update(MessageModel)
            .where(
                MessageModel.id == message_id,
                MessageModel.conversation_id == conversation_id,
                MessageModel.sender_id != reader_id,
                MessageModel.is_read.is_(False),
            )
            .values(is_read=True, read_at=read_at)
            .returning(MessageModel.id)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def mark_all_read(
        self,
        conversation_id: UUID,
        sender_role: Role,
        read_at: datetime,
    ) -> int:
        stmt = (
            update(MessageModel)
            .where(
                MessageModel.conversation_id == conversation_id,
                MessageModel.sender_role == str(sender_role),
                MessageModel.is_read.is_(False),
            )
            .values(is_read=True, read_at=read_at)
            .returning(MessageModel.id)
        )
        result = await self._session.execute(stmt)
        return len(result.scalars().all())
