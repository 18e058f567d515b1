from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace_chat.application.exceptions import ConflictError
from marketplace_chat.domain.entities.conversation import Conversation
from marketplace_chat.domain.value_objects.enums import Role
from marketplace_chat.infrastructure.db.mappers import conversation as mapper
from marketplace_chat.infrastructure.db.models.conversation import ConversationModel


def _participant_column(role: Role):
    return ConversationModel.customer_id if role == Role.CUSTOMER else ConversationModel.vendor_id


def _unread_column(role: Role):
    if role == Role.CUSTOMER:
        return ConversationModel.customer_unread_count
    return ConversationModel.vendor_unread_count


class ConversationReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, conversation_id: UUID) -> Conversation | None:
        result = await self._session.get(ConversationModel, conversation_id, populate_existing=True)
        return mapper.model_to_entity(result) if result else None

    async def get_by_pair(self, customer_id: UUID, vendor_id: UUID) -> Conversation | None:
        stmt = select(ConversationModel).where(
            ConversationModel.customer_id == customer_id,
            ConversationModel.vendor_id == vendor_id,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def list_for_participant(
        self,
        role: Role,
        user_id: UUID,
        *,
        limit: int = 100,
    ) -> list[Conversation]:
        stmt = (
            select(ConversationModel)
            .where(_participant_column(role) == user_id)
            .order_by(
                ConversationModel.last_message_at.desc().nullslast(),
                ConversationModel.updated_at.desc(),
                ConversationModel.id,
            )
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def unread_total(self, role: Role, user_id: UUID) -> int:
        column = _unread_column(role)
        stmt = select(func.coalesce(func.sum(func.greatest(column, 0)), 0)).where(
            _participant_column(role) == user_id
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())


class ConversationWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, conversation: Conversation) -> Conversation:
        stmt = (
            pg_insert(ConversationModel)
            .values(**mapper.entity_to_values(conversation))
            .on_conflict_do_nothing(constraint="uq_conversation_pair")
            .returning(ConversationModel)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is None:
            raise ConflictError("Conversation already exists for this customer and vendor")
        return mapper.model_to_entity(row)

    async def record_new_message(
        self,
        conversation_id: UUID,
        sender_role: Role,
        ts: datetime,
    ) -> None:
        counter = _unread_column(Role(sender_role).counterpart)
        stmt = (
            update(ConversationModel)
            .where(ConversationModel.id == conversation_id)
            .values(
                {
                    counter: counter + 1,
                    ConversationModel.last_message_at: ts,
                    ConversationModel.updated_at: ts,
                }
            )
        )
        await self._session.execute(stmt)

    async def decrement_unread(
        self,
        conversation_id: UUID,
        reader_role: Role,
        count: int,
    ) -> None:
        if count <= 0:
            return
        counter = _unread_column(reader_role)
        stmt = (
            update(ConversationModel)
            .where(ConversationModel.id == conversation_id)
            .values({counter: func.greatest(counter - count, 0)})
        )
        await self._session.execute(stmt)
