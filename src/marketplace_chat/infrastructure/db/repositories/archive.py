from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace_chat.domain.entities.message import ArchivedMessage, Message
from marketplace_chat.infrastructure.db.mappers import message as mapper
from marketplace_chat.infrastructure.db.models.archived_message import ArchivedMessageModel
from marketplace_chat.infrastructure.db.models.message import MessageModel


class ArchiveRepo:
    """Moves message rows between ``messages`` and ``messages_archive``.

    Copies are ``ON CONFLICT DO NOTHING`` on the primary key so a batch that
    was copied but not pruned can simply be run again.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def select_archivable(self, cutoff: datetime, limit: int) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(
                MessageModel.created_at < cutoff,
                MessageModel.is_read.is_(True),
            )
            .order_by(MessageModel.created_at.asc(), MessageModel.id.asc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def copy_to_archive(self, messages: list[Message], archived_at: datetime) -> None:
        if not messages:
            return
        stmt = (
            pg_insert(ArchivedMessageModel)
            .values([mapper.entity_to_archive_values(m, archived_at) for m in messages])
            .on_conflict_do_nothing(index_elements=[ArchivedMessageModel.id])
        )
        await self._session.execute(stmt)

    async def delete_from_hot(self, message_ids: list[UUID]) -> int:
        if not message_ids:
            return 0
        stmt = (
            delete(MessageModel)
            .where(MessageModel.id.in_(message_ids))
            .returning(MessageModel.id)
        )
        result = await self._session.execute(stmt)
        return len(result.scalars().all())

    async def get_archived(self, message_ids: list[UUID]) -> list[ArchivedMessage]:
        if not message_ids:
            return []
        stmt = (
            select(ArchivedMessageModel)
            .where(ArchivedMessageModel.id.in_(message_ids))
            .order_by(ArchivedMessageModel.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return [mapper.archived_to_entity(m) for m in result.scalars().all()]

    async def copy_to_hot(self, messages: list[ArchivedMessage]) -> None:
        if not messages:
            return
        stmt = (
            pg_insert(MessageModel)
            .values([mapper.entity_to_values(m) for m in messages])
            .on_conflict_do_nothing(index_elements=[MessageModel.id])
        )
        await self._session.execute(stmt)

    async def delete_from_archive(self, message_ids: list[UUID]) -> int:
        if not message_ids:
            return 0
        stmt = (
            delete(ArchivedMessageModel)
            .where(ArchivedMessageModel.id.in_(message_ids))
            .returning(ArchivedMessageModel.id)
        )
        result = await self._session.execute(stmt)
        return len(result.scalars().all())

    async def list_archived(
        self,
        conversation_id: UUID,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ArchivedMessage]:
        stmt = (
            select(ArchivedMessageModel)
            .where(ArchivedMessageModel.conversation_id == conversation_id)
            .order_by(ArchivedMessageModel.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self._session.execute(stmt)
        return [mapper.archived_to_entity(m) for m in result.scalars().all()]

    async def count_and_size(self, *, archived: bool) -> tuple[int, int]:
        model = ArchivedMessageModel if archived else MessageModel
        stmt = select(
            func.count(model.id),
            func.coalesce(func.sum(func.octet_length(model.encrypted_content)), 0),
        )
        result = await self._session.execute(stmt)
        count, size = result.one()
        return int(count), int(size)
