from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from marketplace_chat.domain.entities.message import ArchivedMessage, Message


class ArchiveRepository(Protocol):
    async def select_archivable(self, cutoff: datetime, limit: int) -> list[Message]:
        """Read messages created before ``cutoff``, oldest first."""
        ...

    async def copy_to_archive(self, messages: list[Message], archived_at: datetime) -> None: ...

    async def delete_from_hot(self, message_ids: list[UUID]) -> int: ...

    async def get_archived(self, message_ids: list[UUID]) -> list[ArchivedMessage]: ...

    async def copy_to_hot(self, messages: list[ArchivedMessage]) -> None: ...

    async def delete_from_archive(self, message_ids: list[UUID]) -> int: ...

    async def list_archived(
        self, conversation_id: UUID, *, limit: int = 50, offset: int = 0
    ) -> list[ArchivedMessage]: ...

    async def count_and_size(self, *, archived: bool) -> tuple[int, int]:
        """(row count, total encrypted_content length) of one of the two tables."""
        ...
