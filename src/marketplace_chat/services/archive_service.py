"""Move aged, already-read messages to ``messages_archive`` and back.

Each batch is copied, committed, then pruned and committed again. The copy
is idempotent, so a run that stopped between the two commits only needs to
be repeated.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID

from marketplace_chat.application.dto.archive import ArchiveResult, RestoreResult, StorageStats
from marketplace_chat.application.exceptions import (
    PartialArchiveError,
    PartialRestoreError,
    ValidationError,
)
from marketplace_chat.application.uow import UnitOfWork
from marketplace_chat.domain.entities.message import ArchivedMessage
from marketplace_chat.services._timeouts import bounded
from marketplace_chat.services.validation import is_valid_uuid

logger = logging.getLogger(__name__)


def archive_cutoff(older_than_days: int, now: datetime | None = None) -> datetime:
    if older_than_days < 0:
        raise ValidationError("older_than_days must not be negative")
    return (now or datetime.now(timezone.utc)) - timedelta(days=older_than_days)


async def archive(
    uow: UnitOfWork,
    older_than_days: int,
    *,
    batch_size: int = 500,
    now: datetime | None = None,
) -> ArchiveResult:
    cutoff = archive_cutoff(older_than_days, now)
    archived = 0

    while True:
        batch = await bounded(uow.archive.select_archivable(cutoff, batch_size), "select_archivable")
        if not batch:
            break

        archived_at = datetime.now(timezone.utc)
        await bounded(uow.archive.copy_to_archive(batch, archived_at), "copy_to_archive")
        await uow.commit()

        try:
            await bounded(uow.archive.delete_from_hot([m.id for m in batch]), "delete_from_hot")
            await uow.commit()
        except Exception as exc:
            await uow.rollback()
            logger.exception("Archived %d messages but could not prune them", len(batch))
            raise PartialArchiveError(archived + len(batch)) from exc

        archived += len(batch)
        logger.info("Archived batch of %d messages (total=%d)", len(batch), archived)
        if len(batch) < batch_size:
            break

    logger.info("Archive run finished: %d messages older than %s", archived, cutoff.isoformat())
    return ArchiveResult(archived_count=archived)


async def count_archivable(uow: UnitOfWork, older_than_days: int, *, limit: int = 10_000) -> int:
    """Dry-run helper: how many messages the next archive run would move (capped at ``limit``)."""
    cutoff = archive_cutoff(older_than_days)
    batch = await bounded(uow.archive.select_archivable(cutoff, limit), "select_archivable")
    return len(batch)


async def restore(uow: UnitOfWork, message_ids: list[str]) -> RestoreResult:
    if not message_ids:
        raise ValidationError("At least one message ID is required")
    invalid = [m for m in message_ids if not is_valid_uuid(m)]
    if invalid:
        raise ValidationError(f"Invalid message ID format: {', '.join(invalid)}")

    ids = [UUID(m) for m in message_ids]
    rows: list[ArchivedMessage] = await bounded(uow.archive.get_archived(ids), "get_archived")
    if not rows:
        return RestoreResult(restored_count=0)

    await bounded(uow.archive.copy_to_hot(rows), "copy_to_hot")
    await uow.commit()

    try:
        await bounded(uow.archive.delete_from_archive([r.id for r in rows]), "delete_from_archive")
        await uow.commit()
    except Exception as exc:
        await uow.rollback()
        logger.exception("Restored %d messages but could not remove them from the archive", len(rows))
        raise PartialRestoreError(len(rows)) from exc

    logger.info("Restored %d messages from archive", len(rows))
    return RestoreResult(restored_count=len(rows))


async def stats(uow: UnitOfWork) -> StorageStats:
    active_count, active_bytes = await bounded(uow.archive.count_and_size(archived=False), "storage_stats")
    archived_count, archived_bytes = await bounded(uow.archive.count_and_size(archived=True), "storage_stats")
    return StorageStats(
        active_count=active_count,
        archived_count=archived_count,
        active_bytes=active_bytes,
        archived_bytes=archived_bytes,
    )


async def list_archived(
    uow: UnitOfWork,
    conversation_id: str,
    *,
    limit: int = 50,
    offset: int = 0,
) -> list[ArchivedMessage]:
    if not is_valid_uuid(conversation_id):
        raise ValidationError("Invalid conversation ID format")
    if limit < 1 or offset < 0:
        raise ValidationError("limit must be positive and offset non-negative")
    return await bounded(
        uow.archive.list_archived(UUID(conversation_id), limit=limit, offset=offset),
        "list_archived",
    )
