"""Move old, read messages to cold storage, or bring some back.

Usage:
    python -m marketplace_chat.scripts.archive_messages [days] [--dry-run]
    python -m marketplace_chat.scripts.archive_messages restore <message-id> [...]
    python -m marketplace_chat.scripts.archive_messages stats

Exit status: 0 on success, 1 on failure, 2 when rows were copied but not
removed from their source table (rerun to finish).
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from marketplace_chat.application.dto.archive import StorageStats, format_bytes
from marketplace_chat.application.exceptions import (
    AppError,
    PartialArchiveError,
    PartialRestoreError,
)
from marketplace_chat.config import settings
from marketplace_chat.infrastructure.db.session import session_uow
from marketplace_chat.services import archive_service

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_PARTIAL = 2


def _print_stats(title: str, stats: StorageStats) -> None:
    print(title)
    print(f"  Active messages:   {stats.active_count} ({stats.active_size})")
    print(f"  Archived messages: {stats.archived_count} ({stats.archived_size})")


async def run_archive(days: int, *, dry_run: bool) -> int:
    async with session_uow() as uow:
        before = await archive_service.stats(uow)
        _print_stats("Before archiving:", before)

        if dry_run:
            pending = await archive_service.count_archivable(uow, days)
            print(f"Dry run: {pending} messages older than {days} days would be archived")
            return EXIT_OK

        try:
            result = await archive_service.archive(uow, days, batch_size=settings.ARCHIVE_BATCH_SIZE)
        except PartialArchiveError as exc:
            print(f"{exc.detail} ({exc.archived_count} messages copied); rerun to finish", file=sys.stderr)
            return EXIT_PARTIAL

        after = await archive_service.stats(uow)
        _print_stats("After archiving:", after)
        freed = max(0, before.active_bytes - after.active_bytes)
        print(f"Archived {result.archived_count} messages, freed {format_bytes(freed)} from the main table")
        return EXIT_OK


async def run_restore(message_ids: list[str]) -> int:
    async with session_uow() as uow:
        try:
            result = await archive_service.restore(uow, message_ids)
        except PartialRestoreError as exc:
            print(f"{exc.detail} ({exc.restored_count} messages copied); rerun to finish", file=sys.stderr)
            return EXIT_PARTIAL
    print(f"Restored {result.restored_count} of {len(message_ids)} requested messages")
    return EXIT_OK


async def run_stats() -> int:
    async with session_uow() as uow:
        _print_stats("Storage:", await archive_service.stats(uow))
    return EXIT_OK


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="archive_messages",
        description="Archive read messages older than N days, or restore archived ones.",
    )
    parser.add_argument(
        "args",
        nargs="*",
        help="[days] | restore <message-id>... | stats",
    )
    parser.add_argument("--dry-run", action="store_true", help="report what would be archived")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    ns = _parse_args(argv)
    args: list[str] = ns.args

    try:
        if args and args[0] == "restore":
            if len(args) < 2:
                print("restore needs at least one message id", file=sys.stderr)
                return EXIT_FAILED
            return asyncio.run(run_restore(args[1:]))
        if args and args[0] == "stats":
            return asyncio.run(run_stats())

        days = settings.ARCHIVE_AFTER_DAYS
        if args:
            try:
                days = int(args[0])
            except ValueError:
                print(f"days must be an integer, got {args[0]!r}", file=sys.stderr)
                return EXIT_FAILED
        return asyncio.run(run_archive(days, dry_run=ns.dry_run))
    except AppError as exc:
        print(f"Error: {exc.detail}", file=sys.stderr)
        return EXIT_FAILED
    except Exception:
        logger.exception("Archive command failed")
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
