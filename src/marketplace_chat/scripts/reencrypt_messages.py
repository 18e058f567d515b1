"""Re-encrypt stored messages under the currently configured key.

Run after rotating CHAT_ENCRYPTION_KEY while the previous key is supplied as
``--old-key``. Messages that already open under the current key are
re-sealed as well, which refreshes their digest and compression flag.

Usage:
    python -m marketplace_chat.scripts.reencrypt_messages [--old-key KEY] [--batch-size N]
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select, update

from marketplace_chat.application.exceptions import EncodingError
from marketplace_chat.config import settings
from marketplace_chat.infrastructure.crypto.codec import MessageCodec, build_codec
from marketplace_chat.infrastructure.db.models.message import MessageModel
from marketplace_chat.infrastructure.db.session import session_uow

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReencryptReport:
    reencrypted: int = 0
    skipped: int = 0
    undecryptable: int = 0


def reseal(
    ciphertext: str,
    current: MessageCodec,
    previous: MessageCodec | None,
) -> tuple[str, str, bool] | None:
    """Return (ciphertext, digest, compressed) under ``current``, or None if unreadable."""
    for codec in (current, previous):
        if codec is None:
            continue
        try:
            plaintext = codec.decrypt(ciphertext)
        except EncodingError:
            continue
        encoded = current.encrypt(plaintext)
        return encoded.ciphertext, encoded.content_hash, encoded.is_compressed
    return None


def reseal_batch(
    rows: list[tuple[UUID, str]],
    current: MessageCodec,
    previous: MessageCodec | None,
    report: ReencryptReport,
) -> list[tuple[UUID, str, str, bool]]:
    """Reseal one batch of (id, ciphertext) rows, tallying outcomes into ``report``."""
    updates: list[tuple[UUID, str, str, bool]] = []
    for message_id, ciphertext in rows:
        try:
            sealed = reseal(ciphertext, current, previous)
        except EncodingError as exc:
            logger.warning("Message %s skipped: %s", message_id, exc.detail)
            report.skipped += 1
            continue
        if sealed is None:
            report.undecryptable += 1
            continue
        updates.append((message_id, *sealed))
        report.reencrypted += 1
    return updates


async def reencrypt_all(
    current: MessageCodec,
    previous: MessageCodec | None,
    *,
    batch_size: int = 500,
) -> ReencryptReport:
    report = ReencryptReport()
    last_id = None

    async with session_uow() as uow:
        session = uow.session
        while True:
            stmt = select(MessageModel.id, MessageModel.encrypted_content).order_by(MessageModel.id).limit(batch_size)
            if last_id is not None:
                stmt = stmt.where(MessageModel.id > last_id)
            rows = (await session.execute(stmt)).all()
            if not rows:
                break

            updates = await asyncio.to_thread(reseal_batch, list(rows), current, previous, report)
            for message_id, new_ciphertext, digest, compressed in updates:
                await session.execute(
                    update(MessageModel)
                    .where(MessageModel.id == message_id)
                    .values(encrypted_content=new_ciphertext, content_hash=digest, is_compressed=compressed)
                )

            await uow.commit()
            last_id = rows[-1][0]
            logger.info("Processed batch ending at %s", last_id)

    return report


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    parser = argparse.ArgumentParser(prog="reencrypt_messages", description=__doc__.splitlines()[0])
    parser.add_argument("--old-key", default=None, help="previous CHAT_ENCRYPTION_KEY")
    parser.add_argument("--batch-size", type=int, default=settings.ARCHIVE_BATCH_SIZE)
    ns = parser.parse_args(argv)

    try:
        current = build_codec(settings)
        previous = (
            MessageCodec(ns.old_key, salt=settings.CHAT_ENCRYPTION_SALT, use_compression=settings.CHAT_USE_COMPRESSION)
            if ns.old_key
            else None
        )
        report = asyncio.run(reencrypt_all(current, previous, batch_size=ns.batch_size))
    except Exception:
        logger.exception("Re-encryption failed")
        return 1

    print(f"Re-encrypted: {report.reencrypted}")
    print(f"Skipped:      {report.skipped}")
    print(f"Undecryptable: {report.undecryptable}")
    return 1 if report.undecryptable else 0


if __name__ == "__main__":
    sys.exit(main())
