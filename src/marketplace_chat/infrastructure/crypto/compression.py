"""gzip helpers for message bodies.

Compression is an optimisation: ``compress`` returns None whenever the
compressed form is not worth using, and callers fall back to the raw bytes.
"""
from __future__ import annotations

import gzip
import logging
import zlib

logger = logging.getLogger(__name__)

COMPRESSION_THRESHOLD_CHARS = 100
MAX_COMPRESSION_CHARS = 50_000


class DecompressionError(Exception):
    pass


def should_compress(text: str) -> bool:
    return COMPRESSION_THRESHOLD_CHARS < len(text) <= MAX_COMPRESSION_CHARS


def compress(data: bytes) -> bytes | None:
    try:
        packed = gzip.compress(data, compresslevel=6, mtime=0)
    except (OSError, ValueError, zlib.error):
        logger.warning("Compression failed, storing uncompressed", exc_info=True)
        return None
    if len(packed) >= len(data):
        return None
    return packed


def decompress(data: bytes, max_size: int) -> bytes:
    """Inflate gzip ``data``; refuse output larger than ``max_size`` bytes."""
    inflater = zlib.decompressobj(wbits=16 + zlib.MAX_WBITS)
    try:
        out = inflater.decompress(data, max_size)
    except zlib.error as exc:
        raise DecompressionError(f"corrupt compressed payload: {exc}") from exc
    if inflater.unconsumed_tail:
        raise DecompressionError(f"decompressed payload exceeds {max_size} bytes")
    if not inflater.eof:
        raise DecompressionError("truncated compressed payload")
    return out
