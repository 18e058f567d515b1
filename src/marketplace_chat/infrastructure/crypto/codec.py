"""Authenticated encryption for message bodies.

Stored form::

    <marker><base64url(nonce | tag | ciphertext)>

``marker`` is ``C`` when the plaintext was gzip-compressed before
encryption and ``P`` otherwise. AES-256-GCM with a random 12-byte nonce per
message; the marker is bound in as associated data. The key is derived
once from the configured secret with scrypt.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import os
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from marketplace_chat.application.exceptions import EncodingError
from marketplace_chat.config import Settings
from marketplace_chat.infrastructure.crypto import compression

logger = logging.getLogger(__name__)

MAX_PLAINTEXT_CHARS = 100_000
MAX_CIPHERTEXT_CHARS = 200_000

MARKER_COMPRESSED = "C"
MARKER_PLAIN = "P"

_NONCE_LEN = 12
_TAG_LEN = 16
_KEY_LEN = 32
# Worst case UTF-8 expansion of MAX_PLAINTEXT_CHARS.
_MAX_PLAINTEXT_BYTES = MAX_PLAINTEXT_CHARS * 4

_DEV_SEED = "marketplace-chat-development-key-seed"


@dataclass(frozen=True, slots=True)
class EncodedMessage:
    ciphertext: str
    content_hash: str
    is_compressed: bool


def derive_key(secret: str, salt: str) -> bytes:
    kdf = Scrypt(salt=salt.encode("utf-8"), length=_KEY_LEN, n=2**14, r=8, p=1)
    return kdf.derive(secret.encode("utf-8"))


def content_digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class MessageCodec:
    def __init__(self, secret: str, *, salt: str = "marketplace-chat", use_compression: bool = True) -> None:
        if len(secret) < 32:
            raise ValueError("Encryption secret is too short (min 32 characters)")
        self._aead = AESGCM(derive_key(secret, salt))
        self._use_compression = use_compression

    def digest(self, text: str) -> str:
        return content_digest(text)

    def encrypt(self, plaintext: str) -> EncodedMessage:
        if not isinstance(plaintext, str):
            raise EncodingError("Cannot encrypt: text must be a string")
        if len(plaintext) > MAX_PLAINTEXT_CHARS:
            raise EncodingError(
                f"Message too large: {len(plaintext)} characters (max {MAX_PLAINTEXT_CHARS})"
            )

        raw = plaintext.encode("utf-8")
        body = raw
        is_compressed = False
        if self._use_compression and compression.should_compress(plaintext):
            packed = compression.compress(raw)
            if packed is not None:
                body, is_compressed = packed, True

        marker = MARKER_COMPRESSED if is_compressed else MARKER_PLAIN
        nonce = os.urandom(_NONCE_LEN)
        sealed = self._aead.encrypt(nonce, body, marker.encode("ascii"))
        ct, tag = sealed[:-_TAG_LEN], sealed[-_TAG_LEN:]
        encoded = marker + base64.urlsafe_b64encode(nonce + tag + ct).decode("ascii")

        if len(encoded) > MAX_CIPHERTEXT_CHARS:
            raise EncodingError(
                f"Encrypted data too large: {len(encoded)} characters (max {MAX_CIPHERTEXT_CHARS})"
            )
        return EncodedMessage(
            ciphertext=encoded,
            content_hash=content_digest(plaintext),
            is_compressed=is_compressed,
        )

    def decrypt(self, ciphertext: str) -> str:
        if not isinstance(ciphertext, str):
            raise EncodingError("Invalid encrypted data: must be a string")
        if not ciphertext:
            raise EncodingError("Invalid encrypted data: cannot be empty")
        if len(ciphertext) > MAX_CIPHERTEXT_CHARS:
            raise EncodingError(
                f"Encrypted data too large: {len(ciphertext)} characters (max {MAX_CIPHERTEXT_CHARS})"
            )

        marker, payload_b64 = ciphertext[0], ciphertext[1:]
        if marker not in (MARKER_COMPRESSED, MARKER_PLAIN):
            raise EncodingError("Invalid encrypted data: unknown format marker")

        try:
            payload = base64.urlsafe_b64decode(payload_b64.encode("ascii"))
        except (binascii.Error, UnicodeEncodeError) as exc:
            raise EncodingError("Invalid encrypted data: not base64") from exc
        if len(payload) < _NONCE_LEN + _TAG_LEN:
            raise EncodingError("Invalid encrypted data: too short to be valid")

        nonce = payload[:_NONCE_LEN]
        tag = payload[_NONCE_LEN:_NONCE_LEN + _TAG_LEN]
        ct = payload[_NONCE_LEN + _TAG_LEN:]
        try:
            body = self._aead.decrypt(nonce, ct + tag, marker.encode("ascii"))
        except InvalidTag as exc:
            raise EncodingError(
                "Decryption authentication failed - message may have been "
                "encrypted with a different key or is corrupted"
            ) from exc

        if marker == MARKER_COMPRESSED:
            try:
                body = compression.decompress(body, _MAX_PLAINTEXT_BYTES)
            except compression.DecompressionError as exc:
                raise EncodingError(f"Decryption failed: {exc}") from exc

        try:
            return body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise EncodingError("Decryption failed: plaintext is not valid UTF-8") from exc


def build_codec(cfg: Settings) -> MessageCodec:
    """Create the process-wide codec; refuse to run unconfigured outside development."""
    secret = cfg.CHAT_ENCRYPTION_KEY
    if not secret:
        if not cfg.is_development:
            raise RuntimeError(
                "CHAT_ENCRYPTION_KEY must be configured when ENVIRONMENT is not 'development'"
            )
        logger.warning("CHAT_ENCRYPTION_KEY not set; using the development key")
        secret = hashlib.sha256(_DEV_SEED.encode("utf-8")).hexdigest()
    return MessageCodec(
        secret,
        salt=cfg.CHAT_ENCRYPTION_SALT,
        use_compression=cfg.CHAT_USE_COMPRESSION,
    )
