from __future__ import annotations

import gzip
import hashlib

import pytest

from marketplace_chat.application.exceptions import EncodingError
from marketplace_chat.config import Settings
from marketplace_chat.infrastructure.crypto import compression
from marketplace_chat.infrastructure.crypto.codec import (
    MAX_CIPHERTEXT_CHARS,
    MAX_PLAINTEXT_CHARS,
    MessageCodec,
    build_codec,
)
from tests.conftest import TEST_SECRET


def test_short_message_round_trip_is_uncompressed(codec):
    encoded = codec.encrypt("hi there")

    assert encoded.ciphertext.startswith("P")
    assert encoded.is_compressed is False
    assert codec.decrypt(encoded.ciphertext) == "hi there"


def test_long_repetitive_message_is_compressed(codec):
    text = "The order shipped yesterday. " * 40

    encoded = codec.encrypt(text)

    assert encoded.ciphertext.startswith("C")
    assert encoded.is_compressed is True
    assert codec.decrypt(encoded.ciphertext) == text


def test_compression_can_be_disabled():
    plain_codec = MessageCodec(TEST_SECRET, use_compression=False)
    text = "x" * 500

    encoded = plain_codec.encrypt(text)

    assert encoded.is_compressed is False
    assert plain_codec.decrypt(encoded.ciphertext) == text


def test_same_plaintext_encrypts_differently(codec):
    first = codec.encrypt("same words")
    second = codec.encrypt("same words")

    assert first.ciphertext != second.ciphertext
    assert first.content_hash == second.content_hash


def test_digest_is_sha256_of_plaintext_regardless_of_compression(codec):
    text = "digest me " * 30

    encoded = codec.encrypt(text)

    assert encoded.is_compressed is True
    assert encoded.content_hash == hashlib.sha256(text.encode()).hexdigest()
    assert codec.digest(text) == encoded.content_hash


def test_unicode_round_trip(codec):
    text = "Привет! 👋 Ça va? 日本語"
    assert codec.decrypt(codec.encrypt(text).ciphertext) == text


def test_boundary_size_plaintext_round_trips(codec):
    text = "a" * MAX_PLAINTEXT_CHARS

    encoded = codec.encrypt(text)

    assert len(encoded.ciphertext) <= MAX_CIPHERTEXT_CHARS
    assert codec.decrypt(encoded.ciphertext) == text


def test_boundary_size_without_compression_fits_ciphertext_cap():
    plain_codec = MessageCodec(TEST_SECRET, use_compression=False)
    text = "b" * MAX_PLAINTEXT_CHARS

    encoded = plain_codec.encrypt(text)

    assert len(encoded.ciphertext) <= MAX_CIPHERTEXT_CHARS
    assert plain_codec.decrypt(encoded.ciphertext) == text


def test_oversize_plaintext_rejected(codec):
    with pytest.raises(EncodingError, match="too large"):
        codec.encrypt("a" * (MAX_PLAINTEXT_CHARS + 1))


def test_output_over_ciphertext_cap_rejected(codec):
    # 4 bytes per char in UTF-8 and too long to be compressed
    with pytest.raises(EncodingError, match="Encrypted data too large"):
        codec.encrypt("😀" * 60_000)


@pytest.mark.parametrize("value", [None, 42, b"bytes"])
def test_non_string_plaintext_rejected(codec, value):
    with pytest.raises(EncodingError):
        codec.encrypt(value)


@pytest.mark.parametrize("value", [None, "", "Xabcdef", "P!!!not-base64!!!", "PAAAA"])
def test_malformed_ciphertext_rejected(codec, value):
    with pytest.raises(EncodingError):
        codec.decrypt(value)


def test_oversize_ciphertext_rejected(codec):
    with pytest.raises(EncodingError, match="too large"):
        codec.decrypt("P" + "A" * MAX_CIPHERTEXT_CHARS)


def test_tampered_ciphertext_fails_authentication(codec):
    ciphertext = codec.encrypt("do not touch").ciphertext
    flipped = "A" if ciphertext[20] != "A" else "B"
    tampered = ciphertext[:20] + flipped + ciphertext[21:]

    with pytest.raises(EncodingError):
        codec.decrypt(tampered)


def test_marker_swap_is_detected(codec):
    short = codec.encrypt("short plain text").ciphertext
    long = codec.encrypt("compress me " * 50).ciphertext
    assert short[0] == "P" and long[0] == "C"

    with pytest.raises(EncodingError, match="authentication failed"):
        codec.decrypt("C" + short[1:])
    with pytest.raises(EncodingError, match="authentication failed"):
        codec.decrypt("P" + long[1:])


def test_wrong_key_fails_authentication(codec, other_codec):
    ciphertext = other_codec.encrypt("sealed elsewhere").ciphertext

    with pytest.raises(EncodingError, match="authentication failed"):
        codec.decrypt(ciphertext)


def test_short_secret_rejected():
    with pytest.raises(ValueError):
        MessageCodec("too-short")


def test_build_codec_fails_closed_outside_development():
    cfg = Settings(
        POSTGRES_USER="u", POSTGRES_PASSWORD="p", POSTGRES_DB="d",
        ENVIRONMENT="production", CHAT_ENCRYPTION_KEY="",
    )
    with pytest.raises(RuntimeError, match="CHAT_ENCRYPTION_KEY"):
        build_codec(cfg)


def test_build_codec_uses_development_key_in_development():
    cfg = Settings(
        POSTGRES_USER="u", POSTGRES_PASSWORD="p", POSTGRES_DB="d",
        ENVIRONMENT="development", CHAT_ENCRYPTION_KEY="",
    )
    dev_codec = build_codec(cfg)

    assert dev_codec.decrypt(dev_codec.encrypt("dev").ciphertext) == "dev"


def test_should_compress_thresholds():
    assert compression.should_compress("a" * 100) is False
    assert compression.should_compress("a" * 101) is True
    assert compression.should_compress("a" * 50_000) is True
    assert compression.should_compress("a" * 50_001) is False


def test_compress_skips_incompressible_input():
    assert compression.compress(b"ab") is None


def test_decompress_refuses_bomb():
    bomb = gzip.compress(b"\0" * 1_000_000)

    with pytest.raises(compression.DecompressionError, match="exceeds"):
        compression.decompress(bomb, 1024)


def test_decompress_rejects_garbage():
    with pytest.raises(compression.DecompressionError):
        compression.decompress(b"not gzip at all", 1024)
