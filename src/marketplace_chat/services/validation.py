"""Input validation and sanitisation shared by the REST and WebSocket paths."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any
from uuid import UUID

MAX_MESSAGE_CHARS = 5000
SUSPICIOUS_MESSAGE_CHARS = 10_000
TEMP_MESSAGE_PREFIX = "temp-"

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_EXCESS_NEWLINES = re.compile(r"\n{4,}")


@dataclass(frozen=True, slots=True)
class ValidationResult:
    valid: bool
    error: str | None = None


_OK = ValidationResult(True)


def is_valid_uuid(value: Any) -> bool:
    if not value or not isinstance(value, str):
        return False
    try:
        UUID(value)
    except ValueError:
        return False
    return True


def _validate_id(value: Any, label: str) -> ValidationResult:
    if not value:
        return ValidationResult(False, f"{label} is required")
    if not isinstance(value, str):
        return ValidationResult(False, f"{label} must be a string")
    if not is_valid_uuid(value):
        return ValidationResult(False, f"Invalid {label.lower()} format")
    return _OK


def validate_conversation_id(value: Any) -> ValidationResult:
    return _validate_id(value, "Conversation ID")


def validate_vendor_id(value: Any) -> ValidationResult:
    return _validate_id(value, "Vendor ID")


def validate_client_msg_id(value: Any) -> ValidationResult:
    if value is None:
        return _OK
    return _validate_id(value, "Client message ID")


def validate_message_id(value: Any) -> ValidationResult:
    """Message ids are UUIDs, or ``temp-`` ids for messages still in flight on the client."""
    if isinstance(value, str) and value.startswith(TEMP_MESSAGE_PREFIX):
        return _OK
    return _validate_id(value, "Message ID")


def is_temporary_message_id(value: str) -> bool:
    return value.startswith(TEMP_MESSAGE_PREFIX)


def validate_message_content(content: Any) -> ValidationResult:
    if content is None:
        return ValidationResult(False, "Message content is required")
    if not isinstance(content, str):
        return ValidationResult(False, "Message content must be a string")
    if len(content) > SUSPICIOUS_MESSAGE_CHARS:
        return ValidationResult(False, "Message content is suspiciously long")

    trimmed = content.strip()
    if not trimmed:
        return ValidationResult(False, "Message content cannot be empty")
    if len(trimmed) > MAX_MESSAGE_CHARS:
        return ValidationResult(False, f"Message is too long (max {MAX_MESSAGE_CHARS} characters)")
    return _OK


def sanitize_message_content(content: Any) -> str:
    if not isinstance(content, str):
        return ""
    text = _CONTROL_CHARS.sub("", content)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return _EXCESS_NEWLINES.sub("\n\n\n", text).strip()
