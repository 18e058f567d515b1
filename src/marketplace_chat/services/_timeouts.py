from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from marketplace_chat.application.exceptions import OperationTimeoutError
from marketplace_chat.config import settings

T = TypeVar("T")


async def bounded(
    awaitable: Awaitable[T],
    operation: str,
    seconds: float | None = None,
) -> T:
    """Await with a deadline; a timeout surfaces as OperationTimeoutError."""
    timeout = settings.DB_TIMEOUT_SECONDS if seconds is None else seconds
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except TimeoutError as exc:
        raise OperationTimeoutError(operation) from exc
