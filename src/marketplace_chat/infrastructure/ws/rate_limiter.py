"""Per-user fixed-window throttle for outbound chat messages.

State is process-local. The connection registry drops a user's window when
their last connection closes; expired windows of everyone else (REST-only
senders included) are swept once per window length.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable
from uuid import UUID

from marketplace_chat.application.ports.clock import SystemClock

DEFAULT_MAX_MESSAGES = 30
DEFAULT_WINDOW_SECONDS = 60.0


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    allowed: bool
    retry_after_seconds: int | None = None


@dataclass(slots=True)
class _Window:
    count: int
    reset_at: float


class MessageRateLimiter:
    def __init__(
        self,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        *,
        monotonic: Callable[[], float] | None = None,
    ) -> None:
        self._max = max_messages
        self._window = window_seconds
        self._monotonic = monotonic or SystemClock().monotonic
        self._windows: dict[UUID, _Window] = {}
        self._next_sweep = self._monotonic() + window_seconds

    def check_and_consume(self, user_id: UUID) -> RateLimitDecision:
        now = self._monotonic()
        if now >= self._next_sweep:
            self._sweep(now)
        window = self._windows.get(user_id)

        if window is None or now >= window.reset_at:
            self._windows[user_id] = _Window(count=1, reset_at=now + self._window)
            return RateLimitDecision(allowed=True)

        if window.count >= self._max:
            retry_after = max(1, math.ceil(window.reset_at - now))
            return RateLimitDecision(allowed=False, retry_after_seconds=retry_after)

        window.count += 1
        return RateLimitDecision(allowed=True)

    def _sweep(self, now: float) -> None:
        expired = [uid for uid, w in self._windows.items() if now >= w.reset_at]
        for uid in expired:
            del self._windows[uid]
        self._next_sweep = now + self._window

    def discard(self, user_id: UUID) -> None:
        self._windows.pop(user_id, None)

    def tracked_users(self) -> int:
        return len(self._windows)
