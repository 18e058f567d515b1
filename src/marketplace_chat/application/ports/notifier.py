from __future__ import annotations

from typing import Protocol
from uuid import UUID


class Notifier(Protocol):
    """Out-of-band notification (e-mail) for recipients without a live connection."""

    async def notify_new_message(
        self,
        recipient_id: UUID,
        recipient_role: str,
        conversation_id: UUID,
    ) -> None: ...
