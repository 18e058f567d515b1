from __future__ import annotations

import logging
from uuid import UUID

logger = logging.getLogger(__name__)


class LoggingNotifier:
    """Default Notifier: records that an offline recipient should be e-mailed.

    Deployments with a mail collaborator plug their own Notifier in instead.
    """

    async def notify_new_message(
        self,
        recipient_id: UUID,
        recipient_role: str,
        conversation_id: UUID,
    ) -> None:
        logger.info(
            "New message notification queued for %s %s (conversation=%s)",
            recipient_role, recipient_id, conversation_id,
        )
