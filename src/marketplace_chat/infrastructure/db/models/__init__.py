"""Import all models so Base.metadata knows every table."""
from marketplace_chat.infrastructure.db.models.archived_message import ArchivedMessageModel
from marketplace_chat.infrastructure.db.models.conversation import ConversationModel
from marketplace_chat.infrastructure.db.models.message import MessageModel

__all__ = [
    "ArchivedMessageModel",
    "ConversationModel",
    "MessageModel",
]
