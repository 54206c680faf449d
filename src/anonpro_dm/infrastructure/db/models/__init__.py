"""Import all models so metadata.create_all sees every table."""
from anonpro_dm.infrastructure.db.models.conversation import ConversationModel
from anonpro_dm.infrastructure.db.models.message import MessageModel
from anonpro_dm.infrastructure.db.models.outbox import OutboxMessageModel

__all__ = [
    "ConversationModel",
    "MessageModel",
    "OutboxMessageModel",
]
