from __future__ import annotations

from anonpro_dm.domain.entities.conversation import Conversation
from anonpro_dm.infrastructure.db.models.conversation import ConversationModel


def model_to_entity(model: ConversationModel) -> Conversation:
    return Conversation(
        id=model.id,
        user_one=model.user_one,
        user_two=model.user_two,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def entity_to_values(entity: Conversation) -> dict:
    return {
        "id": entity.id,
        "user_one": entity.user_one,
        "user_two": entity.user_two,
        "created_at": entity.created_at,
        "updated_at": entity.updated_at,
    }
