from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


def ordered_pair(alias_a: str, alias_b: str) -> tuple[str, str]:
    """Canonical storage order for an unordered participant pair."""
    return (alias_a, alias_b) if alias_a < alias_b else (alias_b, alias_a)


@dataclass(frozen=True, slots=True)
class Conversation:
    id: UUID
    user_one: str
    user_two: str
    created_at: datetime
    updated_at: datetime

    @property
    def participants(self) -> tuple[str, str]:
        return self.user_one, self.user_two

    def has_participant(self, alias: str) -> bool:
        return alias in (self.user_one, self.user_two)

    def peer_of(self, alias: str) -> str:
        if alias == self.user_one:
            return self.user_two
        if alias == self.user_two:
            return self.user_one
        raise ValueError(f"{alias!r} is not a participant of conversation {self.id}")
