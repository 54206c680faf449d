from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated caller identity extracted from JWT."""

    alias: str

    @property
    def principal_key(self) -> str:
        """Unique key for WS connection registry."""
        return f"alias:{self.alias}"
