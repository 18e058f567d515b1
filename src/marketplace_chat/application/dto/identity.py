from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from marketplace_chat.domain.value_objects.enums import Role


@dataclass(frozen=True, slots=True)
class Identity:
    """Authenticated caller identity extracted from JWT."""

    user_id: UUID
    role: str

    @property
    def chat_role(self) -> Role | None:
        """The role as a chat participant, or None for roles that never chat."""
        try:
            return Role(self.role)
        except ValueError:
            return None
