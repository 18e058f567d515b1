from __future__ import annotations

from uuid import UUID


def room_key(kind: str, ident: UUID | str) -> str:
    """Broadcast group name, e.g. ``conversation:<uuid>`` or ``user:<uuid>``."""
    return f"{kind}:{ident}"
