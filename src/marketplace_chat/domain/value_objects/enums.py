from __future__ import annotations

from enum import StrEnum


class Role(StrEnum):
    CUSTOMER = "customer"
    VENDOR = "vendor"

    @property
    def counterpart(self) -> Role:
        return Role.VENDOR if self is Role.CUSTOMER else Role.CUSTOMER


class RoomKind(StrEnum):
    USER = "user"
    CONVERSATION = "conversation"
