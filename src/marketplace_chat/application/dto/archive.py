from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ArchiveResult:
    archived_count: int


@dataclass(frozen=True, slots=True)
class RestoreResult:
    restored_count: int


@dataclass(frozen=True, slots=True)
class StorageStats:
    active_count: int
    archived_count: int
    active_bytes: int
    archived_bytes: int

    @property
    def active_size(self) -> str:
        return format_bytes(self.active_bytes)

    @property
    def archived_size(self) -> str:
        return format_bytes(self.archived_bytes)


def format_bytes(num: int) -> str:
    if num <= 0:
        return "0 B"
    size = float(num)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            break
        size /= 1024
    return f"{round(size, 2):g} {unit}"
