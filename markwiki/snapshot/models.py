"""Data models for directory snapshots."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass


@dataclass(frozen=True)
class FileFingerprint:
    """Identity-relevant attributes of one filesystem entry."""

    path: str  # absolute
    mod_time: int  # nanoseconds
    size: int  # 0 for directories
    is_dir: bool

    def same_as(self, other: FileFingerprint) -> bool:
        return (
            self.path == other.path
            and self.mod_time == other.mod_time
            and self.size == other.size
            and self.is_dir == other.is_dir
        )


@dataclass(frozen=True)
class Snapshot:
    """Ordered fingerprints of a directory tree, in traversal order."""

    root: str
    entries: tuple[FileFingerprint, ...] = ()

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[FileFingerprint]:
        return iter(self.entries)

    def paths(self) -> list[str]:
        return [entry.path for entry in self.entries]


def snapshots_equal(first: Snapshot | None, second: Snapshot | None) -> bool:
    """Return True if both snapshots exist and match entry for entry.

    An absent snapshot means "unknown", so it never equals anything,
    not even another absent snapshot.
    """
    if first is None or second is None:
        return False
    if len(first.entries) != len(second.entries):
        return False
    return all(a.same_as(b) for a, b in zip(first.entries, second.entries))
