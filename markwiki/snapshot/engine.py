"""Recursive directory fingerprinting."""

from __future__ import annotations

import logging
import os
import stat
from collections.abc import Iterator
from pathlib import Path
from typing import Protocol

from markwiki.errors import RecursionTooDeep, SnapshotCancelled, SnapshotError
from markwiki.ignore import IgnoreMatcher
from markwiki.snapshot.models import FileFingerprint, Snapshot

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 1000


class CancelSignal(Protocol):
    """Anything that can report cancellation (threading.Event, CancelScope)."""

    def is_set(self) -> bool: ...


def _fingerprint(path: str, st: os.stat_result) -> FileFingerprint:
    is_dir = stat.S_ISDIR(st.st_mode)
    return FileFingerprint(
        path=path,
        mod_time=st.st_mtime_ns,
        size=0 if is_dir else st.st_size,
        is_dir=is_dir,
    )


def _list_dir(path: str) -> list[os.DirEntry[str]]:
    with os.scandir(path) as it:
        return sorted(it, key=lambda entry: entry.name)


def take_snapshot(
    root: str | Path,
    matcher: IgnoreMatcher | None = None,
    cancel: CancelSignal | None = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Snapshot:
    """Fingerprint every non-ignored entry under *root*.

    Entries are stat'ed without following symlinks. Each directory's
    children are visited in name order, so an unchanged tree always yields
    an equal snapshot. Ignored directories are pruned entirely.

    Raises SnapshotError if the root itself cannot be read, SnapshotCancelled
    if *cancel* fires mid-walk, and RecursionTooDeep past *max_depth*.
    Unreadable entries below the root are logged and skipped.
    """
    root_path = os.path.abspath(root)
    if cancel is not None and cancel.is_set():
        raise SnapshotCancelled(root_path)

    try:
        root_stat = os.stat(root_path)
    except OSError as e:
        raise SnapshotError(root_path, f"cannot stat snapshot root ({e.strerror})") from e
    if not stat.S_ISDIR(root_stat.st_mode):
        raise SnapshotError(root_path, "snapshot root is not a directory")
    try:
        root_children = _list_dir(root_path)
    except OSError as e:
        raise SnapshotError(root_path, f"cannot list snapshot root ({e.strerror})") from e

    entries: list[FileFingerprint] = [_fingerprint(root_path, root_stat)]
    # Depth-first, each directory's children in name order
    stack: list[tuple[Iterator[os.DirEntry[str]], int]] = [(iter(root_children), 1)]

    while stack:
        children, depth = stack[-1]
        child = next(children, None)
        if child is None:
            stack.pop()
            continue

        if cancel is not None and cancel.is_set():
            raise SnapshotCancelled(root_path)
        if depth > max_depth:
            raise RecursionTooDeep(child.path, depth, max_depth)

        try:
            child_stat = child.stat(follow_symlinks=False)
        except OSError as e:
            # Vanished between listing and stat, or permission denied
            logger.warning("Skipping unreadable entry '%s': %s", child.path, e.strerror)
            continue

        fingerprint = _fingerprint(child.path, child_stat)
        if matcher:
            rel_path = os.path.relpath(child.path, root_path)
            if matcher.matches(rel_path, fingerprint.is_dir):
                continue

        entries.append(fingerprint)
        if fingerprint.is_dir:
            try:
                grandchildren = _list_dir(child.path)
            except OSError as e:
                logger.warning("Skipping unreadable directory '%s': %s", child.path, e.strerror)
                continue
            stack.append((iter(grandchildren), depth + 1))

    return Snapshot(root=root_path, entries=tuple(entries))
