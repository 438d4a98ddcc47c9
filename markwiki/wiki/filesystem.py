"""Destination-side file operations: copying, staleness, cleaning."""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Collection
from pathlib import Path

from markwiki.errors import GenerationError, OperationCancelled
from markwiki.snapshot.engine import DEFAULT_MAX_DEPTH, CancelSignal

logger = logging.getLogger(__name__)


def source_is_older(source_mtime_ns: int, dest_path: str | Path) -> bool:
    """True if *dest_path* exists and was modified after the source."""
    try:
        dest_mtime_ns = os.stat(dest_path).st_mtime_ns
    except OSError:
        return False
    return source_mtime_ns < dest_mtime_ns


def copy_file_to_dest(source: str | Path, dest: str | Path, regenerate_all: bool = False) -> bool:
    """Copy *source* to *dest* unless dest is already newer.

    Returns True if a copy was written. A source that disappeared since it
    was listed is skipped quietly.
    """
    try:
        source_mtime_ns = os.stat(source).st_mtime_ns
    except FileNotFoundError:
        logger.info("'%s' was not copied because it no longer exists", source)
        return False
    except OSError as e:
        raise GenerationError(f"could not stat '{source}' for copy: {e.strerror}") from e

    if not regenerate_all and source_is_older(source_mtime_ns, dest):
        return False

    dest_dir = os.path.dirname(dest)
    try:
        os.makedirs(dest_dir, exist_ok=True)
    except OSError as e:
        raise GenerationError(f"failed to create dest dir '{dest_dir}': {e.strerror}") from e

    logger.info("Copying '%s'", source)
    try:
        shutil.copyfile(source, dest)
    except OSError as e:
        if isinstance(e, FileNotFoundError) and not os.path.exists(source):
            logger.info("'%s' was not copied because it no longer exists", source)
            return False
        raise GenerationError(f"failed to copy '{source}' to '{dest}': {e}") from e
    return True


def is_directory_empty(path: str | Path) -> bool:
    with os.scandir(path) as it:
        return next(it, None) is None


def _depth(path: str, top: str) -> int:
    rel_path = os.path.relpath(path, top)
    return 0 if rel_path == os.curdir else rel_path.count(os.sep) + 1


def delete_empty_directories(path: str | Path, max_depth: int = DEFAULT_MAX_DEPTH) -> int:
    """Remove empty directories below *path*, innermost first.

    Directories left empty by removing their children are removed too.
    *path* itself is kept. Returns the number of directories removed.
    """
    top = os.path.abspath(path)
    removed = 0
    for dir_path, _, _ in os.walk(top, topdown=False):
        if dir_path == top:
            continue
        depth = _depth(dir_path, top)
        if depth > max_depth:
            raise GenerationError(
                f"directory recursion depth exceeded at '{dir_path}' (depth {depth}, max {max_depth})"
            )
        if is_directory_empty(dir_path):
            logger.info("Deleting empty directory '%s'", dir_path)
            try:
                os.rmdir(dir_path)
            except OSError as e:
                logger.warning("Failed to delete '%s': %s", dir_path, e.strerror)
                continue
            removed += 1
    return removed


def clean_dest_dir(
    dest_dir: str | Path,
    keep: Collection[str],
    cancel: CancelSignal | None = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> int:
    """Delete files in *dest_dir* whose relative path is not in *keep*.

    Empty directories are removed afterwards. Returns the number of files
    deleted; files that cannot be deleted are logged and left alone.
    """
    top = os.path.abspath(dest_dir)
    deleted = 0

    def on_error(e: OSError) -> None:
        raise GenerationError(f"cleaning destination failed: {e}") from e

    for dir_path, dir_names, file_names in os.walk(top, onerror=on_error):
        dir_names.sort()
        if cancel is not None and cancel.is_set():
            raise OperationCancelled(f"cleaning '{top}' cancelled")
        depth = _depth(dir_path, top)
        if depth > max_depth:
            raise GenerationError(
                f"directory recursion depth exceeded at '{dir_path}' (depth {depth}, max {max_depth})"
            )
        for name in sorted(file_names):
            file_path = os.path.join(dir_path, name)
            if not (os.path.isfile(file_path) or os.path.islink(file_path)):
                continue
            if os.path.relpath(file_path, top) in keep:
                continue
            logger.info("Deleting '%s'", file_path)
            try:
                os.remove(file_path)
            except OSError as e:
                logger.warning("Failed to delete '%s': %s", file_path, e.strerror)
                continue
            deleted += 1

    if cancel is not None and cancel.is_set():
        raise OperationCancelled(f"cleaning '{top}' cancelled")
    delete_empty_directories(top, max_depth)
    return deleted
