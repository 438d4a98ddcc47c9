from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from markwiki.snapshot.models import Snapshot

logger = logging.getLogger(__name__)


def stat_mtime(path: str) -> int | None:
    """mtime of *path* in nanoseconds, or None if it does not exist."""
    try:
        return os.stat(path).st_mtime_ns
    except (FileNotFoundError, NotADirectoryError):
        return None


@dataclass
class ConfigFileState:
    """Last observed existence and mtime of one wiki config file."""

    path: str
    mod_time: int | None = None
    existed: bool = False

    @classmethod
    def capture(cls, path: str) -> ConfigFileState:
        """Record *path* as it is now. A path that cannot be stat'd counts as missing."""
        try:
            mod_time = stat_mtime(path)
        except OSError as e:
            logger.warning("Unable to stat '%s': %s", path, e.strerror)
            mod_time = None
        return cls(path=path, mod_time=mod_time, existed=mod_time is not None)


@dataclass(frozen=True)
class WatchResult:
    """Outcome of one watch cycle."""

    snapshot: Snapshot | None
    regenerate_all: bool = False
    ignore_rules_changed: bool = False
    timed_out: bool = False
