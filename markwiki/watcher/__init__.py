"""Change detection for watch mode."""

from markwiki.watcher.events import EventSubscription, FsEvent
from markwiki.watcher.models import ConfigFileState, WatchResult
from markwiki.watcher.watcher import ChangeWatcher

__all__ = [
    "ChangeWatcher",
    "ConfigFileState",
    "EventSubscription",
    "FsEvent",
    "WatchResult",
]
