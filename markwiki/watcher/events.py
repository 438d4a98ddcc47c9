"""Filesystem event subscription backed by watchdog."""

from __future__ import annotations

import logging
import os
import queue
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import ObservedWatch

from markwiki.errors import WatcherError
from markwiki.scope import CancelScope

logger = logging.getLogger(__name__)

# opened / closed / closed_no_write never change what a snapshot sees
FORWARDED_KINDS = frozenset(
    {EVENT_TYPE_CREATED, EVENT_TYPE_MODIFIED, EVENT_TYPE_DELETED, EVENT_TYPE_MOVED}
)


def canonical_path(path: str | bytes | Path) -> str:
    return os.path.normpath(os.path.abspath(os.fsdecode(path)))


@dataclass(frozen=True)
class FsEvent:
    kind: str
    path: str
    dest_path: str | None = None
    is_dir: bool = False

    @property
    def paths(self) -> tuple[str, ...]:
        if self.dest_path is None:
            return (self.path,)
        return (self.path, self.dest_path)


class _QueueingHandler(FileSystemEventHandler):
    """Converts watchdog events to FsEvents and queues the accepted ones."""

    def __init__(
        self,
        events: queue.Queue[FsEvent],
        accept: Callable[[FsEvent], bool],
    ) -> None:
        super().__init__()
        self._events = events
        self._accept = accept

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in FORWARDED_KINDS:
            return
        dest = getattr(event, "dest_path", None)
        fs_event = FsEvent(
            kind=event.event_type,
            path=canonical_path(event.src_path),
            dest_path=canonical_path(dest) if dest else None,
            is_dir=event.is_directory,
        )
        try:
            accepted = self._accept(fs_event)
        except Exception:
            logger.exception("Event filter failed for %s", fs_event.path)
            accepted = True
        if accepted:
            self._events.put(fs_event)


class EventSubscription:
    """One watchdog observer covering a content tree and its config files.

    The content tree is one recursive watch, so subdirectories created
    later are covered without bookkeeping; ignored paths are filtered as
    events arrive. Config files are covered by a non-recursive watch on
    their parent directory that only forwards events naming them.
    """

    def __init__(
        self,
        content_dir: str | Path,
        config_paths: Iterable[str | Path] = (),
        path_filter: Callable[[str, bool], bool] | None = None,
    ) -> None:
        self._content_dir = canonical_path(content_dir)
        self._config_paths = frozenset(canonical_path(p) for p in config_paths)
        self._path_filter = path_filter
        self._events: queue.Queue[FsEvent] = queue.Queue()
        self._lock = threading.Lock()
        self._watches: list[ObservedWatch] = []
        self._closed = False

        content_handler = _QueueingHandler(self._events, self._accept_content)
        config_handler = _QueueingHandler(self._events, self._accept_config)
        self._observer = Observer()

        try:
            self._observer.start()
            self._watches.append(
                self._observer.schedule(content_handler, self._content_dir, recursive=True)
            )
            for parent in sorted({os.path.dirname(p) for p in self._config_paths}):
                self._watches.append(
                    self._observer.schedule(config_handler, parent, recursive=False)
                )
        except OSError as e:
            self.close()
            raise WatcherError(
                f"unable to watch '{self._content_dir}': {e.strerror or e}"
            ) from e
        logger.debug("Watching %s", self._content_dir)

    def __enter__(self) -> EventSubscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def watch_count(self) -> int:
        """Scheduled observer watches: the content tree plus config parents."""
        with self._lock:
            return len(self._watches)

    def _is_ignored(self, path: str, is_dir: bool) -> bool:
        return self._path_filter is not None and self._path_filter(path, is_dir)

    def _accept_content(self, event: FsEvent) -> bool:
        # watchdog pairs every child event with a modified event on the parent
        if event.kind == EVENT_TYPE_MODIFIED and event.is_dir:
            return False
        if event.dest_path is None:
            return not self._is_ignored(event.path, event.is_dir)
        # A move is relevant if either end is visible
        return not (
            self._is_ignored(event.path, event.is_dir)
            and self._is_ignored(event.dest_path, event.is_dir)
        )

    def _accept_config(self, event: FsEvent) -> bool:
        return any(path in self._config_paths for path in event.paths)

    def next_event(self, scope: CancelScope, poll: float = 0.05) -> FsEvent | None:
        """Block until an event arrives; None once *scope* ends or on close.

        Raises WatcherError if the observer stopped without ``close``.
        """
        while not scope.is_set():
            try:
                return self._events.get(timeout=poll)
            except queue.Empty:
                pass
            with self._lock:
                closed = self._closed
            if closed:
                return None
            if not self._observer.is_alive():
                raise WatcherError(
                    f"filesystem event subscription for '{self._content_dir}' closed unexpectedly"
                )
        return None

    def drain(self) -> list[FsEvent]:
        events: list[FsEvent] = []
        while True:
            try:
                events.append(self._events.get_nowait())
            except queue.Empty:
                return events

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._watches = []
        if self._observer.is_alive():
            self._observer.stop()
            self._observer.join(timeout=5)
        logger.debug("Stopped watching %s", self._content_dir)
