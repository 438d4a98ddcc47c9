"""Change watcher: turns filesystem events into stable regeneration triggers."""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import replace
from pathlib import Path

from markwiki.config.models import WatchSettings
from markwiki.errors import SnapshotCancelled, SnapshotError, WatchCancelled, WatcherError
from markwiki.ignore import IgnoreMatcher
from markwiki.scope import CancelScope
from markwiki.snapshot import (
    DEFAULT_MAX_DEPTH,
    Snapshot,
    StabilityTask,
    snapshots_equal,
    take_snapshot,
)
from markwiki.watcher.events import EventSubscription, FsEvent, canonical_path
from markwiki.watcher.models import ConfigFileState, WatchResult, stat_mtime

logger = logging.getLogger(__name__)


class ChangeWatcher:
    """Watches one wiki's content tree and config files.

    Each ``wait_for_change`` call is one cycle: it returns once a burst of
    changes has settled, or after ``max_regen_interval`` with
    ``timed_out=True`` so the caller regenerates periodically even if the
    OS drops events. Cycles must not overlap.

    *subs_state* and *ignore_state* are what the caller saw when it last
    loaded the config files. Without them the files are recorded as they
    are at construction, and earlier edits go unreported.

    The last snapshot, config file bookkeeping, matcher and subscription
    handle are guarded by one lock and only ever copied out under it.
    """

    def __init__(
        self,
        content_dir: str | Path,
        subs_path: str | Path,
        ignore_path: str | Path,
        matcher: IgnoreMatcher | None = None,
        cancel: threading.Event | None = None,
        settings: WatchSettings | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        subs_state: ConfigFileState | None = None,
        ignore_state: ConfigFileState | None = None,
    ) -> None:
        self._content_dir = canonical_path(content_dir)
        self._settings = settings or WatchSettings()
        self._max_depth = max_depth
        self._cancel = cancel if cancel is not None else threading.Event()
        self._closing = threading.Event()
        self._scope = CancelScope(self._cancel, self._closing)
        self._lock = threading.Lock()
        self._closed = False
        self._snapshot: Snapshot | None = None
        self._matcher = matcher or IgnoreMatcher()
        self._subs_state = self._initial_state(subs_path, subs_state)
        self._ignore_state = self._initial_state(ignore_path, ignore_state)

        self._subscription: EventSubscription | None = EventSubscription(
            self._content_dir,
            config_paths=(self._subs_state.path, self._ignore_state.path),
            path_filter=self._is_ignored,
        )
        logger.info("Watching %s for changes", self._content_dir)

    def __enter__(self) -> ChangeWatcher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ── State accessors ─────────────────────────────────────────────

    @property
    def last_snapshot(self) -> Snapshot | None:
        with self._lock:
            return self._snapshot

    def update_snapshot(self, snapshot: Snapshot | None) -> None:
        """Set the baseline the next cycle's race-window check compares against."""
        with self._lock:
            self._snapshot = snapshot

    def set_ignore_matcher(self, matcher: IgnoreMatcher) -> None:
        with self._lock:
            self._matcher = matcher

    def _current_matcher(self) -> IgnoreMatcher:
        with self._lock:
            return self._matcher

    def _is_ignored(self, path: str, is_dir: bool) -> bool:
        matcher = self._current_matcher()
        if not matcher:
            return False
        rel_path = os.path.relpath(path, self._content_dir)
        if rel_path in (os.curdir, os.pardir) or rel_path.startswith(os.pardir + os.sep):
            return False
        return matcher.matches(rel_path, is_dir)

    # ── Config file tracking ────────────────────────────────────────

    @staticmethod
    def _initial_state(path: str | Path, seen: ConfigFileState | None) -> ConfigFileState:
        if seen is None:
            return ConfigFileState.capture(canonical_path(path))
        return replace(seen, path=canonical_path(path))

    def check_file_changed(self, state: ConfigFileState) -> bool:
        """Stat *state.path* and report whether it changed since last recorded.

        Appearing, disappearing and a new mtime all count as changes. The
        recorded state is updated, so an immediate second call reports no
        change.
        """
        try:
            mod_time = stat_mtime(state.path)
        except OSError as e:
            logger.warning("Unable to stat '%s': %s", state.path, e.strerror)
            return False

        with self._lock:
            if mod_time is None:
                if not state.existed:
                    return False
                state.existed = False
                state.mod_time = None
                return True
            if state.existed and state.mod_time == mod_time:
                return False
            state.existed = True
            state.mod_time = mod_time
            return True

    def check_subs_file_changed(self) -> bool:
        return self.check_file_changed(self._subs_state)

    def check_ignore_file_changed(self) -> bool:
        return self.check_file_changed(self._ignore_state)

    def _config_touch(self, event: FsEvent) -> tuple[bool, bool]:
        """Which config files (subs, ignore) *event* names."""
        return (
            self._subs_state.path in event.paths,
            self._ignore_state.path in event.paths,
        )

    # ── Cycle ───────────────────────────────────────────────────────

    def _raise_if_cancelled(self) -> None:
        if self._cancel.is_set() or self._closing.is_set():
            raise WatchCancelled(self._content_dir)

    def _snapshot_now(self, matcher: IgnoreMatcher, scope: CancelScope) -> Snapshot:
        try:
            return take_snapshot(self._content_dir, matcher, scope, self._max_depth)
        except SnapshotCancelled as e:
            if scope.timed_out and not scope.cancelled:
                raise
            raise WatchCancelled(self._content_dir) from e
        except SnapshotError as e:
            raise WatcherError(f"content directory unavailable: {e}") from e

    def _wait_for_event(
        self, subscription: EventSubscription, scope: CancelScope
    ) -> FsEvent | None:
        try:
            event = subscription.next_event(scope, self._settings.event_poll_interval)
        except WatcherError:
            self._raise_if_cancelled()
            raise
        if event is None:
            self._raise_if_cancelled()
            return None
        logger.debug("Event %s on %s", event.kind, event.path)
        return event

    def _timed_out_result(self, previous: Snapshot | None, matcher: IgnoreMatcher) -> WatchResult:
        logger.debug("No changes in %.0fs, forcing a regeneration check", self._settings.max_regen_interval)
        try:
            snapshot = self._snapshot_now(matcher, self._scope)
        except WatcherError as e:
            logger.warning("Unable to refresh snapshot after timeout: %s", e)
            snapshot = previous
        return WatchResult(snapshot=snapshot, timed_out=True)

    def wait_for_change(self) -> WatchResult:
        """Block until the content tree or a config file changed and settled.

        Raises WatchCancelled once the cancel event is set or the watcher is
        closed, and WatcherError if the content root becomes unreadable or
        the event subscription breaks.
        """
        self._raise_if_cancelled()
        scope = self._scope.child(timeout=self._settings.max_regen_interval)
        with self._lock:
            previous = self._snapshot
            matcher = self._matcher
            subscription = self._subscription
        if subscription is None:
            raise WatchCancelled(self._content_dir)

        subs_changed = False
        ignore_changed = False
        triggered = False

        # Changes made while the caller was regenerating raise no event we
        # can still see, so compare against the baseline first.
        if previous is not None:
            try:
                current = self._snapshot_now(matcher, scope)
            except SnapshotCancelled:
                return self._timed_out_result(previous, matcher)
            subs_changed = self.check_subs_file_changed()
            ignore_changed = self.check_ignore_file_changed()
            if not snapshots_equal(previous, current) or subs_changed or ignore_changed:
                logger.info("Changes detected in %s since last generation", self._content_dir)
                triggered = True

        if not triggered:
            event = self._wait_for_event(subscription, scope)
            if event is None:
                return self._timed_out_result(previous, matcher)
            touched_subs, touched_ignore = self._config_touch(event)
            subs_changed = touched_subs or subs_changed
            ignore_changed = touched_ignore or ignore_changed

        stable = StabilityTask(
            self._content_dir,
            matcher,
            scope,
            fallback=previous,
            settings=self._settings,
            max_depth=self._max_depth,
        )
        try:
            snapshot = stable.result()
        except SnapshotError as e:
            raise WatcherError(f"content directory unavailable: {e}") from e
        self._raise_if_cancelled()

        # Events raised by the changes just stabilized belong to this cycle
        for event in subscription.drain():
            touched_subs, touched_ignore = self._config_touch(event)
            subs_changed = touched_subs or subs_changed
            ignore_changed = touched_ignore or ignore_changed
        subs_changed = self.check_subs_file_changed() or subs_changed
        ignore_changed = self.check_ignore_file_changed() or ignore_changed

        if snapshot is None:
            snapshot = self._snapshot_now(matcher, self._scope)

        if subs_changed:
            logger.info("Substitution strings changed: %s", self._subs_state.path)
        if ignore_changed:
            logger.info("Ignore rules changed: %s", self._ignore_state.path)
        return WatchResult(
            snapshot=snapshot,
            regenerate_all=subs_changed or ignore_changed,
            ignore_rules_changed=ignore_changed,
            timed_out=False,
        )

    def close(self) -> None:
        """Cancel any in-flight wait and release the subscription; idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._closing.set()
            subscription = self._subscription
            self._subscription = None
        if subscription is not None:
            subscription.close()
        logger.info("Stopped watching %s", self._content_dir)
