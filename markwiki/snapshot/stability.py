"""Wait for a directory tree to stop changing."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from pathlib import Path

from markwiki.config.models import WatchSettings
from markwiki.errors import SnapshotCancelled
from markwiki.ignore import IgnoreMatcher
from markwiki.scope import CancelScope
from markwiki.snapshot.engine import DEFAULT_MAX_DEPTH, take_snapshot
from markwiki.snapshot.models import Snapshot, snapshots_equal

logger = logging.getLogger(__name__)


def wait_for_stability(
    root: str | Path,
    matcher: IgnoreMatcher | None,
    scope: CancelScope,
    fallback: Snapshot | None = None,
    settings: WatchSettings | None = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Snapshot | None:
    """Return a snapshot of *root* once two consecutive snapshots match.

    The delay between the two snapshots of a pass starts at
    ``change_wait`` and doubles each pass, capped at ``max_change_wait``.
    There is no limit on the number of passes; *scope* bounds the wait.

    When *scope* ends first, the most recent snapshot taken is returned,
    or *fallback* if none was. SnapshotError other than cancellation
    propagates.
    """
    settings = settings or WatchSettings()
    logger.debug("Waiting for changes under %s to settle", root)

    if scope.wait(settings.change_wait):
        return fallback

    before: Snapshot | None = None
    after: Snapshot | None = None
    delay = settings.change_wait
    wait_pass = 1

    while True:
        if scope.is_set():
            return _latest(after, before, fallback)

        if wait_pass > 1:
            logger.info("Still changing, stability pass %d (delay %.2fs)", wait_pass, delay)

        if after is not None:
            before = after
        else:
            try:
                before = take_snapshot(root, matcher, scope, max_depth)
            except SnapshotCancelled:
                return fallback

        if scope.wait(delay):
            return before

        try:
            after = take_snapshot(root, matcher, scope, max_depth)
        except SnapshotCancelled:
            return before

        if snapshots_equal(before, after):
            logger.debug("Tree under %s stable after %d pass(es)", root, wait_pass)
            return after

        wait_pass += 1
        delay = min(delay * 2, settings.max_change_wait)


def _latest(*candidates: Snapshot | None) -> Snapshot | None:
    for snapshot in candidates:
        if snapshot is not None:
            return snapshot
    return None


class StabilityTask:
    """Runs one stabilization on a worker thread and hands back its result.

    The worker's future is the single-slot handoff; ``result()`` blocks
    until the worker finishes, including after the scope is cancelled, so
    no snapshot work outlives the caller's cycle.
    """

    def __init__(
        self,
        root: str | Path,
        matcher: IgnoreMatcher | None,
        scope: CancelScope,
        fallback: Snapshot | None = None,
        settings: WatchSettings | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self._root = root
        self._matcher = matcher
        self._scope = scope
        self._fallback = fallback
        self._settings = settings or WatchSettings()
        self._max_depth = max_depth

    def result(self) -> Snapshot | None:
        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="markwiki-stability") as pool:
            future = pool.submit(
                wait_for_stability,
                self._root,
                self._matcher,
                self._scope,
                self._fallback,
                self._settings,
                self._max_depth,
            )
            reported = False
            while True:
                done, _ = wait_futures([future], timeout=self._settings.event_poll_interval)
                if done:
                    return future.result()
                if self._scope.is_set() and not reported:
                    logger.debug("Waiting for stabilization of %s to wind down", self._root)
                    reported = True
