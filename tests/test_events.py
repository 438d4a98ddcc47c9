"""Tests for the watchdog-backed event subscription."""

from __future__ import annotations

import os
import threading
from pathlib import Path

import pytest

from markwiki.errors import WatcherError
from markwiki.scope import CancelScope
from markwiki.watcher import EventSubscription, FsEvent
from markwiki.watcher.events import canonical_path

from conftest import wait_until


def _collect(sub: EventSubscription, until, timeout: float = 5.0) -> list[FsEvent]:
    """Gather events until *until(events)* holds or *timeout* passes."""
    events: list[FsEvent] = []
    scope = CancelScope(timeout=timeout)
    while not scope.is_set():
        event = sub.next_event(scope, poll=0.02)
        if event is None:
            break
        events.append(event)
        if until(events):
            break
    return events


def _names(events: list[FsEvent]) -> set[str]:
    return {os.path.basename(p) for e in events for p in e.paths}


@pytest.fixture
def subscription(content_dir: Path):
    sub = EventSubscription(content_dir)
    yield sub
    sub.close()


# ── Content events ───────────────────────────────────────────────────


class TestContentEvents:
    def test_created_file_arrives(self, subscription, content_dir: Path):
        (content_dir / "page.md").write_text("# Page")
        events = _collect(subscription, lambda evs: "page.md" in _names(evs))
        assert "page.md" in _names(events)
        page = canonical_path(content_dir / "page.md")
        assert any(page in e.paths for e in events)

    def test_event_in_existing_subdirectory(self, content_dir: Path):
        (content_dir / "docs").mkdir()
        with EventSubscription(content_dir) as sub:
            (content_dir / "docs" / "guide.md").write_text("x")
            events = _collect(sub, lambda evs: "guide.md" in _names(evs))
        assert "guide.md" in _names(events)

    def test_ignored_paths_filtered(self, content_dir: Path):
        def is_ignored(path: str, is_dir: bool) -> bool:
            return path.endswith(".log")

        with EventSubscription(content_dir, path_filter=is_ignored) as sub:
            (content_dir / "noise.log").write_text("x")
            (content_dir / "page.md").write_text("x")
            events = _collect(sub, lambda evs: "page.md" in _names(evs))
        assert "page.md" in _names(events)
        assert "noise.log" not in _names(events)

    def test_directory_modified_events_dropped(self, subscription, content_dir: Path):
        (content_dir / "page.md").write_text("x")
        events = _collect(subscription, lambda evs: False, timeout=0.5)
        assert not any(e.is_dir and e.kind == "modified" for e in events)

    def test_drain_empties_queue(self, subscription, content_dir: Path):
        (content_dir / "page.md").write_text("x")
        assert wait_until(lambda: subscription._events.qsize() > 0)
        assert subscription.drain()
        assert subscription.drain() == []


# ── Config file events ───────────────────────────────────────────────


class TestConfigEvents:
    def test_only_config_files_forwarded(self, wiki_dirs):
        source, _ = wiki_dirs
        content = source / "content"
        subs = source / "substitutions.csv"
        with EventSubscription(content, config_paths=[subs]) as sub:
            (source / "notes.txt").write_text("unrelated")
            subs.write_text("NAME,value\n")
            events = _collect(sub, lambda evs: "substitutions.csv" in _names(evs))
        names = _names(events)
        assert "substitutions.csv" in names
        assert "notes.txt" not in names


# ── Watch coverage ───────────────────────────────────────────────────


class TestWatchCoverage:
    def test_one_watch_for_content_tree(self, content_dir: Path):
        (content_dir / "a" / "b").mkdir(parents=True)
        with EventSubscription(content_dir) as sub:
            assert sub.watch_count == 1

    def test_config_parent_adds_one_watch(self, wiki_dirs):
        source, _ = wiki_dirs
        config_paths = [source / "substitution-strings.csv", source / "ignore.txt"]
        with EventSubscription(source / "content", config_paths=config_paths) as sub:
            assert sub.watch_count == 2

    def test_directory_created_after_subscribe(self, subscription, content_dir: Path):
        inner = content_dir / "new" / "inner"
        inner.mkdir(parents=True)
        (inner / "page.md").write_text("x")
        events = _collect(subscription, lambda evs: "page.md" in _names(evs))
        assert canonical_path(inner / "page.md") in {p for e in events for p in e.paths}

    def test_many_subdirectories(self, content_dir: Path):
        # More directories than the default inotify instance limit (128)
        for i in range(200):
            (content_dir / f"d{i}").mkdir()
        with EventSubscription(content_dir) as sub:
            (content_dir / "d199" / "x.md").write_text("x")
            events = _collect(sub, lambda evs: "x.md" in _names(evs))
        assert "x.md" in _names(events)

    def test_ignored_subtree_filtered(self, content_dir: Path):
        (content_dir / "build").mkdir()
        (content_dir / "docs").mkdir()

        def is_ignored(path: str, is_dir: bool) -> bool:
            rel_path = os.path.relpath(path, content_dir)
            return rel_path.split(os.sep)[0] == "build"

        with EventSubscription(content_dir, path_filter=is_ignored) as sub:
            (content_dir / "build" / "out.md").write_text("x")
            (content_dir / "docs" / "guide.md").write_text("x")
            events = _collect(sub, lambda evs: "guide.md" in _names(evs))
        assert "guide.md" in _names(events)
        assert "out.md" not in _names(events)


# ── Lifecycle ────────────────────────────────────────────────────────


class TestLifecycle:
    def test_missing_content_dir_raises(self, tmp_path: Path):
        with pytest.raises(WatcherError):
            EventSubscription(tmp_path / "missing")

    def test_close_is_idempotent(self, content_dir: Path):
        sub = EventSubscription(content_dir)
        sub.close()
        sub.close()
        assert sub.watch_count == 0

    def test_next_event_returns_none_after_close(self, content_dir: Path):
        sub = EventSubscription(content_dir)
        sub.close()
        assert sub.next_event(CancelScope(timeout=2), poll=0.01) is None

    def test_next_event_returns_none_when_scope_ends(self, subscription):
        cancel = threading.Event()
        threading.Timer(0.05, cancel.set).start()
        assert subscription.next_event(CancelScope(cancel), poll=0.01) is None

