"""Shared test fixtures for markwiki."""

import os
import time
from pathlib import Path

import pytest

from markwiki.config.models import MarkwikiConfig, WatchSettings


def bump_mtime(path: Path, seconds: int = 2) -> None:
    """Move *path*'s mtime forward without touching its content."""
    st = os.stat(path)
    os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns + seconds * 1_000_000_000))


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.05) -> bool:
    """Poll *predicate* until it holds or *timeout* passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def fast_watch():
    return WatchSettings(
        change_wait=0.02,
        max_change_wait=0.2,
        max_regen_interval=5.0,
        event_poll_interval=0.01,
    )


@pytest.fixture
def fast_config(fast_watch):
    return MarkwikiConfig(watch=fast_watch)


@pytest.fixture
def wiki_dirs(tmp_path):
    """A wiki source dir with an empty content/ and a separate dest dir."""
    source = tmp_path / "wiki"
    (source / "content").mkdir(parents=True)
    dest = tmp_path / "site"
    dest.mkdir()
    return source, dest


@pytest.fixture
def content_dir(wiki_dirs):
    return wiki_dirs[0] / "content"
