"""Exception types shared across markwiki subsystems."""

from __future__ import annotations

from pathlib import Path


class MarkwikiError(Exception):
    """Base class for all markwiki failures."""


class WikiConfigError(MarkwikiError):
    """Invalid wiki layout or unreadable/invalid config file."""


class SnapshotError(MarkwikiError):
    """A directory snapshot could not be taken."""

    def __init__(self, path: str | Path, message: str) -> None:
        self.path = str(path)
        super().__init__(f"{message}: '{self.path}'")


class SnapshotCancelled(SnapshotError):
    """The cancel signal fired while a snapshot walk was in progress."""

    def __init__(self, path: str | Path) -> None:
        super().__init__(path, "snapshot cancelled")


class RecursionTooDeep(SnapshotError):
    """Directory nesting exceeded the configured depth limit."""

    def __init__(self, path: str | Path, depth: int, max_depth: int) -> None:
        self.depth = depth
        self.max_depth = max_depth
        super().__init__(
            path, f"directory recursion depth exceeded (depth {depth}, max {max_depth})"
        )


class WatcherError(MarkwikiError):
    """Unrecoverable watcher failure: subscription broken or root gone."""


class OperationCancelled(Exception):
    """A cancel signal ended work early. Not a MarkwikiError."""


class WatchCancelled(OperationCancelled):
    """Raised when a watch is cancelled."""


class GenerationError(MarkwikiError):
    """A generation pass could not run, or a single file failed to render."""

    def __init__(
        self,
        message: str,
        output_paths: set[str] | None = None,
        failures: list[str] | None = None,
    ) -> None:
        self.output_paths = output_paths or set()
        self.failures = failures or []
        super().__init__(message)


class RenderError(GenerationError):
    """The markdown converter rejected a document."""
