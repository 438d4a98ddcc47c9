"""A single wiki: validation, generation and the watch loop."""

from __future__ import annotations

import logging
import os
import stat
import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from markwiki.config.models import MarkwikiConfig
from markwiki.errors import (
    GenerationError,
    OperationCancelled,
    SnapshotCancelled,
    SnapshotError,
    WatchCancelled,
    WatcherError,
    WikiConfigError,
)
from markwiki.ignore import IgnoreMatcher, load_ignore_file
from markwiki.snapshot import Snapshot, take_snapshot
from markwiki.snapshot.engine import CancelSignal
from markwiki.watcher import ChangeWatcher, ConfigFileState
from markwiki.wiki.filesystem import clean_dest_dir, copy_file_to_dest, source_is_older
from markwiki.wiki.render import (
    MarkdownConverter,
    check_for_style_directive,
    is_markdown,
    remove_file_extension,
    render_page,
)
from markwiki.wiki.substitutions import (
    SUBSTITUTIONS_FILE_NAME,
    load_substitutions,
    make_substitutions,
)

logger = logging.getLogger(__name__)

CONTENT_DIR_NAME = "content"
IGNORE_FILE_NAME = "ignore.txt"


@dataclass
class GenerationReport:
    """What one generation pass produced and which files failed."""

    output_paths: set[str] = field(default_factory=set)  # includes failed_paths
    failed_paths: set[str] = field(default_factory=set)
    failures: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def produced_nothing(self) -> bool:
        return not (self.output_paths - self.failed_paths)


def _is_within(path: str, parent: str) -> bool:
    return os.path.commonpath([path, parent]) == parent


class Wiki:
    """One source tree rendered into one destination directory.

    The source directory holds ``content/`` plus the optional
    ``substitution-strings.csv`` and ``ignore.txt`` files. Substitutions
    and ignore rules live on the instance, so several wikis can run side
    by side in one process.
    """

    def __init__(
        self,
        source_dir: str | Path,
        dest_dir: str | Path,
        config: MarkwikiConfig | None = None,
    ) -> None:
        self.source_dir = os.path.abspath(source_dir)
        self.content_dir = os.path.join(self.source_dir, CONTENT_DIR_NAME)
        self.dest_dir = os.path.abspath(dest_dir)
        self.config = config or MarkwikiConfig()
        self.subs_path = os.path.join(self.source_dir, SUBSTITUTIONS_FILE_NAME)
        self.ignore_path = os.path.join(self.source_dir, IGNORE_FILE_NAME)
        self.substitutions: list[tuple[str, str]] = []
        self.matcher = IgnoreMatcher()
        # What the config files looked like when last loaded
        self.subs_state = ConfigFileState(path=self.subs_path)
        self.ignore_state = ConfigFileState(path=self.ignore_path)
        self._converter = MarkdownConverter()

        self._check_dirs()
        self.reload_substitutions()
        self.reload_ignore_rules()

    def __repr__(self) -> str:
        return f"Wiki(source_dir={self.source_dir!r}, dest_dir={self.dest_dir!r})"

    def _check_dirs(self) -> None:
        for path in (self.source_dir, self.content_dir, self.dest_dir):
            if not os.path.isdir(path):
                raise WikiConfigError(f"directory '{path}' not found")

        source = os.path.realpath(self.source_dir)
        dest = os.path.realpath(self.dest_dir)
        if source == dest:
            raise WikiConfigError(f"dest dir '{self.dest_dir}' is the same as source dir")
        if _is_within(dest, source):
            raise WikiConfigError(
                f"dest dir '{self.dest_dir}' is inside source dir '{self.source_dir}'"
            )
        if _is_within(source, dest):
            raise WikiConfigError(
                f"source dir '{self.source_dir}' is inside dest dir '{self.dest_dir}'"
            )

    # ── Config files ────────────────────────────────────────────────

    def reload_substitutions(self) -> list[tuple[str, str]]:
        """Re-read substitution strings; on error the previous set is kept."""
        state = ConfigFileState.capture(self.subs_path)
        self.substitutions = load_substitutions(self.subs_path, self.config.limits)
        self.subs_state = state
        return self.substitutions

    def reload_ignore_rules(self) -> IgnoreMatcher:
        """Re-read ignore rules; on error the previous matcher is kept."""
        state = ConfigFileState.capture(self.ignore_path)
        self.matcher = load_ignore_file(self.ignore_path)
        self.ignore_state = state
        return self.matcher

    # ── Generation ──────────────────────────────────────────────────

    def _iter_content(
        self,
        matcher: IgnoreMatcher,
        cancel: CancelSignal | None,
        failures: list[str],
    ) -> Iterator[tuple[str, str, os.stat_result]]:
        """Yield ``(rel_path, path, stat)`` for each file to publish, in name order.

        Entries that cannot be looked up are appended to *failures*.
        """
        limits = self.config.limits
        files_seen = 0
        pending: list[tuple[str, int]] = [(self.content_dir, 0)]

        while pending:
            dir_path, depth = pending.pop()
            try:
                with os.scandir(dir_path) as it:
                    children = sorted(it, key=lambda entry: entry.name)
            except OSError as e:
                if dir_path == self.content_dir:
                    raise GenerationError(f"unable to list content dir '{dir_path}': {e.strerror}") from e
                logger.error("Failed to list '%s': %s", dir_path, e.strerror)
                failures.append(f"failed to list '{dir_path}': {e.strerror}")
                continue

            subdirs: list[tuple[str, int]] = []
            for child in children:
                if cancel is not None and cancel.is_set():
                    raise OperationCancelled(f"generation of '{self.dest_dir}' cancelled")
                if depth + 1 > limits.max_recursion_depth:
                    raise GenerationError(
                        f"directory recursion depth exceeded at '{child.path}' "
                        f"(depth {depth + 1}, max {limits.max_recursion_depth})"
                    )

                rel_path = os.path.relpath(child.path, self.content_dir)
                is_link = child.is_symlink()
                is_dir = child.is_dir(follow_symlinks=False)
                if matcher.matches(rel_path, is_dir):
                    logger.info("Ignoring '%s'", child.path)
                    continue
                if is_dir:
                    subdirs.append((child.path, depth + 1))
                    continue

                try:
                    st = os.stat(child.path)
                except OSError as e:
                    logger.error("Failed to look up '%s': %s", child.path, e.strerror)
                    failures.append(f"failed to look up '{child.path}': {e.strerror}")
                    continue
                if stat.S_ISDIR(st.st_mode):
                    if is_link:
                        logger.warning("Skipping symlink to directory '%s'", child.path)
                    continue
                if not stat.S_ISREG(st.st_mode):
                    logger.warning("Skipping not regular file '%s'", child.path)
                    continue
                if not os.access(child.path, os.R_OK):
                    logger.warning("Skipping not readable file '%s'", child.path)
                    continue

                files_seen += 1
                if files_seen > limits.max_files_processed:
                    raise GenerationError(
                        f"maximum number of files processed exceeded "
                        f"({files_seen} files, max {limits.max_files_processed} files)"
                    )
                yield rel_path, child.path, st

            pending.extend(reversed(subdirs))

    def _generate_html(self, path: str, rel_dest_path: str, regenerate_all: bool) -> bool:
        out_path = os.path.join(self.dest_dir, rel_dest_path)
        try:
            st = os.stat(path)
        except FileNotFoundError:
            logger.info("'%s' no longer exists; no HTML generated for it", path)
            return False
        except OSError as e:
            raise GenerationError(f"failed to stat markdown file '{path}': {e.strerror}") from e

        max_size = self.config.limits.max_markdown_file_size
        if st.st_size > max_size:
            raise GenerationError(
                f"markdown file '{path}' is too large ({st.st_size} bytes, max {max_size} bytes)"
            )
        if not regenerate_all and source_is_older(st.st_mtime_ns, out_path):
            return False

        logger.info("Generating '%s'", out_path)
        try:
            with open(path, encoding="utf-8", errors="replace") as f:
                text = f.read()
        except FileNotFoundError:
            logger.info("'%s' no longer exists; no HTML generated for it", path)
            return False
        except OSError as e:
            raise GenerationError(f"failed to read markdown file '{path}': {e.strerror}") from e

        github_style, text = check_for_style_directive(text)
        text = make_substitutions(text, self.substitutions)
        body = self._converter.convert(text, source=path)
        title = os.path.basename(remove_file_extension(rel_dest_path))
        page = render_page(title, body, github_style)

        try:
            os.makedirs(os.path.dirname(out_path), exist_ok=True)
            with open(out_path, "w", encoding="utf-8") as f:
                f.write(page)
        except OSError as e:
            raise GenerationError(f"failed to write HTML file '{out_path}': {e.strerror}") from e
        return True

    def generate(
        self,
        regenerate_all: bool = False,
        clean: bool = False,
        cancel: CancelSignal | None = None,
    ) -> GenerationReport:
        """Render markdown and copy everything else from content to dest.

        Outputs newer than their source are left alone unless
        *regenerate_all*. Per-file failures are collected in the report and
        do not stop the pass; their output paths are still recorded so
        *clean* never removes the last good copy. Cleaning is skipped
        entirely when anything failed.

        Raises GenerationError when the pass cannot run (content dir
        unreadable, depth or file-count limit) and OperationCancelled when
        *cancel* fires.
        """
        logger.info("Generating wiki '%s' from '%s'", self.dest_dir, self.source_dir)
        report = GenerationReport()
        sources_by_dest: dict[str, str] = {}
        matcher = self.matcher

        try:
            for rel_path, path, _ in self._iter_content(matcher, cancel, report.failures):
                if is_markdown(rel_path):
                    rel_dest_path = remove_file_extension(rel_path) + ".html"
                    first = sources_by_dest.get(rel_dest_path)
                    if first is not None:
                        logger.warning(
                            "Skipping '%s': would generate '%s' which is already generated by '%s'",
                            rel_path, rel_dest_path, first,
                        )
                        continue
                    sources_by_dest[rel_dest_path] = rel_path
                    try:
                        self._generate_html(path, rel_dest_path, regenerate_all)
                    except GenerationError as e:
                        logger.error("Failed to generate HTML for '%s': %s", path, e)
                        report.failures.append(f"failed to generate HTML for '{path}': {e}")
                        report.failed_paths.add(rel_dest_path)
                else:
                    rel_dest_path = rel_path
                    try:
                        copy_file_to_dest(
                            path, os.path.join(self.dest_dir, rel_dest_path), regenerate_all
                        )
                    except GenerationError as e:
                        logger.error("Failed to copy '%s': %s", path, e)
                        report.failures.append(f"failed to copy '{path}': {e}")
                        report.failed_paths.add(rel_dest_path)
                report.output_paths.add(rel_dest_path)
        except GenerationError as e:
            raise GenerationError(
                f"failed to generate wiki '{self.source_dir}': {e}",
                output_paths=report.output_paths,
                failures=report.failures,
            ) from e

        if clean:
            if report.failures:
                logger.warning(
                    "Skipping clean of '%s' because %d file(s) failed",
                    self.dest_dir, len(report.failures),
                )
            else:
                clean_dest_dir(
                    self.dest_dir,
                    report.output_paths,
                    cancel,
                    self.config.limits.max_recursion_depth,
                )
        return report

    # ── Watching ────────────────────────────────────────────────────

    def _reload_after_change(self, watcher: ChangeWatcher, ignore_rules_changed: bool) -> None:
        logger.info("Reloading substitution strings from '%s'", self.subs_path)
        try:
            self.reload_substitutions()
        except WikiConfigError as e:
            logger.error("Keeping previous substitution strings: %s", e)
        if not ignore_rules_changed:
            return
        logger.info("Reloading ignore rules from '%s'", self.ignore_path)
        try:
            watcher.set_ignore_matcher(self.reload_ignore_rules())
        except WikiConfigError as e:
            logger.error("Keeping previous ignore rules: %s", e)

    def _initial_snapshot(self, cancel: threading.Event | None) -> Snapshot:
        try:
            return take_snapshot(
                self.content_dir, self.matcher, cancel, self.config.limits.max_recursion_depth
            )
        except SnapshotCancelled as e:
            raise OperationCancelled(f"watching '{self.content_dir}' cancelled") from e
        except SnapshotError as e:
            raise WatcherError(f"failed to take initial snapshot: {e}") from e

    def watch(
        self,
        cancel: threading.Event | None = None,
        clean: bool = False,
        baseline: Snapshot | None = None,
    ) -> None:
        """Regenerate whenever the content tree or a config file changes.

        *baseline* is the content tree as of the last generation; changes
        since then trigger the first cycle straight away. Without it the
        tree is snapshotted now. Config files are compared against what was
        last loaded, so edits made after loading are never missed.

        Returns when *cancel* is set. Failed generations and config reloads
        are logged and watching continues; WatcherError propagates.
        """
        cancel = cancel if cancel is not None else threading.Event()
        logger.info("Watching for changes in '%s'", self.content_dir)

        if baseline is None:
            try:
                baseline = self._initial_snapshot(cancel)
            except OperationCancelled:
                return

        with ChangeWatcher(
            self.content_dir,
            self.subs_path,
            self.ignore_path,
            matcher=self.matcher,
            cancel=cancel,
            settings=self.config.watch,
            max_depth=self.config.limits.max_recursion_depth,
            subs_state=self.subs_state,
            ignore_state=self.ignore_state,
        ) as watcher:
            watcher.update_snapshot(baseline)
            while not cancel.is_set():
                try:
                    result = watcher.wait_for_change()
                except WatchCancelled:
                    break

                watcher.update_snapshot(result.snapshot)
                if result.regenerate_all:
                    self._reload_after_change(watcher, result.ignore_rules_changed)
                if result.timed_out:
                    logger.debug("Periodic regeneration of '%s'", self.source_dir)

                try:
                    report = self.generate(result.regenerate_all, clean, cancel)
                except OperationCancelled:
                    break
                except GenerationError as e:
                    logger.error("Failed to update wiki '%s': %s", self.source_dir, e)
                    continue
                if not report.ok:
                    logger.error(
                        "Failed to update %d file(s) in wiki '%s'",
                        len(report.failures), self.source_dir,
                    )

        logger.info("Stopped watching '%s'", self.content_dir)

    def run(
        self,
        regenerate_all: bool = False,
        clean: bool = False,
        watch: bool = False,
        cancel: threading.Event | None = None,
    ) -> GenerationReport:
        """Generate once, then keep watching if *watch* is set.

        When watching, the baseline snapshot is taken before generating so
        edits made during the first pass are picked up by the first cycle.
        """
        baseline = self._initial_snapshot(cancel) if watch else None
        report = self.generate(regenerate_all, clean, cancel)
        if watch:
            self.watch(cancel, clean, baseline)
        return report
