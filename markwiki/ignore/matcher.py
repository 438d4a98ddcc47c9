"""Gitignore-style ignore rules for wiki content."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path, PurePosixPath

from pathspec import GitIgnoreSpec
from pathspec.patterns import GitWildMatchPattern

from markwiki.errors import WikiConfigError

logger = logging.getLogger(__name__)


class IgnoreMatcher:
    """Evaluates gitignore-style rules against paths relative to the content root.

    Later rules override earlier ones and ``!pattern`` un-ignores a path.
    Instances are immutable; ``reload`` builds a replacement so callers can
    swap matchers atomically.
    """

    def __init__(self, rules: tuple[str, ...] = ()) -> None:
        self._rules = rules
        self._spec = GitIgnoreSpec.from_lines(rules) if rules else None

    @classmethod
    def from_lines(cls, lines: Iterable[str]) -> IgnoreMatcher:
        rules: list[str] = []
        for lineno, line in enumerate(lines, start=1):
            rule = line.strip()
            if not rule or rule.startswith("#"):
                continue
            try:
                GitWildMatchPattern(rule)
            except ValueError as e:
                raise WikiConfigError(
                    f"invalid ignore pattern '{rule}' on line {lineno}: {e}"
                ) from e
            rules.append(rule)
        return cls(tuple(rules))

    @property
    def rules(self) -> tuple[str, ...]:
        return self._rules

    def __bool__(self) -> bool:
        return self._spec is not None

    def reload(self, lines: Iterable[str]) -> IgnoreMatcher:
        """Return a new matcher built from *lines*; self is left untouched."""
        return IgnoreMatcher.from_lines(lines)

    def matches(self, rel_path: str | Path, is_dir: bool) -> bool:
        """Return True if *rel_path* should be ignored."""
        if self._spec is None:
            return False
        posix = PurePosixPath(Path(rel_path).as_posix()).as_posix()
        if posix in ("", "."):
            return False
        # Directory-only rules ("build/") need the trailing slash to match.
        if is_dir:
            posix += "/"
        return self._spec.match_file(posix)


def load_ignore_file(path: str | Path) -> IgnoreMatcher:
    """Load ignore rules from *path*; a missing file yields an empty matcher."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return IgnoreMatcher()
    except (OSError, UnicodeDecodeError) as e:
        raise WikiConfigError(f"unable to read '{path}': {e}") from e

    matcher = IgnoreMatcher.from_lines(text.splitlines())
    logger.debug("Loaded %d ignore rule(s) from %s", len(matcher.rules), path)
    return matcher
