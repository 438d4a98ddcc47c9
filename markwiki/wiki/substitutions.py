"""Placeholder substitution strings loaded from a two-column CSV file."""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterator
from pathlib import Path

from markwiki.config.models import LimitsSettings
from markwiki.errors import WikiConfigError

logger = logging.getLogger(__name__)

SUBSTITUTIONS_FILE_NAME = "substitution-strings.csv"
MAX_PLACEHOLDER_LENGTH = 100


def _data_lines(lines: Iterator[str]) -> Iterator[str]:
    # csv has no comment support; blank out "#" lines so line numbers hold
    for line in lines:
        yield "\n" if line.startswith("#") else line


def load_string_pairs(
    csv_path: str | Path, limits: LimitsSettings | None = None
) -> list[tuple[str, str]]:
    """Read ``first,second`` records from *csv_path*.

    A missing file yields no pairs. Blank lines and lines starting with
    ``#`` are skipped; every other record must have exactly two fields.
    """
    limits = limits or LimitsSettings()
    path = Path(csv_path)
    try:
        size = path.stat().st_size
    except FileNotFoundError:
        return []
    except OSError as e:
        raise WikiConfigError(f"unable to stat '{path}': {e.strerror}") from e

    if size > limits.max_csv_file_size:
        raise WikiConfigError(
            f"CSV file '{path}' is too large ({size} bytes, max {limits.max_csv_file_size} bytes)"
        )

    pairs: list[tuple[str, str]] = []
    try:
        with open(path, newline="", encoding="utf-8") as f:
            reader = csv.reader(_data_lines(f), skipinitialspace=True)
            for record in reader:
                if not record or record == [""]:
                    continue
                line = reader.line_num
                if len(record) != 2:
                    raise WikiConfigError(
                        f"CSV file '{path}' has wrong number of fields at line {line}: "
                        f"expected 2 fields, got {len(record)} "
                        "(blank lines and # comments are allowed)"
                    )
                if len(pairs) >= limits.max_substitution_strings:
                    raise WikiConfigError(
                        f"CSV file '{path}' has too many entries "
                        f"(max {limits.max_substitution_strings} entries)"
                    )
                for index, field in enumerate(record, start=1):
                    field_size = len(field.encode("utf-8"))
                    if field_size > limits.max_csv_field_size:
                        raise WikiConfigError(
                            f"CSV file '{path}' has field too large at line {line}, "
                            f"field {index} ({field_size} bytes, max {limits.max_csv_field_size} bytes)"
                        )
                pairs.append((record[0], record[1]))
    except csv.Error as e:
        raise WikiConfigError(f"CSV parse error in '{path}': {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise WikiConfigError(f"unable to read '{path}': {e}") from e

    return pairs


def validate_placeholder(placeholder: str) -> None:
    """Raise WikiConfigError unless *placeholder* is a usable name.

    Names are 1-100 characters of letters, digits, ``_`` and ``-``, with
    at least one letter or digit.
    """
    if not placeholder:
        raise WikiConfigError("placeholder cannot be empty")
    if len(placeholder) > MAX_PLACEHOLDER_LENGTH:
        raise WikiConfigError(
            f"placeholder too long (max {MAX_PLACEHOLDER_LENGTH} characters): {placeholder!r}"
        )
    if not any(ch.isalpha() or ch.isdigit() for ch in placeholder):
        raise WikiConfigError(
            f"placeholder must contain at least one letter or digit: {placeholder!r}"
        )
    for ch in placeholder:
        if not (ch.isalpha() or ch.isdigit() or ch in "_-"):
            raise WikiConfigError(
                "placeholder can only contain letters, digits, underscore, and hyphen: "
                f"{placeholder!r}"
            )


def load_substitutions(
    csv_path: str | Path, limits: LimitsSettings | None = None
) -> list[tuple[str, str]]:
    """Load ``("{{NAME}}", value)`` pairs from a substitution strings file."""
    try:
        pairs = load_string_pairs(csv_path, limits)
    except WikiConfigError as e:
        raise WikiConfigError(f"failed to load substitution strings: {e}") from e

    substitutions: list[tuple[str, str]] = []
    seen: dict[str, int] = {}
    for entry, (name, value) in enumerate(pairs, start=1):
        placeholder = name.strip()
        try:
            validate_placeholder(placeholder)
        except WikiConfigError as e:
            raise WikiConfigError(f"invalid placeholder at entry {entry} of '{csv_path}': {e}") from e
        if placeholder in seen:
            raise WikiConfigError(
                f"duplicate placeholder {placeholder!r} found at entry {entry} "
                f"(first seen at entry {seen[placeholder]}) in '{csv_path}'"
            )
        seen[placeholder] = entry
        substitutions.append((f"{{{{{placeholder}}}}}", value))

    if substitutions:
        logger.debug("Loaded %d substitution string(s) from %s", len(substitutions), csv_path)
    return substitutions


def make_substitutions(text: str, substitutions: list[tuple[str, str]]) -> str:
    """Replace each placeholder in order; unknown placeholders stay as written."""
    for placeholder, value in substitutions:
        text = text.replace(placeholder, value)
    return text
