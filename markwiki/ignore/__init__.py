"""Gitignore-style path exclusion for wiki content."""

from markwiki.ignore.matcher import IgnoreMatcher, load_ignore_file

__all__ = [
    "IgnoreMatcher",
    "load_ignore_file",
]
