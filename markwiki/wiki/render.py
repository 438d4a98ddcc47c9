"""Markdown detection and HTML rendering."""

from __future__ import annotations

import html
import os

import markdown

from markwiki import __version__
from markwiki.errors import RenderError

MARKDOWN_EXTENSIONS = (".md", ".mdwn", ".markdown")
GITHUB_STYLE_DIRECTIVE = "#[style(github)]"

_BOM = "\ufeff"


def is_markdown(path: str) -> bool:
    """True if *path* has a markdown extension, ignoring case."""
    return os.path.splitext(path)[1].lower() in MARKDOWN_EXTENSIONS


def remove_file_extension(path: str) -> str:
    """Strip the extension: ``Foo/Bar.md`` becomes ``Foo/Bar``.

    Dotfiles with no further extension (``.hidden``) are returned as is.
    """
    root, _ = os.path.splitext(path)
    return root


def check_for_style_directive(text: str) -> tuple[bool, str]:
    """Detect and strip a leading ``#[style(github)]`` line.

    A UTF-8 BOM is always removed. Leading whitespace is only consumed
    when the directive is present.
    """
    if text.startswith(_BOM):
        text = text[len(_BOM):]
    trimmed = text.lstrip(" \t\r\n")
    if not trimmed.startswith(GITHUB_STYLE_DIRECTIVE):
        return False, text
    rest = trimmed[len(GITHUB_STYLE_DIRECTIVE):]
    newline = rest.find("\n")
    return True, "" if newline < 0 else rest[newline + 1:]


class MarkdownConverter:
    """Converts markdown to an HTML fragment.

    Wraps one ``markdown.Markdown`` instance, which is not thread-safe;
    each wiki owns its own converter.
    """

    EXTENSIONS = ("extra", "toc", "sane_lists")

    def __init__(self) -> None:
        self._md = markdown.Markdown(extensions=list(self.EXTENSIONS))

    def convert(self, text: str, source: str = "<string>") -> str:
        try:
            return self._md.reset().convert(text)
        except Exception as e:
            raise RenderError(f"failed to convert markdown '{source}': {e}") from e


def render_page(title: str, body: str, github_style: bool = False) -> str:
    """Wrap an HTML fragment in a complete document."""
    escaped = html.escape(title)
    head = (
        "<!doctype html>\n"
        '<html lang="en">\n'
        "<head>\n"
        '<meta charset="utf-8" />\n'
        '<meta name="viewport" content="width=device-width, initial-scale=1" />\n'
        f'<meta name="generator" content="markwiki {__version__}" />\n'
        f"<title>{escaped}</title>\n"
        "</head>\n"
    )
    if github_style:
        return f'{head}<body>\n<article class="markdown-body">\n{body}\n</article>\n</body>\n</html>\n'
    return f"{head}<body>\n{body}\n</body>\n</html>\n"
