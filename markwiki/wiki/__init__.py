"""Wiki generation: substitutions, rendering and the regeneration driver."""

from markwiki.wiki.render import MarkdownConverter, render_page
from markwiki.wiki.substitutions import load_substitutions, make_substitutions
from markwiki.wiki.wiki import CONTENT_DIR_NAME, IGNORE_FILE_NAME, GenerationReport, Wiki

__all__ = [
    "CONTENT_DIR_NAME",
    "GenerationReport",
    "IGNORE_FILE_NAME",
    "MarkdownConverter",
    "Wiki",
    "load_substitutions",
    "make_substitutions",
    "render_page",
]
