"""markwiki: Markdown wiki generator with incremental regeneration."""

__version__ = "0.1.0"
