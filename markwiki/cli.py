"""CLI entry point for markwiki."""

from __future__ import annotations

import cProfile
import logging
import threading
from pathlib import Path
from typing import Annotated

import typer
import yaml
from rich import print as rprint
from rich.logging import RichHandler
from rich.syntax import Syntax

from markwiki import __version__
from markwiki.config import MarkwikiConfig, load_config
from markwiki.config.loader import DEFAULT_CONFIG_TEMPLATE
from markwiki.errors import MarkwikiError
from markwiki.runner import (
    generate_wikis,
    install_signal_handlers,
    load_wiki_list,
    restore_signal_handlers,
)
from markwiki.wiki import Wiki

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="markwiki",
    help="Generate HTML wikis from Markdown, optionally regenerating on change.",
)

config_app = typer.Typer(help="Manage markwiki configuration.")
app.add_typer(config_app, name="config")

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

# Global state
_config: MarkwikiConfig | None = None


def _get_config() -> MarkwikiConfig:
    if _config is None:
        return load_config()
    return _config


def _configure_logging(level_name: str) -> None:
    logging.basicConfig(
        level=_LOG_LEVELS[level_name],
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(show_path=False)],
        force=True,
    )


@app.callback()
def main(
    config: Annotated[
        str | None, typer.Option("--config", "-c", help="Path to markwiki.yaml")
    ] = None,
) -> None:
    """Global options."""
    global _config
    try:
        _config = load_config(config)
    except MarkwikiError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def generate(
    source_dir: Annotated[
        Path | None, typer.Argument(help="Wiki source dir (holds content/)")
    ] = None,
    dest_dir: Annotated[Path | None, typer.Argument(help="Where to write the HTML")] = None,
    wikis: Annotated[
        Path | None,
        typer.Option("--wikis", help="CSV file with one source_dir,dest_dir pair per line"),
    ] = None,
    regen: bool = typer.Option(False, "--regen", help="Regenerate all files regardless of timestamps"),
    clean: bool = typer.Option(
        False, "--clean", help="Delete dest files that have no corresponding source file"
    ),
    watch: bool = typer.Option(False, "--watch", help="Keep running and regenerate on change"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print status messages"),
    debug: bool = typer.Option(False, "--debug", help="Print debug messages"),
    profile: Annotated[
        Path | None,
        typer.Option("--profile", help="Write a cProfile report of the run to this file"),
    ] = None,
) -> None:
    """Generate one wiki, or every wiki listed in --wikis."""
    cfg = _get_config()
    _configure_logging("debug" if debug else "info" if verbose else cfg.log_level)

    given_dirs = [path for path in (source_dir, dest_dir) if path is not None]
    if (wikis is None and len(given_dirs) != 2) or (wikis is not None and given_dirs):
        rprint("[red]Error:[/red] give SOURCE_DIR and DEST_DIR, or --wikis CSV (not both)")
        raise typer.Exit(1)

    try:
        pairs = load_wiki_list(wikis, cfg.limits) if wikis else [(str(source_dir), str(dest_dir))]
        targets = [Wiki(source, dest, cfg) for source, dest in pairs]
    except MarkwikiError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    cancel = threading.Event()
    previous_handlers = install_signal_handlers(cancel)
    logger.info("Starting markwiki %s", __version__)

    profiler = cProfile.Profile() if profile else None
    if profiler is not None:
        profiler.enable()
    try:
        summary = generate_wikis(targets, regen, clean, watch, cancel)
    except MarkwikiError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    finally:
        restore_signal_handlers(previous_handlers)
        if profiler is not None:
            profiler.disable()
            try:
                profiler.dump_stats(profile)
            except OSError as e:
                rprint(f"[red]Error:[/red] unable to write profile '{profile}': {e.strerror}")
            else:
                logger.info("Wrote profile to %s", profile)

    if summary.cancelled:
        rprint("Terminate signal received. Exiting...")
        return

    for message in summary.failures:
        rprint(f"[yellow]Warning:[/yellow] {message}")
    if summary.failed:
        rprint("[red]Error:[/red] generation produced no output")
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Print version information."""
    rprint(f"markwiki {__version__}")


@config_app.command("show")
def config_show() -> None:
    """Show current resolved configuration."""
    cfg = _get_config()
    rprint(Syntax(yaml.dump(cfg.model_dump(), default_flow_style=False), "yaml"))


@config_app.command("init")
def config_init(
    force: bool = typer.Option(False, "--force", help="Overwrite existing config"),
) -> None:
    """Create default markwiki.yaml in current directory."""
    target = Path("markwiki.yaml")
    if target.exists() and not force:
        rprint("[yellow]markwiki.yaml already exists.[/yellow] Use --force to overwrite.")
        raise typer.Exit(1)
    target.write_text(DEFAULT_CONFIG_TEMPLATE)
    rprint(f"[green]Created[/green] {target}")
