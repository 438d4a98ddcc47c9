"""YAML config loading."""

from pathlib import Path

import yaml
from pydantic import ValidationError

from markwiki.errors import WikiConfigError

from .models import MarkwikiConfig


def load_config(cli_path: str | None = None) -> MarkwikiConfig:
    """Load config with resolution order: CLI > project-local > user-global > defaults."""
    config_paths = [
        Path(cli_path) if cli_path else None,
        Path("./markwiki.yaml"),
        Path.home() / ".markwiki" / "config.yaml",
    ]

    if cli_path and not Path(cli_path).exists():
        raise WikiConfigError(f"Config file not found: {cli_path}")

    for path in config_paths:
        if path and path.exists():
            try:
                with open(path) as f:
                    raw = yaml.safe_load(f)
                if raw is None:
                    continue
                if not isinstance(raw, dict):
                    raise WikiConfigError(f"Invalid config in {path}: expected a mapping")
                return MarkwikiConfig(**raw)
            except yaml.YAMLError as e:
                raise WikiConfigError(f"Invalid YAML in {path}: {e}") from e
            except ValidationError as e:
                raise WikiConfigError(f"Invalid config in {path}: {e}") from e

    return MarkwikiConfig()


# Default YAML template for `markwiki config init`
DEFAULT_CONFIG_TEMPLATE = """\
# markwiki.yaml

# Change detection (seconds)
watch:
  change_wait: 0.1             # first pause before comparing snapshots
  max_change_wait: 5.0         # cap for the exponential backoff
  max_regen_interval: 600      # regenerate at least this often while watching
  event_poll_interval: 0.05

# Resource limits
limits:
  max_markdown_file_size: 104857600
  max_files_processed: 1000000
  max_recursion_depth: 1000
  max_csv_file_size: 10485760
  max_csv_field_size: 65536
  max_substitution_strings: 10000

# Logging
log_level: "warn"              # debug | info | warn | error
"""
