from typing import Literal

from pydantic import BaseModel, Field


class WatchSettings(BaseModel):
    """Timings for change detection, in seconds."""

    change_wait: float = Field(default=0.1, gt=0)
    max_change_wait: float = Field(default=5.0, gt=0)
    max_regen_interval: float = Field(default=600.0, gt=0)
    event_poll_interval: float = Field(default=0.05, gt=0)


class LimitsSettings(BaseModel):
    max_markdown_file_size: int = Field(default=100 * 1024 * 1024, gt=0)
    max_files_processed: int = Field(default=1_000_000, gt=0)
    max_recursion_depth: int = Field(default=1000, gt=0)
    max_csv_file_size: int = Field(default=10 * 1024 * 1024, gt=0)
    max_csv_field_size: int = Field(default=64 * 1024, gt=0)
    max_substitution_strings: int = Field(default=10_000, gt=0)


class MarkwikiConfig(BaseModel):
    watch: WatchSettings = Field(default_factory=WatchSettings)
    limits: LimitsSettings = Field(default_factory=LimitsSettings)
    log_level: Literal["debug", "info", "warn", "error"] = "warn"
