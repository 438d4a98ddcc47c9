from .loader import load_config
from .models import (
    LimitsSettings,
    MarkwikiConfig,
    WatchSettings,
)

__all__ = [
    "LimitsSettings",
    "MarkwikiConfig",
    "WatchSettings",
    "load_config",
]
