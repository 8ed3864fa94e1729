"""Investigation configuration module."""

from investigation.config.settings import (
    CacheConfig,
    ExecutorConfig,
    FacetConfig,
    Settings,
    configure,
    get_settings,
    reset_settings,
)

__all__ = [
    "CacheConfig",
    "ExecutorConfig",
    "FacetConfig",
    "Settings",
    "configure",
    "get_settings",
    "reset_settings",
]
