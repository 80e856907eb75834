"""Configuration module for Folder Organizer."""

from .settings import (
    Config,
    WatcherConfig,
    UndoConfig,
    PathConfig,
    normalize_folder,
)
from .categories import (
    CategoryRules,
    DEFAULT_CATEGORIES,
    get_extension,
    normalize_extension,
)

__all__ = [
    "Config",
    "WatcherConfig",
    "UndoConfig",
    "PathConfig",
    "normalize_folder",
    "CategoryRules",
    "DEFAULT_CATEGORIES",
    "get_extension",
    "normalize_extension",
]
