"""
Configuration Management System
===============================

Provides dataclass-based configuration with YAML file loading support.
All settings are validated and have sensible defaults.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Any, Dict, Iterable, Union
import yaml
import logging

from folder_organizer.config.categories import CategoryRules, DEFAULT_CATEGORIES
from folder_organizer.utils.exceptions import ConfigurationError
from folder_organizer.utils.logging_config import LoggingConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".folder_organizer" / "config.yaml"

SETTLE_STRATEGIES = ("fixed", "size_stability")


def normalize_folder(folder: Union[str, Path]) -> Path:
    """Canonical form of a folder path, used as a registry and lookup key."""
    return Path(folder).expanduser().resolve()


def _as_mapping(data: Any, key: str) -> Dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Section '{key}' must be a mapping",
            config_key=key,
            expected_type="mapping",
        )
    return data


@dataclass
class WatcherConfig:
    """Watch session configuration.

    Attributes:
        poll_interval: Seconds the worker waits for an event before
            re-checking its stop flag.
        create_debounce: Window in seconds during which repeated create
            events for a processed path are ignored.
        modify_debounce: Same window for modify and rename events.
        create_settle_delay: Wait before classifying a created file.
        modify_settle_delay: Wait before classifying a modified or renamed file.
        settle_strategy: "fixed" sleeps for the settle delay,
            "size_stability" polls until the file size stops changing.
        stop_timeout: Longest a stop call waits for the worker. None picks
            the longest settle delay plus the poll interval plus a second.
        ignore_patterns: Extra glob patterns for file names to leave alone.
    """
    poll_interval: float = 0.1
    create_debounce: float = 5.0
    modify_debounce: float = 2.0
    create_settle_delay: float = 1.0
    modify_settle_delay: float = 0.5
    settle_strategy: str = "fixed"
    stop_timeout: Optional[float] = None
    ignore_patterns: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.settle_strategy not in SETTLE_STRATEGIES:
            raise ConfigurationError(
                f"Unknown settle strategy: {self.settle_strategy}",
                config_key="watcher.settle_strategy",
                details={"allowed": list(SETTLE_STRATEGIES)},
            )
        if self.poll_interval <= 0:
            raise ConfigurationError(
                "poll_interval must be positive",
                config_key="watcher.poll_interval",
            )

    @property
    def effective_stop_timeout(self) -> float:
        """Upper bound a stop call waits for the worker to exit."""
        if self.stop_timeout is not None:
            return self.stop_timeout
        longest_settle = max(self.create_settle_delay, self.modify_settle_delay)
        return longest_settle + self.poll_interval + 1.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WatcherConfig":
        """Create WatcherConfig from dictionary."""
        if not data:
            return cls()
        defaults = cls()
        stop_timeout = data.get("stop_timeout", defaults.stop_timeout)
        try:
            return cls(
                poll_interval=float(data.get("poll_interval", defaults.poll_interval)),
                create_debounce=float(data.get("create_debounce", defaults.create_debounce)),
                modify_debounce=float(data.get("modify_debounce", defaults.modify_debounce)),
                create_settle_delay=float(data.get("create_settle_delay", defaults.create_settle_delay)),
                modify_settle_delay=float(data.get("modify_settle_delay", defaults.modify_settle_delay)),
                settle_strategy=str(data.get("settle_strategy", defaults.settle_strategy)),
                stop_timeout=float(stop_timeout) if stop_timeout is not None else None,
                ignore_patterns=list(data.get("ignore_patterns", defaults.ignore_patterns)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid watcher setting: {e}",
                config_key="watcher",
                cause=e,
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "poll_interval": self.poll_interval,
            "create_debounce": self.create_debounce,
            "modify_debounce": self.modify_debounce,
            "create_settle_delay": self.create_settle_delay,
            "modify_settle_delay": self.modify_settle_delay,
            "settle_strategy": self.settle_strategy,
            "stop_timeout": self.stop_timeout,
            "ignore_patterns": list(self.ignore_patterns),
        }


@dataclass
class UndoConfig:
    """Undo history settings.

    Attributes:
        max_entries: Capacity of each folder's undo log.
    """
    max_entries: int = 50

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UndoConfig":
        if not data:
            return cls()
        try:
            max_entries = int(data.get("max_entries", cls.max_entries))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid undo setting: {e}",
                config_key="undo.max_entries",
                expected_type="int",
                cause=e,
            )
        if max_entries < 1:
            raise ConfigurationError(
                "undo.max_entries must be at least 1",
                config_key="undo.max_entries",
            )
        return cls(max_entries=max_entries)


@dataclass
class PathConfig:
    """Per-folder settings.

    Attributes:
        path: The managed folder.
        name: Display name.
        auto_organize: Organize existing files before watching starts.
        custom_categories: Categories used for this folder instead of the
            global ones.
        exclude_patterns: Glob patterns for file names to leave in place.
    """
    path: Path
    name: str = ""
    auto_organize: bool = False
    custom_categories: Optional[Dict[str, List[str]]] = None
    exclude_patterns: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.path = Path(self.path).expanduser()
        if not self.name:
            self.name = self.path.name

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PathConfig":
        if "path" not in data:
            raise ConfigurationError(
                "Each entry in 'paths' needs a 'path'",
                config_key="paths",
            )
        exclude_patterns = data.get("exclude_patterns") or []
        if not isinstance(exclude_patterns, list) or not all(
            isinstance(pattern, str) for pattern in exclude_patterns
        ):
            raise ConfigurationError(
                "exclude_patterns must be a list of glob patterns",
                config_key="paths.exclude_patterns",
                expected_type="list",
            )
        try:
            return cls(
                path=Path(data["path"]),
                name=str(data.get("name") or ""),
                auto_organize=bool(data.get("auto_organize", False)),
                custom_categories=data.get("custom_categories"),
                exclude_patterns=list(exclude_patterns),
            )
        except TypeError as e:
            raise ConfigurationError(
                f"Invalid path entry: {e}",
                config_key="paths.path",
                expected_type="str",
                cause=e,
            )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "path": str(self.path),
            "name": self.name,
            "auto_organize": self.auto_organize,
        }
        if self.custom_categories is not None:
            data["custom_categories"] = self.custom_categories
        if self.exclude_patterns:
            data["exclude_patterns"] = list(self.exclude_patterns)
        return data


@dataclass
class Config:
    """Main configuration container.

    Aggregates all configuration sections and provides loading from YAML.
    """
    categories: Dict[str, List[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_CATEGORIES.items()}
    )
    watcher: WatcherConfig = field(default_factory=WatcherConfig)
    undo: UndoConfig = field(default_factory=UndoConfig)
    paths: List[PathConfig] = field(default_factory=list)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """Load configuration from YAML file.

        Args:
            config_path: Path to the configuration file. If None, uses
                ~/.folder_organizer/config.yaml.

        Returns:
            Config instance with loaded settings.

        Raises:
            yaml.YAMLError: If config file is not valid YAML.
            ConfigurationError: If a section has the wrong shape or two
                categories claim the same extension.
        """
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH
        config_path = Path(config_path)

        if not config_path.exists():
            logger.warning(f"Config file not found at {config_path}, using defaults")
            return cls()

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse config file: {e}")
            raise

        config = cls._from_dict(_as_mapping(data, "root"))
        logger.info(f"Loaded configuration from {config_path}")
        return config

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        if "categories" in data:
            categories = _as_mapping(data.get("categories"), "categories")
        else:
            categories = {k: list(v) for k, v in DEFAULT_CATEGORIES.items()}

        paths = data.get("paths") or []
        if not isinstance(paths, list):
            raise ConfigurationError(
                "Section 'paths' must be a list",
                config_key="paths",
                expected_type="list",
            )

        config = cls(
            categories={name: list(exts or []) for name, exts in categories.items()},
            watcher=WatcherConfig.from_dict(_as_mapping(data.get("watcher"), "watcher")),
            undo=UndoConfig.from_dict(_as_mapping(data.get("undo"), "undo")),
            paths=[PathConfig.from_dict(_as_mapping(p, "paths")) for p in paths],
            logging=LoggingConfig.from_dict(_as_mapping(data.get("logging"), "logging")),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Build every rule set once so overlaps surface at load time."""
        CategoryRules.from_mapping(self.categories, strict=True)
        for path_config in self.paths:
            if path_config.custom_categories is not None:
                CategoryRules.from_mapping(path_config.custom_categories, strict=True)

    def get_path_config(self, folder: Union[str, Path]) -> Optional[PathConfig]:
        """Find the per-folder settings for a folder, if any."""
        target = normalize_folder(folder)
        for path_config in self.paths:
            if normalize_folder(path_config.path) == target:
                return path_config
        return None

    def rules_for(self, folder: Union[str, Path]) -> CategoryRules:
        """Category rules that apply to a folder."""
        path_config = self.get_path_config(folder)
        if path_config is not None and path_config.custom_categories is not None:
            return CategoryRules.from_mapping(path_config.custom_categories)
        return CategoryRules.from_mapping(self.categories)

    def exclude_patterns_for(self, folder: Union[str, Path]) -> List[str]:
        """Global ignore patterns plus the folder's own exclude patterns."""
        patterns = list(self.watcher.ignore_patterns)
        path_config = self.get_path_config(folder)
        if path_config is not None:
            patterns.extend(path_config.exclude_patterns)
        return patterns

    def add_category(self, name: str, extensions: Iterable[str]) -> None:
        """Add or replace a category, rejecting extension overlaps."""
        candidate = dict(self.categories)
        candidate[name] = list(extensions)
        CategoryRules.from_mapping(candidate, strict=True)
        self.categories = candidate

    def remove_category(self, name: str) -> bool:
        return self.categories.pop(name, None) is not None

    def update_category(self, name: str, extensions: Iterable[str]) -> bool:
        if name not in self.categories:
            return False
        self.add_category(name, extensions)
        return True

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save configuration to YAML file.

        Args:
            config_path: Path where to save the configuration.
        """
        config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        data = {
            "categories": {name: list(exts) for name, exts in self.categories.items()},
            "watcher": self.watcher.to_dict(),
            "undo": {"max_entries": self.undo.max_entries},
            "paths": [p.to_dict() for p in self.paths],
            "logging": self.logging.to_dict(),
        }

        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

        logger.info(f"Saved configuration to {config_path}")
