# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Configuration loading and validation for the project context cache."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".project_context.yml"


class Config:
    """Configuration for the project context cache.

    Loads configuration from .project_context.yml with validation and defaults.
    """

    DEFAULTS = {
        "cache_max_age_minutes": 5,
        # Files scanned for imports during a full rebuild; 0 disables the budget
        "import_scan_limit": 100,
        "config_edge_limit": 20,
        "recent_files_limit": 20,
        "related_files_limit": 10,
        "summary_max_length": 500,
        "ignore_patterns": [],
        "watch_files": False,
    }

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_path: Path to configuration file. If None, uses default location.
        """
        if config_path is None:
            config_path = Path.cwd() / CONFIG_FILENAME

        self.config_path = config_path
        self._config: Dict[str, Any] = {}
        self._load_config()

    @classmethod
    def for_project(cls, project_root: Path) -> "Config":
        """Load the configuration file that lives in a project root."""
        return cls(config_path=Path(project_root) / CONFIG_FILENAME)

    def _load_config(self) -> None:
        """Load and validate configuration from file."""
        if not self.config_path.exists():
            logger.info(f"Configuration file not found at {self.config_path}, using defaults")
            self._config = self.DEFAULTS.copy()
            return

        try:
            with open(self.config_path, encoding="utf-8") as f:
                loaded_config = yaml.safe_load(f)

            if loaded_config is None:
                logger.warning("Configuration file is empty, using defaults")
                self._config = self.DEFAULTS.copy()
                return

            if not isinstance(loaded_config, dict):
                logger.warning(
                    f"Configuration file must contain a YAML dictionary, "
                    f"got {type(loaded_config)}, using defaults"
                )
                self._config = self.DEFAULTS.copy()
                return

            self._config = self.DEFAULTS.copy()
            self._validate_and_merge(loaded_config)

        except yaml.YAMLError as e:
            logger.warning(
                f"Error parsing configuration file {self.config_path}: {e}, using defaults"
            )
            self._config = self.DEFAULTS.copy()
        except OSError as e:
            logger.warning(
                f"Unable to read configuration file {self.config_path}: {e}, using defaults"
            )
            self._config = self.DEFAULTS.copy()

    def _validate_and_merge(self, loaded_config: Dict[str, Any]) -> None:
        """Validate loaded configuration and merge with defaults.

        Invalid parameters are logged as warnings and defaults are used.
        """
        for key, value in loaded_config.items():
            if key not in self.DEFAULTS:
                logger.warning(f"Unknown configuration parameter '{key}', ignoring")
                continue

            if not self._validate_parameter(key, value):
                logger.warning(
                    f"Invalid value for '{key}': {value}, using default {self.DEFAULTS[key]}"
                )
                continue

            self._config[key] = value

    def _validate_parameter(self, key: str, value: Any) -> bool:
        """Validate a configuration parameter.

        Returns:
            True if valid, False if invalid
        """
        expected_type = type(self.DEFAULTS[key])
        # bool is a subclass of int; reject True/False for numeric keys
        if expected_type is int and isinstance(value, bool):
            return False
        if not isinstance(value, expected_type):
            return False

        if key == "import_scan_limit":
            return value >= 0
        elif key in (
            "cache_max_age_minutes",
            "config_edge_limit",
            "recent_files_limit",
            "related_files_limit",
            "summary_max_length",
        ):
            return value > 0
        elif key == "ignore_patterns":
            return all(isinstance(pattern, str) for pattern in value)

        return True

    @property
    def cache_max_age_minutes(self) -> int:
        """Staleness window for the cached analysis, in minutes."""
        value = self._config["cache_max_age_minutes"]
        assert isinstance(value, int)
        return value

    @property
    def cache_max_age_seconds(self) -> float:
        return float(self.cache_max_age_minutes * 60)

    @property
    def import_scan_limit(self) -> int:
        """Maximum files scanned for imports in a full rebuild (0 = unlimited)."""
        value = self._config["import_scan_limit"]
        assert isinstance(value, int)
        return value

    @property
    def config_edge_limit(self) -> int:
        """Maximum file -> tsconfig.json edges recorded per tsconfig."""
        value = self._config["config_edge_limit"]
        assert isinstance(value, int)
        return value

    @property
    def recent_files_limit(self) -> int:
        """Capacity of the recent-files MRU list."""
        value = self._config["recent_files_limit"]
        assert isinstance(value, int)
        return value

    @property
    def related_files_limit(self) -> int:
        """Default maximum number of related files returned."""
        value = self._config["related_files_limit"]
        assert isinstance(value, int)
        return value

    @property
    def summary_max_length(self) -> int:
        """Default maximum length of the context summary."""
        value = self._config["summary_max_length"]
        assert isinstance(value, int)
        return value

    @property
    def ignore_patterns(self) -> List[str]:
        """Additional gitignore-style patterns to ignore beyond .gitignore."""
        value = self._config["ignore_patterns"]
        assert isinstance(value, list)
        return value

    @property
    def watch_files(self) -> bool:
        """Whether the service should start the file watcher automatically."""
        value = self._config["watch_files"]
        assert isinstance(value, bool)
        return value
