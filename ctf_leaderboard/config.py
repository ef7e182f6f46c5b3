"""
Configuration management for the CTF leaderboard.
Settings come from a JSON file, then environment variables, then validation.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Tuple

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ScoreboardConfig:
    """Configuration management for the CTF leaderboard."""

    DEFAULT_CONFIG: Dict[str, Any] = {
        "ctf_name": "CTF Leaderboard",
        "database": {
            "path": "leaderboard.db",
            "busy_timeout": 5.0,  # seconds to wait for the write lock
        },
        "cache": {
            "ttl_seconds": 30,
        },
        "scoring": {
            "clamp_negative_scores": False,
            "preserve_checkpoint_progress": False,
        },
        "features": {
            "seed_demo_data": False,
            "submission_stats_enabled": True,
        },
        "server": {
            "host": "0.0.0.0",
            "port": 8081,
            "refresh_interval": 15,  # seconds between display refreshes
        },
        "admin": {
            "token": "",  # empty disables admin access
        },
        "logging": {
            "level": "INFO",
        },
    }

    ENV_MAPPINGS: Dict[str, Tuple[str, ...]] = {
        "CTF_NAME": ("ctf_name",),
        # Database
        "DB_PATH": ("database", "path"),
        "DB_BUSY_TIMEOUT": ("database", "busy_timeout"),
        # Cache
        "CACHE_TTL": ("cache", "ttl_seconds"),
        # Scoring rules
        "CLAMP_NEGATIVE_SCORES": ("scoring", "clamp_negative_scores"),
        "PRESERVE_CHECKPOINT_PROGRESS": ("scoring", "preserve_checkpoint_progress"),
        # Features
        "SEED_DEMO_DATA": ("features", "seed_demo_data"),
        "SUBMISSION_STATS_ENABLED": ("features", "submission_stats_enabled"),
        # Server
        "HOST": ("server", "host"),
        "WEB_PORT": ("server", "port"),
        "REFRESH_INTERVAL": ("server", "refresh_interval"),
        # Admin
        "ADMIN_TOKEN": ("admin", "token"),
        "LOG_LEVEL": ("logging", "level"),
    }

    def __init__(
        self,
        config_path: str = "ctf_config.json",
    ) -> None:
        """Initialize configuration from file, environment variables, or defaults."""
        self.config_path = Path(config_path)
        self.config = self._load_config()
        self._apply_env_overrides()
        self._validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """
        Start from the defaults and merge the JSON file over them.

        A missing file is created with the defaults; an unreadable one is ignored.

        @return: Merged configuration dictionary
        """
        config = copy.deepcopy(self.DEFAULT_CONFIG)

        if self.config_path.exists():
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    loaded_config = json.load(f)

                self._deep_merge(config, loaded_config)
                return config

            except (json.JSONDecodeError, IOError) as e:
                logger.warning(f"Error loading config from {self.config_path}: {e}")
                logger.warning("Using default configuration")
                return config
        else:
            self._create_default_config()
            return config

    def _deep_merge(
        self,
        base_dict: Dict[str, Any],
        update_dict: Dict[str, Any],
    ) -> None:
        # Nested sections merge key by key; anything else is replaced
        for key, value in update_dict.items():
            if (
                key in base_dict
                and isinstance(base_dict[key], dict)
                and isinstance(value, dict)
            ):
                self._deep_merge(base_dict[key], value)
            else:
                base_dict[key] = value

    def _apply_env_overrides(self) -> None:
        """
        Apply environment variable overrides to configuration.

        Values are converted to the type of the corresponding default.
        """
        for env_var, config_path in self.ENV_MAPPINGS.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                default = self._get_default(config_path)
                converted_value = self._convert_env_value(env_value, default)
                self._set_nested_config(config_path, converted_value)

    def _get_default(self, path: Tuple[str, ...]) -> Any:
        value: Any = self.DEFAULT_CONFIG
        for key in path:
            value = value[key]
        return value

    def _convert_env_value(self, value: str, default: Any) -> Any:
        """
        Convert environment variable string to the type of its default.

        @param value: String value from environment variable
        @param default: Default value the setting would otherwise have
        @return: Converted value (bool, int, float, or string)
        """
        if isinstance(default, bool):
            return value.strip().lower() in ("true", "1", "yes", "on")

        try:
            if isinstance(default, int):
                return int(value)
            if isinstance(default, float):
                return float(value)
        except ValueError:
            logger.warning(f"Ignoring invalid numeric value {value!r}, using {default}")
            return default

        return value

    def _set_nested_config(self, path: Tuple[str, ...], value: Any) -> None:
        """
        Set a nested configuration value using a path tuple.

        @param path: Tuple representing the nested path (e.g., ("scoring", "clamp_negative_scores"))
        @param value: Value to set
        """
        current = self.config
        for key in path[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]
        current[path[-1]] = value

    def _create_default_config(self) -> None:
        """Write the defaults to ``config_path``."""
        try:
            with open(self.config_path, "w", encoding="utf-8") as f:
                json.dump(self.DEFAULT_CONFIG, f, indent=2)
            logger.info(f"Created default configuration file: {self.config_path}")
        except IOError as e:
            logger.warning(f"Could not create config file {self.config_path}: {e}")

    def _validate_config(self) -> None:
        """
        Replace out-of-range values with their defaults, logging a warning for each.
        """
        ttl = self.config["cache"]["ttl_seconds"]
        if not isinstance(ttl, (int, float)) or isinstance(ttl, bool) or ttl < 0:
            logger.warning("Invalid cache ttl_seconds, using 30")
            self.config["cache"]["ttl_seconds"] = 30

        busy_timeout = self.config["database"]["busy_timeout"]
        if not isinstance(busy_timeout, (int, float)) or busy_timeout <= 0:
            logger.warning("Invalid database busy_timeout, using 5.0")
            self.config["database"]["busy_timeout"] = 5.0

        refresh_interval = self.config["server"]["refresh_interval"]
        if not isinstance(refresh_interval, int) or refresh_interval <= 0:
            logger.warning("Invalid refresh_interval, using 15")
            self.config["server"]["refresh_interval"] = 15

        level = str(self.config["logging"]["level"]).upper()
        if level not in LOG_LEVELS:
            logger.warning("Invalid logging level, using 'INFO'")
            level = "INFO"
        self.config["logging"]["level"] = level

        # Tokens from JSON may be numbers
        self.config["admin"]["token"] = str(self.config["admin"]["token"] or "")

    def get(
        self,
        *keys: str,
    ) -> Any:
        """
        Get nested configuration value.

        @param keys: Variable arguments representing nested keys to traverse
        @return: Configuration value at the specified path, None if not found
        """
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return None
        return value

    def is_feature_enabled(
        self,
        feature_name: str,
    ) -> bool:
        """
        Check if a feature is enabled.

        @param feature_name: Name of the feature to check
        @return: True if feature is enabled, False otherwise
        """
        return self.get("features", feature_name) is True

    def save_config(self) -> bool:
        """
        Persist the effective configuration, environment overrides included.

        @return: False if the file could not be written
        """
        try:
            with open(self.config_path, "w", encoding="utf-8") as f:
                json.dump(self.config, f, indent=2)
            return True
        except IOError as e:
            logger.warning(f"Could not save config file {self.config_path}: {e}")
            return False
