"""
Configuration loader for config.yml with environment overrides.
"""

from __future__ import annotations

import copy
import logging
import os
import threading
from pathlib import Path

import yaml
from pydantic import ValidationError

from printer_manager.config.models import ManagerSettings
from printer_manager.config.settings import (
    CONTROL_SEARCH_PATHS,
    CONTROL_SOCKET_NAME,
    DEFAULT_CACHE_PATH,
    DEFAULT_CONFIG_FILE,
    get_env,
)
from printer_manager.errors import ConfigurationError

logger = logging.getLogger("printer-manager")

# Configuration path
CONFIG_FILE = Path(os.environ.get("PRINTER_MANAGER_CONFIG", DEFAULT_CONFIG_FILE))

# Default configuration
DEFAULTS: dict = {
    "directory": {"base_url": "", "timeout": 10.0},
    "cache": {"path": DEFAULT_CACHE_PATH, "retention": "336h"},
    "sync": {"interval": "1h", "ignored_users": ["root"]},
    "spooler": {"driver_catalog_ttl": "5m"},
    "retry": {"initial": 1.0, "max_retries": 5, "max_backoff": 10.0, "max_jitter": 1.0},
    "control": {"search_paths": list(CONTROL_SEARCH_PATHS), "socket_name": CONTROL_SOCKET_NAME},
    "metrics": {"enabled": False, "port": 9464},
    "logging": {"level": "INFO"},
}

# (section, key, env key)
ENV_OVERRIDES = [
    ("directory", "base_url", "directory_base_url"),
    ("cache", "path", "cache_path"),
    ("cache", "retention", "cache_retention"),
    ("sync", "interval", "sync_interval"),
    ("sync", "ignored_users", "ignored_users"),
]


class ManagerConfig:
    """Manages printer manager configuration from YAML file and environment."""

    _lock = threading.Lock()
    _config: dict = {}
    _typed_config: ManagerSettings | None = None
    _config_file: Path = CONFIG_FILE

    @classmethod
    def configure(cls, config_file: str | Path | None = None) -> None:
        """Select the configuration file and drop any loaded configuration."""
        with cls._lock:
            cls._config_file = Path(config_file) if config_file else CONFIG_FILE
            cls._config = {}
            cls._typed_config = None

    @classmethod
    def load(cls) -> dict:
        """Load configuration (once) and return the merged dictionary."""
        if cls._config:
            return cls._config

        with cls._lock:
            # Double-check after acquiring the lock
            if cls._config:
                return cls._config
            return cls._load_locked()

    @classmethod
    def _load_locked(cls) -> dict:
        """Load config while holding ``_lock``. Called from :meth:`load`."""
        config = copy.deepcopy(DEFAULTS)

        if not cls._config_file.exists():
            logger.info(f"Config file not found, using defaults: {cls._config_file}")
        else:
            try:
                with open(cls._config_file, "r") as f:
                    file_config = yaml.safe_load(f) or {}
                if not isinstance(file_config, dict):
                    raise ValueError("top-level YAML value must be a mapping")
                config = cls._deep_merge(config, file_config)
                logger.info(f"Loaded config from {cls._config_file}")
            except (OSError, ValueError, yaml.YAMLError) as e:
                logger.error(f"Error loading config file {cls._config_file}: {e}")

        config = cls._deep_merge(config, cls._env_overrides())

        try:
            typed = ManagerSettings.model_validate(config)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

        cls._config = config
        cls._typed_config = typed
        return cls._config

    @classmethod
    def _env_overrides(cls) -> dict:
        """Collect ``PRINTER_MANAGER_*`` and ``LOG_LEVEL`` overrides."""
        overrides: dict = {}
        for section, key, env_key in ENV_OVERRIDES:
            value = get_env(env_key)
            if value:
                overrides.setdefault(section, {})[key] = value

        metrics_port = get_env("metrics_port")
        if metrics_port:
            overrides["metrics"] = {"enabled": True, "port": metrics_port}

        log_level = os.environ.get("LOG_LEVEL")
        if log_level:
            overrides["logging"] = {"level": log_level.upper()}
        return overrides

    @classmethod
    def _deep_merge(cls, base: dict, override: dict) -> dict:
        """Deep merge two dictionaries."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = cls._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    @classmethod
    def settings(cls) -> ManagerSettings:
        """Get typed configuration as a ManagerSettings instance."""
        if cls._typed_config is None:
            cls.load()
        assert cls._typed_config is not None
        return cls._typed_config


def require_settings(settings: ManagerSettings) -> ManagerSettings:
    """
    Check the settings the daemon cannot start without.

    Raises:
        ConfigurationError: If ``directory.base_url`` is not set
    """
    if not settings.directory.base_url:
        raise ConfigurationError(
            "directory.base_url is required "
            "(set it in the config file or PRINTER_MANAGER_DIRECTORY_BASE_URL)"
        )
    return settings
