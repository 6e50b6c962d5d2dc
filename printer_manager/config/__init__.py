"""Configuration module for the printer manager."""

from printer_manager.config.settings import (
    CONTROL_SEARCH_PATHS,
    CONTROL_SOCKET_NAME,
    DEFAULT_CACHE_PATH,
    DEFAULT_CONFIG_FILE,
    EVERYWHERE_MODEL,
    PRINTER_ID_INVALID_CHARS,
    get_env,
    parse_duration,
)
from printer_manager.config.models import ManagerSettings
from printer_manager.config.loader import (
    CONFIG_FILE,
    ManagerConfig,
    require_settings,
)

__all__ = [
    "CONTROL_SEARCH_PATHS",
    "CONTROL_SOCKET_NAME",
    "DEFAULT_CACHE_PATH",
    "DEFAULT_CONFIG_FILE",
    "EVERYWHERE_MODEL",
    "PRINTER_ID_INVALID_CHARS",
    "get_env",
    "parse_duration",
    "ManagerSettings",
    "CONFIG_FILE",
    "ManagerConfig",
    "require_settings",
]
