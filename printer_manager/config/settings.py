"""
Constants and settings for the printer manager.
"""

from __future__ import annotations

import os
import re
from datetime import timedelta

# =============================================================================
# Constants
# =============================================================================

ENV_PREFIX = "PRINTER_MANAGER_"

DEFAULT_CONFIG_FILE = "/etc/printer-manager/config.yml"
DEFAULT_CACHE_PATH = "/var/lib/printer-manager/cache.db"

CONTROL_SOCKET_NAME = "printer-manager.sock"
CONTROL_SEARCH_PATHS = ["/var/run", "/run"]

# Spooler-safe printer ids (CUPS-Create-Local-Printer strips everything else)
PRINTER_ID_INVALID_CHARS = re.compile(r"[^0-9a-zA-Z]")

# Driverless registration model
EVERYWHERE_MODEL = "everywhere"

# "336h", "30m", "1h30m", "14d", "45s", "1.5h"
_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(d|h|m|s)")
_DURATION_UNITS = {"d": 86400, "h": 3600, "m": 60, "s": 1}


def get_env(key: str, default: str | None = None) -> str | None:
    """
    Retrieve a ``PRINTER_MANAGER_*`` environment variable.

    Args:
        key: Configuration key (``cache_path`` -> ``PRINTER_MANAGER_CACHE_PATH``)
        default: Default value

    Returns:
        Configuration value
    """
    env_key = ENV_PREFIX + key.upper().replace("-", "_")
    return os.environ.get(env_key, default)


def parse_duration(value: object) -> timedelta:
    """
    Parse a duration given as seconds or as a unit string.

    Args:
        value: ``timedelta``, number of seconds, or a string such as ``"336h"``

    Returns:
        Parsed duration

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)
    if not isinstance(value, str):
        raise ValueError(f"Invalid duration: {value!r}")

    text = value.strip().lower()
    try:
        return timedelta(seconds=float(text))
    except ValueError:
        pass

    pos = 0
    seconds = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos == 0 or pos != len(text):
        raise ValueError(f"Invalid duration: {value!r}")
    return timedelta(seconds=seconds)
