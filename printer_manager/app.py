"""
Printer manager daemon entrypoint.

Wires configuration, logging, metrics and the service container together,
starts the control socket and runs the command loop on the main thread
until SIGINT or SIGTERM.
"""

from __future__ import annotations

import logging
import re
import signal
from pathlib import Path

from printer_manager.config.loader import ManagerConfig, require_settings
from printer_manager.container import ServiceContainer
from printer_manager.observability import setup_json_logging, start_metrics_server

logger = logging.getLogger("printer-manager")


# Filter sensitive data from logs
class SensitiveDataFilter(logging.Filter):
    """Filter to mask credentials in log messages."""

    SENSITIVE_PATTERNS = [
        (re.compile(r'password["\']?\s*[:=]\s*["\']?[^"\'}\s]+', re.I), 'password=***'),
        (re.compile(r'token["\']?\s*[:=]\s*["\']?[^"\'}\s]+', re.I), 'token=***'),
        (re.compile(r'(https?://)[^/\s:@]+:[^/\s@]+@', re.I), r'\1***@'),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            for pattern, replacement in self.SENSITIVE_PATTERNS:
                record.msg = pattern.sub(replacement, record.msg)
        return True


def build_container(config_file: str | Path | None = None) -> ServiceContainer:
    """
    Load settings, set up logging and metrics, and build the services.

    Raises:
        ConfigurationError: If the settings are invalid or incomplete
    """
    ManagerConfig.configure(config_file)
    settings = require_settings(ManagerConfig.settings())

    setup_json_logging(level=settings.logging.level)
    logger.addFilter(SensitiveDataFilter())

    if settings.metrics.enabled:
        start_metrics_server(settings.metrics.port)

    return ServiceContainer(settings)


def install_signal_handlers(container: ServiceContainer) -> None:
    def _handle_shutdown(signum, frame):
        logger.info(f"Received {signal.Signals(signum).name}, shutting down")
        container.shutdown()

    signal.signal(signal.SIGINT, _handle_shutdown)
    signal.signal(signal.SIGTERM, _handle_shutdown)


def run(config_file: str | Path | None = None) -> None:
    """Run the daemon until it receives SIGINT or SIGTERM."""
    container = build_container(config_file)
    settings = container.settings
    logger.info(
        f"Starting printer manager (directory: {settings.directory.base_url}, "
        f"cache: {settings.cache.path}, sync interval: {settings.sync.interval})"
    )

    container.listener.start()
    install_signal_handlers(container)
    try:
        container.dispatcher.run()
    finally:
        container.shutdown()
