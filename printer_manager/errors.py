"""
Exception types for the printer manager.
"""

from __future__ import annotations


class PrinterManagerError(Exception):
    """Base class for all printer manager errors."""


class ConfigurationError(PrinterManagerError):
    """Raised when the manager configuration is missing or invalid."""


class PrinterConfigError(PrinterManagerError):
    """Raised when a directory printer cannot be registered as published."""

    def __init__(self, printer_id: str, reason: str) -> None:
        self.printer_id = printer_id
        self.reason = reason
        super().__init__(f"Printer '{printer_id}' is misconfigured: {reason}")


class DirectoryError(PrinterManagerError):
    """Raised when the directory service cannot be queried."""


class SessionError(PrinterManagerError):
    """Raised when the logged-in users cannot be enumerated."""


class CacheError(PrinterManagerError):
    """Raised when the expiring cache store cannot be read or written."""


class SpoolerError(PrinterManagerError):
    """Raised when a spooler operation fails."""


class NoDestinationsError(SpoolerError):
    """Raised when the spooler reports that no printers are configured."""


class DriverNotFoundError(SpoolerError):
    """Raised when none of a printer's candidate drivers is installed."""

    def __init__(self, printer_id: str, candidates: list[str]) -> None:
        self.printer_id = printer_id
        self.candidates = list(candidates)
        super().__init__(
            f"No matching driver found for '{printer_id}' "
            f"(tried: {', '.join(candidates) or 'none'})"
        )


class ControlError(PrinterManagerError):
    """Raised when the control socket cannot be set up or reached."""
