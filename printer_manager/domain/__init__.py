"""Domain module containing the spooler, directory and session collaborators.

``spooler`` is not imported here: it needs pycups (and libcups) at import
time, and only the service container builds a SpoolerClient.
"""

from printer_manager.domain.types import (
    DriverConfig,
    Printer,
    ResolvedDriver,
    SpoolerPrinter,
    SyncReport,
    sanitize_id,
)
from printer_manager.domain.directory import DirectoryClient
from printer_manager.domain.sessions import SessionEnumerator

__all__ = [
    "DriverConfig",
    "Printer",
    "ResolvedDriver",
    "SpoolerPrinter",
    "SyncReport",
    "sanitize_id",
    "DirectoryClient",
    "SessionEnumerator",
]
