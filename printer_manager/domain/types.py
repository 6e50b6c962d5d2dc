"""
Typed data structures for the printer manager domain.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from printer_manager.config.settings import EVERYWHERE_MODEL, PRINTER_ID_INVALID_CHARS
from printer_manager.errors import PrinterConfigError


def sanitize_id(printer_id: str) -> str:
    """Strip everything but ASCII letters and digits, as the spooler does."""
    return PRINTER_ID_INVALID_CHARS.sub("", printer_id)


@dataclass
class DriverConfig:
    """Spooler-specific settings for a directory printer."""

    candidate_driver_names: list[str] = field(default_factory=list)
    fallback_everywhere: bool = False
    default_priority: int = 0
    options: dict[str, str] = field(default_factory=dict)
    display_name: str = ""
    location: str = ""


@dataclass
class Printer:
    """Desired printer as published by the directory service."""

    id: str
    device_host: str
    hostname_template: str = ""
    display_name: str = ""
    location: str = ""
    driver: DriverConfig | None = None

    @property
    def info(self) -> str:
        """Display name, with a non-empty driver override winning."""
        if self.driver is not None and self.driver.display_name:
            return self.driver.display_name
        return self.display_name

    @property
    def effective_location(self) -> str:
        """Location, with a non-empty driver override winning."""
        if self.driver is not None and self.driver.location:
            return self.driver.location
        return self.location

    @property
    def default_priority(self) -> int:
        return self.driver.default_priority if self.driver is not None else 0

    def require_driver(self) -> DriverConfig:
        """
        Return the driver block.

        Raises:
            PrinterConfigError: If the directory published no driver block
        """
        if self.driver is None:
            raise PrinterConfigError(self.id, "no driver configuration")
        return self.driver

    def device_uri(self) -> str:
        """
        Fill the hostname template's ``%s`` slot with the device host.

        Raises:
            PrinterConfigError: If the template has no substitution slot
        """
        if "%s" not in self.hostname_template:
            raise PrinterConfigError(
                self.id, f"invalid URI template {self.hostname_template!r}"
            )
        return self.hostname_template.replace("%s", self.device_host, 1)


@dataclass(frozen=True)
class ResolvedDriver:
    """Driver chosen for a printer from the spooler's catalog."""

    key: str | None
    ppd_name: str

    @property
    def is_everywhere(self) -> bool:
        return self.ppd_name == EVERYWHERE_MODEL


@dataclass
class SpoolerPrinter:
    """Printer registration as reported by the spooler."""

    id: str
    device_uri: str = ""
    info: str = ""
    location: str = ""
    make_and_model: str = ""
    enabled: bool = True
    accepting_jobs: bool = True
    options: dict[str, str] = field(default_factory=dict)

    def matches(self, printer: Printer, driver: ResolvedDriver) -> bool:
        """Whether this registration already reflects ``printer`` with ``driver``."""
        try:
            device_uri = printer.device_uri()
        except PrinterConfigError:
            return False
        if not (self.enabled and self.accepting_jobs):
            return False
        if printer.driver is not None and any(
            self.options.get(key) != value for key, value in printer.driver.options.items()
        ):
            return False
        if (
            self.device_uri != device_uri
            or self.info != printer.info
            or self.location != printer.effective_location
        ):
            return False
        # Driverless models report whatever the device advertises
        return driver.is_everywhere or self.make_and_model == driver.key


@dataclass
class SyncReport:
    """Outcome of one reconciliation run."""

    users: list[str] = field(default_factory=list)
    desired: list[str] = field(default_factory=list)
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    errored: dict[str, str] = field(default_factory=dict)
    pruned: list[str] = field(default_factory=list)
    expired: list[str] = field(default_factory=list)
    purged: list[str] = field(default_factory=list)
    default: str | None = None
    default_changed: bool = False

    def summary(self) -> str:
        return (
            f"{len(self.desired)} desired, {len(self.created)} created, "
            f"{len(self.updated)} updated, {len(self.unchanged)} unchanged, "
            f"{len(self.errored)} errored, {len(self.pruned)} pruned, "
            f"{len(self.expired)} expired, default={self.default or '-'}"
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
