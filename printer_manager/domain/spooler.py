"""
CUPS spooler client built on pycups.
"""

from __future__ import annotations

import logging
import time
from datetime import timedelta
from typing import Any, Callable

import cups

from printer_manager.config.settings import EVERYWHERE_MODEL
from printer_manager.domain.types import Printer, ResolvedDriver, SpoolerPrinter
from printer_manager.errors import DriverNotFoundError, NoDestinationsError, SpoolerError
from printer_manager.resilience import DEFAULT_STRATEGY, RetryStrategy

logger = logging.getLogger("printer-manager")

DEFAULT_CATALOG_TTL = timedelta(minutes=5)

NO_DESTINATIONS_MESSAGE = "No destinations added."

OPTION_DEFAULT_SUFFIX = "-default"

_CUPS_ERRORS = (cups.IPPError, cups.HTTPError, RuntimeError)


def _ipp_status(exc: BaseException) -> int | None:
    if isinstance(exc, cups.IPPError) and exc.args:
        return exc.args[0]
    return None


def _is_transient(exc: BaseException) -> bool:
    """Connection failures and an unavailable scheduler are worth retrying."""
    if isinstance(exc, cups.IPPError):
        return _ipp_status(exc) == cups.IPP_SERVICE_UNAVAILABLE
    return isinstance(exc, (RuntimeError, cups.HTTPError))


def _option_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(_option_value(v) for v in value)
    return str(value)


def _is_no_destinations(exc: BaseException) -> bool:
    if not isinstance(exc, cups.IPPError):
        return False
    if _ipp_status(exc) == cups.IPP_NOT_FOUND:
        return True
    return NO_DESTINATIONS_MESSAGE in str(exc)


class DriverCatalog:
    """Time-bounded cache of the spooler's driver catalog."""

    def __init__(self, ttl: timedelta = DEFAULT_CATALOG_TTL):
        self.ttl = ttl
        self._entries: dict[str, str] | None = None
        self._loaded_at: float = 0

    def get(self, loader: Callable[[], dict[str, str]]) -> dict[str, str]:
        """Return the cached catalog, calling ``loader`` when stale."""
        now = time.monotonic()
        if self._entries is not None and now - self._loaded_at < self.ttl.total_seconds():
            return self._entries
        self._entries = loader()
        self._loaded_at = now
        return self._entries

    def clear(self) -> None:
        self._entries = None
        self._loaded_at = 0


class SpoolerClient:
    """Administrative client for the local CUPS scheduler."""

    def __init__(
        self,
        catalog_ttl: timedelta = DEFAULT_CATALOG_TTL,
        retry: RetryStrategy | None = None,
        connection_factory: Callable[[], Any] | None = None,
    ):
        """
        Initialize spooler client.

        Args:
            catalog_ttl: How long the driver catalog is reused
            retry: Retry strategy for transient failures
            connection_factory: Builds the pycups connection (defaults to ``cups.Connection``)
        """
        self.catalog = DriverCatalog(catalog_ttl)
        self._retry = (retry or DEFAULT_STRATEGY).with_classifier(_is_transient, name="spooler")
        self._connection_factory = connection_factory or cups.Connection
        self._connection: Any = None

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    def _conn(self) -> Any:
        if self._connection is None:
            self._connection = self._connection_factory()
        return self._connection

    def _call(self, method: str, *args: Any, **kwargs: Any) -> Any:
        """Invoke a pycups connection method through the retry strategy."""

        def attempt() -> Any:
            try:
                return getattr(self._conn(), method)(*args, **kwargs)
            except (RuntimeError, cups.HTTPError):
                # Reconnect on the next attempt
                self._connection = None
                raise

        return self._retry.call(attempt)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_printers(self) -> list[SpoolerPrinter]:
        """
        Get all registered printers.

        Raises:
            NoDestinationsError: If the scheduler has no printers configured
            SpoolerError: On any other failure
        """
        try:
            printers = self._call("getPrinters")
        except cups.IPPError as e:
            if _is_no_destinations(e):
                raise NoDestinationsError(NO_DESTINATIONS_MESSAGE) from e
            raise SpoolerError(f"Unable to get printers: {e}") from e
        except (RuntimeError, cups.HTTPError) as e:
            raise SpoolerError(f"Unable to get printers: {e}") from e

        result = []
        for name, attrs in sorted(printers.items()):
            accepting_jobs, options = self._registration_details(name)
            result.append(SpoolerPrinter(
                id=name,
                device_uri=attrs.get("device-uri", ""),
                info=attrs.get("printer-info", ""),
                location=attrs.get("printer-location", ""),
                make_and_model=attrs.get("printer-make-and-model", ""),
                enabled=attrs.get("printer-state") != cups.IPP_PRINTER_STOPPED,
                accepting_jobs=accepting_jobs,
                options=options,
            ))
        return result

    def _registration_details(self, printer_id: str) -> tuple[bool, dict[str, str]]:
        """
        Read whether a printer accepts jobs and its option defaults.

        A printer whose attributes cannot be read is reported as not
        accepting jobs, so the next sync registers it again.
        """
        try:
            attrs = self._call("getPrinterAttributes", printer_id)
        except _CUPS_ERRORS as e:
            logger.debug(f"Unable to get attributes of {printer_id}: {e}")
            return False, {}

        options = {
            key[: -len(OPTION_DEFAULT_SUFFIX)]: _option_value(value)
            for key, value in attrs.items()
            if key.endswith(OPTION_DEFAULT_SUFFIX)
        }
        return bool(attrs.get("printer-is-accepting-jobs", False)), options

    def get_default(self) -> str | None:
        """Get the id of the default printer, or None if there is none."""
        try:
            return self._call("getDefault")
        except _CUPS_ERRORS as e:
            raise SpoolerError(f"Unable to get default printer: {e}") from e

    def _load_catalog(self) -> dict[str, str]:
        try:
            ppds = self._call("getPPDs")
        except _CUPS_ERRORS as e:
            raise SpoolerError(f"Unable to get drivers: {e}") from e

        catalog: dict[str, str] = {}
        for ppd_name, attrs in ppds.items():
            make_and_model = attrs.get("ppd-make-and-model")
            if make_and_model:
                catalog[make_and_model] = ppd_name
        logger.debug(f"Loaded {len(catalog)} drivers from CUPS")
        return catalog

    def get_driver_catalog(self) -> dict[str, str]:
        """Get the installed drivers as make-and-model -> PPD name."""
        return self.catalog.get(self._load_catalog)

    def clear_driver_catalog(self) -> None:
        """Drop the cached driver catalog."""
        self.catalog.clear()

    def resolve_driver(self, printer: Printer) -> ResolvedDriver:
        """
        Pick the first candidate driver installed in the spooler.

        Raises:
            PrinterConfigError: If the printer has no driver configuration
            DriverNotFoundError: If no candidate resolves and driverless
                registration is not allowed
        """
        driver = printer.require_driver()
        catalog = self.get_driver_catalog()
        for key in driver.candidate_driver_names:
            ppd_name = catalog.get(key)
            if ppd_name:
                return ResolvedDriver(key=key, ppd_name=ppd_name)

        if driver.fallback_everywhere:
            logger.info(f"No driver found for {printer.id}, using driverless registration")
            return ResolvedDriver(key=None, ppd_name=EVERYWHERE_MODEL)
        raise DriverNotFoundError(printer.id, driver.candidate_driver_names)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_or_modify(self, printer: Printer, driver: ResolvedDriver | None = None) -> None:
        """
        Create or update a printer, then apply its option defaults.

        Args:
            printer: Desired printer
            driver: Already resolved driver (resolved here when omitted)

        Raises:
            PrinterConfigError: If the printer's configuration is unusable
            SpoolerError: If the spooler rejects the change
        """
        driver = driver or self.resolve_driver(printer)
        device_uri = printer.device_uri()

        try:
            self._call(
                "addPrinter",
                printer.id,
                ppdname=driver.ppd_name,
                info=printer.info,
                location=printer.effective_location,
                device=device_uri,
            )
            self._call("enablePrinter", printer.id)
            self._call("acceptJobs", printer.id)
        except _CUPS_ERRORS as e:
            raise SpoolerError(f"Unable to add or modify printer {printer.id}: {e}") from e

        options = printer.require_driver().options
        for key, value in sorted(options.items()):
            try:
                self._call("addPrinterOptionDefault", printer.id, key, value)
            except _CUPS_ERRORS as e:
                raise SpoolerError(
                    f"Unable to set option {key}={value} on {printer.id}: {e}"
                ) from e

    def delete(self, printer_id: str) -> None:
        """Delete a printer registration."""
        try:
            self._call("deletePrinter", printer_id)
        except _CUPS_ERRORS as e:
            raise SpoolerError(f"Unable to delete printer {printer_id}: {e}") from e

    def set_default(self, printer_id: str) -> None:
        """Make a printer the spooler's default destination."""
        try:
            self._call("setDefault", printer_id)
        except _CUPS_ERRORS as e:
            raise SpoolerError(f"Unable to set default printer {printer_id}: {e}") from e
