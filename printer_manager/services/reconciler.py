"""
Reconciliation of the spooler's printers against the directory service.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Iterable, Protocol

from printer_manager.domain.types import Printer, ResolvedDriver, SpoolerPrinter, SyncReport
from printer_manager.errors import (
    CacheError,
    NoDestinationsError,
    PrinterConfigError,
    SpoolerError,
)
from printer_manager.observability import (
    CACHE_ENTRIES,
    ERRORED_PRINTERS,
    SPOOLER_MUTATIONS,
    SYNC_DURATION,
)

if TYPE_CHECKING:
    from printer_manager.persistence.cache_store import ExpiringCacheStore

logger = logging.getLogger("printer-manager")


class DirectoryService(Protocol):
    def get_printers(self, usernames: Iterable[str]) -> list[Printer]: ...


class Spooler(Protocol):
    def get_printers(self) -> list[SpoolerPrinter]: ...
    def resolve_driver(self, printer: Printer) -> ResolvedDriver: ...
    def add_or_modify(self, printer: Printer, driver: ResolvedDriver | None = None) -> None: ...
    def delete(self, printer_id: str) -> None: ...
    def set_default(self, printer_id: str) -> None: ...
    def get_default(self) -> str | None: ...
    def get_driver_catalog(self) -> dict[str, str]: ...
    def clear_driver_catalog(self) -> None: ...


class Sessions(Protocol):
    def get_active_users(self) -> set[str]: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Reconciler:
    """Keeps the spooler's printers in line with the directory service.

    Not thread-safe: the command dispatcher guarantees that at most one
    ``sync``/``clear_cache`` runs at a time.
    """

    def __init__(
        self,
        directory: DirectoryService,
        spooler: Spooler,
        sessions: Sessions,
        cache_store: ExpiringCacheStore,
        retention: timedelta = timedelta(days=14),
        ignored_users: Iterable[str] = ("root",),
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize the reconciler.

        Args:
            directory: Source of desired printers
            spooler: Local print spooler
            sessions: Source of logged-in users
            cache_store: Persistent id -> expiration store
            retention: How long a printer outlives its last directory sighting
            ignored_users: Logged-in users never queried for printers
            clock: Returns the current (timezone-aware) time
        """
        self.directory = directory
        self.spooler = spooler
        self.sessions = sessions
        self.cache_store = cache_store
        self.retention = retention
        self.ignored_users = set(ignored_users)
        self.clock = clock

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def sync(self, usernames: Iterable[str] | None = None) -> SyncReport:
        """
        Run one reconciliation.

        Args:
            usernames: Extra usernames to include besides the logged-in users

        Returns:
            Report of what changed

        Raises:
            SessionError: If logged-in users cannot be enumerated
            DirectoryError: If the directory service cannot be queried
            CacheError: If the cache cannot be read or updated
            SpoolerError: If the spooler's printers cannot be listed
        """
        started = time.monotonic()
        logger.info("Starting sync")
        report = SyncReport()

        report.users = self._active_users(usernames)
        logger.info(f"Getting printers for: {', '.join(report.users) or '(nobody)'}")

        printers = self.directory.get_printers(report.users)
        report.desired = [p.id for p in printers]
        logger.info(f"Got {len(printers)} printers from directory")

        now = self.clock()
        cache = self._refresh_cache(printers, now)

        self._apply_printers(printers, report)

        actual = self._actual_printers()
        logger.info(f"Got {len(actual)} printers from CUPS")

        valid = [p for p in printers if p.id not in report.errored]
        self._prune_unmanaged(actual, valid, report)
        self._prune_expired(actual, cache, now, report)
        self._elect_default(valid, report)

        if report.purged:
            try:
                self.cache_store.purge(report.purged)
            except CacheError as e:
                logger.warning(f"Unable to purge cache: {e}")

        ERRORED_PRINTERS.set(len(report.errored))
        SYNC_DURATION.observe(time.monotonic() - started)
        logger.info(f"Sync completed successfully: {report.summary()}")
        logger.debug(f"Sync report: {report.to_dict()}")
        return report

    def _active_users(self, usernames: Iterable[str] | None) -> list[str]:
        users = self.sessions.get_active_users() - self.ignored_users
        users.update(u for u in (usernames or []) if u)
        return sorted(users)

    def _refresh_cache(self, printers: list[Printer], now: datetime) -> dict[str, datetime]:
        cache = self.cache_store.read()
        expires = now + self.retention
        for printer in printers:
            cache[printer.id] = max(expires, cache.get(printer.id, expires))
        self.cache_store.write(cache)
        CACHE_ENTRIES.set(len(cache))
        return cache

    def _snapshot(self) -> dict[str, SpoolerPrinter] | None:
        """Current registrations, or None when they cannot be listed."""
        try:
            return {p.id: p for p in self.spooler.get_printers()}
        except NoDestinationsError:
            return {}
        except SpoolerError as e:
            logger.warning(f"Unable to list CUPS printers before update, updating all: {e}")
            return None

    def _apply_printers(self, printers: list[Printer], report: SyncReport) -> None:
        snapshot = self._snapshot()
        for printer in printers:
            try:
                driver = self.spooler.resolve_driver(printer)
                current = snapshot.get(printer.id) if snapshot is not None else None
                if current is not None and current.matches(printer, driver):
                    report.unchanged.append(printer.id)
                    continue

                self.spooler.add_or_modify(printer, driver)
            except (PrinterConfigError, SpoolerError) as e:
                logger.warning(
                    f"Unable to add or modify printer {printer.id} ({printer.device_host}): {e}"
                )
                report.errored[printer.id] = str(e)
                continue

            if snapshot is not None and printer.id not in snapshot:
                report.created.append(printer.id)
                SPOOLER_MUTATIONS.labels(operation="create").inc()
            else:
                report.updated.append(printer.id)
                SPOOLER_MUTATIONS.labels(operation="update").inc()
            logger.info(f"Added/Modified printer: {printer.id} ({printer.device_host})")

    def _actual_printers(self) -> list[SpoolerPrinter]:
        try:
            return self.spooler.get_printers()
        except NoDestinationsError:
            return []

    def _prune_unmanaged(
        self, actual: list[SpoolerPrinter], valid: list[Printer], report: SyncReport
    ) -> None:
        """Delete registrations that point at a managed device under another id."""
        desired_ids = set(report.desired)
        for cp in actual:
            if cp.id in desired_ids:
                continue
            match = next(
                (p for p in valid if p.device_host and p.device_host in cp.device_uri), None
            )
            if match is None:
                continue

            try:
                self.spooler.delete(cp.id)
            except SpoolerError as e:
                logger.warning(f"Unable to remove matched printer {cp.id}: {e}")
                continue
            report.pruned.append(cp.id)
            SPOOLER_MUTATIONS.labels(operation="delete").inc()
            logger.info(
                f"Removed matching printer {cp.id} ({cp.device_uri}): "
                f"matched {match.id} ({match.device_host})"
            )

    def _prune_expired(
        self,
        actual: list[SpoolerPrinter],
        cache: dict[str, datetime],
        now: datetime,
        report: SyncReport,
    ) -> None:
        """Delete printers whose cache entry expired and queue them for purge."""
        present = {p.id: p for p in actual if p.id not in report.pruned}
        for printer_id, expiration in sorted(cache.items()):
            if not expiration < now:
                continue

            cp = present.get(printer_id)
            if cp is not None:
                try:
                    self.spooler.delete(cp.id)
                except SpoolerError as e:
                    logger.warning(f"Unable to delete expired printer {cp.id} ({cp.device_uri}): {e}")
                    continue
                report.expired.append(cp.id)
                SPOOLER_MUTATIONS.labels(operation="delete").inc()
                logger.info(f"Deleted expired printer {cp.id} ({cp.device_uri})")

            # deleted, or not registered anymore
            report.purged.append(printer_id)

    def _elect_default(self, valid: list[Printer], report: SyncReport) -> None:
        try:
            current = self.spooler.get_default()
        except SpoolerError as e:
            logger.warning(f"Unable to get default printer: {e}")
            current = None

        elected = elect_default(valid, current)
        report.default = elected.id if elected is not None else current
        if elected is None or elected.id == current:
            return

        try:
            self.spooler.set_default(elected.id)
        except SpoolerError as e:
            logger.warning(f"Unable to set default printer to {elected.id} ({elected.device_host}): {e}")
            report.default = current
            return
        report.default_changed = True
        SPOOLER_MUTATIONS.labels(operation="set_default").inc()
        logger.info(f"Set default printer to {elected.id} ({elected.device_host})")

    # ------------------------------------------------------------------
    # Cache maintenance
    # ------------------------------------------------------------------

    def clear_cache(self) -> list[str]:
        """
        Delete every cached printer from the spooler and forget all of them.

        Cache entries are purged whether or not their deletion succeeded.

        Returns:
            Purged printer ids

        Raises:
            CacheError: If the cache cannot be read
            SpoolerError: If the spooler's printers cannot be listed
        """
        logger.info("Clearing cached printers")
        cache = self.cache_store.read()

        actual = {p.id: p for p in self._actual_printers()}
        logger.info(f"Got {len(actual)} printers from CUPS")

        purged: list[str] = []
        for printer_id in sorted(cache):
            cp = actual.get(printer_id)
            if cp is not None:
                try:
                    self.spooler.delete(cp.id)
                    SPOOLER_MUTATIONS.labels(operation="delete").inc()
                    logger.info(f"Deleted cached printer {cp.id} ({cp.device_uri})")
                except SpoolerError as e:
                    logger.warning(f"Unable to delete cached printer {cp.id} ({cp.device_uri}): {e}")
            purged.append(printer_id)

        try:
            self.cache_store.purge(purged)
            CACHE_ENTRIES.set(0)
        except CacheError as e:
            logger.warning(f"Unable to purge cache: {e}")

        self.spooler.clear_driver_catalog()
        logger.info("Cache cleared successfully")
        return purged

    def list_drivers(self) -> dict[str, str]:
        """Return the spooler's driver catalog (make and model -> PPD name)."""
        return self.spooler.get_driver_catalog()


def elect_default(printers: Iterable[Printer], current: str | None) -> Printer | None:
    """
    Choose the default printer.

    The printer that already is the spooler default is the starting pick;
    any printer with a strictly higher priority replaces the pick. Printers
    are scanned in id order, so equal priorities resolve to the lowest id.
    """
    candidates = sorted(printers, key=lambda p: p.id)
    elected = next((p for p in candidates if current and p.id == current), None)
    for printer in candidates:
        if elected is None or printer.default_priority > elected.default_priority:
            elected = printer
    return elected
