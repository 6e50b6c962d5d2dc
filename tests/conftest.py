"""
Shared pytest fixtures for the printer manager test suite.
"""

import os
from datetime import datetime, timedelta, timezone

import pytest

# ---------------------------------------------------------------------------
# Environment stubs: keep the loader away from /etc and the real cache path.
# ---------------------------------------------------------------------------

os.environ.setdefault("PRINTER_MANAGER_CONFIG", "/nonexistent/printer-manager/config.yml")

from printer_manager.domain.types import DriverConfig, Printer, ResolvedDriver, SpoolerPrinter  # noqa: E402
from printer_manager.errors import (  # noqa: E402
    DriverNotFoundError,
    NoDestinationsError,
    SpoolerError,
)
from printer_manager.persistence.cache_store import ExpiringCacheStore  # noqa: E402
from printer_manager.services.reconciler import Reconciler  # noqa: E402

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
RETENTION = timedelta(days=14)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeSpooler:
    """In-memory spooler mirroring SpoolerClient's contract."""

    def __init__(self, catalog=None):
        self.printers: dict[str, SpoolerPrinter] = {}
        self.default: str | None = None
        self.catalog = dict(catalog or {"Generic PostScript": "drv:///generic.ppd"})
        self.calls: list[tuple] = []
        self.fail_add: set[str] = set()
        self.fail_delete: set[str] = set()
        self.list_error: Exception | None = None
        self.catalog_cleared = 0

    # queries
    def get_printers(self):
        if self.list_error is not None:
            raise self.list_error
        if not self.printers:
            raise NoDestinationsError("No destinations added.")
        return [self.printers[pid] for pid in sorted(self.printers)]

    def get_default(self):
        return self.default

    def get_driver_catalog(self):
        return dict(self.catalog)

    def clear_driver_catalog(self):
        self.catalog_cleared += 1

    def resolve_driver(self, printer):
        driver = printer.require_driver()
        for key in driver.candidate_driver_names:
            if key in self.catalog:
                return ResolvedDriver(key=key, ppd_name=self.catalog[key])
        if driver.fallback_everywhere:
            return ResolvedDriver(key=None, ppd_name="everywhere")
        raise DriverNotFoundError(printer.id, driver.candidate_driver_names)

    # mutations
    def add_or_modify(self, printer, driver=None):
        driver = driver or self.resolve_driver(printer)
        uri = printer.device_uri()
        if printer.id in self.fail_add:
            raise SpoolerError(f"Unable to add or modify printer {printer.id}: refused")
        self.calls.append(("add_or_modify", printer.id))
        self.printers[printer.id] = SpoolerPrinter(
            id=printer.id,
            device_uri=uri,
            info=printer.info,
            location=printer.effective_location,
            make_and_model=driver.key or "IPP Everywhere",
            options=dict(printer.require_driver().options),
        )

    def delete(self, printer_id):
        if printer_id in self.fail_delete:
            raise SpoolerError(f"Unable to delete printer {printer_id}: refused")
        self.calls.append(("delete", printer_id))
        self.printers.pop(printer_id, None)
        if self.default == printer_id:
            self.default = None

    def set_default(self, printer_id):
        self.calls.append(("set_default", printer_id))
        self.default = printer_id

    # helpers
    def register(self, printer_id, device_uri, **attrs):
        self.printers[printer_id] = SpoolerPrinter(id=printer_id, device_uri=device_uri, **attrs)

    def mutations(self):
        return [c for c in self.calls if c[0] in ("add_or_modify", "delete", "set_default")]


class FakeDirectory:
    """Directory returning canned printers per username."""

    def __init__(self, printers_by_user=None):
        self.printers_by_user = dict(printers_by_user or {})
        self.queried: list[list[str]] = []
        self.error: Exception | None = None

    def get_printers(self, usernames):
        usernames = list(usernames)
        self.queried.append(usernames)
        if self.error is not None:
            raise self.error
        merged = {}
        for user in usernames:
            for printer in self.printers_by_user.get(user, []):
                merged[printer.id] = printer
        return [merged[pid] for pid in sorted(merged)]


class FakeSessions:
    def __init__(self, users=()):
        self.users = set(users)
        self.error: Exception | None = None

    def get_active_users(self):
        if self.error is not None:
            raise self.error
        return set(self.users)


class FakeClock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, delta):
        self.now += delta


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_printer():
    """Factory for a directory printer with a resolvable driver."""
    def _make(printer_id="P1", host="10.0.0.5", priority=0, **overrides) -> Printer:
        driver = overrides.pop("driver", None)
        if driver is None:
            driver = DriverConfig(
                candidate_driver_names=["Generic PostScript"],
                default_priority=priority,
                options=overrides.pop("options", {}),
            )
        defaults = {
            "id": printer_id,
            "device_host": host,
            "hostname_template": "socket://%s:9100",
            "display_name": f"Printer {printer_id}",
            "location": "Building A",
            "driver": driver,
        }
        defaults.update(overrides)
        return Printer(**defaults)
    return _make


# ---------------------------------------------------------------------------
# Engine collaborators
# ---------------------------------------------------------------------------

@pytest.fixture
def spooler():
    return FakeSpooler()


@pytest.fixture
def directory():
    return FakeDirectory()


@pytest.fixture
def sessions():
    return FakeSessions(["alice"])


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache_store(tmp_path):
    return ExpiringCacheStore(tmp_path / "cache.db")


@pytest.fixture
def reconciler(directory, spooler, sessions, cache_store, clock):
    return Reconciler(
        directory=directory,
        spooler=spooler,
        sessions=sessions,
        cache_store=cache_store,
        retention=RETENTION,
        ignored_users=["root"],
        clock=clock,
    )
