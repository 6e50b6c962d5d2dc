"""
Directory service client: desired printers per username.
"""

from __future__ import annotations

import logging
from typing import Iterable
from urllib.parse import quote

import requests
from pydantic import BaseModel, ConfigDict, ValidationError

from printer_manager.domain.types import DriverConfig, Printer, sanitize_id
from printer_manager.errors import DirectoryError
from printer_manager.resilience import DEFAULT_STRATEGY, RetryStrategy

logger = logging.getLogger("printer-manager")

API_PATH = "/users/{username}/printers"


# =============================================================================
# Wire models
# =============================================================================

class CupsDriverPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    driver_name: list[str] = []
    uri_template: str = ""
    default_priority: int = 0
    options: dict[str, str] = {}
    name: str = ""
    location: str = ""
    everywhere_fallback: bool = False


class DriverPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    cups: CupsDriverPayload | None = None


class PrinterPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    hostname: str = ""
    name: str = ""
    location: str = ""
    uri_template: str = ""
    driver: DriverPayload | None = None

    def to_printer(self) -> Printer:
        cups = self.driver.cups if self.driver is not None else None
        driver = None
        if cups is not None:
            driver = DriverConfig(
                candidate_driver_names=list(cups.driver_name),
                fallback_everywhere=cups.everywhere_fallback,
                default_priority=cups.default_priority,
                options=dict(cups.options),
                display_name=cups.name,
                location=cups.location,
            )
        return Printer(
            id=sanitize_id(self.id),
            device_host=self.hostname,
            hostname_template=(cups.uri_template if cups and cups.uri_template else self.uri_template),
            display_name=self.name,
            location=self.location,
            driver=driver,
        )


# =============================================================================
# Client
# =============================================================================

def _is_transient(exc: BaseException) -> bool:
    """Network failures and 5xx responses are worth retrying."""
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return exc.response.status_code >= 500
    return False


class DirectoryClient:
    """Client for the directory service REST API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        retry: RetryStrategy | None = None,
        session: requests.Session | None = None,
    ):
        """
        Initialize directory client.

        Args:
            base_url: Directory service base URL
            timeout: Per-request timeout in seconds
            retry: Retry strategy for transient failures
            session: Optional pre-built requests session
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self._retry = (retry or DEFAULT_STRATEGY).with_classifier(_is_transient, name="directory")

    def _fetch(self, username: str) -> requests.Response:
        url = self.base_url + API_PATH.format(username=quote(username, safe=""))
        resp = self.session.get(url, timeout=self.timeout)
        if resp.status_code != 404:
            resp.raise_for_status()
        return resp

    def get_user_printers(self, username: str) -> list[Printer]:
        """
        Get the printers published for one user.

        Args:
            username: Username

        Returns:
            List of printers (empty if the directory does not know the user)

        Raises:
            DirectoryError: If the directory cannot be queried or answers garbage
        """
        try:
            resp = self._retry.call(self._fetch, username)
        except requests.RequestException as e:
            raise DirectoryError(f"Unable to query printers for {username}: {e}") from e

        if resp.status_code == 404:
            logger.debug(f"Directory has no entry for {username}")
            return []

        try:
            payload = resp.json()
            if not isinstance(payload, list):
                raise ValueError("expected a JSON list")
            return [PrinterPayload.model_validate(item).to_printer() for item in payload]
        except (ValueError, ValidationError) as e:
            raise DirectoryError(f"Unable to decode printers for {username}: {e}") from e

    def get_printers(self, usernames: Iterable[str]) -> list[Printer]:
        """
        Get the coalesced printers for all given users.

        A printer listed for several users is kept once; the last user's
        entry wins. Ids are sanitized and the result is sorted by id.
        """
        printers: dict[str, Printer] = {}
        for username in usernames:
            for printer in self.get_user_printers(username):
                if not printer.id:
                    logger.warning(f"Ignoring printer with empty id for {username}")
                    continue
                printers[printer.id] = printer
        return [printers[pid] for pid in sorted(printers)]
