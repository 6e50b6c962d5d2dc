"""
Expiring cache store for printer ids seen from the directory service.

Each call opens its own SQLite connection and closes it before returning;
the reconciler runs one command at a time so nothing is shared between runs.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator, Iterable, Mapping

from printer_manager.errors import CacheError

logger = logging.getLogger("printer-manager")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS printer_cache (
    id TEXT PRIMARY KEY,
    expires_at TEXT NOT NULL
)
"""


class ExpiringCacheStore:
    """Persisted mapping of printer id -> expiration instant."""

    def __init__(self, path: str | Path):
        """
        Initialize the store.

        Args:
            path: SQLite database file
        """
        self.path = Path(path)

    @contextmanager
    def _connect(self, create: bool = False) -> Generator[sqlite3.Connection, None, None]:
        """Context manager for a short-lived connection.

        Commits on success, rolls back on exception and always closes.
        """
        try:
            if create:
                self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.path))
        except (OSError, sqlite3.Error) as e:
            raise CacheError(f"Unable to open cache {self.path}: {e}") from e

        try:
            conn.execute(_SCHEMA)
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise CacheError(f"Cache operation failed on {self.path}: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def read(self) -> dict[str, datetime]:
        """
        Read the whole cache.

        Returns:
            Mapping of printer id to expiration (empty if the store does not exist)
        """
        if not self.path.exists():
            return {}

        with self._connect() as conn:
            rows = conn.execute("SELECT id, expires_at FROM printer_cache").fetchall()

        cache: dict[str, datetime] = {}
        for printer_id, expires_at in rows:
            try:
                cache[printer_id] = _decode(expires_at)
            except ValueError as e:
                raise CacheError(f"Unable to decode expiration for '{printer_id}': {e}") from e
        return cache

    def write(self, cache: Mapping[str, datetime]) -> None:
        """
        Replace the stored cache with ``cache``.

        Entries missing from ``cache`` are removed; callers read-modify-write.
        """
        rows = [(printer_id, _encode(expires)) for printer_id, expires in cache.items()]
        with self._connect(create=True) as conn:
            conn.execute("DELETE FROM printer_cache")
            conn.executemany("INSERT INTO printer_cache (id, expires_at) VALUES (?, ?)", rows)
        logger.debug("Wrote %d cache entries to %s", len(rows), self.path)

    def purge(self, ids: Iterable[str]) -> None:
        """Remove the given ids. Unknown ids and a missing store are ignored."""
        ids = list(ids)
        if not ids or not self.path.exists():
            return

        with self._connect() as conn:
            conn.executemany("DELETE FROM printer_cache WHERE id = ?", [(i,) for i in ids])
        logger.debug("Purged %d cache entries from %s", len(ids), self.path)


def _encode(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _decode(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
