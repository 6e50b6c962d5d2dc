"""Persistence module for the expiring printer cache."""

from printer_manager.persistence.cache_store import ExpiringCacheStore

__all__ = [
    "ExpiringCacheStore",
]
