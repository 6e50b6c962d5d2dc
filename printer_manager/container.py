"""
Lightweight DI container for printer manager services.

Collaborators are built lazily from the typed settings, so the CLI client
never imports pycups and tests can inject fakes by setting the private
attributes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from printer_manager.config.models import ManagerSettings
    from printer_manager.control.listener import ControlListener
    from printer_manager.domain.directory import DirectoryClient
    from printer_manager.domain.sessions import SessionEnumerator
    from printer_manager.domain.spooler import SpoolerClient
    from printer_manager.persistence.cache_store import ExpiringCacheStore
    from printer_manager.resilience import RetryStrategy
    from printer_manager.services.dispatcher import CommandDispatcher
    from printer_manager.services.reconciler import Reconciler


class ServiceContainer:
    """Lightweight service container holding shared service instances."""

    def __init__(self, settings: ManagerSettings | None = None) -> None:
        self._settings = settings
        self._cache_store: ExpiringCacheStore | None = None
        self._directory: DirectoryClient | None = None
        self._spooler: SpoolerClient | None = None
        self._sessions: SessionEnumerator | None = None
        self._reconciler: Reconciler | None = None
        self._dispatcher: CommandDispatcher | None = None
        self._listener: ControlListener | None = None

    @property
    def settings(self) -> ManagerSettings:
        if self._settings is None:
            from printer_manager.config.loader import ManagerConfig

            self._settings = ManagerConfig.settings()
        return self._settings

    @property
    def retry(self) -> RetryStrategy:
        from printer_manager.resilience import RetryStrategy

        cfg = self.settings.retry
        return RetryStrategy(
            initial=cfg.initial,
            max_retries=cfg.max_retries,
            max_backoff=cfg.max_backoff,
            max_jitter=cfg.max_jitter,
        )

    @property
    def cache_store(self) -> ExpiringCacheStore:
        if self._cache_store is None:
            from printer_manager.persistence.cache_store import ExpiringCacheStore

            self._cache_store = ExpiringCacheStore(self.settings.cache.path)
        return self._cache_store

    @property
    def directory(self) -> DirectoryClient:
        if self._directory is None:
            from printer_manager.domain.directory import DirectoryClient

            cfg = self.settings.directory
            self._directory = DirectoryClient(cfg.base_url, timeout=cfg.timeout, retry=self.retry)
        return self._directory

    @property
    def spooler(self) -> SpoolerClient:
        if self._spooler is None:
            from printer_manager.domain.spooler import SpoolerClient

            self._spooler = SpoolerClient(
                catalog_ttl=self.settings.spooler.driver_catalog_ttl,
                retry=self.retry,
            )
        return self._spooler

    @property
    def sessions(self) -> SessionEnumerator:
        if self._sessions is None:
            from printer_manager.domain.sessions import SessionEnumerator

            self._sessions = SessionEnumerator()
        return self._sessions

    @property
    def reconciler(self) -> Reconciler:
        if self._reconciler is None:
            from printer_manager.services.reconciler import Reconciler

            self._reconciler = Reconciler(
                directory=self.directory,
                spooler=self.spooler,
                sessions=self.sessions,
                cache_store=self.cache_store,
                retention=self.settings.cache.retention,
                ignored_users=self.settings.sync.ignored_users,
            )
        return self._reconciler

    @property
    def dispatcher(self) -> CommandDispatcher:
        if self._dispatcher is None:
            from printer_manager.services.dispatcher import CommandDispatcher

            self._dispatcher = CommandDispatcher(
                self.reconciler, interval=self.settings.sync.interval
            )
        return self._dispatcher

    @property
    def listener(self) -> ControlListener:
        if self._listener is None:
            from printer_manager.control.listener import ControlListener, bind_commands
            from printer_manager.control.protocol import get_socket_path

            cfg = self.settings.control
            self._listener = ControlListener(get_socket_path(cfg.search_paths, cfg.socket_name))
            bind_commands(self._listener, self.dispatcher)
        return self._listener

    def shutdown(self) -> None:
        """Stop the listener and the command loop if they were started."""
        if self._listener is not None and self._listener.running:
            self._listener.stop()
        if self._dispatcher is not None:
            self._dispatcher.stop()
