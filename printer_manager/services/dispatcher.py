"""
Single-consumer command loop serializing control requests and periodic syncs.
"""

from __future__ import annotations

import enum
import json
import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Callable

from printer_manager.observability import CONTROL_COMMANDS, SYNC_RUNS

if TYPE_CHECKING:
    from printer_manager.services.reconciler import Reconciler

logger = logging.getLogger("printer-manager")


class CommandKind(enum.Enum):
    SYNC = "sync"
    CLEAR_CACHE = "clear_cache"
    LIST_DRIVERS = "list_drivers"
    STOP = "stop"


@dataclass
class Command:
    """A request queued for the control loop."""

    kind: CommandKind
    payload: Any = None
    reply: queue.Queue = field(default_factory=lambda: queue.Queue(maxsize=1))


class CommandDispatcher:
    """Runs every reconciler call on one thread, in arrival order.

    Manual commands and the periodic timer share the loop: a command runs to
    completion before the next one is taken, and the timer is re-armed
    ``interval`` after each handled event, so manual commands postpone the
    next periodic sync instead of preempting it.
    """

    def __init__(self, reconciler: Reconciler, interval: timedelta = timedelta(hours=1)):
        """
        Initialize the dispatcher.

        Args:
            reconciler: Engine the commands are run against
            interval: Delay between periodic syncs
        """
        self.reconciler = reconciler
        self.interval = interval
        self.running = False
        self._queue: queue.Queue[Command] = queue.Queue()
        self._stop_event = threading.Event()
        # Orders submissions against stop() so _drain() sees every queued command
        self._lock = threading.Lock()
        self._handlers: dict[CommandKind, Callable[[Any], str]] = {
            CommandKind.SYNC: self._handle_sync,
            CommandKind.CLEAR_CACHE: self._handle_clear_cache,
            CommandKind.LIST_DRIVERS: self._handle_list_drivers,
        }

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def submit(self, kind: CommandKind, payload: Any = None, timeout: float | None = None) -> str:
        """
        Queue a command and wait for its textual result.

        Args:
            kind: Command to run
            payload: Command argument (usernames for SYNC)
            timeout: Seconds to wait for the result (None waits forever)

        Raises:
            RuntimeError: If the dispatcher is stopping
            queue.Empty: If ``timeout`` elapsed before the command completed
        """
        command = Command(kind, payload)
        with self._lock:
            if self._stop_event.is_set():
                raise RuntimeError("Command dispatcher is stopped")
            self._queue.put(command)
        return command.reply.get(timeout=timeout)

    def stop(self) -> None:
        """Ask the loop to exit once the running command (if any) completes."""
        self.running = False
        with self._lock:
            self._stop_event.set()
            self._queue.put(Command(CommandKind.STOP))

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Process commands until :meth:`stop` is called. Blocks the caller."""
        self.running = True
        deadline = time.monotonic()  # first periodic sync runs immediately
        logger.info(f"Command loop started (sync interval: {self.interval})")

        while not self._stop_event.is_set():
            try:
                command = self._queue.get(timeout=max(0.0, deadline - time.monotonic()))
            except queue.Empty:
                self._periodic_sync()
            else:
                if command.kind is CommandKind.STOP:
                    break
                command.reply.put(self._dispatch(command))

            deadline = time.monotonic() + self.interval.total_seconds()

        self._drain()
        self.running = False
        logger.info("Command loop stopped")

    def _dispatch(self, command: Command) -> str:
        CONTROL_COMMANDS.labels(type=command.kind.value).inc()
        handler = self._handlers[command.kind]
        return handler(command.payload)

    def _drain(self) -> None:
        """Answer commands still queued at shutdown."""
        while True:
            try:
                command = self._queue.get_nowait()
            except queue.Empty:
                return
            if command.kind is not CommandKind.STOP:
                command.reply.put("Command not run: server is shutting down")

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _periodic_sync(self) -> None:
        try:
            self.reconciler.sync(None)
            SYNC_RUNS.labels(trigger="timer", outcome="success").inc()
        except Exception as e:
            SYNC_RUNS.labels(trigger="timer", outcome="failure").inc()
            logger.warning(f"Sync failed: {e}")

    def _handle_sync(self, usernames: list[str] | None) -> str:
        logger.info("Sync command received. Running sync")
        try:
            self.reconciler.sync(usernames)
        except Exception as e:
            SYNC_RUNS.labels(trigger="command", outcome="failure").inc()
            logger.warning(f"Sync failed: {e}")
            return f"Sync failed: {e}"
        SYNC_RUNS.labels(trigger="command", outcome="success").inc()
        return "Sync completed successfully"

    def _handle_clear_cache(self, _payload: Any) -> str:
        logger.info("ClearCache command received. Clearing cache")
        try:
            self.reconciler.clear_cache()
        except Exception as e:
            logger.warning(f"Clearing cache failed: {e}")
            return f"Clearing cache failed: {e}"
        return "Cache cleared successfully"

    def _handle_list_drivers(self, _payload: Any) -> str:
        logger.info("ListDrivers command received. Querying spooler")
        try:
            drivers = self.reconciler.list_drivers()
        except Exception as e:
            logger.warning(f"Querying spooler failed: {e}")
            return f"Querying spooler failed: {e}"
        return json.dumps(drivers, indent="\t", sort_keys=True)
