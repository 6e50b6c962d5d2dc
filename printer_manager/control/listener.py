"""
Control socket server.

Each connection carries one request packet and gets at most one RESPONSE
packet back. Connection threads only decode packets and hand the work to the
command dispatcher.
"""

from __future__ import annotations

import json
import logging
import os
import socketserver
import threading
from typing import TYPE_CHECKING, Callable

from printer_manager.control.protocol import ControlPacket, PacketType, read_packet, write_packet
from printer_manager.errors import ControlError

if TYPE_CHECKING:
    from printer_manager.services.dispatcher import CommandDispatcher

logger = logging.getLogger("printer-manager")

Handler = Callable[[ControlPacket], str]


class _ControlRequestHandler(socketserver.BaseRequestHandler):
    server: _ControlServer

    def handle(self) -> None:
        try:
            packet = read_packet(self.request)
        except (ControlError, OSError) as e:
            logger.warning(f"Unable to read control packet: {e}")
            return

        handler = self.server.listener.handler_for(packet.type)
        if handler is None:
            logger.warning(f"Unhandled control packet type: {packet.type}")
            return

        reply = handler(packet)
        try:
            write_packet(self.request, ControlPacket(PacketType.RESPONSE, reply))
        except OSError as e:
            logger.warning(f"Unable to send control response: {e}")


class _ControlServer(socketserver.ThreadingUnixStreamServer):
    daemon_threads = True

    def __init__(self, path: str, listener: ControlListener):
        self.listener = listener
        super().__init__(path, _ControlRequestHandler)


class ControlListener:
    """Unix socket listener dispatching control packets to registered handlers."""

    def __init__(self, socket_path: str):
        """
        Initialize the listener.

        Args:
            socket_path: Filesystem path of the control socket
        """
        self.socket_path = socket_path
        self.running = False
        self._handlers: dict[int, Handler] = {}
        self._server: _ControlServer | None = None
        self._thread: threading.Thread | None = None

    def register(self, packet_type: int, handler: Handler) -> None:
        """Route packets of ``packet_type`` to ``handler``."""
        self._handlers[int(packet_type)] = handler

    def handler_for(self, packet_type: int) -> Handler | None:
        return self._handlers.get(int(packet_type))

    def start(self) -> None:
        """
        Bind the socket and serve connections on a background thread.

        Raises:
            ControlError: If the socket cannot be created
        """
        try:
            if os.path.exists(self.socket_path):
                os.remove(self.socket_path)
            self._server = _ControlServer(self.socket_path, self)
            os.chmod(self.socket_path, 0o777)
        except OSError as e:
            raise ControlError(f"Unable to listen on {self.socket_path}: {e}") from e

        self.running = True
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        logger.info(f"Control socket listening on {self.socket_path}")

    def stop(self) -> None:
        """Stop serving and remove the socket file."""
        self.running = False
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        try:
            os.remove(self.socket_path)
        except FileNotFoundError:
            pass
        logger.info("Control socket closed")


# =============================================================================
# Command wiring
# =============================================================================

def parse_usernames(message: str) -> list[str]:
    """
    Decode the SYNC payload: a JSON array of usernames (empty means none).

    Raises:
        ValueError: If ``message`` is not a JSON array of strings
    """
    if not message.strip():
        return []
    users = json.loads(message)
    if users is None:
        return []
    if not isinstance(users, list) or not all(isinstance(u, str) for u in users):
        raise ValueError("expected a JSON array of strings")
    return users


def bind_commands(listener: ControlListener, dispatcher: CommandDispatcher) -> None:
    """Register the SYNC, CLEAR_CACHE and LIST_DRIVERS handlers on ``listener``."""
    from printer_manager.services.dispatcher import CommandKind

    def handle_sync(packet: ControlPacket) -> str:
        try:
            users = parse_usernames(packet.message)
        except ValueError as e:
            return f"Unable to unmarshal users: {e}"
        return _submit(dispatcher, CommandKind.SYNC, users)

    listener.register(PacketType.SYNC, handle_sync)
    listener.register(
        PacketType.CLEAR_CACHE, lambda _packet: _submit(dispatcher, CommandKind.CLEAR_CACHE)
    )
    listener.register(
        PacketType.LIST_DRIVERS, lambda _packet: _submit(dispatcher, CommandKind.LIST_DRIVERS)
    )


def _submit(dispatcher: CommandDispatcher, kind, payload=None) -> str:
    try:
        return dispatcher.submit(kind, payload)
    except RuntimeError as e:
        return f"Command not run: {e}"
