"""
Control socket client used by the command line.
"""

from __future__ import annotations

import socket
from typing import Iterable

from printer_manager.config.settings import CONTROL_SEARCH_PATHS, CONTROL_SOCKET_NAME
from printer_manager.control.protocol import (
    ControlPacket,
    PacketType,
    get_socket_path,
    read_packet,
    write_packet,
)
from printer_manager.errors import ControlError


class SocketNotFoundError(ControlError):
    """Raised when no control socket exists, i.e. the server is not running."""


def do(
    packet: ControlPacket,
    search_paths: Iterable[str] = CONTROL_SEARCH_PATHS,
    socket_name: str = CONTROL_SOCKET_NAME,
    timeout: float | None = None,
) -> ControlPacket:
    """
    Send one packet to the running server and return its response.

    Args:
        packet: Request to send
        search_paths: Runtime directories searched for the socket
        socket_name: Socket file name
        timeout: Socket timeout in seconds (None blocks until the server replies)

    Raises:
        SocketNotFoundError: If the control socket does not exist
        ControlError: If the exchange fails
    """
    try:
        path = get_socket_path(search_paths, socket_name)
    except ControlError as e:
        raise SocketNotFoundError(str(e)) from e

    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
        sock.settimeout(timeout)
        try:
            sock.connect(path)
        except (FileNotFoundError, ConnectionRefusedError) as e:
            raise SocketNotFoundError(f"Unable to connect to {path}: {e}") from e
        except OSError as e:
            raise ControlError(f"Unable to connect to {path}: {e}") from e

        try:
            write_packet(sock, packet)
            response = read_packet(sock)
        except OSError as e:
            raise ControlError(f"Control request failed: {e}") from e

    if response.type != PacketType.RESPONSE:
        raise ControlError(f"Unexpected response packet type: {response.type}")
    return response
