"""Control channel: JSON packets over a local Unix socket."""

from printer_manager.control.protocol import (
    ControlPacket,
    PacketType,
    get_socket_path,
    read_packet,
    write_packet,
)
from printer_manager.control.listener import ControlListener, bind_commands, parse_usernames
from printer_manager.control.client import SocketNotFoundError, do

__all__ = [
    "ControlPacket",
    "PacketType",
    "get_socket_path",
    "read_packet",
    "write_packet",
    "ControlListener",
    "bind_commands",
    "parse_usernames",
    "SocketNotFoundError",
    "do",
]
