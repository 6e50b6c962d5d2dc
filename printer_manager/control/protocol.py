"""
Control packet codec and socket discovery.

A packet is a JSON object ``{"type": <int>, "msg": <str>}``. Writers append a
newline; readers accumulate bytes until one complete object decodes, so the
newline is not required.
"""

from __future__ import annotations

import codecs
import enum
import json
import os
import socket
from dataclasses import dataclass
from typing import Iterable

from printer_manager.config.settings import CONTROL_SEARCH_PATHS, CONTROL_SOCKET_NAME
from printer_manager.errors import ControlError

READ_CHUNK = 4096
MAX_PACKET_SIZE = 1024 * 1024

_LITERALS = ("true", "false", "null")


class PacketType(enum.IntEnum):
    SYNC = 0
    RESPONSE = 1
    CLEAR_CACHE = 2
    LIST_DRIVERS = 3


@dataclass(frozen=True)
class ControlPacket:
    """One request or response exchanged over the control socket."""

    type: int
    message: str = ""

    def to_dict(self) -> dict:
        return {"type": int(self.type), "msg": self.message}

    def encode(self) -> bytes:
        return (json.dumps(self.to_dict()) + "\n").encode("utf-8")

    @classmethod
    def from_dict(cls, data: object) -> ControlPacket:
        """
        Build a packet from decoded JSON.

        Raises:
            ValueError: If ``data`` is not a packet object
        """
        if not isinstance(data, dict):
            raise ValueError("packet must be a JSON object")
        packet_type = data.get("type")
        message = data.get("msg", "")
        if isinstance(packet_type, bool) or not isinstance(packet_type, int):
            raise ValueError(f"invalid packet type: {packet_type!r}")
        if message is None:
            message = ""
        if not isinstance(message, str):
            raise ValueError("packet message must be a string")
        return cls(type=packet_type, message=message)


def _is_truncated(text: str, error: json.JSONDecodeError) -> bool:
    """Whether decoding failed only because the rest of the object has not arrived."""
    if error.pos >= len(text) or error.msg.startswith("Unterminated"):
        return True
    tail = text[error.pos:]
    return any(literal.startswith(tail) for literal in _LITERALS)


def read_packet(sock: socket.socket) -> ControlPacket:
    """
    Read exactly one packet from ``sock``.

    Raises:
        ControlError: If the peer closes before a complete packet arrives,
            or sends something that is not a packet
    """
    decoder = json.JSONDecoder()
    # Keeps a split multi-byte sequence until its remaining bytes arrive
    utf8 = codecs.getincrementaldecoder("utf-8")()
    size = 0
    text = ""
    while True:
        chunk = sock.recv(READ_CHUNK)
        if not chunk:
            raise ControlError("Connection closed before a complete packet was received")
        size += len(chunk)
        if size > MAX_PACKET_SIZE:
            raise ControlError("Packet too large")

        try:
            text += utf8.decode(chunk)
        except UnicodeDecodeError as e:
            raise ControlError(f"Unable to decode packet: {e}") from e
        text = text.lstrip()
        if not text:
            continue
        try:
            data, _ = decoder.raw_decode(text)
        except json.JSONDecodeError as e:
            if _is_truncated(text, e):
                continue
            raise ControlError(f"Unable to decode packet: {e}") from e

        try:
            return ControlPacket.from_dict(data)
        except ValueError as e:
            raise ControlError(f"Unable to decode packet: {e}") from e


def write_packet(sock: socket.socket, packet: ControlPacket) -> None:
    sock.sendall(packet.encode())


def get_socket_path(
    search_paths: Iterable[str] = CONTROL_SEARCH_PATHS,
    socket_name: str = CONTROL_SOCKET_NAME,
) -> str:
    """
    Socket path in the first existing runtime directory.

    Raises:
        ControlError: If none of ``search_paths`` exists
    """
    search_paths = list(search_paths)
    for directory in search_paths:
        if os.path.isdir(directory):
            return os.path.join(directory, socket_name)
    raise ControlError(f"No runtime directory found (tried: {', '.join(search_paths)})")
