"""
Tests for printer_manager.control (packet codec, listener, client).
"""

import json
import os
import socket
import stat
from unittest.mock import MagicMock

import pytest

from printer_manager.control import (
    ControlListener,
    ControlPacket,
    PacketType,
    SocketNotFoundError,
    bind_commands,
    do,
    get_socket_path,
    parse_usernames,
    read_packet,
)
from printer_manager.errors import ControlError
from printer_manager.services.dispatcher import CommandKind

SOCKET_NAME = "pm-test.sock"


def _feed(*chunks):
    """A fake socket returning ``chunks`` from successive recv calls."""
    sock = MagicMock()
    sock.recv.side_effect = list(chunks) + [b""]
    return sock


@pytest.fixture
def run_dir(tmp_path):
    # AF_UNIX paths are limited to ~100 bytes; keep the socket short
    path = tmp_path / "run"
    path.mkdir()
    return path


@pytest.fixture
def mock_dispatcher():
    dispatcher = MagicMock()
    dispatcher.submit.side_effect = lambda kind, payload=None: f"{kind.value}:{payload}"
    return dispatcher


@pytest.fixture
def listener(run_dir, mock_dispatcher):
    ln = ControlListener(str(run_dir / SOCKET_NAME))
    bind_commands(ln, mock_dispatcher)
    ln.start()
    yield ln
    ln.stop()


# ---------------------------------------------------------------------------
# Packet codec
# ---------------------------------------------------------------------------

class TestPacketCodec:

    def test_encode_uses_msg_key_and_newline(self):
        data = ControlPacket(PacketType.CLEAR_CACHE, "x").encode()

        assert data.endswith(b"\n")
        assert json.loads(data) == {"type": 2, "msg": "x"}

    def test_read_accumulates_partial_chunks(self):
        sock = _feed(b'{"type": 0, "ms', b'g": "[\\"al', b'ice\\"]"}')

        packet = read_packet(sock)

        assert packet == ControlPacket(PacketType.SYNC, '["alice"]')

    def test_read_without_trailing_newline(self):
        packet = read_packet(_feed(b'{"type": 1, "msg": "ok"}'))

        assert packet.type == PacketType.RESPONSE
        assert packet.message == "ok"

    def test_missing_msg_defaults_to_empty(self):
        assert read_packet(_feed(b'{"type": 3}')).message == ""

    def test_garbage_is_rejected(self):
        with pytest.raises(ControlError):
            read_packet(_feed(b"not json at all"))

    def test_non_object_is_rejected(self):
        with pytest.raises(ControlError):
            read_packet(_feed(b"[1, 2]"))

    def test_truncated_packet_is_rejected(self):
        with pytest.raises(ControlError, match="Connection closed"):
            read_packet(_feed(b'{"type": 0'))

    def test_invalid_utf8_is_rejected_without_waiting(self):
        sock = _feed(b'{"type": 0, "msg": "\xff\xfe"}\n', b'{"type": 3}')

        with pytest.raises(ControlError, match="Unable to decode"):
            read_packet(sock)
        assert sock.recv.call_count == 1

    def test_split_multibyte_character(self):
        packet = read_packet(_feed(b'{"type": 1, "msg": "caf\xc3', b'\xa9"}'))

        assert packet.message == "caf\u00e9"

    def test_stray_closing_bracket_is_rejected(self):
        sock = _feed(b'{"type": 0]', b'{"type": 3}')

        with pytest.raises(ControlError, match="Unable to decode"):
            read_packet(sock)
        assert sock.recv.call_count == 1

    def test_split_literal_keeps_reading(self):
        packet = read_packet(_feed(b'{"type": 2, "msg": nu', b'll}'))

        assert packet == ControlPacket(PacketType.CLEAR_CACHE, "")


class TestSocketPath:

    def test_first_existing_directory_wins(self, tmp_path):
        second = tmp_path / "second"
        second.mkdir()

        path = get_socket_path([str(tmp_path / "missing"), str(second)], "pm.sock")

        assert path == os.path.join(str(second), "pm.sock")

    def test_no_directory_found(self, tmp_path):
        with pytest.raises(ControlError):
            get_socket_path([str(tmp_path / "missing")], "pm.sock")


class TestParseUsernames:

    def test_empty_message_means_no_users(self):
        assert parse_usernames("") == []

    def test_json_array(self):
        assert parse_usernames('["alice", "bob"]') == ["alice", "bob"]

    def test_not_a_list(self):
        with pytest.raises(ValueError):
            parse_usernames('{"user": "alice"}')

    def test_invalid_json(self):
        with pytest.raises(ValueError):
            parse_usernames("[alice")


# ---------------------------------------------------------------------------
# Listener + client over a real socket
# ---------------------------------------------------------------------------

class TestListener:

    def test_socket_is_world_writable(self, listener):
        mode = stat.S_IMODE(os.stat(listener.socket_path).st_mode)
        assert mode == 0o777

    def test_stale_socket_is_replaced(self, run_dir, mock_dispatcher):
        path = run_dir / SOCKET_NAME
        path.write_text("stale")
        ln = ControlListener(str(path))

        ln.start()
        try:
            assert stat.S_ISSOCK(os.stat(path).st_mode)
        finally:
            ln.stop()
        assert not path.exists()

    def test_sync_round_trip(self, listener, run_dir, mock_dispatcher):
        response = do(ControlPacket(PacketType.SYNC, '["bob"]'), [str(run_dir)], SOCKET_NAME, timeout=5)

        assert response.type == PacketType.RESPONSE
        assert response.message == "sync:['bob']"
        mock_dispatcher.submit.assert_called_once_with(CommandKind.SYNC, ["bob"])

    def test_clear_cache_round_trip(self, listener, run_dir):
        response = do(ControlPacket(PacketType.CLEAR_CACHE), [str(run_dir)], SOCKET_NAME, timeout=5)

        assert response.message == "clear_cache:None"

    def test_list_drivers_round_trip(self, listener, run_dir):
        response = do(ControlPacket(PacketType.LIST_DRIVERS), [str(run_dir)], SOCKET_NAME, timeout=5)

        assert response.message == "list_drivers:None"

    def test_bad_user_list_is_answered_directly(self, listener, run_dir, mock_dispatcher):
        response = do(ControlPacket(PacketType.SYNC, "[alice"), [str(run_dir)], SOCKET_NAME, timeout=5)

        assert response.message.startswith("Unable to unmarshal users: ")
        mock_dispatcher.submit.assert_not_called()

    def test_unknown_type_closes_without_reply(self, listener, run_dir):
        with pytest.raises(ControlError):
            do(ControlPacket(42, "?"), [str(run_dir)], SOCKET_NAME, timeout=5)

    def test_malformed_packet_closes_without_reply(self, listener):
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
            sock.settimeout(5)
            sock.connect(listener.socket_path)
            sock.sendall(b"hello\n")
            sock.shutdown(socket.SHUT_WR)

            assert sock.recv(1024) == b""

    def test_invalid_utf8_closes_without_reply(self, listener, mock_dispatcher):
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
            sock.settimeout(5)
            sock.connect(listener.socket_path)
            sock.sendall(b'{"type": 0, "msg": "\xff\xfe"}\n')

            assert sock.recv(1024) == b""
        mock_dispatcher.submit.assert_not_called()


class TestClient:

    def test_missing_socket(self, run_dir):
        with pytest.raises(SocketNotFoundError):
            do(ControlPacket(PacketType.SYNC), [str(run_dir)], SOCKET_NAME, timeout=1)

    def test_missing_runtime_directory(self, tmp_path):
        with pytest.raises(SocketNotFoundError):
            do(ControlPacket(PacketType.SYNC), [str(tmp_path / "nope")], SOCKET_NAME, timeout=1)
