"""
Tests for the printer-manager command line (click).
"""

import json

import pytest
from click.testing import CliRunner

from printer_manager.cli import SOCKET_NOT_FOUND, main
from printer_manager.control.client import SocketNotFoundError
from printer_manager.control.protocol import ControlPacket, PacketType
from printer_manager.errors import ConfigurationError, ControlError


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def mock_do(mocker):
    return mocker.patch(
        "printer_manager.cli.do",
        return_value=ControlPacket(PacketType.RESPONSE, "Sync completed successfully"),
    )


# ---------------------------------------------------------------------------
# Client commands
# ---------------------------------------------------------------------------

class TestClientCommands:

    def test_sync_without_users(self, runner, mock_do):
        result = runner.invoke(main, ["sync"])

        assert result.exit_code == 0
        assert "Server returned: Sync completed successfully" in result.output
        packet = mock_do.call_args.args[0]
        assert packet == ControlPacket(PacketType.SYNC, "")

    def test_sync_with_users(self, runner, mock_do):
        result = runner.invoke(main, ["sync", "alice", "bob"])

        assert result.exit_code == 0
        packet = mock_do.call_args.args[0]
        assert json.loads(packet.message) == ["alice", "bob"]

    def test_clear_cache_reminds_to_sync(self, runner, mock_do):
        mock_do.return_value = ControlPacket(PacketType.RESPONSE, "Cache cleared successfully")

        result = runner.invoke(main, ["clear-cache"])

        assert result.exit_code == 0
        assert mock_do.call_args.args[0].type == PacketType.CLEAR_CACHE
        assert "Server returned: Cache cleared successfully" in result.output
        assert "You will probably want to run the sync command now" in result.output

    def test_list_drivers_prints_catalog(self, runner, mock_do):
        catalog = json.dumps({"Generic PostScript": "drv:///generic.ppd"}, indent="\t")
        mock_do.return_value = ControlPacket(PacketType.RESPONSE, catalog)

        result = runner.invoke(main, ["list-drivers"])

        assert result.exit_code == 0
        assert json.loads(result.output) == {"Generic PostScript": "drv:///generic.ppd"}

    def test_uses_configured_socket(self, runner, mock_do, tmp_path):
        config = tmp_path / "config.yml"
        config.write_text("control:\n  search_paths: [/srv/run]\n  socket_name: pm.sock\n")

        runner.invoke(main, ["--config", str(config), "sync"])

        assert mock_do.call_args.args[1:] == (["/srv/run"], "pm.sock")

    def test_socket_not_found(self, runner, mock_do):
        mock_do.side_effect = SocketNotFoundError("No runtime directory found")

        result = runner.invoke(main, ["sync"])

        assert result.exit_code == 1
        assert SOCKET_NOT_FOUND in result.output

    def test_control_error(self, runner, mock_do):
        mock_do.side_effect = ControlError("Connection closed before a complete packet was received")

        result = runner.invoke(main, ["clear-cache"])

        assert result.exit_code == 1
        assert "Connection closed" in result.output


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------

class TestServe:

    def test_serve_runs_daemon(self, runner, mocker, tmp_path):
        mock_run = mocker.patch("printer_manager.app.run")
        config = tmp_path / "config.yml"

        result = runner.invoke(main, ["serve", "--config", str(config)])

        assert result.exit_code == 0
        mock_run.assert_called_once_with(str(config))

    def test_serve_configuration_error(self, runner, mocker):
        mocker.patch("printer_manager.app.run", side_effect=ConfigurationError("directory.base_url is required"))

        result = runner.invoke(main, ["serve"])

        assert result.exit_code == 1
        assert "directory.base_url is required" in result.output
