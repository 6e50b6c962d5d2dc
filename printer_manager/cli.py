"""Command-line interface for the printer manager."""

import json
import sys

import click

from printer_manager import __version__
from printer_manager.config.loader import ManagerConfig
from printer_manager.control.client import SocketNotFoundError, do
from printer_manager.control.protocol import ControlPacket, PacketType
from printer_manager.errors import ConfigurationError, ControlError

SOCKET_NOT_FOUND = "Control socket not found. Are you sure the server is running?"


def _send(packet: ControlPacket) -> str:
    """Send ``packet`` to the server and return the response text, exiting on failure."""
    try:
        control = ManagerConfig.settings().control
        response = do(packet, control.search_paths, control.socket_name)
    except SocketNotFoundError:
        click.echo(SOCKET_NOT_FOUND, err=True)
        sys.exit(1)
    except (ConfigurationError, ControlError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    return response.message


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to config.yml (default: $PRINTER_MANAGER_CONFIG or /etc/printer-manager/config.yml)",
)
def main(config_file):
    """Printer manager - keeps CUPS printers in sync with the printer directory.

    Run 'printer-manager serve' as a system service; the other commands talk
    to the running server over its control socket.
    """
    ManagerConfig.configure(config_file)


@main.command()
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to config.yml (overrides the global --config)",
)
@click.pass_context
def serve(ctx, config_file):
    """Run the printer manager server in the foreground."""
    from printer_manager.app import run

    try:
        run(config_file or ctx.parent.params.get("config_file"))
    except (ConfigurationError, ControlError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument("usernames", nargs=-1)
def sync(usernames):
    """Sync printers now, also fetching printers for USERNAMES."""
    message = json.dumps(list(usernames)) if usernames else ""
    reply = _send(ControlPacket(PacketType.SYNC, message))
    click.echo(f"Server returned: {reply}")


@main.command("clear-cache")
def clear_cache():
    """Remove every cached printer from CUPS and empty the cache."""
    reply = _send(ControlPacket(PacketType.CLEAR_CACHE))
    click.echo(f"Server returned: {reply}")
    click.echo("You will probably want to run the sync command now")


@main.command("list-drivers")
def list_drivers():
    """List the drivers installed in CUPS (make and model -> PPD name)."""
    reply = _send(ControlPacket(PacketType.LIST_DRIVERS))
    click.echo(reply)


if __name__ == "__main__":
    main()
