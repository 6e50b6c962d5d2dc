"""Services module for the reconciliation engine and the command loop."""

from printer_manager.services.reconciler import Reconciler, elect_default
from printer_manager.services.dispatcher import Command, CommandDispatcher, CommandKind

__all__ = [
    "Reconciler",
    "elect_default",
    "Command",
    "CommandDispatcher",
    "CommandKind",
]
