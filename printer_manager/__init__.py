"""
Printer manager for CUPS.

Keeps the local CUPS scheduler in line with a central printer directory:
- Registers the printers published for every logged-in user
- Removes duplicate registrations of managed devices
- Expires printers not seen in the directory for the retention period
- Elects the default printer by priority
- Accepts sync, clear-cache and list-drivers commands over a local control socket
"""

__version__ = "1.0.0"
