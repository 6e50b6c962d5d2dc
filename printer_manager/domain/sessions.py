"""
Logged-in user discovery from the host's session records.
"""

import logging

import psutil

from printer_manager.errors import SessionError

logger = logging.getLogger("printer-manager")


class SessionEnumerator:
    """Lists users with an open login session (utmp) on this host."""

    def get_active_users(self) -> set[str]:
        """
        Get the users currently logged in.

        Returns:
            Deduplicated set of usernames

        Raises:
            SessionError: If the session records cannot be read
        """
        try:
            sessions = psutil.users()
        except (OSError, psutil.Error) as e:
            raise SessionError(f"Unable to get users: {e}") from e
        return {s.name for s in sessions if s.name}
