"""Session relay for swivel.

Binds each realtime connection to exactly one shell process and relays
bytes in both directions.
"""

from swivel.relay.sessions import (
    EXIT_NOTICE,
    SessionClosedError,
    SessionExistsError,
    SessionManager,
    TerminalUnavailableError,
)

__all__ = [
    "EXIT_NOTICE",
    "SessionClosedError",
    "SessionExistsError",
    "SessionManager",
    "TerminalUnavailableError",
]
