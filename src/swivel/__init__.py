"""swivel -- Terminal-session relay.

This package accepts realtime WebSocket connections, spawns one
interactive shell per connection, and relays bytes between the two.
Process spawning degrades from a native pseudo-terminal to pipe-based
strategies when the host cannot provide a PTY.
"""

__version__ = "0.1.0"
