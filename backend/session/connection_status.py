"""
Connection status tracking for relay sessions.

Each relay session has two independent connections (browser, provider).
Their lifecycle is tracked separately from the relay state machine:
DOWN | CONNECTING | UP

This is pure data owned by the session, not by relay state.
"""
from enum import Enum

class ConnectionStatus(Enum):
    """
    Connection lifecycle status.

    Separate from and independent of the relay State enum.
    """
    DOWN = "DOWN"              # Not connected (never, or no longer)
    CONNECTING = "CONNECTING"  # Handshake in flight
    UP = "UP"                  # Open
