"""
Relay session state enumeration.

Rules:
- This enum defines ONLY the session lifecycle states.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in the reducer.
"""

from __future__ import annotations

from enum import Enum


class State(str, Enum):
    """
    Lifecycle of one browser <-> provider relay session.

    INITIALIZING     interaction creation / stream connect in flight
    AWAITING_CONFIG  stream open, configuration sent, audio queued
    STREAMING        audio forwarded live, results relayed
    ENDING           provider asked to finish; results may still arrive
    CLOSED           terminal, normal
    FAILED           terminal, after a fatal error
    """

    INITIALIZING = "INITIALIZING"
    AWAITING_CONFIG = "AWAITING_CONFIG"
    STREAMING = "STREAMING"
    ENDING = "ENDING"
    CLOSED = "CLOSED"
    FAILED = "FAILED"


TERMINAL_STATES: frozenset[State] = frozenset({State.CLOSED, State.FAILED})
