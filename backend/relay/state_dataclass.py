"""
Authoritative relay state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no helpers, no derived logic.

The audio queue itself is NOT here: it is a mutable, session-owned resource
(see session.relay_session) filled and drained by runtime commands.
"""
from __future__ import annotations

from dataclasses import dataclass

from facts.reconcile import Fact
from relay.enums.state import State


@dataclass(frozen=True)
class RelayState:
    """Immutable snapshot of one relay session."""

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    state: State = State.INITIALIZING

    # Assigned once by the provider; never replaced.
    interaction_id: str | None = None

    # Becomes True exactly once per session.
    config_accepted: bool = False

    # Monotonic: set on entering CLOSED or FAILED.
    closed: bool = False

    client_connected: bool = True

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    # Reconciled visible fact set, in discovery order.
    facts: tuple[Fact, ...] = ()

    # Running sum of usage deltas (diagnostic; the client sums its own).
    credits_total: float = 0.0

    transcript_segments_relayed: int = 0

    # ------------------------------------------------------------------
    # Backpressure
    # ------------------------------------------------------------------
    audio_overflow_notified: bool = False

    # ------------------------------------------------------------------
    # Deadlines (0 disables)
    # ------------------------------------------------------------------
    config_timeout_ms: int = 0
    end_timeout_ms: int = 0

    # ------------------------------------------------------------------
    # Error handling
    # ------------------------------------------------------------------
    last_error: str | None = None
