"""
Event definitions for the relay reducer.

Rules:
- Events describe facts that have occurred.
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- Sources: gateway (browser side), provider stream adapter, runtime timers.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from audio.frames import AudioFrame
from facts.reconcile import Fact
from transcript.accumulator import TranscriptSegment


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every (state, event_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # Session bootstrap
    # ------------------------------------------------------------------
    INTERACTION_CREATED = "INTERACTION_CREATED"
    STREAM_CONNECTED = "STREAM_CONNECTED"
    SESSION_START_FAILED = "SESSION_START_FAILED"

    # ------------------------------------------------------------------
    # Browser side
    # ------------------------------------------------------------------
    CLIENT_AUDIO = "CLIENT_AUDIO"
    CLIENT_FLUSH = "CLIENT_FLUSH"
    CLIENT_END = "CLIENT_END"
    CLIENT_DISCONNECTED = "CLIENT_DISCONNECTED"

    # ------------------------------------------------------------------
    # Provider side
    # ------------------------------------------------------------------
    CONFIG_ACCEPTED = "CONFIG_ACCEPTED"
    CONFIG_REJECTED = "CONFIG_REJECTED"
    TRANSCRIPT = "TRANSCRIPT"
    FACTS = "FACTS"
    FLUSHED = "FLUSHED"
    USAGE = "USAGE"
    PROVIDER_ENDED = "PROVIDER_ENDED"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    PROVIDER_CLOSED = "PROVIDER_CLOSED"

    # ------------------------------------------------------------------
    # Runtime feedback / timers
    # ------------------------------------------------------------------
    AUDIO_DROPPED = "AUDIO_DROPPED"
    CONFIG_TIMEOUT = "CONFIG_TIMEOUT"
    END_TIMEOUT = "END_TIMEOUT"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


# =============================================================================
# Session bootstrap
# =============================================================================

@dataclass(frozen=True)
class InteractionCreated(Event):
    """Provider interaction record exists."""
    interaction_id: str


@dataclass(frozen=True)
class StreamConnected(Event):
    """Provider stream is open and the configuration has been sent."""


@dataclass(frozen=True)
class SessionStartFailed(Event):
    """
    Interaction creation or stream connect failed.

    message is the human-readable text surfaced to the browser.
    """
    stage: str
    message: str


# =============================================================================
# Browser side
# =============================================================================

@dataclass(frozen=True)
class ClientAudio(Event):
    """One opaque audio frame from the browser."""
    frame: AudioFrame


@dataclass(frozen=True)
class ClientFlush(Event):
    """Browser asked the provider to process buffered audio now."""


@dataclass(frozen=True)
class ClientEnd(Event):
    """Browser requested graceful termination."""


@dataclass(frozen=True)
class ClientDisconnected(Event):
    """Browser WebSocket is gone."""
    reason: str | None = None


# =============================================================================
# Provider side
# =============================================================================

@dataclass(frozen=True)
class ConfigAccepted(Event):
    """Provider accepted the stream configuration."""


@dataclass(frozen=True)
class ConfigRejected(Event):
    """
    Provider refused or never received the configuration.

    kind is the provider message type (CONFIG_DENIED, CONFIG_TIMEOUT, ...).
    """
    kind: str
    reason: str | None = None


@dataclass(frozen=True)
class TranscriptReceived(Event):
    """One provider transcript message (may hold several segments)."""
    segments: tuple[TranscriptSegment, ...]


@dataclass(frozen=True)
class FactsReceived(Event):
    """One provider fact batch, in provider list order."""
    facts: tuple[Fact, ...]


@dataclass(frozen=True)
class Flushed(Event):
    """Provider finished processing buffered audio after a flush."""


@dataclass(frozen=True)
class UsageReported(Event):
    """Incremental usage (credits) since the previous report."""
    credits: float


@dataclass(frozen=True)
class ProviderEnded(Event):
    """Provider confirmed stream termination."""


@dataclass(frozen=True)
class ProviderError(Event):
    """Provider reported an error on an otherwise live stream."""
    message: str


@dataclass(frozen=True)
class ProviderClosed(Event):
    """
    Provider connection closed.

    failed=True means the connection broke (receive error), not a clean close.
    """
    reason: str | None = None
    failed: bool = False


# =============================================================================
# Runtime feedback / timers
# =============================================================================

@dataclass(frozen=True)
class AudioDropped(Event):
    """The pre-configuration queue evicted its oldest frame."""
    dropped_total: int


@dataclass(frozen=True)
class ConfigTimeout(Event):
    """No configuration verdict within the deadline."""


@dataclass(frozen=True)
class EndTimeout(Event):
    """No termination confirmation within the deadline."""
