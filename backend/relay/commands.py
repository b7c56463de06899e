"""
Side-effect command definitions for the relay.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the runtime.
- No behavior, no async, no I/O, no clocks.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from audio.frames import AudioFrame
from relay.events import EventType


# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    Stable discriminants used for logging and runtime dispatch.
    """

    # Browser
    SEND_TO_CLIENT = "SEND_TO_CLIENT"
    CLOSE_CLIENT = "CLOSE_CLIENT"

    # Audio path
    ENQUEUE_AUDIO = "ENQUEUE_AUDIO"
    FORWARD_AUDIO = "FORWARD_AUDIO"
    FLUSH_AUDIO_QUEUE = "FLUSH_AUDIO_QUEUE"

    # Provider
    SEND_PROVIDER_FLUSH = "SEND_PROVIDER_FLUSH"
    SEND_PROVIDER_END = "SEND_PROVIDER_END"
    CLOSE_PROVIDER = "CLOSE_PROVIDER"

    # Timers
    START_TIMER = "START_TIMER"
    CANCEL_TIMER = "CANCEL_TIMER"

    # Observability
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Browser Commands
# =============================================================================

@dataclass(frozen=True)
class SendToClient(Command):
    """Send one JSON message to the browser."""
    message: dict[str, Any]
    command_type: CommandType = CommandType.SEND_TO_CLIENT


@dataclass(frozen=True)
class CloseClient(Command):
    """Close the browser WebSocket (idempotent)."""
    code: int
    reason: str = ""
    command_type: CommandType = CommandType.CLOSE_CLIENT


# =============================================================================
# Audio Commands
# =============================================================================

@dataclass(frozen=True)
class EnqueueAudio(Command):
    """Hold a frame until the provider accepts the configuration."""
    frame: AudioFrame
    command_type: CommandType = CommandType.ENQUEUE_AUDIO


@dataclass(frozen=True)
class ForwardAudio(Command):
    """Send a frame to the provider now (best effort)."""
    frame: AudioFrame
    command_type: CommandType = CommandType.FORWARD_AUDIO


@dataclass(frozen=True)
class FlushAudioQueue(Command):
    """Forward every queued frame in arrival order, then empty the queue."""
    command_type: CommandType = CommandType.FLUSH_AUDIO_QUEUE


# =============================================================================
# Provider Commands
# =============================================================================

@dataclass(frozen=True)
class SendProviderFlush(Command):
    command_type: CommandType = CommandType.SEND_PROVIDER_FLUSH


@dataclass(frozen=True)
class SendProviderEnd(Command):
    """Ask the provider to finish processing and end the stream."""
    command_type: CommandType = CommandType.SEND_PROVIDER_END


@dataclass(frozen=True)
class CloseProvider(Command):
    """Close the provider connection (idempotent)."""
    command_type: CommandType = CommandType.CLOSE_PROVIDER


# =============================================================================
# Timer Commands
# =============================================================================

@dataclass(frozen=True)
class StartTimer(Command):
    """
    Start (or replace) a named timer.

    On expiry the runtime feeds an event of timeout_event_type back in.
    """
    timer_id: str
    duration_ms: int
    timeout_event_type: EventType
    command_type: CommandType = CommandType.START_TIMER


@dataclass(frozen=True)
class CancelTimer(Command):
    """Cancel a named timer (no-op if absent)."""
    timer_id: str
    command_type: CommandType = CommandType.CANCEL_TIMER


# =============================================================================
# Observability
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Structured log record; the runtime adds session context."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT
