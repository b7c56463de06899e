"""
Pure relay reducer.

(state, event) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (state, event) pair is handled or explicitly ignored (logged).

Lifecycle:
    INITIALIZING -> AWAITING_CONFIG -> STREAMING -> ENDING -> CLOSED
    any non-terminal state -> FAILED
CLOSED and FAILED are terminal: every later event is logged and dropped.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from constants import (
    CLIENT_CLOSE_INTERNAL_ERROR,
    CLIENT_CLOSE_NORMAL,
    TIMER_CONFIG_ACCEPT,
    TIMER_END_CONFIRM,
)
from facts.reconcile import merge_facts
from protocol import messages
from relay.commands import (
    CancelTimer,
    CloseClient,
    CloseProvider,
    Command,
    EnqueueAudio,
    FlushAudioQueue,
    ForwardAudio,
    LogEvent,
    SendProviderEnd,
    SendProviderFlush,
    SendToClient,
    StartTimer,
)
from relay.enums.state import State, TERMINAL_STATES
from relay.events import (
    AudioDropped,
    ClientAudio,
    ClientDisconnected,
    ClientEnd,
    ClientFlush,
    ConfigAccepted,
    ConfigRejected,
    ConfigTimeout,
    EndTimeout,
    Event,
    EventType,
    FactsReceived,
    Flushed,
    InteractionCreated,
    ProviderClosed,
    ProviderEnded,
    ProviderError,
    SessionStartFailed,
    StreamConnected,
    TranscriptReceived,
    UsageReported,
)
from relay.state_dataclass import RelayState


AUDIO_OVERFLOW_MESSAGE = (
    "Audio buffer full while waiting for the transcription service; "
    "dropping the oldest audio"
)


# =============================================================================
# Small helpers
# =============================================================================

def _log(
    state: RelayState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "state": state.state.value,
            "event_type": event.event_type.value,
            "decision": decision,
            "interaction_id": state.interaction_id,
            "config_accepted": state.config_accepted,
            "visible_facts": len(state.facts),
            "details": details or {},
        }
    )


def _state_changed(
    prev: RelayState,
    new: RelayState,
    event: Event,
    source: str,
) -> LogEvent:
    return _log(
        new,
        event,
        "state_changed",
        {
            "from_state": prev.state.value,
            "to_state": new.state.value,
            "source": source,
        },
    )


def _logs_last(commands: tuple[Command, ...]) -> tuple[Command, ...]:
    non_logs: list[Command] = []
    logs: list[Command] = []
    state_change_logs: list[Command] = []

    for command in commands:
        if isinstance(command, LogEvent):
            if command.event.get("decision") == "state_changed":
                state_change_logs.append(command)
            else:
                logs.append(command)
        else:
            non_logs.append(command)

    return tuple(non_logs + logs + state_change_logs)


def _ignore(
    state: RelayState, event: Event, reason: str
) -> tuple[RelayState, tuple[Command, ...]]:
    return state, (_log(state, event, "ignore", {"reason": reason}),)


def _cancel_deadlines() -> tuple[Command, ...]:
    return (
        CancelTimer(timer_id=TIMER_CONFIG_ACCEPT),
        CancelTimer(timer_id=TIMER_END_CONFIRM),
    )


def _close(
    state: RelayState,
    event: Event,
    source: str,
    *,
    notices: tuple[dict[str, Any], ...] = (),
) -> tuple[RelayState, tuple[Command, ...]]:
    """Enter CLOSED: tell the browser the session ended, then close both sides."""
    new_state = replace(state, state=State.CLOSED, closed=True)
    cmds: tuple[Command, ...] = (
        tuple(SendToClient(message=m) for m in notices)
        + (SendToClient(message=messages.ended()),)
        + _cancel_deadlines()
        + (
            CloseProvider(),
            CloseClient(code=CLIENT_CLOSE_NORMAL, reason="session ended"),
            _state_changed(state, new_state, event, source),
        )
    )
    return new_state, _logs_last(cmds)


def _fail(
    state: RelayState,
    event: Event,
    message: str,
    source: str,
    *,
    close_client: bool,
) -> tuple[RelayState, tuple[Command, ...]]:
    """
    Enter FAILED with one human-readable error for the browser.

    close_client=False leaves the browser connected until it disconnects
    (configuration denial); the provider side is always released.
    """
    new_state = replace(state, state=State.FAILED, closed=True, last_error=message)
    cmds: tuple[Command, ...] = (
        (SendToClient(message=messages.error(message)),)
        + _cancel_deadlines()
        + (CloseProvider(),)
    )
    if close_client:
        cmds += (CloseClient(code=CLIENT_CLOSE_INTERNAL_ERROR, reason="session failed"),)

    cmds += (
        _log(new_state, event, "session_failed", {"reason": message}),
        _state_changed(state, new_state, event, source),
    )
    return new_state, _logs_last(cmds)


def _begin_ending(
    state: RelayState,
    event: Event,
    source: str,
) -> tuple[RelayState, tuple[Command, ...]]:
    client_connected = state.client_connected and not isinstance(event, ClientDisconnected)

    if state.state is State.INITIALIZING:
        # No provider stream yet, nothing to drain
        return _close(replace(state, client_connected=client_connected), event, source)

    new_state = replace(state, state=State.ENDING, client_connected=client_connected)
    cmds: tuple[Command, ...] = (
        CancelTimer(timer_id=TIMER_CONFIG_ACCEPT),
        SendProviderEnd(),
    )
    if state.end_timeout_ms > 0:
        cmds += (
            StartTimer(
                timer_id=TIMER_END_CONFIRM,
                duration_ms=state.end_timeout_ms,
                timeout_event_type=EventType.END_TIMEOUT,
            ),
        )
    cmds += (_state_changed(state, new_state, event, source),)
    return new_state, _logs_last(cmds)


# =============================================================================
# Reducer
# =============================================================================

def reduce(  # pylint: disable=too-many-return-statements,too-many-branches
    state: RelayState, event: Event
) -> tuple[RelayState, tuple[Command, ...]]:
    """
    Pure reducer for the relay session state machine.

    Given the current relay state and a single event, returns:
    - the next state
    - a tuple of commands describing required side effects

    Properties:
    - Deterministic: no IO, clocks, or randomness
    - Total: every (state, event) pair is handled or explicitly ignored
    - Terminal states absorb every event without effects
    """
    if state.state in TERMINAL_STATES:
        return _ignore(state, event, "session_terminal")

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------
    if isinstance(event, InteractionCreated):
        if state.state is not State.INITIALIZING or state.interaction_id is not None:
            return _ignore(state, event, "interaction_already_assigned")

        new_state = replace(state, interaction_id=event.interaction_id)
        return new_state, (
            SendToClient(message=messages.session_started(event.interaction_id)),
            _log(new_state, event, "session_started"),
        )

    if isinstance(event, StreamConnected):
        if state.state is not State.INITIALIZING:
            return _ignore(state, event, "stream_connected_unexpected")

        new_state = replace(state, state=State.AWAITING_CONFIG)
        cmds: tuple[Command, ...] = ()
        if state.config_timeout_ms > 0:
            cmds += (
                StartTimer(
                    timer_id=TIMER_CONFIG_ACCEPT,
                    duration_ms=state.config_timeout_ms,
                    timeout_event_type=EventType.CONFIG_TIMEOUT,
                ),
            )
        cmds += (_state_changed(state, new_state, event, "stream_connected"),)
        return new_state, _logs_last(cmds)

    if isinstance(event, SessionStartFailed):
        return _fail(
            state, event, event.message, f"start_failed:{event.stage}", close_client=True
        )

    # ------------------------------------------------------------------
    # Browser side
    # ------------------------------------------------------------------
    if isinstance(event, ClientAudio):
        if state.state in (State.INITIALIZING, State.AWAITING_CONFIG):
            return state, (EnqueueAudio(frame=event.frame),)
        if state.state is State.STREAMING:
            return state, (ForwardAudio(frame=event.frame),)
        return _ignore(state, event, "audio_while_ending")

    if isinstance(event, ClientFlush):
        if state.state is not State.STREAMING:
            return _ignore(state, event, "flush_not_streaming")
        return state, (SendProviderFlush(), _log(state, event, "flush_requested"))

    if isinstance(event, (ClientEnd, ClientDisconnected)):
        if state.state is State.ENDING:
            if isinstance(event, ClientDisconnected):
                new_state = replace(state, client_connected=False)
                return new_state, (
                    _log(new_state, event, "client_gone_while_ending", {"reason": event.reason}),
                )
            return _ignore(state, event, "already_ending")

        source = "client_end" if isinstance(event, ClientEnd) else "client_disconnected"
        return _begin_ending(state, event, source)

    # ------------------------------------------------------------------
    # Provider: configuration handshake
    # ------------------------------------------------------------------
    if isinstance(event, ConfigAccepted):
        if state.state is not State.AWAITING_CONFIG:
            return _ignore(state, event, "config_accepted_unexpected")

        new_state = replace(state, state=State.STREAMING, config_accepted=True)
        return new_state, _logs_last((
            CancelTimer(timer_id=TIMER_CONFIG_ACCEPT),
            SendToClient(message=messages.config_accepted()),
            FlushAudioQueue(),
            _state_changed(state, new_state, event, "config_accepted"),
        ))

    if isinstance(event, ConfigRejected):
        message = f"{event.kind}: {event.reason or 'Unknown reason'}"
        if state.state in (State.INITIALIZING, State.AWAITING_CONFIG):
            return _fail(state, event, message, "config_rejected", close_client=False)

        # Configuration already in force; relay the notice and keep streaming
        new_state = replace(state, last_error=message)
        return new_state, (
            SendToClient(message=messages.error(message)),
            _log(new_state, event, "config_notice_after_accept", {"kind": event.kind}),
        )

    if isinstance(event, ConfigTimeout):
        if state.state is not State.AWAITING_CONFIG:
            return _ignore(state, event, "stale_config_timer")
        seconds = state.config_timeout_ms / 1000
        return _fail(
            state,
            event,
            f"CONFIG_TIMEOUT: provider did not accept configuration within {seconds:g}s",
            "config_timeout",
            close_client=False,
        )

    # ------------------------------------------------------------------
    # Provider: results (relayed in arrival order, also while ending)
    # ------------------------------------------------------------------
    if isinstance(event, TranscriptReceived):
        new_state = replace(
            state,
            transcript_segments_relayed=state.transcript_segments_relayed + len(event.segments),
        )
        return new_state, tuple(
            SendToClient(message=messages.transcript(seg)) for seg in event.segments
        ) + (
            _log(new_state, event, "transcript_relayed", {
                "segments": len(event.segments),
                "finals": sum(1 for s in event.segments if s.is_final),
            }),
        )

    if isinstance(event, FactsReceived):
        new_state = replace(state, facts=merge_facts(state.facts, event.facts))
        return new_state, (
            SendToClient(message=messages.facts(event.facts)),
            _log(new_state, event, "facts_relayed", {
                "batch": len(event.facts),
                "discarded": sum(1 for f in event.facts if f.is_discarded),
            }),
        )

    if isinstance(event, Flushed):
        return state, (SendToClient(message=messages.flushed()),)

    if isinstance(event, UsageReported):
        new_state = replace(state, credits_total=state.credits_total + event.credits)
        return new_state, (
            SendToClient(message=messages.usage(event.credits)),
            _log(new_state, event, "usage", {
                "credits": event.credits,
                "credits_total": new_state.credits_total,
            }),
        )

    if isinstance(event, ProviderError):
        new_state = replace(state, last_error=event.message)
        return new_state, (
            SendToClient(message=messages.error(event.message)),
            _log(new_state, event, "provider_error", {"message": event.message}),
        )

    # ------------------------------------------------------------------
    # Provider: termination
    # ------------------------------------------------------------------
    if isinstance(event, ProviderEnded):
        return _close(state, event, "provider_ended")

    if isinstance(event, ProviderClosed):
        if event.failed and state.state is not State.ENDING:
            return _fail(
                state,
                event,
                f"Stream error: {event.reason or 'connection lost'}",
                "provider_connection_failed",
                close_client=True,
            )
        return _close(state, event, "provider_closed")

    if isinstance(event, EndTimeout):
        if state.state is not State.ENDING:
            return _ignore(state, event, "stale_end_timer")
        seconds = state.end_timeout_ms / 1000
        return _close(
            state,
            event,
            "end_timeout",
            notices=(messages.error(
                f"Provider did not confirm termination within {seconds:g}s"
            ),),
        )

    # ------------------------------------------------------------------
    # Backpressure
    # ------------------------------------------------------------------
    if isinstance(event, AudioDropped):
        details = {"dropped_total": event.dropped_total}
        if state.audio_overflow_notified:
            return state, (_log(state, event, "audio_dropped", details),)

        new_state = replace(state, audio_overflow_notified=True)
        return new_state, (
            SendToClient(message=messages.error(AUDIO_OVERFLOW_MESSAGE)),
            _log(new_state, event, "audio_dropped", details),
        )

    return _ignore(state, event, "unhandled_event")
