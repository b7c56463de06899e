# pylint: disable=missing-module-docstring,missing-function-docstring

from dataclasses import replace

import pytest

from audio.frames import AudioFrame
from constants import TIMER_CONFIG_ACCEPT, TIMER_END_CONFIRM
from facts.reconcile import Fact
from relay.commands import (
    CancelTimer,
    CloseClient,
    CloseProvider,
    EnqueueAudio,
    FlushAudioQueue,
    ForwardAudio,
    LogEvent,
    SendProviderEnd,
    SendProviderFlush,
    SendToClient,
    StartTimer,
)
from relay.enums.state import State
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
from relay.reducer import reduce
from relay.state_dataclass import RelayState
from transcript.accumulator import TranscriptSegment


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _sent(commands) -> list[dict]:
    return [c.message for c in commands if isinstance(c, SendToClient)]


def _effects(commands) -> list:
    return [c for c in commands if not isinstance(c, LogEvent)]


def _frame(seq: int = 1) -> AudioFrame:
    return AudioFrame(sequence_num=seq, payload=b"audio", ts_ms=0)


def _streaming(**overrides) -> RelayState:
    return replace(
        RelayState(state=State.STREAMING, interaction_id="int-1", config_accepted=True),
        **overrides,
    )


def _audio(seq: int = 1) -> ClientAudio:
    return ClientAudio(event_type=EventType.CLIENT_AUDIO, ts_ms=1, frame=_frame(seq))


END = ClientEnd(event_type=EventType.CLIENT_END, ts_ms=1)
DISCONNECT = ClientDisconnected(event_type=EventType.CLIENT_DISCONNECTED, ts_ms=1)
ACCEPTED = ConfigAccepted(event_type=EventType.CONFIG_ACCEPTED, ts_ms=1)
ENDED = ProviderEnded(event_type=EventType.PROVIDER_ENDED, ts_ms=1)


# ---------------------------------------------------------------------------
# Bootstrap
# ---------------------------------------------------------------------------

def test_interaction_created_sends_session_started_once():
    state, cmds = reduce(
        RelayState(),
        InteractionCreated(event_type=EventType.INTERACTION_CREATED, ts_ms=1, interaction_id="int-1"),
    )
    assert state.interaction_id == "int-1"
    assert _sent(cmds) == [{"type": "session_started", "interactionId": "int-1"}]

    again, cmds = reduce(
        state,
        InteractionCreated(event_type=EventType.INTERACTION_CREATED, ts_ms=2, interaction_id="int-2"),
    )
    assert again.interaction_id == "int-1"
    assert _sent(cmds) == []


def test_stream_connected_awaits_config_and_arms_deadline():
    state, cmds = reduce(
        RelayState(interaction_id="int-1", config_timeout_ms=15_000),
        StreamConnected(event_type=EventType.STREAM_CONNECTED, ts_ms=1),
    )
    assert state.state is State.AWAITING_CONFIG
    timers = [c for c in cmds if isinstance(c, StartTimer)]
    assert timers == [StartTimer(
        timer_id=TIMER_CONFIG_ACCEPT,
        duration_ms=15_000,
        timeout_event_type=EventType.CONFIG_TIMEOUT,
    )]


def test_zero_config_deadline_disables_timer():
    _, cmds = reduce(
        RelayState(config_timeout_ms=0),
        StreamConnected(event_type=EventType.STREAM_CONNECTED, ts_ms=1),
    )
    assert not [c for c in cmds if isinstance(c, StartTimer)]


@pytest.mark.parametrize("stage,message", [
    ("interaction", "Failed to create interaction: HTTP 503: down"),
    ("stream", "Failed to connect to stream: refused"),
])
def test_start_failure_fails_session_and_closes_browser(stage, message):
    state, cmds = reduce(
        RelayState(),
        SessionStartFailed(event_type=EventType.SESSION_START_FAILED, ts_ms=1, stage=stage, message=message),
    )
    assert state.state is State.FAILED
    assert state.closed
    assert _sent(cmds) == [{"type": "error", "message": message}]
    assert CloseClient(code=1011, reason="session failed") in cmds


# ---------------------------------------------------------------------------
# Audio path
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("phase", [State.INITIALIZING, State.AWAITING_CONFIG])
def test_audio_is_queued_before_config_accepted(phase):
    state = RelayState(state=phase)
    new_state, cmds = reduce(state, _audio())
    assert new_state == state
    assert cmds == (EnqueueAudio(frame=_frame()),)


def test_audio_is_forwarded_while_streaming():
    _, cmds = reduce(_streaming(), _audio(7))
    assert cmds == (ForwardAudio(frame=_frame(7)),)


def test_audio_while_ending_is_dropped():
    _, cmds = reduce(_streaming(state=State.ENDING), _audio())
    assert _effects(cmds) == []


def test_config_accepted_notifies_browser_then_flushes_queue():
    state, cmds = reduce(RelayState(state=State.AWAITING_CONFIG, interaction_id="int-1"), ACCEPTED)

    assert state.state is State.STREAMING
    assert state.config_accepted
    effects = _effects(cmds)
    assert effects == [
        CancelTimer(timer_id=TIMER_CONFIG_ACCEPT),
        SendToClient(message={"type": "CONFIG_ACCEPTED"}),
        FlushAudioQueue(),
    ]


def test_config_accepted_only_counts_once():
    state, _ = reduce(RelayState(state=State.AWAITING_CONFIG), ACCEPTED)
    again, cmds = reduce(state, ACCEPTED)
    assert again == state
    assert _effects(cmds) == []


def test_first_overflow_notifies_browser_once():
    state = RelayState(state=State.AWAITING_CONFIG)
    state, cmds = reduce(state, AudioDropped(event_type=EventType.AUDIO_DROPPED, ts_ms=1, dropped_total=1))
    assert state.audio_overflow_notified
    assert len(_sent(cmds)) == 1
    assert _sent(cmds)[0]["type"] == "error"

    state, cmds = reduce(state, AudioDropped(event_type=EventType.AUDIO_DROPPED, ts_ms=2, dropped_total=2))
    assert _sent(cmds) == []
    assert any(isinstance(c, LogEvent) and c.event["details"]["dropped_total"] == 2 for c in cmds)


# ---------------------------------------------------------------------------
# Browser control
# ---------------------------------------------------------------------------

def test_flush_only_while_streaming():
    _, cmds = reduce(_streaming(), ClientFlush(event_type=EventType.CLIENT_FLUSH, ts_ms=1))
    assert SendProviderFlush() in cmds

    _, cmds = reduce(
        RelayState(state=State.AWAITING_CONFIG),
        ClientFlush(event_type=EventType.CLIENT_FLUSH, ts_ms=1),
    )
    assert _effects(cmds) == []


def test_flushed_ack_is_relayed():
    _, cmds = reduce(_streaming(), Flushed(event_type=EventType.FLUSHED, ts_ms=1))
    assert _sent(cmds) == [{"type": "flushed"}]


@pytest.mark.parametrize("event", [END, DISCONNECT])
def test_end_or_disconnect_begins_graceful_termination(event):
    state, cmds = reduce(_streaming(end_timeout_ms=30_000), event)

    assert state.state is State.ENDING
    assert not state.closed
    assert SendProviderEnd() in cmds
    assert StartTimer(
        timer_id=TIMER_END_CONFIRM,
        duration_ms=30_000,
        timeout_event_type=EventType.END_TIMEOUT,
    ) in cmds
    assert state.client_connected is (event is END)


def test_end_while_awaiting_config_also_ends_gracefully():
    state, cmds = reduce(RelayState(state=State.AWAITING_CONFIG), END)
    assert state.state is State.ENDING
    assert CancelTimer(timer_id=TIMER_CONFIG_ACCEPT) in cmds
    assert SendProviderEnd() in cmds


def test_disconnect_before_stream_exists_closes_immediately():
    state, cmds = reduce(RelayState(), DISCONNECT)
    assert state.state is State.CLOSED
    assert CloseProvider() in cmds
    assert SendProviderEnd() not in cmds


def test_repeated_end_is_ignored():
    state, _ = reduce(_streaming(), END)
    again, cmds = reduce(state, END)
    assert again == state
    assert _effects(cmds) == []


# ---------------------------------------------------------------------------
# Provider results
# ---------------------------------------------------------------------------

def test_transcript_segments_relayed_in_order():
    segs = (
        TranscriptSegment(id="a-0", text="one", is_final=True),
        TranscriptSegment(id="b-1", text="tw", is_final=False),
    )
    state, cmds = reduce(_streaming(), TranscriptReceived(event_type=EventType.TRANSCRIPT, ts_ms=1, segments=segs))

    assert [m["data"]["id"] for m in _sent(cmds)] == ["a-0", "b-1"]
    assert state.transcript_segments_relayed == 2


def test_results_still_relayed_while_ending():
    seg = TranscriptSegment(id="a-0", text="late", is_final=True)
    _, cmds = reduce(
        _streaming(state=State.ENDING),
        TranscriptReceived(event_type=EventType.TRANSCRIPT, ts_ms=1, segments=(seg,)),
    )
    assert len(_sent(cmds)) == 1


def test_facts_are_relayed_raw_and_merged_in_state():
    batch1 = (Fact(id="f1", text="a"), Fact(id="f2", text="b"))
    batch2 = (Fact(id="f1", text="a", is_discarded=True),)

    state, cmds1 = reduce(_streaming(), FactsReceived(event_type=EventType.FACTS, ts_ms=1, facts=batch1))
    state, cmds2 = reduce(state, FactsReceived(event_type=EventType.FACTS, ts_ms=2, facts=batch2))

    assert len(_sent(cmds1)[0]["facts"]) == 2
    assert _sent(cmds2)[0]["facts"][0]["isDiscarded"] is True
    assert [f.id for f in state.facts] == ["f2"]


def test_usage_forwarded_as_delta():
    state, cmds = reduce(_streaming(), UsageReported(event_type=EventType.USAGE, ts_ms=1, credits=0.5))
    state, _ = reduce(state, UsageReported(event_type=EventType.USAGE, ts_ms=2, credits=0.25))

    assert _sent(cmds) == [{"type": "usage", "credits": 0.5}]
    assert state.credits_total == 0.75


def test_provider_error_is_informational():
    state, cmds = reduce(_streaming(), ProviderError(event_type=EventType.PROVIDER_ERROR, ts_ms=1, message="Audio too quiet"))
    assert state.state is State.STREAMING
    assert _sent(cmds) == [{"type": "error", "message": "Audio too quiet"}]


# ---------------------------------------------------------------------------
# Configuration failures
# ---------------------------------------------------------------------------

def test_config_denial_fails_but_leaves_browser_open():
    state, cmds = reduce(
        RelayState(state=State.AWAITING_CONFIG),
        ConfigRejected(event_type=EventType.CONFIG_REJECTED, ts_ms=1, kind="CONFIG_DENIED", reason="bad locale"),
    )
    assert state.state is State.FAILED
    assert _sent(cmds) == [{"type": "error", "message": "CONFIG_DENIED: bad locale"}]
    assert CloseProvider() in cmds
    assert not [c for c in cmds if isinstance(c, CloseClient)]


def test_config_denial_without_reason():
    _, cmds = reduce(
        RelayState(state=State.AWAITING_CONFIG),
        ConfigRejected(event_type=EventType.CONFIG_REJECTED, ts_ms=1, kind="CONFIG_TIMEOUT"),
    )
    assert _sent(cmds) == [{"type": "error", "message": "CONFIG_TIMEOUT: Unknown reason"}]


@pytest.mark.parametrize("phase", [State.STREAMING, State.ENDING])
def test_config_notice_after_acceptance_keeps_session_alive(phase):
    before = _streaming(state=phase)
    state, cmds = reduce(
        before,
        ConfigRejected(
            event_type=EventType.CONFIG_REJECTED, ts_ms=1, kind="CONFIG_ALREADY_RECEIVED",
        ),
    )
    assert state.state is phase
    assert not state.closed
    assert _sent(cmds) == [
        {"type": "error", "message": "CONFIG_ALREADY_RECEIVED: Unknown reason"},
    ]
    assert _effects(cmds) == [cmds[0]]
    assert isinstance(cmds[-1], LogEvent)


def test_config_deadline_expiry_fails_session():
    state, cmds = reduce(
        RelayState(state=State.AWAITING_CONFIG, config_timeout_ms=15_000),
        ConfigTimeout(event_type=EventType.CONFIG_TIMEOUT, ts_ms=1),
    )
    assert state.state is State.FAILED
    assert _sent(cmds) == [{
        "type": "error",
        "message": "CONFIG_TIMEOUT: provider did not accept configuration within 15s",
    }]


def test_stale_config_timer_is_ignored():
    state, cmds = reduce(_streaming(), ConfigTimeout(event_type=EventType.CONFIG_TIMEOUT, ts_ms=1))
    assert state == _streaming()
    assert _effects(cmds) == []


# ---------------------------------------------------------------------------
# Termination
# ---------------------------------------------------------------------------

def test_provider_ended_closes_both_sides():
    ending, _ = reduce(_streaming(), END)
    state, cmds = reduce(ending, ENDED)

    assert state.state is State.CLOSED
    assert state.closed
    assert _sent(cmds) == [{"type": "ended"}]
    assert CloseProvider() in cmds
    assert CloseClient(code=1000, reason="session ended") in cmds


def test_end_deadline_expiry_reports_then_closes():
    ending, _ = reduce(_streaming(end_timeout_ms=30_000), END)
    state, cmds = reduce(ending, EndTimeout(event_type=EventType.END_TIMEOUT, ts_ms=1))

    assert state.state is State.CLOSED
    assert _sent(cmds) == [
        {"type": "error", "message": "Provider did not confirm termination within 30s"},
        {"type": "ended"},
    ]


def test_provider_connection_failure_while_streaming_fails_session():
    state, cmds = reduce(
        _streaming(),
        ProviderClosed(event_type=EventType.PROVIDER_CLOSED, ts_ms=1, reason="1006", failed=True),
    )
    assert state.state is State.FAILED
    assert _sent(cmds) == [{"type": "error", "message": "Stream error: 1006"}]
    assert CloseClient(code=1011, reason="session failed") in cmds


def test_provider_close_while_ending_is_a_normal_end():
    ending, _ = reduce(_streaming(), END)
    state, cmds = reduce(
        ending,
        ProviderClosed(event_type=EventType.PROVIDER_CLOSED, ts_ms=1, failed=True),
    )
    assert state.state is State.CLOSED
    assert _sent(cmds) == [{"type": "ended"}]


def test_provider_clean_close_while_streaming_closes():
    state, _ = reduce(_streaming(), ProviderClosed(event_type=EventType.PROVIDER_CLOSED, ts_ms=1))
    assert state.state is State.CLOSED


@pytest.mark.parametrize("terminal", [State.CLOSED, State.FAILED])
@pytest.mark.parametrize("event", [
    _audio(),
    END,
    DISCONNECT,
    ACCEPTED,
    ENDED,
    ProviderError(event_type=EventType.PROVIDER_ERROR, ts_ms=1, message="x"),
    UsageReported(event_type=EventType.USAGE, ts_ms=1, credits=1.0),
    EndTimeout(event_type=EventType.END_TIMEOUT, ts_ms=1),
])
def test_terminal_states_absorb_everything(terminal, event):
    state = RelayState(state=terminal, closed=True, interaction_id="int-1")
    new_state, cmds = reduce(state, event)

    assert new_state == state
    assert _effects(cmds) == []
    assert len(cmds) == 1
    assert cmds[0].event["decision"] == "ignore"


def test_log_events_carry_required_fields():
    _, cmds = reduce(RelayState(state=State.AWAITING_CONFIG, interaction_id="int-1"), ACCEPTED)
    logs = [c.event for c in cmds if isinstance(c, LogEvent)]

    assert logs
    for payload in logs:
        for key in ("ts_ms", "state", "event_type", "decision", "interaction_id", "details"):
            assert key in payload
    assert logs[-1]["decision"] == "state_changed"
    assert logs[-1]["details"]["to_state"] == "STREAMING"
