"""
Runtime execution shell for a single relay session.

Responsibilities:
- Own relay state
- Call pure reducer
- Execute commands with side effects (browser sends, provider sends, queue)
- Schedule and cancel timers
- Convert timer expiry and queue overflow into events
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import TYPE_CHECKING

from adapters.corti.errors import ProviderSendError
from audio.frames import AudioFrame
from constants import AUDIO_QUEUE_LOG_EVERY
from observability.logger import log_event
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
from relay.enums.state import TERMINAL_STATES
from relay.events import (
    AudioDropped,
    ConfigTimeout,
    EndTimeout,
    Event,
    EventType,
)
from relay.reducer import reduce
from relay.state_dataclass import RelayState
from session.connection_status import ConnectionStatus

if TYPE_CHECKING:
    from relay.runtime_context import RuntimeExecutionContext


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class Runtime:
    """
    Runtime execution boundary for a single relay session.

    Responsibilities:
    - Own the authoritative relay state
    - Act as the universal event sink for the session
      (gateway events, provider stream events, timer events)
    - Invoke the pure reducer deterministically
    - Execute emitted commands with side effects

    Guarantees:
    - Reducer is always called exactly once per incoming event
    - State transitions are serialized (one event at a time, FIFO)
    - All side effects occur *after* state has been updated
    - Events raised while executing commands (queue overflow) are
      processed before handle_event returns
    - Runtime never performs relay decisions itself
    """

    def __init__(
        self,
        *,
        initial_state: RelayState,
        context: RuntimeExecutionContext,
    ) -> None:
        self._state = initial_state
        self._ctx = context
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._lock = asyncio.Lock()
        self._closed = asyncio.Event()

    @property
    def state(self) -> RelayState:
        """
        Return the current immutable relay state.

        Read-only view; state is only replaced internally via the reducer.
        """
        return self._state

    async def handle_event(self, event: Event) -> None:
        """
        Process a single event through the relay pipeline.

        Processing steps:
        1. Pass the current state and event to the pure reducer
        2. Swap in the new relay state
        3. Execute all emitted commands sequentially
        4. Repeat for any follow-up events raised during execution

        This method is the *only* entry point for events affecting relay
        state. It is safe to call concurrently from the gateway, the
        provider receive task and timer tasks; callers are served in FIFO
        order.
        """
        async with self._lock:
            pending: deque[Event] = deque([event])
            while pending:
                current = pending.popleft()
                self._state, commands = reduce(self._state, current)

                for cmd in commands:
                    follow_up = await self._execute_command(cmd)
                    if follow_up is not None:
                        pending.append(follow_up)

            if self._state.state in TERMINAL_STATES:
                self._closed.set()

    async def wait_closed(self) -> None:
        """Block until the session reaches CLOSED or FAILED."""
        await self._closed.wait()

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    async def shutdown(self) -> None:
        """
        Clean shutdown of runtime.

        Cancels in-flight timers, drops queued audio and releases the
        provider stream. Called by the gateway once the browser is gone.
        """
        for timer_id in list(self._timers.keys()):
            self._cancel_timer(timer_id)

        self._ctx.audio_in_queue.clear()
        await self._close_provider()

    # ------------------------------------------------------------------
    # Command execution (side effects)
    # ------------------------------------------------------------------

    async def _execute_command(self, cmd: Command) -> Event | None:
        """Execute a single command; may return one follow-up event."""

        if isinstance(cmd, LogEvent):
            log_event({
                **cmd.event,
                "session_id": self._ctx.session_id,
                "client_status": self._ctx.client_status.value,
                "provider_status": self._ctx.provider_status.value,
                "queue_depth": len(self._ctx.audio_in_queue),
            })

        elif isinstance(cmd, SendToClient):
            client = self._ctx.client
            if client is not None:
                await client.send_json(cmd.message)

        elif isinstance(cmd, CloseClient):
            client = self._ctx.client
            if client is not None:
                await client.close(cmd.code, cmd.reason)

        elif isinstance(cmd, EnqueueAudio):
            return self._enqueue_audio(cmd.frame)

        elif isinstance(cmd, ForwardAudio):
            await self._forward_audio(cmd.frame)

        elif isinstance(cmd, FlushAudioQueue):
            await self._flush_audio_queue()

        elif isinstance(cmd, SendProviderFlush):
            await self._send_control("flush")

        elif isinstance(cmd, SendProviderEnd):
            await self._send_control("end")

        elif isinstance(cmd, CloseProvider):
            await self._close_provider()

        elif isinstance(cmd, StartTimer):
            self._start_timer(
                timer_id=cmd.timer_id,
                duration_ms=cmd.duration_ms,
                timeout_event_type=cmd.timeout_event_type,
            )

        elif isinstance(cmd, CancelTimer):
            self._cancel_timer(cmd.timer_id)

        else:
            raise RuntimeError(f"Unhandled command type: {type(cmd).__name__}")

        return None

    # ------------------------------------------------------------------
    # Audio path
    # ------------------------------------------------------------------

    def _enqueue_audio(self, frame: AudioFrame) -> Event | None:
        queue = self._ctx.audio_in_queue
        fitted = queue.enqueue(frame)

        if len(queue) % AUDIO_QUEUE_LOG_EVERY == 0:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "AUDIO_QUEUED",
                "session_id": self._ctx.session_id,
                "seq_num": frame.sequence_num,
                **queue.snapshot(),
            })

        if fitted:
            return None

        return AudioDropped(
            event_type=EventType.AUDIO_DROPPED,
            ts_ms=_now_ms(),
            dropped_total=queue.dropped_oldest,
        )

    async def _forward_audio(self, frame: AudioFrame) -> None:
        """Best effort: a failed send is logged and the session continues."""
        stream = self._ctx.stream
        if stream is None:
            return

        try:
            await stream.send_audio(frame.payload)
        except ProviderSendError as e:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "AUDIO_FORWARD_FAILED",
                "session_id": self._ctx.session_id,
                "seq_num": frame.sequence_num,
                "bytes": len(frame.payload),
                "error": str(e),
            })
            return

        self._ctx.record_frame_sent()

    async def _flush_audio_queue(self) -> None:
        frames = self._ctx.audio_in_queue.drain()

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "AUDIO_QUEUE_FLUSH",
            "session_id": self._ctx.session_id,
            "frames": len(frames),
            "bytes": sum(len(f.payload) for f in frames),
        })

        for frame in frames:
            await self._forward_audio(frame)

    # ------------------------------------------------------------------
    # Provider control
    # ------------------------------------------------------------------

    async def _send_control(self, kind: str) -> None:
        stream = self._ctx.stream
        if stream is None:
            return

        try:
            if kind == "flush":
                await stream.send_flush()
            else:
                await stream.send_end()
        except ProviderSendError as e:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "PROVIDER_CONTROL_SEND_FAILED",
                "session_id": self._ctx.session_id,
                "control": kind,
                "error": str(e),
            })

    async def _close_provider(self) -> None:
        stream = self._ctx.stream
        if stream is None:
            return
        await stream.close()
        self._ctx.session.provider_status = ConnectionStatus.DOWN

    # ------------------------------------------------------------------
    # Timer management
    # ------------------------------------------------------------------

    def _start_timer(
        self,
        *,
        timer_id: str,
        duration_ms: int,
        timeout_event_type: EventType,
    ) -> None:
        """
        Start or replace a timer that emits a timeout event.

        Timer tasks re-enter handle_event() when they expire,
        maintaining the single event entry point invariant.
        """
        self._cancel_timer(timer_id)

        async def _timer_task() -> None:
            try:
                await asyncio.sleep(duration_ms / 1000.0)
            except asyncio.CancelledError:
                return

            # Expired: no longer cancellable by id
            if self._timers.get(timer_id) is asyncio.current_task():
                del self._timers[timer_id]

            await self.handle_event(
                self._construct_timeout_event(timeout_event_type)
            )

        self._timers[timer_id] = asyncio.create_task(_timer_task())

    def _cancel_timer(self, timer_id: str) -> None:
        """
        Cancel an in-flight timer if it exists.

        Idempotent: safe to call even if timer doesn't exist.
        """
        task = self._timers.pop(timer_id, None)
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    @staticmethod
    def _construct_timeout_event(timeout_event_type: EventType) -> Event:
        if timeout_event_type is EventType.CONFIG_TIMEOUT:
            return ConfigTimeout(event_type=timeout_event_type, ts_ms=_now_ms())
        if timeout_event_type is EventType.END_TIMEOUT:
            return EndTimeout(event_type=timeout_event_type, ts_ms=_now_ms())
        raise ValueError(f"No timeout event for {timeout_event_type.value}")
