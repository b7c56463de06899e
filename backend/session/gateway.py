"""
Session gateway.

Responsibilities:
- Owns RelaySession lifecycle (one gateway == one browser connection)
- Starts the provider side: interaction creation, then stream connect
- Routes inbound browser frames -> relay events (control JSON or audio)
- Forwards every event into the runtime
- Waits for the relay to finish on browser disconnect, then releases
  everything

NOT responsible for:
- Executing commands (runtime)
- Any state machine logic (reducer)
- Transport details of either WebSocket
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any, Protocol
from uuid import uuid4

from adapters.corti.errors import ProviderError
from audio.frames import AudioFrame
from audio.queues import AudioFrameQueue
from constants import (
    ENCOUNTER_IDENTIFIER_PREFIX,
    ENCOUNTER_STATUS,
    ENCOUNTER_TITLE,
    ENCOUNTER_TYPE,
    JSON_CONTROL_FIRST_BYTE,
    PARTICIPANT_ROLE_DEFAULT,
    STREAM_MODE,
)
from observability.logger import log_event
from observability.metrics import timed
from protocol.messages import ControlType, decode_client_frame
from relay.events import (
    ClientAudio,
    ClientDisconnected,
    ClientEnd,
    ClientFlush,
    Event,
    EventType,
    InteractionCreated,
    SessionStartFailed,
    StreamConnected,
)
from relay.runtime import Runtime
from relay.runtime_context import (
    ClientChannelProtocol,
    ProviderStreamProtocol,
    RuntimeExecutionContext,
)
from relay.state_dataclass import RelayState
from session.connection_status import ConnectionStatus
from session.relay_session import RelaySession

if TYPE_CHECKING:
    from adapters.corti.streaming import EmitEvent
    from config import AppConfig


# ------------------------------------------------------------------
# Provider capability
# ------------------------------------------------------------------

class OpenedStreamProtocol(ProviderStreamProtocol, Protocol):
    def start_receiving(self) -> None: ...


class ProviderClientProtocol(Protocol):
    async def create_interaction(self, encounter: dict[str, Any]) -> str: ...

    async def open_stream(
        self,
        interaction_id: str,
        configuration: dict[str, Any],
        *,
        emit_event: EmitEvent,
        session_id: str | None = None,
    ) -> OpenedStreamProtocol: ...


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _new_session_id() -> str:
    return f"sess_{uuid4().hex[:12]}"


def build_encounter(now_ms: int) -> dict[str, Any]:
    return {
        "identifier": f"{ENCOUNTER_IDENTIFIER_PREFIX}{now_ms}",
        "status": ENCOUNTER_STATUS,
        "type": ENCOUNTER_TYPE,
        "title": ENCOUNTER_TITLE,
    }


def build_stream_configuration(*, primary_language: str, output_locale: str) -> dict[str, Any]:
    return {
        "transcription": {
            "primaryLanguage": primary_language,
            "isDiarization": False,
            "isMultichannel": False,
            "participants": [{"channel": 0, "role": PARTICIPANT_ROLE_DEFAULT}],
        },
        "mode": {
            "type": STREAM_MODE,
            "outputLocale": output_locale,
        },
    }


# ------------------------------------------------------------------
# SessionGateway
# ------------------------------------------------------------------

class SessionGateway:
    """One gateway == one relay session."""

    def __init__(
        self,
        *,
        config: AppConfig,
        provider: ProviderClientProtocol,
    ) -> None:
        self._config = config
        self._provider = provider
        self.session: RelaySession | None = None
        self._startup_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def on_ws_connect(self, client: ClientChannelProtocol) -> None:
        """
        Called when the browser WebSocket is accepted.

        Builds the session and runtime, then starts the provider side in the
        background so browser frames are read (and queued) meanwhile.
        """
        session = RelaySession(
            session_id=_new_session_id(),
            audio_in_queue=AudioFrameQueue(max_frames=self._config.audio_queue_max_frames),
        )
        session.attach_client(client)

        runtime = Runtime(
            initial_state=RelayState(
                config_timeout_ms=int(self._config.config_accept_timeout_s * 1000),
                end_timeout_ms=int(self._config.end_timeout_s * 1000),
            ),
            context=RuntimeExecutionContext(session=session),
        )
        session.attach_runtime(runtime)
        self.session = session

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "WS_CONNECTED",
            **session.log_context(),
        })

        self._startup_task = asyncio.create_task(self._start_provider_session())

    async def wait_started(self) -> None:
        """Wait until the provider side is connected or has failed."""
        if self._startup_task is not None:
            await asyncio.shield(self._startup_task)

    async def on_ws_disconnect(self, reason: str | None = None) -> None:
        """
        Called when the browser WebSocket is gone.

        Lets the relay end gracefully (the provider may still deliver final
        results), then releases the provider side.
        """
        if self.session is None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "WS_DISCONNECT_WITHOUT_SESSION",
                "reason": reason,
            })
            return

        session = self.session
        session.client_status = ConnectionStatus.DOWN

        await self._dispatch(
            ClientDisconnected(
                event_type=EventType.CLIENT_DISCONNECTED,
                ts_ms=_now_ms(),
                reason=reason,
            )
        )

        runtime = session.runtime
        assert runtime is not None, "Runtime must exist before disconnect"
        await runtime.wait_closed()

        task = self._startup_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await runtime.shutdown()

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "WS_DISCONNECTED",
            "reason": reason,
            "final_state": runtime.state.state.value,
            "visible_facts": len(runtime.state.facts),
            **session.log_context(),
        })

    # ------------------------------------------------------------------
    # Provider bootstrap
    # ------------------------------------------------------------------

    async def _start_provider_session(self) -> None:
        session = self.session
        assert session is not None and session.runtime is not None
        runtime = session.runtime

        # Phase (a): interaction
        try:
            with timed("interaction_create", session_id=session.session_id) as extra:
                interaction_id = await self._provider.create_interaction(
                    build_encounter(_now_ms())
                )
                extra["interaction_id"] = interaction_id
        except Exception as e:  # pylint: disable=broad-exception-caught
            await self._start_failed("interaction", "Failed to create interaction", e)
            return

        await self._dispatch(
            InteractionCreated(
                event_type=EventType.INTERACTION_CREATED,
                ts_ms=_now_ms(),
                interaction_id=interaction_id,
            )
        )
        if runtime.is_closed:
            return

        # Phase (b): stream + configuration
        session.provider_status = ConnectionStatus.CONNECTING
        try:
            with timed(
                "stream_connect",
                session_id=session.session_id,
                details={"interaction_id": interaction_id},
            ):
                stream = await self._provider.open_stream(
                    interaction_id,
                    build_stream_configuration(
                        primary_language=self._config.primary_language,
                        output_locale=self._config.output_locale,
                    ),
                    emit_event=runtime.handle_event,
                    session_id=session.session_id,
                )
        except Exception as e:  # pylint: disable=broad-exception-caught
            session.provider_status = ConnectionStatus.DOWN
            await self._start_failed("stream", "Failed to connect to stream", e)
            return

        if runtime.is_closed:
            # Browser left while we were connecting
            await stream.close()
            session.provider_status = ConnectionStatus.DOWN
            return

        session.attach_stream(stream)
        await self._dispatch(
            StreamConnected(event_type=EventType.STREAM_CONNECTED, ts_ms=_now_ms())
        )
        stream.start_receiving()

    async def _start_failed(self, stage: str, prefix: str, exc: Exception) -> None:
        """
        Report a startup failure to the relay.

        Failures that are not ProviderError are also logged with their type.
        """
        if not isinstance(exc, ProviderError):
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "SESSION_START_UNEXPECTED_ERROR",
                "session_id": self.session.session_id if self.session else None,
                "stage": stage,
                "exception": type(exc).__name__,
                "error": str(exc),
            })

        await self._dispatch(
            SessionStartFailed(
                event_type=EventType.SESSION_START_FAILED,
                ts_ms=_now_ms(),
                stage=stage,
                message=f"{prefix}: {str(exc) or type(exc).__name__}",
            )
        )

    # ------------------------------------------------------------------
    # Inbound browser frames
    # ------------------------------------------------------------------

    async def on_json_message(self, payload: str) -> None:
        """Text frame: control JSON, or audio when it is not valid control."""
        await self._on_frame(payload)

    async def on_binary_message(self, payload: bytes) -> None:
        """Binary frame: usually audio, but "{"-prefixed JSON is control."""
        await self._on_frame(payload)

    async def _on_frame(self, payload: bytes | str) -> None:
        if self.session is None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "MESSAGE_WITHOUT_SESSION",
                "payload_len": len(payload),
            })
            return

        frame = decode_client_frame(payload)

        if frame.control is not None:
            await self._on_control(frame.control_type)
            return

        audio = frame.audio or b""
        if not audio:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "EMPTY_FRAME_SKIPPED",
                "session_id": self.session.session_id,
            })
            return

        if isinstance(payload, str) and audio[0] == JSON_CONTROL_FIRST_BYTE:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "JSON_DECODE_ERROR",
                "session_id": self.session.session_id,
                "payload_preview": payload[:100],
            })

        self.session.received_frame_count += 1
        await self._dispatch(
            ClientAudio(
                event_type=EventType.CLIENT_AUDIO,
                ts_ms=_now_ms(),
                frame=AudioFrame(
                    sequence_num=self.session.received_frame_count,
                    payload=audio,
                    ts_ms=_now_ms(),
                ),
            )
        )

    async def _on_control(self, control_type: str | None) -> None:
        assert self.session is not None

        event: Event
        if control_type == ControlType.FLUSH.value:
            event = ClientFlush(event_type=EventType.CLIENT_FLUSH, ts_ms=_now_ms())
        elif control_type == ControlType.END.value:
            event = ClientEnd(event_type=EventType.CLIENT_END, ts_ms=_now_ms())
        else:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "UNKNOWN_MESSAGE_TYPE",
                "msg_type": control_type,
                "session_id": self.session.session_id,
            })
            return

        await self._dispatch(event)

    # ------------------------------------------------------------------
    # Runtime dispatch
    # ------------------------------------------------------------------

    async def _dispatch(self, event: Event) -> None:
        if self.session is None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "DISPATCH_WITHOUT_SESSION",
                "dropped_event": event.event_type.value,
            })
            return

        runtime = self.session.runtime
        assert runtime is not None, "Runtime must exist before dispatch"
        await runtime.handle_event(event)
