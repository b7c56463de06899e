"""
Runtime execution context.

Provides Runtime with live access to session-owned imperative resources
needed for command execution (browser channel, provider stream, queue).

This module contains:
- Narrow Protocols (capabilities, not implementations)
- Zero relay logic
- Zero state mutation
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from session.connection_status import ConnectionStatus

if TYPE_CHECKING:
    from audio.queues import AudioFrameQueue
    from session.relay_session import RelaySession


# ---------------------------------------------------------------------
# Side Protocols
# ---------------------------------------------------------------------

@runtime_checkable
class ClientChannelProtocol(Protocol):
    """Browser side of the relay. Sends never raise; close is idempotent."""

    async def send_json(self, message: dict[str, Any]) -> None: ...
    async def close(self, code: int, reason: str = "") -> None: ...


@runtime_checkable
class ProviderStreamProtocol(Protocol):
    """
    Provider side of the relay.

    send_* raise adapters.corti.errors.ProviderSendError on failure.
    close() is idempotent and does not emit a close event.
    """

    async def send_audio(self, payload: bytes) -> None: ...
    async def send_flush(self) -> None: ...
    async def send_end(self) -> None: ...
    async def close(self) -> None: ...


# ---------------------------------------------------------------------
# Runtime Execution Context
# ---------------------------------------------------------------------

class RuntimeExecutionContext:
    """
    Imperative execution context for Runtime.

    Live views into session-owned resources, so Runtime never caches
    the stream (which is attached only after the provider connects).
    """

    def __init__(self, session: RelaySession) -> None:
        self.session = session

    # ----------------------------
    # Session metadata
    # ----------------------------

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def client_status(self) -> ConnectionStatus:
        return self.session.client_status

    @property
    def provider_status(self) -> ConnectionStatus:
        return self.session.provider_status

    # ----------------------------
    # Sides
    # ----------------------------

    @property
    def client(self) -> ClientChannelProtocol | None:
        return self.session.client

    @property
    def stream(self) -> ProviderStreamProtocol | None:
        return self.session.stream

    # ----------------------------
    # Audio
    # ----------------------------

    @property
    def audio_in_queue(self) -> AudioFrameQueue:
        return self.session.audio_in_queue

    def record_frame_sent(self) -> None:
        self.session.sent_frame_count += 1
