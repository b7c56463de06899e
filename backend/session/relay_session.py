"""
Relay session container.

- Owns per-session imperative resources (browser channel, provider stream,
  pre-configuration audio queue)
- Owns connection statuses (mutable, gateway/runtime-controlled)
- Owned and mutated by SessionGateway
- NOT a state machine
- Contains no relay logic
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from audio.queues import AudioFrameQueue
from session.connection_status import ConnectionStatus

if TYPE_CHECKING:
    from relay.runtime import Runtime
    from relay.runtime_context import ClientChannelProtocol, ProviderStreamProtocol


# ---------------------------------------------------------------------
# RelaySession
# ---------------------------------------------------------------------


@dataclass
class RelaySession:
    """Mutable runtime container for a single browser <-> provider session."""

    # ------------------------------------------------------------------
    # Identity / lifecycle
    # ------------------------------------------------------------------

    session_id: str
    audio_in_queue: AudioFrameQueue
    created_at: float = field(default_factory=time.time)

    # ------------------------------------------------------------------
    # Connection state
    # ------------------------------------------------------------------

    client_status: ConnectionStatus = ConnectionStatus.DOWN
    provider_status: ConnectionStatus = ConnectionStatus.DOWN

    client: ClientChannelProtocol | None = None
    stream: ProviderStreamProtocol | None = None

    # ------------------------------------------------------------------
    # Runtime (executes commands + owns authoritative state)
    # ------------------------------------------------------------------

    runtime: Runtime | None = None

    # ------------------------------------------------------------------
    # Counters (observability only)
    # ------------------------------------------------------------------

    received_frame_count: int = 0
    sent_frame_count: int = 0

    # ------------------------------------------------------------------
    # Wiring helpers (called by SessionGateway)
    # ------------------------------------------------------------------

    def attach_client(self, client: ClientChannelProtocol) -> None:
        self.client = client
        self.client_status = ConnectionStatus.UP

    def attach_stream(self, stream: ProviderStreamProtocol) -> None:
        """
        Attach the connected provider stream.

        Called by SessionGateway once the stream is open and the
        configuration has been sent.
        """
        self.stream = stream
        self.provider_status = ConnectionStatus.UP

    def attach_runtime(self, runtime: Runtime) -> None:
        self.runtime = runtime

    # ------------------------------------------------------------------
    # Observability helpers (read-only)
    # ------------------------------------------------------------------

    def log_context(self) -> dict[str, Any]:
        """Return standard logging context for this session."""
        return {
            "session_id": self.session_id,
            "client_status": self.client_status.value,
            "provider_status": self.provider_status.value,
            "frames_received": self.received_frame_count,
            "frames_sent": self.sent_frame_count,
        }
