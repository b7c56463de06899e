"""
Client-side mirror of one relay session.

Reduces the relay's server -> client messages into renderable state, the
same way the browser UI does. Used by the streaming CLI and by tests to
exercise the protocol end to end.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping

from documents.models import facts_context
from facts.reconcile import Fact, group_facts, merge_facts
from protocol.messages import ClientMessageType
from transcript.accumulator import TranscriptAccumulator, TranscriptSegment


class ClientStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


def format_duration(seconds: float) -> str:
    """mm:ss, minutes unbounded."""
    total = int(seconds)
    return f"{total // 60:02d}:{total % 60:02d}"


@dataclass
class ClientSessionState:
    """Everything the UI renders for one recording."""

    status: ClientStatus = ClientStatus.DISCONNECTED
    interaction_id: str | None = None
    transcript: TranscriptAccumulator = field(default_factory=TranscriptAccumulator)
    facts: tuple[Fact, ...] = ()
    credits: float | None = None
    error: str = ""
    is_streaming: bool = False
    is_ending: bool = False
    has_recorded_once: bool = False

    started_at: float | None = None
    stopped_at: float | None = None
    clock: Callable[[], float] = time.monotonic

    # ------------------------------------------------------------------
    # Local actions
    # ------------------------------------------------------------------

    def begin(self) -> None:
        """User pressed record: reset per-recording fields, start connecting."""
        self.error = ""
        self.status = ClientStatus.CONNECTING
        self.started_at = None
        self.stopped_at = None

    def reset(self) -> None:
        """User pressed reset: forget the previous recording entirely."""
        self.transcript.clear()
        self.facts = ()
        self.credits = None
        self.error = ""
        self.interaction_id = None
        self.status = ClientStatus.DISCONNECTED
        self.is_streaming = False
        self.is_ending = False
        self.has_recorded_once = False
        self.started_at = None
        self.stopped_at = None

    def request_end(self) -> None:
        """User pressed stop: an "end" is on its way to the relay."""
        if self.is_streaming:
            self.is_ending = True
        self._stop_clock()

    def connection_lost(self, reason: str = "") -> None:
        if self.is_streaming or self.status is ClientStatus.CONNECTING:
            self.error = self.error or reason
        self.is_streaming = False
        self.is_ending = False
        if self.status is not ClientStatus.ERROR:
            self.status = ClientStatus.DISCONNECTED
        self._stop_clock()

    # ------------------------------------------------------------------
    # Relay messages
    # ------------------------------------------------------------------

    def apply(self, msg: Mapping[str, Any]) -> None:
        """Fold one relay message into the state. Unknown types are ignored."""
        msg_type = msg.get("type")

        if msg_type == ClientMessageType.SESSION_STARTED.value:
            self.interaction_id = msg.get("interactionId")

        elif msg_type == ClientMessageType.CONFIG_ACCEPTED.value:
            self.status = ClientStatus.CONNECTED
            self.is_streaming = True
            self.has_recorded_once = True
            self.started_at = self.clock()
            self.stopped_at = None

        elif msg_type == ClientMessageType.TRANSCRIPT.value:
            data = msg.get("data")
            if isinstance(data, Mapping):
                self.transcript.apply(TranscriptSegment.from_wire(data))

        elif msg_type == ClientMessageType.FACTS.value:
            raw = msg.get("facts")
            if isinstance(raw, list):
                batch = [
                    f for f in (Fact.from_mapping(r) for r in raw if isinstance(r, Mapping))
                    if f is not None
                ]
                self.facts = merge_facts(self.facts, batch)

        elif msg_type == ClientMessageType.USAGE.value:
            credits = msg.get("credits")
            if isinstance(credits, (int, float)):
                self.credits = (self.credits or 0.0) + credits

        elif msg_type == ClientMessageType.ERROR.value:
            self.error = msg.get("message") or "Stream error occurred"

        elif msg_type == ClientMessageType.ENDED.value:
            self.is_streaming = False
            self.is_ending = False
            self.status = ClientStatus.DISCONNECTED
            self._stop_clock()

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def grouped_facts(self) -> dict[str, list[Fact]]:
        return group_facts(self.facts)

    def facts_context(self) -> list[dict[str, Any]]:
        """Context for a document request built from the visible facts."""
        return facts_context(self.facts)

    @property
    def can_generate_document(self) -> bool:
        return (
            self.interaction_id is not None
            and bool(self.facts)
            and not self.is_streaming
        )

    def elapsed_s(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.stopped_at if self.stopped_at is not None else self.clock()
        return max(0.0, end - self.started_at)

    def formatted_duration(self) -> str:
        return format_duration(self.elapsed_s())

    def _stop_clock(self) -> None:
        if self.started_at is not None and self.stopped_at is None:
            self.stopped_at = self.clock()
