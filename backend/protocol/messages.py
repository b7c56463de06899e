"""
Browser-facing message protocol.

Server -> client (JSON text frames):
    session_started   {interactionId}
    CONFIG_ACCEPTED   {}
    error             {message}
    transcript        {data: TranscriptSegment}
    facts             {facts: Fact[]}
    flushed           {}
    usage             {credits}        incremental delta, client sums
    ended             {}

Client -> server:
    binary audio frames (opaque, codec negotiated out of band)
    {"type": "flush"} | {"type": "end"}

Usage example:

    frame = decode_client_frame(payload)
    if frame.control is not None:
        ...
    else:
        forward(frame.audio)
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from constants import JSON_CONTROL_FIRST_BYTE
from facts.reconcile import Fact
from transcript.accumulator import TranscriptSegment


class ClientMessageType(str, Enum):
    """Discriminants of server -> client messages."""

    SESSION_STARTED = "session_started"
    CONFIG_ACCEPTED = "CONFIG_ACCEPTED"
    ERROR = "error"
    TRANSCRIPT = "transcript"
    FACTS = "facts"
    FLUSHED = "flushed"
    USAGE = "usage"
    ENDED = "ended"


class ControlType(str, Enum):
    """Discriminants of client -> server control messages."""

    FLUSH = "flush"
    END = "end"


# -------------------------
# Server -> client builders
# -------------------------

def session_started(interaction_id: str) -> dict[str, Any]:
    return {"type": ClientMessageType.SESSION_STARTED.value, "interactionId": interaction_id}


def config_accepted() -> dict[str, Any]:
    return {"type": ClientMessageType.CONFIG_ACCEPTED.value}


def error(message: str) -> dict[str, Any]:
    return {"type": ClientMessageType.ERROR.value, "message": message}


def transcript(segment: TranscriptSegment) -> dict[str, Any]:
    return {"type": ClientMessageType.TRANSCRIPT.value, "data": segment.to_wire()}


def facts(batch: Iterable[Fact]) -> dict[str, Any]:
    return {"type": ClientMessageType.FACTS.value, "facts": [f.to_wire() for f in batch]}


def flushed() -> dict[str, Any]:
    return {"type": ClientMessageType.FLUSHED.value}


def usage(credits: float) -> dict[str, Any]:
    return {"type": ClientMessageType.USAGE.value, "credits": credits}


def ended() -> dict[str, Any]:
    return {"type": ClientMessageType.ENDED.value}


# -------------------------
# Client -> server decoding
# -------------------------

@dataclass(frozen=True)
class ClientFrame:
    """
    One inbound browser frame.

    Exactly one of audio / control is set. control is the decoded JSON
    object; its "type" may still be unknown to the relay.
    """
    audio: bytes | None = None
    control: dict[str, Any] | None = None

    @property
    def control_type(self) -> str | None:
        if self.control is None:
            return None
        value = self.control.get("type")
        return value if isinstance(value, str) else None


def decode_client_frame(payload: bytes | str) -> ClientFrame:
    """
    Classify a browser frame as control JSON or audio.

    Text and binary frames are treated alike: anything starting with "{"
    that parses as a JSON object is control; everything else (including
    "{"-prefixed bytes that fail to parse) is audio.
    """
    data = payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)

    if not data or data[0] != JSON_CONTROL_FIRST_BYTE:
        return ClientFrame(audio=data)

    try:
        decoded = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return ClientFrame(audio=data)

    if not isinstance(decoded, dict):
        return ClientFrame(audio=data)

    return ClientFrame(control=decoded)
