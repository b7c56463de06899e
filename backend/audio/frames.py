"""
Audio frame primitive.

Pure data container only.
No behavior, no queues, no timing logic.
"""

from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True)
class AudioFrame:
    """
    One browser audio chunk on its way to the provider.

    sequence_num:
        Arrival order within the session, starting at 1. Diagnostic only.

    payload:
        Opaque encoded audio (e.g. a webm/opus MediaRecorder chunk).
        The relay never inspects it.

    ts_ms:
        Wall-clock receive time in milliseconds. Observability only.
    """
    sequence_num: int
    payload: bytes
    ts_ms: int
