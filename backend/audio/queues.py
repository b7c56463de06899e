# backend/audio/queues.py
"""
Pre-configuration audio queue.

Frames that arrive before the provider accepts the stream configuration are
held here and flushed in arrival order once it does.

Rules:
- Bounded by frame count (payloads are opaque, so no duration math)
- On overflow the OLDEST frame is dropped; the newest audio always fits
- Drops are counted for observability
- Deterministic, synchronous behavior
"""

from __future__ import annotations
from collections import deque
from typing import Deque

from audio.frames import AudioFrame


class AudioFrameQueue:
    """
    Bounded FIFO queue for AudioFrame objects.

    enqueue() never rejects the new frame; when full it evicts the oldest.
    """

    def __init__(self, *, max_frames: int) -> None:
        if max_frames <= 0:
            raise ValueError("max_frames must be > 0")

        self._max_frames: int = max_frames
        self._frames: Deque[AudioFrame] = deque()
        self.dropped_oldest: int = 0

    # -------------------------
    # Core queue operations
    # -------------------------

    def enqueue(self, frame: AudioFrame) -> bool:
        """
        Append a frame.

        Returns:
            True if the frame fit without eviction
            False if the oldest frame was dropped to make room
        """
        evicted = False
        if len(self._frames) >= self._max_frames:
            self._frames.popleft()
            self.dropped_oldest += 1
            evicted = True

        self._frames.append(frame)
        return not evicted

    def drain(self) -> list[AudioFrame]:
        """Remove and return every queued frame, oldest first."""
        frames = list(self._frames)
        self._frames.clear()
        return frames

    def clear(self) -> None:
        """Drop all queued frames without counting them as drops."""
        self._frames.clear()

    # -------------------------
    # Introspection helpers
    # -------------------------

    def __len__(self) -> int:
        return len(self._frames)

    def snapshot(self) -> dict[str, int]:
        """Lightweight snapshot for logging."""
        return {
            "frames": len(self._frames),
            "max_frames": self._max_frames,
            "dropped_oldest": self.dropped_oldest,
        }
