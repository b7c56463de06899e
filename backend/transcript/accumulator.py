"""
Transcript accumulation.

Segment identity is composite: the provider id alone is not unique across
partial/final revisions, so segments are keyed by "<id>-<start>". When the
provider omits the start time the per-session arrival index stands in.

Accumulator model:
- finalized segments: ordered, append-only, upsert-by-id in place
- interim: a single value, replaced wholesale, cleared by every final
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


def _format_ts(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def segment_key(provider_id: Any, start: float | None, arrival_index: int) -> str:
    if start is None:
        return f"{provider_id}-#{arrival_index}"
    return f"{provider_id}-{_format_ts(start)}"


@dataclass(frozen=True)
class TranscriptSegment:
    id: str
    text: str
    is_final: bool
    speaker_id: int | None = None
    channel: int | None = None
    start: float | None = None
    end: float | None = None

    @classmethod
    def from_provider(
        cls,
        raw: Mapping[str, Any],
        *,
        arrival_index: int,
    ) -> TranscriptSegment:
        """
        Normalize one provider transcript entry.

        Provider shape:
            {id, transcript, final, speakerId,
             participant: {channel}, time: {start, end}}
        """
        timing = raw.get("time")
        if not isinstance(timing, Mapping):
            timing = {}
        participant = raw.get("participant")
        if not isinstance(participant, Mapping):
            participant = {}
        start = timing.get("start")
        if not isinstance(start, (int, float)):
            start = None

        return cls(
            id=segment_key(raw.get("id"), start, arrival_index),
            text=raw.get("transcript") or "",
            is_final=bool(raw.get("final")),
            speaker_id=raw.get("speakerId"),
            channel=participant.get("channel"),
            start=start,
            end=timing.get("end"),
        )

    @classmethod
    def from_wire(cls, raw: Mapping[str, Any]) -> TranscriptSegment:
        return cls(
            id=str(raw.get("id")),
            text=raw.get("text") or "",
            is_final=bool(raw.get("isFinal")),
            speaker_id=raw.get("speakerId"),
            channel=raw.get("channel"),
            start=raw.get("start"),
            end=raw.get("end"),
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "isFinal": self.is_final,
            "speakerId": self.speaker_id,
            "channel": self.channel,
            "start": self.start,
            "end": self.end,
        }


class TranscriptAccumulator:
    """Finalized segment list plus the current interim text."""

    def __init__(self) -> None:
        self._segments: list[TranscriptSegment] = []
        self._positions: dict[str, int] = {}
        self._interim: str = ""

    @property
    def segments(self) -> tuple[TranscriptSegment, ...]:
        return tuple(self._segments)

    @property
    def interim(self) -> str:
        return self._interim

    def apply_final(self, segment: TranscriptSegment) -> None:
        """Upsert a finalized segment by id and clear the interim value."""
        pos = self._positions.get(segment.id)
        if pos is None:
            self._positions[segment.id] = len(self._segments)
            self._segments.append(segment)
        else:
            self._segments[pos] = segment
        self._interim = ""

    def apply_interim(self, text: str) -> None:
        self._interim = text

    def apply(self, segment: TranscriptSegment) -> None:
        if segment.is_final:
            self.apply_final(segment)
        else:
            self.apply_interim(segment.text)

    def clear(self) -> None:
        self._segments.clear()
        self._positions.clear()
        self._interim = ""

    def text(self) -> str:
        """Finalized text joined by spaces (interim excluded)."""
        return " ".join(s.text for s in self._segments if s.text)
