"""
Corti /streams WebSocket adapter.

One adapter == one provider stream == one relay session.

Connection model:
- connect(): open the socket for an interaction and send the config message
- start_receiving(): start the receive task (after the runtime knows the
  stream is connected, so CONFIG_ACCEPTED can never overtake it)
- send_audio / send_flush / send_end: raise ProviderSendError on failure
- close(): idempotent; a close we initiated is not reported back

Event behavior:
- Every provider message is mapped to at most one relay event
- Events are awaited one by one in receive order (no fire-and-forget), so
  the relay sees provider messages in exactly the order they arrived
- Malformed or unknown frames are logged and skipped

Design constraints:
- Adapter must not call the reducer directly
- Adapter must not own relay state transitions
"""

from __future__ import annotations

import asyncio
import itertools
import json
import time
from typing import Any, Callable, Coroutine, Mapping
from urllib.parse import quote, urlencode

from websockets.asyncio.client import ClientConnection, connect as ws_connect
from websockets.exceptions import ConnectionClosed

from adapters.corti.errors import ProviderConnectError, ProviderSendError
from constants import (
    CORTI_STREAM_URL_TEMPLATE,
    PROVIDER_CONFIG_ERROR_TYPES,
    PROVIDER_FACT_ARRAY_KEYS,
    PROVIDER_WS_MAX_MESSAGE_BYTES,
)
from facts.reconcile import Fact
from observability.logger import log_event
from relay.events import (
    ConfigAccepted,
    ConfigRejected,
    Event,
    EventType,
    FactsReceived,
    Flushed,
    ProviderClosed,
    ProviderEnded,
    ProviderError,
    TranscriptReceived,
    UsageReported,
)
from transcript.accumulator import TranscriptSegment


EmitEvent = Callable[[Event], Coroutine[Any, Any, None]]


def _now_ms() -> int:
    return int(time.time() * 1000)


def build_stream_url(
    *,
    environment: str,
    tenant_name: str,
    interaction_id: str,
    token: str,
) -> str:
    base = CORTI_STREAM_URL_TEMPLATE.format(
        environment=environment, interaction_id=interaction_id
    )
    qs = urlencode(
        {"tenant-name": tenant_name, "token": f"Bearer {token}"},
        quote_via=quote,
    )
    return f"{base}?{qs}"


# -------------------------------------------------------------------------
# Provider message -> relay event
# -------------------------------------------------------------------------

def _fact_array(data: Mapping[str, Any]) -> list[Any] | None:
    for key in PROVIDER_FACT_ARRAY_KEYS:
        value = data.get(key)
        if value is not None:
            return value if isinstance(value, list) else None
    return None


def _error_message(data: Mapping[str, Any]) -> str:
    err = data.get("error")
    if isinstance(err, Mapping):
        return err.get("details") or err.get("title") or "Stream error"
    return "Stream error"


def to_relay_event(
    data: Mapping[str, Any],
    *,
    ts_ms: int,
    next_segment_index: Callable[[], int],
) -> Event | None:
    """
    Map one decoded provider message to a relay event.

    Returns None for messages the relay does not act on (unknown types,
    transcript/facts messages without a usable array).
    """
    msg_type = data.get("type")

    if msg_type == "CONFIG_ACCEPTED":
        return ConfigAccepted(event_type=EventType.CONFIG_ACCEPTED, ts_ms=ts_ms)

    if msg_type in PROVIDER_CONFIG_ERROR_TYPES:
        return ConfigRejected(
            event_type=EventType.CONFIG_REJECTED,
            ts_ms=ts_ms,
            kind=msg_type,
            reason=data.get("reason"),
        )

    if msg_type == "transcript":
        raw_segments = data.get("data")
        if not isinstance(raw_segments, list):
            return None
        segments = tuple(
            TranscriptSegment.from_provider(raw, arrival_index=next_segment_index())
            for raw in raw_segments
            if isinstance(raw, Mapping)
        )
        return TranscriptReceived(
            event_type=EventType.TRANSCRIPT, ts_ms=ts_ms, segments=segments
        )

    if msg_type == "facts":
        raw_facts = _fact_array(data)
        if raw_facts is None:
            return None
        facts = tuple(
            fact
            for fact in (Fact.from_mapping(raw) for raw in raw_facts if isinstance(raw, Mapping))
            if fact is not None
        )
        return FactsReceived(event_type=EventType.FACTS, ts_ms=ts_ms, facts=facts)

    if msg_type == "flushed":
        return Flushed(event_type=EventType.FLUSHED, ts_ms=ts_ms)

    if msg_type == "usage":
        credits = data.get("credits")
        if not isinstance(credits, (int, float)):
            return None
        return UsageReported(event_type=EventType.USAGE, ts_ms=ts_ms, credits=float(credits))

    if msg_type == "ENDED":
        return ProviderEnded(event_type=EventType.PROVIDER_ENDED, ts_ms=ts_ms)

    if msg_type == "error":
        return ProviderError(
            event_type=EventType.PROVIDER_ERROR,
            ts_ms=ts_ms,
            message=_error_message(data),
        )

    return None


# -------------------------------------------------------------------------
# Adapter
# -------------------------------------------------------------------------

class CortiStreamAdapter:
    """Live /streams connection for one interaction."""

    def __init__(
        self,
        *,
        url: str,
        configuration: dict[str, Any],
        emit_event: EmitEvent,
        session_id: str | None = None,
    ) -> None:
        self._url = url
        self._configuration = configuration
        self._emit = emit_event
        self._session_id = session_id

        self._ws: ClientConnection | None = None
        self._recv_task: asyncio.Task[None] | None = None
        self._closing = False
        self._segment_index = itertools.count()

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the socket and send the configuration message."""
        try:
            self._ws = await ws_connect(
                self._url,
                max_size=PROVIDER_WS_MAX_MESSAGE_BYTES,
            )
        except Exception as e:  # pylint: disable=broad-exception-caught
            raise ProviderConnectError(str(e) or type(e).__name__) from e

        try:
            await self._ws.send(json.dumps({
                "type": "config",
                "configuration": self._configuration,
            }))
        except ConnectionClosed as e:
            await self.close()
            raise ProviderConnectError(f"stream closed before configuration: {e}") from e

    def start_receiving(self) -> None:
        if self._ws is None or self._recv_task is not None:
            return
        self._recv_task = asyncio.create_task(self._recv_loop())

    async def close(self) -> None:
        if self._closing:
            return
        self._closing = True

        ws = self._ws
        if ws is not None:
            try:
                await ws.close()
            except Exception as e:  # pylint: disable=broad-exception-caught
                self._log("PROVIDER_CLOSE_FAILED", error=repr(e))

        rt = self._recv_task
        if rt is not None and not rt.done() and rt is not asyncio.current_task():
            rt.cancel()
            try:
                await rt
            except asyncio.CancelledError:
                pass

    # -------------------------------------------------------------------------
    # Outbound
    # -------------------------------------------------------------------------

    async def send_audio(self, payload: bytes) -> None:
        await self._send(payload)

    async def send_flush(self) -> None:
        await self._send(json.dumps({"type": "flush"}))

    async def send_end(self) -> None:
        await self._send(json.dumps({"type": "end"}))

    async def _send(self, frame: bytes | str) -> None:
        ws = self._ws
        if ws is None or self._closing:
            raise ProviderSendError("stream is not open")
        try:
            await ws.send(frame)
        except ConnectionClosed as e:
            raise ProviderSendError(f"stream closed: {e}") from e

    # -------------------------------------------------------------------------
    # Background loop
    # -------------------------------------------------------------------------

    async def _recv_loop(self) -> None:
        ws = self._ws
        if ws is None:
            return

        reason: str | None = None
        failed = False

        try:
            async for raw in ws:
                if isinstance(raw, bytes):
                    self._log("PROVIDER_BINARY_FRAME_SKIPPED", bytes=len(raw))
                    continue

                try:
                    data = json.loads(raw)
                except json.JSONDecodeError as e:
                    self._log("PROVIDER_FRAME_DECODE_ERROR", error=str(e), preview=raw[:100])
                    continue

                if not isinstance(data, dict):
                    self._log("PROVIDER_FRAME_NOT_OBJECT", preview=raw[:100])
                    continue

                try:
                    event = to_relay_event(
                        data,
                        ts_ms=_now_ms(),
                        next_segment_index=self._segment_index.__next__,
                    )
                except (AttributeError, TypeError, ValueError) as e:
                    self._log(
                        "PROVIDER_FRAME_MALFORMED",
                        msg_type=data.get("type"),
                        error=repr(e),
                        preview=raw[:100],
                    )
                    continue

                if event is None:
                    self._log("PROVIDER_MESSAGE_UNHANDLED", msg_type=data.get("type"))
                    continue

                await self._emit(event)

        except asyncio.CancelledError:
            return
        except ConnectionClosed as e:
            failed = True
            reason = str(e)
        except Exception as e:  # pylint: disable=broad-exception-caught
            failed = True
            reason = repr(e)
        else:
            reason = ws.close_reason or None

        if self._closing:
            return

        self._log("PROVIDER_STREAM_CLOSED", reason=reason, failed=failed)
        await self._emit(
            ProviderClosed(
                event_type=EventType.PROVIDER_CLOSED,
                ts_ms=_now_ms(),
                reason=reason,
                failed=failed,
            )
        )

    def _log(self, event_type: str, **details: Any) -> None:
        log_event({
            "ts_ms": _now_ms(),
            "event_type": event_type,
            "session_id": self._session_id,
            **details,
        })
