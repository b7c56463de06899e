"""
Streaming client for the ambient relay.

Plays the browser's role from Python: connects to the relay WebSocket,
sends pre-recorded audio in fixed-size chunks once the provider has
accepted the configuration, asks for a graceful end and collects every
relay message into a ClientSessionState. Afterwards it can request a
document for the interaction through the REST API.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Mapping

import httpx
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed

from client.session_state import ClientSessionState
from constants import DEFAULT_DOCUMENT_NAME, DEFAULT_TEMPLATE_KEY, WS_AMBIENT_PATH
from documents.models import GeneratedDocument
from protocol.messages import ClientMessageType, ControlType


OnMessage = Callable[[Mapping[str, Any], ClientSessionState], None]


def chunk_bytes(data: bytes, size: int) -> list[bytes]:
    if size <= 0:
        raise ValueError("chunk size must be > 0")
    return [data[i:i + size] for i in range(0, len(data), size)]


class AmbientStreamClient:
    """One recording session against a running relay."""

    def __init__(
        self,
        *,
        base_url: str,
        chunk_size: int = 16_000,
        chunk_interval_s: float = 0.5,
        on_message: OnMessage | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._chunk_size = chunk_size
        self._chunk_interval_s = chunk_interval_s
        self._on_message = on_message
        self.state = ClientSessionState()

    @property
    def ws_url(self) -> str:
        if self._base_url.startswith("https://"):
            return "wss://" + self._base_url[len("https://"):] + WS_AMBIENT_PATH
        if self._base_url.startswith("http://"):
            return "ws://" + self._base_url[len("http://"):] + WS_AMBIENT_PATH
        return self._base_url + WS_AMBIENT_PATH

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def stream_audio(self, audio: bytes) -> ClientSessionState:
        """
        Run one full session: wait for CONFIG_ACCEPTED, send every chunk,
        send "end", return once the relay reports "ended" or closes.
        """
        state = self.state
        # Each call is a new interaction; facts must not leak across them
        state.reset()
        state.begin()
        accepted = asyncio.Event()

        async with ws_connect(self.ws_url) as ws:

            async def _send_audio() -> None:
                await accepted.wait()
                for chunk in chunk_bytes(audio, self._chunk_size):
                    await ws.send(chunk)
                    if self._chunk_interval_s > 0:
                        await asyncio.sleep(self._chunk_interval_s)
                state.request_end()
                await ws.send(json.dumps({"type": ControlType.END.value}))

            sender = asyncio.create_task(_send_audio())
            try:
                async for raw in ws:
                    if isinstance(raw, bytes):
                        continue
                    msg = json.loads(raw)
                    state.apply(msg)
                    if self._on_message is not None:
                        self._on_message(msg, state)

                    msg_type = msg.get("type")
                    if msg_type == ClientMessageType.CONFIG_ACCEPTED.value:
                        accepted.set()
                    elif msg_type == ClientMessageType.ENDED.value:
                        break
                    elif msg_type == ClientMessageType.ERROR.value and not accepted.is_set():
                        # Session never started; the relay keeps the socket open
                        break
            except ConnectionClosed as e:
                state.connection_lost(str(e))
            finally:
                sender.cancel()
                try:
                    await sender
                except (asyncio.CancelledError, ConnectionClosed):
                    pass

        if state.is_streaming:
            state.connection_lost("relay closed the connection")
        return state

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def request_document(
        self,
        *,
        template_key: str = DEFAULT_TEMPLATE_KEY,
        output_language: str = "en",
        name: str = DEFAULT_DOCUMENT_NAME,
        http: httpx.AsyncClient | None = None,
    ) -> GeneratedDocument:
        """
        Generate a document from the collected facts.

        Raises:
            ValueError if the session has no interaction or no facts.
            httpx.HTTPStatusError if the relay rejects the request.
        """
        if self.state.interaction_id is None or not self.state.facts:
            raise ValueError("No interaction with facts to document")

        body = {
            "context": self.state.facts_context(),
            "templateKey": template_key,
            "outputLanguage": output_language,
            "name": name,
        }
        url = f"{self._base_url}/api/interactions/{self.state.interaction_id}/documents"

        if http is None:
            async with httpx.AsyncClient(timeout=120.0) as owned:
                resp = await owned.post(url, json=body)
        else:
            resp = await http.post(url, json=body)

        resp.raise_for_status()
        return GeneratedDocument.from_provider(resp.json())
