"""
Browser WebSocket channel.

Wraps the server-side WebSocket so the runtime can send and close without
knowing about the transport. Sends after the browser has gone away are
logged and dropped, never raised.
"""

from __future__ import annotations

import time
from typing import Any

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from observability.logger import log_event


class WebSocketClientChannel:
    """Browser side of one relay session."""

    def __init__(self, ws: WebSocket, *, session_id: str) -> None:
        self._ws = ws
        self.session_id = session_id
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed or self._ws.application_state is WebSocketState.DISCONNECTED

    async def send_json(self, message: dict[str, Any]) -> None:
        if self.closed:
            return
        try:
            await self._ws.send_json(message)
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._closed = True
            log_event({
                "ts_ms": time.time_ns() // 1_000_000,
                "event_type": "CLIENT_SEND_FAILED",
                "session_id": self.session_id,
                "message_type": message.get("type"),
                "exception": type(e).__name__,
                "error": str(e),
            })

    async def close(self, code: int, reason: str = "") -> None:
        if self.closed:
            return
        self._closed = True
        try:
            await self._ws.close(code=code, reason=reason)
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": time.time_ns() // 1_000_000,
                "event_type": "CLIENT_CLOSE_FAILED",
                "session_id": self.session_id,
                "code": code,
                "error": str(e),
            })
