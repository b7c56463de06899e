"""
Route registration for the ambient relay API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire gateway to WebSocket lifecycle
- Pass provider REST results through verbatim
- Pull dependencies from app.state
"""

from __future__ import annotations

import time
from typing import Any, Awaitable

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from adapters.corti.errors import ProviderError, ProviderHTTPError
from constants import WS_AMBIENT_PATH
from documents.models import DocumentRequestError, validate_document_request
from observability.logger import log_event
from session.client_channel import WebSocketClientChannel
from session.gateway import SessionGateway


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


async def _passthrough(operation: str, call: Awaitable[Any]) -> Any:
    """
    Await a provider call; map provider failures to JSON error responses.

    Status is the provider's HTTP status, 500 when there was none.
    """
    try:
        return await call
    except ProviderError as e:
        status = e.status_code if isinstance(e, ProviderHTTPError) else None
        detail = e.detail if isinstance(e, ProviderHTTPError) else str(e)
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "PROVIDER_REST_FAILED",
            "operation": operation,
            "status_code": status,
            "error": str(e),
        })
        return JSONResponse(
            status_code=status or 500,
            content={"error": f"Failed to {operation}", "details": detail},
        )


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    @app.get("/api/health")
    async def health() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        config = app.state.config
        return {
            "status": "healthy",
            "environment": config.environment,
            "tenantName": config.tenant_name,
        }

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    @app.get("/api/templates")
    async def list_templates() -> Any: # pyright: ignore[reportUnusedFunction]
        return await _passthrough(
            "fetch templates", app.state.provider.list_templates()
        )

    @app.get("/api/templates/{key}")
    async def get_template(key: str) -> Any: # pyright: ignore[reportUnusedFunction]
        return await _passthrough(
            "fetch template", app.state.provider.get_template(key)
        )

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    @app.get("/api/interactions/{interaction_id}/documents")
    async def list_documents(interaction_id: str) -> Any: # pyright: ignore[reportUnusedFunction]
        return await _passthrough(
            "list documents", app.state.provider.list_documents(interaction_id)
        )

    @app.post("/api/interactions/{interaction_id}/documents")
    async def create_document(interaction_id: str, request: Request) -> Any: # pyright: ignore[reportUnusedFunction]
        try:
            body = await request.json()
        except ValueError:
            body = None

        try:
            doc_request = validate_document_request(body)
        except DocumentRequestError as e:
            return JSONResponse(status_code=400, content={"error": str(e)})

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "DOCUMENT_CREATE_REQUESTED",
            "interaction_id": interaction_id,
            "template_key": doc_request["templateKey"],
            "output_language": doc_request["outputLanguage"],
            "context_type": doc_request["context"][0].get("type")
            if isinstance(doc_request["context"][0], dict) else None,
        })

        return await _passthrough(
            "create document",
            app.state.provider.create_document(interaction_id, doc_request),
        )

    @app.get("/api/interactions/{interaction_id}/documents/{document_id}")
    async def get_document(interaction_id: str, document_id: str) -> Any: # pyright: ignore[reportUnusedFunction]
        return await _passthrough(
            "fetch document",
            app.state.provider.get_document(interaction_id, document_id),
        )

    @app.delete("/api/interactions/{interaction_id}/documents/{document_id}")
    async def delete_document(interaction_id: str, document_id: str) -> Any: # pyright: ignore[reportUnusedFunction]
        result = await _passthrough(
            "delete document",
            app.state.provider.delete_document(interaction_id, document_id),
        )
        if isinstance(result, JSONResponse):
            return result
        return {"success": True}

    # ------------------------------------------------------------------
    # Ambient relay
    # ------------------------------------------------------------------

    @app.websocket(WS_AMBIENT_PATH)
    async def ambient_endpoint(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        """One connection = one relay session = one gateway."""
        await ws.accept()

        gateway = SessionGateway(
            config=app.state.config,
            provider=app.state.provider,
        )

        try:
            channel = WebSocketClientChannel(ws, session_id="pending")
            await gateway.on_ws_connect(channel)
            assert gateway.session is not None
            channel.session_id = gateway.session.session_id

            while True:
                msg = await ws.receive()

                if msg["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(code=msg.get("code", 1000))

                if msg.get("text") is not None:
                    await gateway.on_json_message(msg["text"])
                elif msg.get("bytes") is not None:
                    await gateway.on_binary_message(msg["bytes"])

        except WebSocketDisconnect:
            await gateway.on_ws_disconnect(reason="client_disconnect")

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "WS_FATAL_ERROR",
                "session_id": gateway.session.session_id if gateway.session else None,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            await gateway.on_ws_disconnect(reason="server_error")
