"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware and logging
- Initialize shared resources (provider client, once per process)
- Register routes
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from adapters.corti.rest import CortiClient
from config import AppConfig
from observability import logger
from server.routes import register_routes


def create_app(
    config: AppConfig | None = None,
    provider: Any | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with a fake provider and explicit configuration
    - Environment-specific setup
    - ASGI server compatibility

    Raises:
        RuntimeError if no provider is injected and provider credentials
        are missing from the environment.
    """
    config = config or AppConfig.load_from_env()
    logger.configure(enable_json_logs=config.enable_json_logs, log_level=config.log_level)

    if provider is None:
        missing = config.missing_provider_vars()
        if missing:
            raise RuntimeError(f"Missing environment variables: {', '.join(missing)}")
        provider = CortiClient.from_config(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        aclose = getattr(app.state.provider, "aclose", None)
        if aclose is not None:
            await aclose()

    app = FastAPI(title="Ambient Documentation Relay", lifespan=lifespan)

    app.state.config = config
    app.state.provider = provider

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    register_routes(app)

    return app
