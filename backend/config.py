"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No relay logic
- No protocol constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from constants import (
    AUDIO_QUEUE_MAX_FRAMES_DEFAULT,
    CONFIG_ACCEPT_TIMEOUT_S_DEFAULT,
    END_TIMEOUT_S_DEFAULT,
    LANGUAGE_DEFAULT,
)


REQUIRED_PROVIDER_VARS: tuple[str, ...] = (
    "CLIENT_ID",
    "CLIENT_SECRET",
    "TENANT_NAME",
    "ENVIRONMENT",
)

_DEFAULT_CORS_ORIGINS = "http://localhost:5173,http://127.0.0.1:5173"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the app factory, provider client and session gateway.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str
    port: int
    cors_origins: tuple[str, ...]

    # ------------------------------------------------------------------
    # Provider credentials (Corti)
    # ------------------------------------------------------------------

    client_id: str | None
    client_secret: str | None
    tenant_name: str | None
    environment: str | None

    # ------------------------------------------------------------------
    # Stream configuration
    # ------------------------------------------------------------------

    primary_language: str
    output_locale: str

    # ------------------------------------------------------------------
    # Relay limits
    # ------------------------------------------------------------------

    audio_queue_max_frames: int
    config_accept_timeout_s: float
    end_timeout_s: float

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool

    def missing_provider_vars(self) -> list[str]:
        """Names of required provider environment variables that are unset."""
        values = {
            "CLIENT_ID": self.client_id,
            "CLIENT_SECRET": self.client_secret,
            "TENANT_NAME": self.tenant_name,
            "ENVIRONMENT": self.environment,
        }
        return [name for name in REQUIRED_PROVIDER_VARS if not values[name]]

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Missing provider credentials are NOT an error here; the app factory
        decides (see missing_provider_vars()).

        Raises:
            ValueError if a numeric variable cannot be parsed.
        """
        origins = os.environ.get("CORS_ORIGINS", _DEFAULT_CORS_ORIGINS)

        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            port=_env_int("PORT", 5005),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),

            client_id=os.environ.get("CLIENT_ID"),
            client_secret=os.environ.get("CLIENT_SECRET"),
            tenant_name=os.environ.get("TENANT_NAME"),
            environment=os.environ.get("ENVIRONMENT"),

            primary_language=os.environ.get("PRIMARY_LANGUAGE", LANGUAGE_DEFAULT),
            output_locale=os.environ.get("OUTPUT_LOCALE", LANGUAGE_DEFAULT),

            audio_queue_max_frames=_env_int(
                "AUDIO_QUEUE_MAX_FRAMES", AUDIO_QUEUE_MAX_FRAMES_DEFAULT
            ),
            config_accept_timeout_s=_env_float(
                "CONFIG_ACCEPT_TIMEOUT_S", CONFIG_ACCEPT_TIMEOUT_S_DEFAULT
            ),
            end_timeout_s=_env_float("END_TIMEOUT_S", END_TIMEOUT_S_DEFAULT),

            enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1") == "1",
        )
