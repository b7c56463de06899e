"""
Behavioral constants for the ambient relay.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Deployment-specific values (credentials, ports) live in config.py instead.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# Client WebSocket
# =============================================================================

WS_AMBIENT_PATH: Final[str] = "/ws/ambient"

# A client frame whose first byte is "{" is tried as a JSON control message.
JSON_CONTROL_FIRST_BYTE: Final[int] = ord("{")

CLIENT_CLOSE_NORMAL: Final[int] = 1000
CLIENT_CLOSE_INTERNAL_ERROR: Final[int] = 1011

# =============================================================================
# Audio queue (pre-CONFIG_ACCEPTED buffering)
# =============================================================================

# ~10 minutes of 500ms MediaRecorder chunks.
AUDIO_QUEUE_MAX_FRAMES_DEFAULT: Final[int] = 1200

# Emit a queue-depth log line every N queued frames.
AUDIO_QUEUE_LOG_EVERY: Final[int] = 10

# =============================================================================
# Session deadlines (0 disables the deadline)
# =============================================================================

CONFIG_ACCEPT_TIMEOUT_S_DEFAULT: Final[float] = 15.0
END_TIMEOUT_S_DEFAULT: Final[float] = 30.0

TIMER_CONFIG_ACCEPT: Final[str] = "config_accept_timeout"
TIMER_END_CONFIRM: Final[str] = "end_confirm_timeout"

# =============================================================================
# Provider stream protocol
# =============================================================================

PROVIDER_CONFIG_ERROR_TYPES: Final[frozenset[str]] = frozenset({
    "CONFIG_DENIED",
    "CONFIG_MISSING",
    "CONFIG_NOT_PROVIDED",
    "CONFIG_ALREADY_RECEIVED",
    "CONFIG_TIMEOUT",
})

# Keys the provider has used for the fact array in a "facts" message, in
# lookup order.
PROVIDER_FACT_ARRAY_KEYS: Final[tuple[str, ...]] = ("fact", "facts", "data")

PROVIDER_WS_MAX_MESSAGE_BYTES: Final[int] = 2**22

LANGUAGE_DEFAULT: Final[str] = "en"
PARTICIPANT_ROLE_DEFAULT: Final[str] = "multiple"
STREAM_MODE: Final[str] = "facts"

# =============================================================================
# Interactions
# =============================================================================

ENCOUNTER_IDENTIFIER_PREFIX: Final[str] = "ambient-"
ENCOUNTER_STATUS: Final[str] = "in-progress"
ENCOUNTER_TYPE: Final[str] = "consultation"
ENCOUNTER_TITLE: Final[str] = "Ambient Documentation Session"

# =============================================================================
# Corti endpoints
# =============================================================================

CORTI_AUTH_URL_TEMPLATE: Final[str] = (
    "https://auth.{environment}.corti.app/realms/{tenant}/protocol/openid-connect/token"
)
CORTI_API_URL_TEMPLATE: Final[str] = "https://api.{environment}.corti.app/v2"
CORTI_STREAM_URL_TEMPLATE: Final[str] = (
    "wss://api.{environment}.corti.app/audio-bridge/v2/interactions/{interaction_id}/streams"
)

# Refresh the access token this many seconds before it expires.
TOKEN_EXPIRY_SKEW_S: Final[float] = 30.0
HTTP_TIMEOUT_S: Final[float] = 60.0

# =============================================================================
# Documents
# =============================================================================

DEFAULT_DOCUMENT_NAME: Final[str] = "Generated Document"
DEFAULT_TEMPLATE_KEY: Final[str] = "corti-soap"
DEFAULT_FACT_GROUP: Final[str] = "other"
DEFAULT_FACT_SOURCE: Final[str] = "core"
