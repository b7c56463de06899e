"""
Provider (Corti) error hierarchy.

Every failure talking to the provider surfaces as a ProviderError subclass.
The session gateway catches them at the session boundary; REST routes turn
ProviderHTTPError into passthrough JSON responses.
"""

from __future__ import annotations

from typing import Any


class ProviderError(Exception):
    """Base class for provider failures."""


class ProviderAuthError(ProviderError):
    """Token request failed or returned no access token."""


class ProviderHTTPError(ProviderError):
    """
    REST call failed.

    status_code is the provider's HTTP status, or None when no response was
    received (DNS, connect, timeout). detail is the decoded error body when
    the provider sent JSON, else its text.
    """

    def __init__(self, status_code: int | None, detail: Any) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(
            f"HTTP {status_code}: {detail}" if status_code is not None else str(detail)
        )


class ProviderConnectError(ProviderError):
    """Stream WebSocket could not be opened or configured."""


class ProviderSendError(ProviderError):
    """A frame could not be written to an open stream."""
