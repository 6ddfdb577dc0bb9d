"""Client error types for Vantiq server interactions."""

from __future__ import annotations

from typing import Any


class VantiqClientError(Exception):
    """Base error for Vantiq client failures."""


class VantiqNotAuthenticated(VantiqClientError):
    """Operation attempted before the session holds an access token."""


class VantiqAuthenticationFailed(VantiqClientError):
    """Server did not issue an access token for the supplied credentials."""


class VantiqTimeout(VantiqClientError):
    """Timeout while communicating with the server."""


class VantiqConnectionError(VantiqClientError):
    """Network connection to the server failed."""


class VantiqProtocolError(VantiqClientError):
    """Unsupported URL scheme or malformed/rejected protocol exchange."""


class VantiqHandshakeError(VantiqProtocolError):
    """WebSocket upgrade handshake failed."""


class VantiqValidationError(VantiqClientError, ValueError):
    """Caller supplied arguments the API does not accept."""


class VantiqResponseError(VantiqClientError):
    """HTTP response error from the server (status >= 400)."""

    def __init__(self, status: int, body: Any = None, message: str | None = None) -> None:
        super().__init__(message or f"Request failed with status {status}")
        self.status = status
        self.body = body

    @property
    def status_code(self) -> int:
        """Alias matching the wire-level field name."""
        return self.status
