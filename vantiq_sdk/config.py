"""Connection settings for the Vantiq client."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from .errors import VantiqValidationError

DEFAULT_API_VERSION = 1


@dataclass(frozen=True, slots=True)
class VantiqConfig:
    """Connection settings.

    Attributes:
        server: Base server URL, e.g. ``https://dev.vantiq.com``
        api_version: REST API version used in ``/api/v<version>`` paths
        access_token: Long-lived token used instead of username/password
        username: Username for ``authenticate``
        password: Password for ``authenticate``
        request_timeout: Total HTTP request timeout in seconds (None = unbounded)
        ws_timeout: WebSocket open timeout in seconds
        ws_ping_interval: WebSocket keepalive ping interval in seconds
        handshake_timeout: Time allowed for the validate response in seconds
    """

    server: str
    api_version: int = DEFAULT_API_VERSION
    access_token: str | None = None
    username: str | None = None
    password: str | None = None
    request_timeout: float | None = None
    ws_timeout: float = 15.0
    ws_ping_interval: int | None = 20
    handshake_timeout: float = 15.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> VantiqConfig:
        """Build a config from ``VANTIQ_*`` environment variables."""
        env = os.environ if environ is None else environ

        server = env.get("VANTIQ_SERVER")
        if not server:
            raise VantiqValidationError("VANTIQ_SERVER is not set")

        timeout = env.get("VANTIQ_REQUEST_TIMEOUT")
        return cls(
            server=server.rstrip("/"),
            api_version=_parse_number(
                env.get("VANTIQ_API_VERSION"), int, "VANTIQ_API_VERSION"
            )
            or DEFAULT_API_VERSION,
            access_token=env.get("VANTIQ_TOKEN") or None,
            username=env.get("VANTIQ_USERNAME") or None,
            password=env.get("VANTIQ_PASSWORD") or None,
            request_timeout=_parse_number(timeout, float, "VANTIQ_REQUEST_TIMEOUT"),
        )


def _parse_number(value: str | None, kind: type, name: str) -> int | float | None:
    if value is None or value == "":
        return None
    try:
        return kind(value)
    except ValueError as err:
        raise VantiqValidationError(f"{name} must be a number, got {value!r}") from err
