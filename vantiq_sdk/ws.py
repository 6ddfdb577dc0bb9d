"""WebSocket helpers for the Vantiq event socket."""

from __future__ import annotations

import asyncio
from urllib.parse import urlsplit, urlunsplit

import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import (
    InvalidHandshake,
    InvalidURI,
    WebSocketException,
)

from .errors import (
    VantiqConnectionError,
    VantiqHandshakeError,
    VantiqProtocolError,
    VantiqTimeout,
)

_SOCKET_SCHEMES = {"http": "ws", "https": "wss"}


def websocket_url(server: str, api_version: int) -> str:
    """Derive the event socket URL from the HTTP server URL.

    ``https://host:8443`` becomes ``wss://host:8443/api/v1/wsock/websocket``.
    """
    parts = urlsplit(server)
    scheme = _SOCKET_SCHEMES.get(parts.scheme)
    if scheme is None:
        raise VantiqProtocolError(
            f"WebSocket protocol for '{parts.scheme}:' not supported"
        )
    path = f"{parts.path.rstrip('/')}/api/v{api_version}/wsock/websocket"
    return urlunsplit((scheme, parts.netloc, path, "", ""))


async def connect_websocket(
    url: str,
    *,
    ping_interval: int | None = 20,
    timeout: float = 15.0,
) -> ClientConnection:
    """Connect to a WebSocket endpoint.

    Args:
        url: Full ws:// or wss:// URL
        ping_interval: Interval for ping frames
        timeout: Connection timeout
    """
    try:
        return await asyncio.wait_for(
            websockets.connect(
                url,
                ping_interval=ping_interval,
                close_timeout=5,
                max_size=None,
            ),
            timeout=timeout,
        )
    except TimeoutError as err:
        raise VantiqTimeout("WebSocket connection timed out") from err
    except (InvalidHandshake, InvalidURI) as err:
        raise VantiqHandshakeError("WebSocket handshake failed") from err
    except (OSError, WebSocketException) as err:
        raise VantiqConnectionError("WebSocket connection failed") from err
