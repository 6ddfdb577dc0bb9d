"""Authenticated session with a Vantiq server.

The session owns the access token, issues REST requests through the HTTP
transport and owns at most one event subscriber.

Usage:
    async with VantiqSession("https://dev.vantiq.com") as session:
        await session.authenticate("joe", "secret")
        result = await session.get("/resources/types")
        await session.subscribe("/topics/alarms", {}, on_alarm)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from .config import DEFAULT_API_VERSION, VantiqConfig
from .errors import (
    VantiqAuthenticationFailed,
    VantiqConnectionError,
    VantiqNotAuthenticated,
)
from .http import VantiqHttpClient, VantiqResponse
from .multipart import build_upload_body
from .protocol import build_acknowledge_params
from .subscriber import EventCallback, VantiqSubscriber

_LOGGER = logging.getLogger(__name__)

AUTHENTICATE_PATH = "/authenticate"


class VantiqSession:
    """Authentication state, REST verbs and the event subscriber."""

    def __init__(
        self,
        server: str,
        api_version: int = DEFAULT_API_VERSION,
        *,
        http_session: aiohttp.ClientSession | None = None,
        request_timeout: float | None = None,
        ws_timeout: float = 15.0,
        ws_ping_interval: int | None = 20,
        handshake_timeout: float = 15.0,
    ) -> None:
        """Initialize session.

        Args:
            server: Base server URL
            api_version: REST API version
            http_session: Shared aiohttp session; one is created (and owned)
                on first use when omitted
            request_timeout: Total HTTP request timeout (seconds)
            ws_timeout: WebSocket open timeout (seconds)
            ws_ping_interval: WebSocket keepalive interval (seconds)
            handshake_timeout: Wait for the validate response (seconds)
        """
        self.server = server.rstrip("/")
        self.api_version = api_version

        self._access_token: str | None = None

        self._http_session = http_session
        self._owns_http_session = http_session is None
        self._request_timeout = request_timeout
        self._http: VantiqHttpClient | None = None

        self._ws_timeout = ws_timeout
        self._ws_ping_interval = ws_ping_interval
        self._handshake_timeout = handshake_timeout
        self._subscriber: VantiqSubscriber | None = None
        self._subscriber_lock = asyncio.Lock()

    @classmethod
    def from_config(
        cls, config: VantiqConfig, *, http_session: aiohttp.ClientSession | None = None
    ) -> VantiqSession:
        session = cls(
            config.server,
            config.api_version,
            http_session=http_session,
            request_timeout=config.request_timeout,
            ws_timeout=config.ws_timeout,
            ws_ping_interval=config.ws_ping_interval,
            handshake_timeout=config.handshake_timeout,
        )
        session.access_token = config.access_token
        return session

    async def __aenter__(self) -> VantiqSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Authentication state
    # -------------------------------------------------------------------------

    @property
    def access_token(self) -> str | None:
        return self._access_token

    @access_token.setter
    def access_token(self, token: str | None) -> None:
        """Set a token directly, e.g. a long-lived token issued elsewhere."""
        self._access_token = token or None

    @property
    def authenticated(self) -> bool:
        return self._access_token is not None

    @property
    def subscriber(self) -> VantiqSubscriber | None:
        return self._subscriber

    async def authenticate(self, username: str, password: str) -> VantiqResponse:
        """Exchange username/password for an access token.

        Any previous token is discarded first, so a failed attempt always
        leaves the session unauthenticated.

        Raises:
            VantiqAuthenticationFailed: Response carried no access token
            VantiqResponseError: Server rejected the request (e.g. 401)
        """
        self._access_token = None
        resp = await self._transport().request(
            "GET", AUTHENTICATE_PATH, credentials=(username, password)
        )

        token = resp.body.get("accessToken") if isinstance(resp.body, dict) else None
        if not token:
            _LOGGER.warning("[%s] Authentication failed for %s", self.server, username)
            raise VantiqAuthenticationFailed("Authentication failed")

        self._access_token = token
        _LOGGER.info("[%s] Authenticated as %s", self.server, username)
        return resp

    # -------------------------------------------------------------------------
    # REST verbs
    # -------------------------------------------------------------------------

    def full_path(self, path: str) -> str:
        return f"/api/v{self.api_version}{path}"

    async def get(self, path: str) -> VantiqResponse:
        return await self._request("GET", path)

    async def post(self, path: str, body: Any = None) -> VantiqResponse:
        return await self._request("POST", path, body)

    async def put(self, path: str, body: Any = None) -> VantiqResponse:
        return await self._request("PUT", path, body)

    async def delete(self, path: str) -> VantiqResponse:
        return await self._request("DELETE", path)

    async def upload(
        self,
        file_name: str,
        content_type: str,
        document_path: str,
        resource_path: str,
    ) -> VantiqResponse:
        """Stream a local file to ``resource_path`` as multipart/form-data."""
        self._require_token()
        with open(file_name, "rb") as fileobj:
            body = build_upload_body(fileobj, content_type, document_path)
            return await self._request("POST", resource_path, body)

    async def download(self, path: str) -> VantiqResponse:
        """Stream a server-absolute path such as a document's content URL.

        The caller must release the returned response.
        """
        return await self._request("GET", path, stream_response=True, api_path=False)

    # -------------------------------------------------------------------------
    # Event subscriptions
    # -------------------------------------------------------------------------

    async def subscribe(
        self,
        path: str,
        parameters: dict[str, Any] | None,
        callback: EventCallback,
    ) -> None:
        """Subscribe ``callback`` to events on ``path``.

        The first call opens and validates the event socket; later calls
        reuse it.
        """
        self._require_token()
        subscriber = await self._connected_subscriber()
        await subscriber.subscribe(path, parameters, callback)

    async def unsubscribe_all(self) -> None:
        """Close the event socket and forget every local subscription.

        Persistent subscriptions are intentionally left on the server.
        """
        subscriber, self._subscriber = self._subscriber, None
        if subscriber is not None:
            await subscriber.close()

    async def acknowledge(
        self,
        request_id: str,
        subscription_name: str,
        sequence_id: Any,
        partition_id: Any,
    ) -> None:
        """Acknowledge a reliably delivered event."""
        if self._subscriber is None or not self._subscriber.is_connected:
            raise VantiqConnectionError("No active event subscription connection")
        await self._subscriber.acknowledge(
            build_acknowledge_params(
                subscription_name, request_id, sequence_id, partition_id
            )
        )

    async def close(self) -> None:
        """Close the subscriber and any HTTP session this object created."""
        await self.unsubscribe_all()
        if self._owns_http_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
            self._http = None

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _require_token(self) -> str:
        if self._access_token is None:
            raise VantiqNotAuthenticated("Not authenticated")
        return self._access_token

    def _transport(self) -> VantiqHttpClient:
        if self._http is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._http = VantiqHttpClient(
                self._http_session, self.server, timeout=self._request_timeout
            )
        return self._http

    async def _request(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        stream_response: bool = False,
        api_path: bool = True,
    ) -> VantiqResponse:
        token = self._require_token()
        return await self._transport().request(
            method,
            self.full_path(path) if api_path else path,
            body=body,
            token=token,
            stream_response=stream_response,
        )

    async def _connected_subscriber(self) -> VantiqSubscriber:
        async with self._subscriber_lock:
            if self._subscriber is not None and self._subscriber.is_connected:
                return self._subscriber

            if self._subscriber is not None:
                await self._subscriber.close()
                self._subscriber = None

            subscriber = VantiqSubscriber(
                self,
                ping_interval=self._ws_ping_interval,
                timeout=self._ws_timeout,
                handshake_timeout=self._handshake_timeout,
            )
            await subscriber.connect()
            self._subscriber = subscriber
            return subscriber
