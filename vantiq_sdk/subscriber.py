"""Real-time event subscriber for the Vantiq event socket.

One subscriber owns one WebSocket and multiplexes any number of event
subscriptions over it. Each subscription is keyed by its path (for example
``/topics/alarms`` or ``/types/Order/insert``); the server echoes that path
back as the ``X-Request-Id`` header of every delivered event and the
subscriber uses it to look up the registered callback.

Connection lifecycle:

    DISCONNECTED -> CONNECTING -> AWAITING_AUTH -> ACTIVE -> CLOSED

The first message sent on a new socket is a ``validate`` request carrying the
session access token; the first message received is its response. Only
after a 200 response does the subscriber accept subscriptions and start
dispatching events. There is no automatic reconnect: once CLOSED, a new
subscriber must be created.

Reliable topics (``persistent: true``) are redelivered by the server until
acknowledged or until their TTL expires. The subscriber has no TTL logic; it
dispatches every redelivery and sends ``acknowledge`` on request.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TYPE_CHECKING, Any

from .errors import (
    VantiqClientError,
    VantiqConnectionError,
    VantiqNotAuthenticated,
    VantiqProtocolError,
    VantiqTimeout,
    VantiqValidationError,
)
from .protocol import (
    PERSISTENT,
    SUBSCRIPTION_NAME,
    build_acknowledge,
    build_subscribe,
    build_validate,
    get_request_id,
    get_subscription_name,
    is_validation_ok,
)
from .ws import websocket_url
from .ws_client import VantiqWsClient, VantiqWsMessageType

if TYPE_CHECKING:
    from .session import VantiqSession

_LOGGER = logging.getLogger(__name__)

EventCallback = Callable[[dict[str, Any]], Awaitable[None] | None]


class SubscriberState(Enum):
    """Connection states of the event socket."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_AUTH = "awaiting_auth"
    ACTIVE = "active"
    CLOSED = "closed"


class VantiqSubscriber:
    """Event subscription channel bound to one authenticated session."""

    def __init__(
        self,
        session: VantiqSession,
        *,
        ping_interval: int | None = 20,
        timeout: float = 15.0,
        handshake_timeout: float = 15.0,
    ) -> None:
        self._session = session
        self._ping_interval = ping_interval
        self._timeout = timeout
        self._handshake_timeout = handshake_timeout

        self._ws: VantiqWsClient | None = None
        self._state = SubscriberState.DISCONNECTED
        self._listen_task: asyncio.Task[None] | None = None

        # Subscription registry
        self._callbacks: dict[str, EventCallback] = {}
        self._subscription_names: dict[str, str] = {}

        # Callbacks
        self._state_callback: Callable[[SubscriberState], None] | None = None
        self._connection_lost_callback: (
            Callable[[VantiqClientError], Awaitable[None] | None] | None
        ) = None

    @property
    def state(self) -> SubscriberState:
        return self._state

    @property
    def is_connected(self) -> bool:
        """True once the socket is open and the session token was accepted."""
        return self._ws is not None and self._state is SubscriberState.ACTIVE

    @property
    def ws_authenticated(self) -> bool:
        return self._state is SubscriberState.ACTIVE

    @property
    def subscriptions(self) -> tuple[str, ...]:
        """Paths that currently have a registered callback."""
        return tuple(self._callbacks)

    def subscription_name(self, path: str) -> str | None:
        """Return the reliable subscription name last seen for ``path``."""
        return self._subscription_names.get(path)

    def on_state_changed(self, callback: Callable[[SubscriberState], None]) -> None:
        """Register callback for connection state changes."""
        self._state_callback = callback

    def on_connection_lost(
        self, callback: Callable[[VantiqClientError], Awaitable[None] | None]
    ) -> None:
        """Register callback invoked when an active socket drops.

        No reconnect is attempted; the callback is the place to re-subscribe.
        """
        self._connection_lost_callback = callback

    # -------------------------------------------------------------------------
    # Public API: Connection Management
    # -------------------------------------------------------------------------

    async def connect(self) -> VantiqSubscriber:
        """Open the socket and validate the session token.

        Raises:
            VantiqNotAuthenticated: Session holds no access token
            VantiqProtocolError: Unsupported scheme or token rejected
            VantiqTimeout: Socket open or validation timed out
            VantiqConnectionError: Socket could not be opened
        """
        if not self._session.authenticated:
            raise VantiqNotAuthenticated(
                "Session must be authenticated to subscribe to Vantiq events"
            )
        if self.is_connected:
            return self

        url = websocket_url(self._session.server, self._session.api_version)
        self._set_state(SubscriberState.CONNECTING)
        _LOGGER.info("[%s] Connecting to %s", self._session.server, url)

        ws_client = VantiqWsClient()
        try:
            await ws_client.connect(
                url, ping_interval=self._ping_interval, timeout=self._timeout
            )
        except VantiqClientError as err:
            _LOGGER.warning("[%s] Connection failed: %s", self._session.server, err)
            self._set_state(SubscriberState.CLOSED)
            raise
        self._ws = ws_client

        # The socket must not outlive a failed or cancelled validation.
        try:
            await self._validate(ws_client)
        except BaseException:
            await self._abort()
            raise

        self._set_state(SubscriberState.ACTIVE)
        _LOGGER.info("[%s] WebSocket session validated", self._session.server)
        self._listen_task = asyncio.create_task(self._listen())
        return self

    async def close(self) -> None:
        """Close the socket and drop every local registration.

        No unsubscribe request is sent: persistent subscriptions remain on
        the server and can be reattached with their subscription name.
        """
        if self._state is SubscriberState.CLOSED and self._ws is None:
            return
        _LOGGER.info("[%s] Closing event subscriber", self._session.server)
        self._set_state(SubscriberState.CLOSED)

        task, self._listen_task = self._listen_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self._close_socket()
        self._callbacks.clear()
        self._subscription_names.clear()

    # -------------------------------------------------------------------------
    # Public API: Subscriptions
    # -------------------------------------------------------------------------

    async def subscribe(
        self,
        path: str,
        parameters: dict[str, Any] | None,
        callback: EventCallback,
    ) -> None:
        """Register ``callback`` for ``path`` and request the subscription.

        A path may only be registered once. The single exception is
        reattaching a persistent subscription: when ``parameters`` contain
        ``persistent`` and the same ``subscriptionName`` already associated
        with ``path``, the callback is replaced and the request re-sent.

        Raises:
            VantiqConnectionError: Socket is not active
            VantiqValidationError: Path already registered
        """
        if not self.is_connected or self._ws is None:
            raise VantiqConnectionError("Must be connected to subscribe to events")

        params = dict(parameters or {})
        if path in self._callbacks and not self._is_reattach(path, params):
            raise VantiqValidationError(f"Callback already registered for event: {path}")

        previous = (self._callbacks.get(path), self._subscription_names.get(path))
        self._callbacks[path] = callback
        name = params.get(SUBSCRIPTION_NAME)
        if name:
            self._subscription_names[path] = name

        try:
            await self._ws.send_json(
                build_subscribe(self._access_token(), path, params)
            )
        except BaseException:
            self._restore_registration(path, *previous)
            raise
        _LOGGER.debug("[%s] Subscribed to %s", self._session.server, path)

    async def acknowledge(self, parameters: dict[str, Any]) -> None:
        """Confirm receipt of a reliably delivered event.

        ``parameters`` carry ``subscriptionName``, ``requestId``,
        ``sequenceId`` and ``partitionId``.
        """
        if not self.is_connected or self._ws is None:
            raise VantiqConnectionError("Must be connected to acknowledge events")
        await self._ws.send_json(build_acknowledge(self._access_token(), parameters))
        _LOGGER.debug(
            "[%s] Acknowledged %s seq=%s",
            self._session.server,
            parameters.get("requestId"),
            parameters.get("sequenceId"),
        )

    # -------------------------------------------------------------------------
    # Internal: Connection State Machine
    # -------------------------------------------------------------------------

    def _set_state(self, state: SubscriberState) -> None:
        """Update connection state and notify callback."""
        if self._state is not state:
            _LOGGER.debug(
                "[%s] State: %s → %s",
                self._session.server,
                self._state.value,
                state.value,
            )
            self._state = state
            if self._state_callback:
                self._state_callback(state)

    def _access_token(self) -> str:
        token = self._session.access_token
        if token is None:
            raise VantiqNotAuthenticated("Not authenticated")
        return token

    def _restore_registration(
        self, path: str, callback: EventCallback | None, name: str | None
    ) -> None:
        """Undo a registration whose subscribe request was never sent."""
        if callback is None:
            self._callbacks.pop(path, None)
        else:
            self._callbacks[path] = callback
        if name is None:
            self._subscription_names.pop(path, None)
        else:
            self._subscription_names[path] = name

    def _is_reattach(self, path: str, params: dict[str, Any]) -> bool:
        name = params.get(SUBSCRIPTION_NAME)
        return (
            bool(params.get(PERSISTENT))
            and name is not None
            and name == self._subscription_names.get(path)
        )

    async def _validate(self, ws_client: VantiqWsClient) -> None:
        """Send the validate request and wait for its response."""
        self._set_state(SubscriberState.AWAITING_AUTH)
        await ws_client.send_json(build_validate(self._access_token()))

        try:
            message = await asyncio.wait_for(
                ws_client.receive(), timeout=self._handshake_timeout
            )
        except TimeoutError as err:
            raise VantiqTimeout("WebSocket session validation timed out") from err

        if message.type is not VantiqWsMessageType.TEXT:
            raise VantiqProtocolError("WebSocket closed before session validation")

        response = ws_client.decode_json(message)
        if not is_validation_ok(response):
            _LOGGER.error(
                "[%s] WebSocket session rejected: %s", self._session.server, response
            )
            raise VantiqProtocolError(
                "Error establishing authenticated WebSocket session:\n"
                + json.dumps(response, indent=2)
            )

    async def _abort(self) -> None:
        self._set_state(SubscriberState.CLOSED)
        await self._close_socket()

    async def _close_socket(self) -> None:
        if self._ws is None:
            return
        ws, self._ws = self._ws, None
        try:
            await asyncio.wait_for(ws.close(), timeout=2.0)
        except TimeoutError:
            _LOGGER.warning("[%s] WebSocket close timed out", self._session.server)

    # -------------------------------------------------------------------------
    # Internal: Message Listener
    # -------------------------------------------------------------------------

    async def _listen(self) -> None:
        """Dispatch inbound events until the socket closes."""
        ws = self._ws
        if ws is None:
            return

        message_count = 0
        error: VantiqClientError | None = None

        try:
            async for msg in ws:
                if msg.type is VantiqWsMessageType.TEXT:
                    message_count += 1
                    try:
                        data = ws.decode_json(msg)
                    except VantiqClientError as err:
                        _LOGGER.warning(
                            "[%s] Invalid event message: %s", self._session.server, err
                        )
                        continue
                    await self._dispatch(data)

                elif msg.type is VantiqWsMessageType.CLOSED:
                    _LOGGER.warning("[%s] WebSocket closed by server", self._session.server)
                    error = VantiqConnectionError("WebSocket closed by server")
                    break

                else:
                    _LOGGER.error(
                        "[%s] WebSocket error: %s", self._session.server, msg.error
                    )
                    error = VantiqConnectionError("WebSocket error")
                    error.__cause__ = msg.error
                    break

                if self._state is not SubscriberState.ACTIVE:
                    break

        except asyncio.CancelledError:
            _LOGGER.debug(
                "[%s] Listener cancelled (%d messages)",
                self._session.server,
                message_count,
            )
            raise

        if error is not None and self._state is SubscriberState.ACTIVE:
            await self._handle_connection_lost(error)

    async def _dispatch(self, message: dict[str, Any]) -> None:
        request_id = get_request_id(message)
        callback = self._callbacks.get(request_id) if request_id else None
        if callback is None:
            _LOGGER.debug(
                "[%s] Dropping event for unknown request id %s",
                self._session.server,
                request_id,
            )
            return

        name = get_subscription_name(message)
        if name:
            self._subscription_names[request_id] = name

        try:
            result = callback(message)
            if inspect.isawaitable(result):
                await result
        except Exception as err:
            _LOGGER.exception(
                "[%s] Event callback error for %s: %s",
                self._session.server,
                request_id,
                err,
            )

    async def _handle_connection_lost(self, error: VantiqClientError) -> None:
        self._listen_task = None
        await self._abort()
        if self._connection_lost_callback:
            try:
                result = self._connection_lost_callback(error)
                if inspect.iscoroutine(result):
                    await result
            except Exception as err:
                _LOGGER.exception(
                    "[%s] Connection lost callback error: %s", self._session.server, err
                )
