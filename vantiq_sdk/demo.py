"""Demo web app: one Vantiq client per browser session, live topic events.

Every browser session gets its own ``VantiqClient``. Topic events for a
session are forwarded to the browser WebSocket registered for it. All of
that state lives in a ``SessionRegistry`` owned by the application and
reached through ``request.app[REGISTRY_KEY]``.

Run with ``vantiq-demo`` (settings from ``VANTIQ_*`` environment variables).
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from collections.abc import Callable
from typing import Any

from aiohttp import WSMsgType, web

from .client import VantiqClient
from .config import DEFAULT_API_VERSION, VantiqConfig
from .errors import VantiqClientError
from .subscriber import EventCallback
from .subscriptions import TopicSubscription

_LOGGER = logging.getLogger(__name__)

SESSION_LOST = "Session was lost, please sign in again"
EVENT_STATUS = 100


class SessionRegistry:
    """Browser session id -> Vantiq client and browser socket."""

    def __init__(
        self,
        server: str,
        api_version: int = DEFAULT_API_VERSION,
        *,
        client_factory: Callable[[], VantiqClient] | None = None,
    ) -> None:
        self._client_factory = client_factory or (
            lambda: VantiqClient(server, api_version)
        )
        self._clients: dict[str, VantiqClient] = {}
        self._sockets: dict[str, web.WebSocketResponse] = {}
        self._sessions_by_socket: dict[int, str] = {}

    def __len__(self) -> int:
        return len(self._clients)

    def create(self) -> str:
        session_id = str(uuid.uuid4())
        self._clients[session_id] = self._client_factory()
        _LOGGER.debug("[%s] Session created", session_id)
        return session_id

    def get(self, session_id: str | None) -> VantiqClient | None:
        if not session_id:
            return None
        return self._clients.get(session_id)

    def attach_socket(self, session_id: str, ws: web.WebSocketResponse) -> None:
        self._sockets[session_id] = ws
        self._sessions_by_socket[id(ws)] = session_id
        _LOGGER.info("[%s] Browser socket registered", session_id)

    def detach_socket(self, ws: web.WebSocketResponse) -> None:
        session_id = self._sessions_by_socket.pop(id(ws), None)
        if session_id is not None and self._sockets.get(session_id) is ws:
            del self._sockets[session_id]

    def socket_for(self, session_id: str) -> web.WebSocketResponse | None:
        return self._sockets.get(session_id)

    def event_forwarder(self, session_id: str) -> EventCallback:
        """Return a callback pushing event values to the session's browser."""

        async def forward(event: dict[str, Any]) -> None:
            ws = self.socket_for(session_id)
            if ws is None or ws.closed or event.get("status") != EVENT_STATUS:
                return
            await ws.send_json({"event": (event.get("body") or {}).get("value")})

        return forward

    async def close_all(self) -> None:
        for ws in list(self._sockets.values()):
            await ws.close()
        self._sockets.clear()
        self._sessions_by_socket.clear()
        for client in self._clients.values():
            await client.close()
        self._clients.clear()


REGISTRY_KEY = web.AppKey("registry", SessionRegistry)


# -----------------------------------------------------------------------------
# Handlers
# -----------------------------------------------------------------------------


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


async def _read_body(request: web.Request) -> dict[str, Any]:
    if request.content_type == "application/json":
        data = await request.json()
        return data if isinstance(data, dict) else {}
    return dict(await request.post())


async def create_session(request: web.Request) -> web.Response:
    session_id = request.app[REGISTRY_KEY].create()
    return web.json_response({"sessionId": session_id})


async def credentials(request: web.Request) -> web.Response:
    data = await _read_body(request)
    client = request.app[REGISTRY_KEY].get(data.get("sessionId"))
    if client is None:
        return _error(404, SESSION_LOST)

    try:
        await client.authenticate(data.get("username", ""), data.get("password", ""))
    except VantiqClientError as err:
        _LOGGER.warning("Authentication failed: %s", err)
        return _error(401, "Failed to authenticate with Vantiq server")
    return web.json_response({"authenticated": True})


async def token(request: web.Request) -> web.Response:
    data = await _read_body(request)
    client = request.app[REGISTRY_KEY].get(data.get("sessionId"))
    if client is None:
        return _error(404, SESSION_LOST)
    if not data.get("token"):
        return _error(400, "Missing token")

    client.access_token = data["token"]
    return web.json_response({"authenticated": True})


async def managers(request: web.Request) -> web.Response:
    client = request.app[REGISTRY_KEY].get(request.query.get("sessionId"))
    if client is None:
        return _error(404, SESSION_LOST)

    try:
        nodes = await client.select("system.nodes", [], {"ars_properties.manager": "true"})
    except VantiqClientError as err:
        _LOGGER.error("Failed to select manager nodes: %s", err)
        return _error(502, str(err))
    return web.json_response({"managers": nodes})


async def live_view(request: web.Request) -> web.Response:
    """Replace the session's subscriptions with a single topic."""
    registry = request.app[REGISTRY_KEY]
    data = await _read_body(request)
    session_id = data.get("sessionId")
    client = registry.get(session_id)
    if client is None:
        return _error(404, SESSION_LOST)
    if not data.get("topic"):
        return _error(400, "Missing topic")

    subscription = TopicSubscription(data["topic"])
    try:
        await client.unsubscribe_all()
        await client.subscribe(subscription, registry.event_forwarder(session_id))
    except VantiqClientError as err:
        _LOGGER.error("[%s] Subscribe failed: %s", session_id, err)
        return _error(502, str(err))
    return web.json_response({"subscribed": subscription.path})


async def _register_socket(
    registry: SessionRegistry, session_id: str | None, ws: web.WebSocketResponse
) -> None:
    if registry.get(session_id) is None:
        await ws.send_json({"error": SESSION_LOST})
        return
    registry.attach_socket(session_id, ws)
    await ws.send_json({"registered": session_id})


async def browser_socket(request: web.Request) -> web.WebSocketResponse:
    """Browser socket registered by ``?sessionId=`` or a ``{"sessionId": ...}`` frame."""
    registry = request.app[REGISTRY_KEY]
    ws = web.WebSocketResponse()
    await ws.prepare(request)

    try:
        if "sessionId" in request.query:
            await _register_socket(registry, request.query["sessionId"], ws)
        async for msg in ws:
            if msg.type != WSMsgType.TEXT:
                continue
            try:
                session_id = json.loads(msg.data).get("sessionId")
            except (ValueError, AttributeError):
                await ws.send_json({"error": "Expected {\"sessionId\": ...}"})
                continue
            await _register_socket(registry, session_id, ws)
    finally:
        registry.detach_socket(ws)
    return ws


def create_app(registry: SessionRegistry) -> web.Application:
    app = web.Application()
    app[REGISTRY_KEY] = registry
    app.router.add_post("/sessions", create_session)
    app.router.add_post("/credentials", credentials)
    app.router.add_post("/token", token)
    app.router.add_get("/managers", managers)
    app.router.add_post("/live-view", live_view)
    app.router.add_get("/ws", browser_socket)

    async def _close_registry(app: web.Application) -> None:
        await app[REGISTRY_KEY].close_all()

    app.on_cleanup.append(_close_registry)
    return app


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    config = VantiqConfig.from_env()
    registry = SessionRegistry(config.server, config.api_version)
    web.run_app(create_app(registry), port=int(os.environ.get("DEMO_PORT", "3001")))


if __name__ == "__main__":
    main()
