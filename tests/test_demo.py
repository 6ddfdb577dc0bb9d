"""Tests for the demo web app."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from aiohttp import test_utils

from vantiq_sdk import TopicSubscription, VantiqClient
from vantiq_sdk.demo import SESSION_LOST, SessionRegistry, create_app
from vantiq_sdk.errors import VantiqResponseError

from .conftest import SERVER_URL


@pytest.fixture
def vantiq() -> MagicMock:
    client = MagicMock(spec=VantiqClient)
    client.select.return_value = [{"name": "node1"}]
    return client


@pytest.fixture
def registry(vantiq: MagicMock) -> SessionRegistry:
    return SessionRegistry(SERVER_URL, client_factory=lambda: vantiq)


@pytest.fixture
async def http(registry: SessionRegistry):
    async with test_utils.TestClient(test_utils.TestServer(create_app(registry))) as client:
        yield client


async def new_session(http) -> str:
    resp = await http.post("/sessions")
    assert resp.status == 200
    return (await resp.json())["sessionId"]


class TestSessions:
    """Tests for session creation and sign in."""

    async def test_create(self, http, registry: SessionRegistry):
        session_id = await new_session(http)

        assert registry.get(session_id) is not None
        assert len(registry) == 1

    async def test_credentials(self, http, vantiq: MagicMock):
        session_id = await new_session(http)

        resp = await http.post(
            "/credentials",
            json={"sessionId": session_id, "username": "joe", "password": "pw"},
        )

        assert resp.status == 200
        vantiq.authenticate.assert_awaited_once_with("joe", "pw")

    async def test_credentials_form(self, http, vantiq: MagicMock):
        session_id = await new_session(http)

        resp = await http.post(
            "/credentials",
            data={"sessionId": session_id, "username": "joe", "password": "pw"},
        )

        assert resp.status == 200
        vantiq.authenticate.assert_awaited_once_with("joe", "pw")

    async def test_credentials_rejected(self, http, vantiq: MagicMock):
        vantiq.authenticate.side_effect = VantiqResponseError(401)
        session_id = await new_session(http)

        resp = await http.post(
            "/credentials",
            json={"sessionId": session_id, "username": "joe", "password": "bad"},
        )

        assert resp.status == 401
        assert (await resp.json())["error"] == "Failed to authenticate with Vantiq server"

    async def test_unknown_session(self, http):
        resp = await http.post("/credentials", json={"sessionId": "nope"})

        assert resp.status == 404
        assert (await resp.json())["error"] == SESSION_LOST

    async def test_token(self, http, vantiq: MagicMock):
        session_id = await new_session(http)

        resp = await http.post("/token", json={"sessionId": session_id, "token": "tok"})

        assert resp.status == 200
        assert vantiq.access_token == "tok"

    async def test_token_missing(self, http):
        session_id = await new_session(http)

        resp = await http.post("/token", json={"sessionId": session_id})

        assert resp.status == 400


class TestQueries:
    """Tests for the data endpoints."""

    async def test_managers(self, http, vantiq: MagicMock):
        session_id = await new_session(http)

        resp = await http.get("/managers", params={"sessionId": session_id})

        assert resp.status == 200
        assert (await resp.json()) == {"managers": [{"name": "node1"}]}
        vantiq.select.assert_awaited_once_with(
            "system.nodes", [], {"ars_properties.manager": "true"}
        )

    async def test_managers_error(self, http, vantiq: MagicMock):
        vantiq.select.side_effect = VantiqResponseError(403)
        session_id = await new_session(http)

        resp = await http.get("/managers", params={"sessionId": session_id})

        assert resp.status == 502


class TestLiveView:
    """Tests for topic forwarding to the browser socket."""

    async def test_live_view_replaces_subscriptions(self, http, vantiq: MagicMock):
        session_id = await new_session(http)

        resp = await http.post(
            "/live-view", json={"sessionId": session_id, "topic": "/alerts"}
        )

        assert resp.status == 200
        assert (await resp.json()) == {"subscribed": "/topics/alerts"}
        vantiq.unsubscribe_all.assert_awaited_once()
        assert vantiq.subscribe.call_args.args[0] == TopicSubscription("/alerts")

    async def test_live_view_missing_topic(self, http):
        session_id = await new_session(http)

        resp = await http.post("/live-view", json={"sessionId": session_id})

        assert resp.status == 400

    async def test_events_forwarded(self, http, vantiq: MagicMock):
        """Test topic events reach the registered browser socket."""
        session_id = await new_session(http)
        await http.post("/live-view", json={"sessionId": session_id, "topic": "/alerts"})
        forward = vantiq.subscribe.call_args.args[1]

        async with http.ws_connect("/ws") as ws:
            await ws.send_json({"sessionId": session_id})
            assert await ws.receive_json() == {"registered": session_id}

            await forward({"status": 100, "body": {"value": {"level": 3}}})
            assert await ws.receive_json() == {"event": {"level": 3}}

    async def test_socket_registered_by_query(
        self, http, vantiq: MagicMock, registry: SessionRegistry
    ):
        """Test the sessionId query parameter registers without a frame."""
        session_id = await new_session(http)
        await http.post("/live-view", json={"sessionId": session_id, "topic": "/alerts"})
        forward = vantiq.subscribe.call_args.args[1]

        async with http.ws_connect(f"/ws?sessionId={session_id}") as ws:
            assert await ws.receive_json() == {"registered": session_id}
            assert registry.socket_for(session_id) is not None

            await forward({"status": 100, "body": {"value": "hi"}})
            assert await ws.receive_json() == {"event": "hi"}

    async def test_socket_query_unknown_session(self, http):
        async with http.ws_connect("/ws?sessionId=nope") as ws:
            assert await ws.receive_json() == {"error": SESSION_LOST}

    async def test_socket_unknown_session(self, http):
        async with http.ws_connect("/ws") as ws:
            await ws.send_json({"sessionId": "nope"})
            assert await ws.receive_json() == {"error": SESSION_LOST}

    async def test_forwarder_without_socket(self, registry: SessionRegistry):
        session_id = registry.create()
        forward = registry.event_forwarder(session_id)

        await forward({"status": 100, "body": {"value": 1}})


async def test_cleanup_closes_clients(registry: SessionRegistry, vantiq: MagicMock):
    registry.create()

    await registry.close_all()

    vantiq.close.assert_awaited_once()
    assert len(registry) == 0
