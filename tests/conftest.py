"""Pytest configuration and fixtures for vantiq_sdk tests."""

from __future__ import annotations

import asyncio
import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from multidict import CIMultiDict

from vantiq_sdk.ws_client import VantiqWsClient, VantiqWsMessage, VantiqWsMessageType

SERVER_URL = "https://mock.vantiq.com"
TOKEN = "234592dadf23412"
USERNAME = "joe"
PASSWORD = "no-one-will-guess"


@pytest.fixture
def mock_session() -> MagicMock:
    """Create a mock aiohttp ClientSession."""
    session = MagicMock(spec=aiohttp.ClientSession)
    session.request = AsyncMock()
    return session


def create_mock_response(
    status: int = 200,
    json_data: Any = None,
    text_data: str | None = None,
    headers: dict[str, str] | None = None,
    content_type: str | None = None,
) -> AsyncMock:
    """Create a configured mock response.

    Args:
        status: HTTP status code
        json_data: Body serialized as application/json
        text_data: Raw body text (text/plain unless content_type given)
        headers: Extra response headers
        content_type: Override the response media type

    Returns:
        Configured AsyncMock response
    """
    response = AsyncMock()
    response.status = status

    if json_data is not None:
        response.text.return_value = json.dumps(json_data)
        response.content_type = content_type or "application/json"
    else:
        response.text.return_value = text_data or ""
        response.content_type = content_type or "application/octet-stream"

    response.headers = CIMultiDict(headers or {})
    response.headers.setdefault("Content-Type", response.content_type)
    response.content = MagicMock(name="content")
    response.release = MagicMock()

    return response


def request_url(mock_session: MagicMock, index: int = -1) -> str:
    """Return the URL of a recorded ``ClientSession.request`` call."""
    return mock_session.request.call_args_list[index].args[1]


def request_headers(mock_session: MagicMock, index: int = -1) -> dict[str, str]:
    return mock_session.request.call_args_list[index].kwargs["headers"]


class FakeWsClient:
    """In-memory stand-in for VantiqWsClient.

    Frames queued with ``push`` are returned by ``receive`` and async
    iteration in order; ``push_closed`` ends the stream like a server close.
    """

    decode_json = staticmethod(VantiqWsClient.decode_json)

    def __init__(self) -> None:
        self.url: str | None = None
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self._incoming: asyncio.Queue[VantiqWsMessage] = asyncio.Queue()

    @property
    def connected(self) -> bool:
        return self.url is not None and not self.closed

    async def connect(self, url: str, **kwargs: Any) -> None:
        self.url = url

    async def close(self) -> None:
        self.closed = True

    async def send_json(self, payload: dict[str, Any]) -> None:
        self.sent.append(payload)

    def push(self, payload: dict[str, Any] | str) -> None:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        self._incoming.put_nowait(VantiqWsMessage(VantiqWsMessageType.TEXT, data))

    def push_closed(self) -> None:
        self._incoming.put_nowait(VantiqWsMessage(VantiqWsMessageType.CLOSED))

    async def receive(self) -> VantiqWsMessage:
        return await self._incoming.get()

    def __aiter__(self):
        return self._iter_messages()

    async def _iter_messages(self):
        while True:
            msg = await self._incoming.get()
            yield msg
            if msg.type is not VantiqWsMessageType.TEXT:
                return

    def sent_ops(self) -> list[str]:
        return [frame["op"] for frame in self.sent]


@pytest.fixture
def fake_ws() -> FakeWsClient:
    """Fake socket that accepts the validate request."""
    ws = FakeWsClient()
    ws.push({"status": 200})
    return ws


async def settle(rounds: int = 10) -> None:
    """Let the subscriber's listener task process queued frames."""
    for _ in range(rounds):
        await asyncio.sleep(0)
