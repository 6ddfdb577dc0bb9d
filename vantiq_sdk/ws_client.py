"""WebSocket client wrapper for the Vantiq event socket."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed

from .errors import VantiqClientError, VantiqConnectionError, VantiqProtocolError
from .ws import connect_websocket

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class VantiqWsMessageType(Enum):
    """Normalized WebSocket message types."""

    TEXT = "text"
    CLOSED = "closed"
    ERROR = "error"


@dataclass(frozen=True)
class VantiqWsMessage:
    """Normalized WebSocket message payload."""

    type: VantiqWsMessageType
    data: str | None = None
    error: BaseException | None = None


class VantiqWsClient:
    """Wrapper around the websockets library for the Vantiq event socket."""

    def __init__(self) -> None:
        self._ws: ClientConnection | None = None

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def connect(
        self,
        url: str,
        *,
        ping_interval: int | None = 20,
        timeout: float = 15.0,
    ) -> None:
        """Open the socket."""
        self._ws = await connect_websocket(
            url,
            ping_interval=ping_interval,
            timeout=timeout,
        )

    async def close(self) -> None:
        """Close the websocket connection."""
        if self._ws is not None:
            ws, self._ws = self._ws, None
            await ws.close()

    async def send_json(self, payload: dict[str, Any]) -> None:
        """Send a JSON payload to the websocket."""
        if self._ws is None:
            raise VantiqConnectionError("WebSocket is not connected")
        try:
            await self._ws.send(json.dumps(payload))
        except ConnectionClosed as err:
            raise VantiqConnectionError("WebSocket closed while sending") from err

    def __aiter__(self) -> AsyncIterator[VantiqWsMessage]:
        if self._ws is None:
            raise VantiqConnectionError("WebSocket is not connected")
        return self._iter_messages()

    async def receive(self) -> VantiqWsMessage:
        """Receive a single message outside of iteration."""
        if self._ws is None:
            raise VantiqConnectionError("WebSocket is not connected")
        while True:
            try:
                raw = await self._ws.recv()
            except ConnectionClosed:
                return VantiqWsMessage(type=VantiqWsMessageType.CLOSED)
            normalized = self._normalize_message(raw)
            if normalized is not None:
                return normalized

    async def _iter_messages(self) -> AsyncIterator[VantiqWsMessage]:
        if self._ws is None:
            raise VantiqConnectionError("WebSocket is not connected")

        try:
            async for msg in self._ws:
                normalized: VantiqWsMessage | None = self._normalize_message(msg)
                if normalized is None:
                    continue
                yield normalized
        except ConnectionClosed:
            yield VantiqWsMessage(type=VantiqWsMessageType.CLOSED)
        except Exception as err:
            yield VantiqWsMessage(type=VantiqWsMessageType.ERROR, error=err)
        else:
            # Normal iteration completion means the peer closed gracefully.
            yield VantiqWsMessage(type=VantiqWsMessageType.CLOSED)

    @staticmethod
    def _normalize_message(msg: Any) -> VantiqWsMessage | None:
        """Normalize raw frames; binary frames are not part of the protocol."""
        if isinstance(msg, bytes):
            return None
        if isinstance(msg, str):
            return VantiqWsMessage(VantiqWsMessageType.TEXT, msg)
        return VantiqWsMessage(VantiqWsMessageType.TEXT, str(msg))

    @staticmethod
    def decode_json(message: VantiqWsMessage) -> dict[str, Any]:
        """Decode a TEXT message payload into a JSON object."""
        if message.type is not VantiqWsMessageType.TEXT:
            raise VantiqClientError("Only TEXT messages can be decoded")
        if not isinstance(message.data, str):
            raise VantiqClientError("Message data is not a string")
        try:
            result = json.loads(message.data)
        except ValueError as err:
            raise VantiqProtocolError("Message is not valid JSON") from err
        if not isinstance(result, dict):
            raise VantiqProtocolError("Message is not a JSON object")
        return result
