"""HTTP transport for Vantiq server endpoints."""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

import aiohttp

from .errors import (
    VantiqConnectionError,
    VantiqNotAuthenticated,
    VantiqProtocolError,
    VantiqResponseError,
    VantiqTimeout,
)

_LOGGER = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
TOTAL_COUNT_HEADER = "X-Total-Count"
SUPPORTED_SCHEMES = ("http", "https")


@dataclass
class VantiqResponse:
    """Normalized result of a single HTTP exchange.

    For streamed responses ``body`` is the unread ``aiohttp.StreamReader``
    and the connection stays checked out until ``release()`` is called
    (or the response is used as an async context manager).
    """

    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    count: int | None = None
    body: Any = None
    _raw: aiohttp.ClientResponse | None = field(default=None, repr=False)

    @property
    def status_code(self) -> int:
        return self.status

    @property
    def content_type(self) -> str | None:
        return self.headers.get("Content-Type")

    def release(self) -> None:
        """Return a streamed connection to the pool."""
        if self._raw is not None:
            self._raw.release()
            self._raw = None

    async def __aenter__(self) -> VantiqResponse:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.release()


class VantiqHttpClient:
    """HTTP client wrapper for the Vantiq REST endpoints.

    Performs exactly one request per call. Authentication state is owned by
    the caller and passed in as either a bearer ``token`` or basic
    ``credentials``.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        server: str,
        *,
        timeout: float | None = None,
    ) -> None:
        self._session = session
        self._server = server.rstrip("/")
        self._timeout = timeout

    @property
    def server(self) -> str:
        return self._server

    def _url(self, path: str) -> str:
        scheme = urlsplit(self._server).scheme
        if scheme not in SUPPORTED_SCHEMES:
            raise VantiqProtocolError(f"Request protocol '{scheme}:' not supported")
        return f"{self._server}{path}"

    @staticmethod
    def _auth_headers(
        token: str | None, credentials: tuple[str, str] | None
    ) -> dict[str, str]:
        if credentials is not None:
            username, password = credentials
            encoded = base64.b64encode(f"{username}:{password}".encode()).decode("ascii")
            return {"Authorization": f"Basic {encoded}"}
        if token:
            return {"Authorization": f"Bearer {token}"}
        raise VantiqNotAuthenticated("Not authenticated")

    async def request(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        token: str | None = None,
        credentials: tuple[str, str] | None = None,
        stream_response: bool = False,
    ) -> VantiqResponse:
        """Issue a request and return the normalized response.

        Args:
            method: HTTP verb
            path: Server-absolute path including any query string
            body: JSON-serializable body, or an ``aiohttp.MultipartWriter``
                to stream as multipart/form-data
            token: Bearer access token
            credentials: ``(username, password)`` for basic auth; takes
                precedence over ``token``
            stream_response: Return the unread body stream instead of
                buffering it

        Raises:
            VantiqNotAuthenticated: Neither credentials nor token supplied
            VantiqProtocolError: Unsupported server URL scheme or bad JSON
            VantiqResponseError: Status code >= 400
            VantiqTimeout: Request timed out
            VantiqConnectionError: Network request failed
        """
        headers = self._auth_headers(token, credentials)
        url = self._url(path)

        data: Any = None
        if isinstance(body, aiohttp.MultipartWriter):
            headers["Content-Type"] = body.content_type
            data = body
        else:
            headers["Content-Type"] = JSON_CONTENT_TYPE
            if body is not None:
                data = json.dumps(body)

        kwargs: dict[str, Any] = {"headers": headers, "data": data}
        if self._timeout is not None:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=self._timeout)

        _LOGGER.debug("[%s] %s %s", self._server, method, path)
        try:
            resp = await self._session.request(method, url, **kwargs)
        except TimeoutError as err:
            raise VantiqTimeout(f"{method} {path} timed out") from err
        except aiohttp.ClientError as err:
            raise VantiqConnectionError(f"{method} {path} failed") from err

        result = VantiqResponse(
            status=resp.status,
            headers=resp.headers,
            count=_parse_total_count(resp.headers),
        )

        if stream_response and resp.status < 400:
            result.body = resp.content
            result._raw = resp
            return result

        try:
            text = await resp.text()
        except TimeoutError as err:
            raise VantiqTimeout(f"{method} {path} response timed out") from err
        except aiohttp.ClientError as err:
            raise VantiqConnectionError(f"{method} {path} response failed") from err
        finally:
            resp.release()

        if text:
            if resp.content_type == JSON_CONTENT_TYPE:
                try:
                    result.body = json.loads(text)
                except ValueError as err:
                    raise VantiqProtocolError(
                        f"{method} {path} returned malformed JSON"
                    ) from err
            else:
                result.body = text

        if result.status >= 400:
            _LOGGER.debug(
                "[%s] %s %s failed with %d", self._server, method, path, result.status
            )
            raise VantiqResponseError(result.status, result.body)

        return result


def _parse_total_count(headers: Mapping[str, str]) -> int | None:
    value = headers.get(TOTAL_COUNT_HEADER)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None
