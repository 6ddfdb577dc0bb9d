"""Public Vantiq API.

``VantiqClient`` translates resource-level calls (select, insert, publish,
subscribe, ...) into REST paths and socket subscriptions on a
``VantiqSession``.

Resource naming:
- ``system.<name>`` addresses the system resource ``<name>``
- a bare name listed in ``SYSTEM_RESOURCES`` is also a system resource
- any other name is a user-defined type under ``/resources/custom``
"""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import quote

import aiohttp

from .config import DEFAULT_API_VERSION, VantiqConfig
from .errors import VantiqResponseError, VantiqValidationError
from .http import VantiqResponse
from .protocol import PARTITION_ID, SEQUENCE_ID
from .session import VantiqSession
from .subscriber import EventCallback
from .subscriptions import SubscriptionRequest

_LOGGER = logging.getLogger(__name__)

SYSTEM_PREFIX = "system."

SYSTEM_RESOURCES: tuple[str, ...] = (
    "users",
    "types",
    "namespaces",
    "profiles",
    "scalars",
    "documents",
    "sources",
    "topics",
    "rules",
    "nodes",
    "procedures",
    "services",
    "analyticsmodels",
)

PUBLISHABLE_RESOURCES: tuple[str, ...] = ("sources", "topics", "services")

DEFAULT_UPLOAD_PATH = "/resources/documents"

# Matches nothing; only the status code of the check matters.
STATUS_CHECK_WHERE = {"name": {"$in": []}}


def resource_path(resource: str) -> str:
    """Return the REST path for a system or user-defined resource."""
    if resource.startswith(SYSTEM_PREFIX):
        return f"/resources/{resource[len(SYSTEM_PREFIX):]}"
    if resource in SYSTEM_RESOURCES:
        return f"/resources/{resource}"
    return f"/resources/custom/{resource}"


def _encode(value: Any) -> str:
    return quote(json.dumps(value, separators=(",", ":")), safe="")


def _with_query(path: str, params: list[tuple[str, str]]) -> str:
    if not params:
        return path
    return path + "?" + "&".join(f"{key}={value}" for key, value in params)


def _first_record(body: Any) -> Any:
    if isinstance(body, list):
        return body[0] if body else None
    return body


class VantiqClient:
    """Client for a single Vantiq user session."""

    SYSTEM_RESOURCES = SYSTEM_RESOURCES

    def __init__(
        self,
        server: str,
        api_version: int = DEFAULT_API_VERSION,
        *,
        http_session: aiohttp.ClientSession | None = None,
        session: VantiqSession | None = None,
    ) -> None:
        self.session = session or VantiqSession(
            server, api_version, http_session=http_session
        )

    @classmethod
    def from_config(
        cls, config: VantiqConfig, *, http_session: aiohttp.ClientSession | None = None
    ) -> VantiqClient:
        return cls(
            config.server,
            config.api_version,
            session=VantiqSession.from_config(config, http_session=http_session),
        )

    async def __aenter__(self) -> VantiqClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self.session.close()

    # -------------------------------------------------------------------------
    # Authentication
    # -------------------------------------------------------------------------

    @property
    def is_authenticated(self) -> bool:
        return self.session.authenticated

    @property
    def access_token(self) -> str | None:
        return self.session.access_token

    @access_token.setter
    def access_token(self, token: str | None) -> None:
        self.session.access_token = token

    async def authenticate(self, username: str, password: str) -> bool:
        """Authenticate with username and password. Returns True on success."""
        await self.session.authenticate(username, password)
        return True

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    async def select(
        self,
        resource: str,
        props: list[str] | None = None,
        where: dict[str, Any] | None = None,
        sort: dict[str, Any] | None = None,
    ) -> Any:
        """Query records.

        Args:
            resource: Resource name
            props: Properties to return (projection)
            where: Filter condition
            sort: Sort order, e.g. ``{"name": -1}``
        """
        query: list[tuple[str, str]] = []
        if props:
            query.append(("props", _encode(props)))
        if where:
            query.append(("where", _encode(where)))
        if sort:
            query.append(("sort", _encode(sort)))

        result = await self.session.get(_with_query(resource_path(resource), query))
        return result.body

    async def select_one(self, resource: str, record_id: str) -> Any:
        result = await self.session.get(f"{resource_path(resource)}/{record_id}")
        return result.body

    async def count(self, resource: str, where: dict[str, Any] | None = None) -> int | None:
        """Return the number of matching records.

        Only ``_id`` is projected since the records themselves are discarded.
        """
        query = [("count", "true")]
        if where:
            query.append(("where", _encode(where)))
        query.append(("props", _encode(["_id"])))

        result = await self.session.get(_with_query(resource_path(resource), query))
        return result.count

    async def insert(self, resource: str, obj: dict[str, Any]) -> Any:
        result = await self.session.post(resource_path(resource), obj)
        return _first_record(result.body)

    async def update(self, resource: str, record_id: str, obj: dict[str, Any]) -> Any:
        result = await self.session.put(f"{resource_path(resource)}/{record_id}", obj)
        return _first_record(result.body)

    async def upsert(self, resource: str, obj: dict[str, Any]) -> Any:
        """Insert, or update the record matching the type's natural key.

        ``_id`` is never sent; the server would treat it as an identity
        change. Use ``update`` to modify a record by id.
        """
        body = {key: value for key, value in obj.items() if key != "_id"}
        result = await self.session.post(f"{resource_path(resource)}?upsert=true", body)
        return _first_record(result.body)

    async def delete(self, resource: str, where: dict[str, Any]) -> bool:
        path = _with_query(
            resource_path(resource), [("count", "true"), ("where", _encode(where))]
        )
        result = await self.session.delete(path)
        return result.status == 204

    async def delete_one(self, resource: str, record_id: str) -> bool:
        result = await self.session.delete(f"{resource_path(resource)}/{record_id}")
        return result.status == 204

    # -------------------------------------------------------------------------
    # Messaging and execution
    # -------------------------------------------------------------------------

    async def publish(self, resource: str, resource_id: str, payload: Any) -> bool:
        """Publish a message to a topic, source or service.

        Raises:
            VantiqValidationError: Resource does not support publish, or a
                topic name without a leading slash was not found
        """
        if resource not in PUBLISHABLE_RESOURCES:
            raise VantiqValidationError(
                'Only "sources", "topics" and "services" support publish'
            )

        try:
            result = await self.session.post(f"/resources/{resource}/{resource_id}", payload)
        except VantiqResponseError as err:
            if err.status == 404 and resource == "topics" and not resource_id.startswith("/"):
                raise VantiqValidationError(
                    "Illegal topic name.  Topic names must begin with a slash '/'."
                ) from err
            raise
        return result.status == 200

    async def execute(self, procedure: str, params: Any = None) -> Any:
        result = await self.session.post(f"/resources/procedures/{procedure}", params)
        return result.body

    async def evaluate(self, model: str, params: Any = None) -> Any:
        result = await self.session.post(f"/resources/analyticsmodels/{model}", params)
        return result.body

    async def query(self, source: str, params: Any = None) -> Any:
        result = await self.session.post(f"/resources/sources/{source}/query", params)
        return result.body

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    async def subscribe(self, request: SubscriptionRequest, callback: EventCallback) -> None:
        """Deliver events matching ``request`` to ``callback``.

        The callback receives the full event message; the payload is in
        ``event["body"]["value"]``.
        """
        await self.session.subscribe(request.path, request.request_parameters, callback)

    async def acknowledge(
        self, subscription_name: str, request_id: str, event: dict[str, Any]
    ) -> None:
        """Acknowledge a reliably delivered event so it is not redelivered."""
        body = event.get("body") or {}
        await self.session.acknowledge(
            request_id, subscription_name, body.get(SEQUENCE_ID), body.get(PARTITION_ID)
        )

    async def unsubscribe_all(self) -> None:
        await self.session.unsubscribe_all()

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    async def upload(
        self,
        file_name: str,
        content_type: str,
        document_path: str,
        resource_path: str = DEFAULT_UPLOAD_PATH,
    ) -> Any:
        """Upload a local file as a document (or to ``resource_path``).

        A cheap count request runs first so an expired session fails before
        a potentially large body is streamed.
        """
        await self.count("system.types", STATUS_CHECK_WHERE)
        _LOGGER.debug("[%s] Uploading %s to %s", self.session.server, file_name, document_path)
        result = await self.session.upload(file_name, content_type, document_path, resource_path)
        return _first_record(result.body)

    async def download(self, path: str) -> VantiqResponse:
        """Stream a document's content.

        Use the result as an async context manager and read ``body`` (an
        ``aiohttp.StreamReader``); ``content_type`` holds the media type.
        """
        return await self.session.download(path)
