"""Typed event subscription requests, one variant per resource kind."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import VantiqValidationError
from .protocol import PERSISTENT, SUBSCRIPTION_NAME

SUBSCRIBABLE_RESOURCES = ("topics", "sources", "services", "types")


class TypeOperation(Enum):
    """Data-change operations observable on a type."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class TopicSubscription:
    """Messages published to a topic.

    With ``persistent=True`` the server keeps the subscription across
    reconnects and redelivers each message until it is acknowledged.
    Passing the ``subscription_name`` issued earlier reattaches to that
    server-side subscription instead of creating a new one.
    """

    name: str
    persistent: bool = False
    subscription_name: str | None = None
    parameters: dict[str, Any] = field(default_factory=dict)

    @property
    def path(self) -> str:
        if self.name.startswith("/"):
            return f"/topics{self.name}"
        return f"/topics/{self.name}"

    @property
    def request_parameters(self) -> dict[str, Any]:
        params = dict(self.parameters)
        if self.persistent:
            params[PERSISTENT] = True
        if self.subscription_name:
            params[SUBSCRIPTION_NAME] = self.subscription_name
        return params


@dataclass(frozen=True)
class SourceSubscription:
    """Messages arriving on a source."""

    name: str
    parameters: dict[str, Any] = field(default_factory=dict)

    @property
    def path(self) -> str:
        return f"/sources/{self.name}"

    @property
    def request_parameters(self) -> dict[str, Any]:
        return dict(self.parameters)


@dataclass(frozen=True)
class ServiceSubscription:
    """Events emitted by a service event type."""

    service: str
    event: str
    parameters: dict[str, Any] = field(default_factory=dict)

    @property
    def path(self) -> str:
        return f"/services/{self.service}/{self.event}"

    @property
    def request_parameters(self) -> dict[str, Any]:
        return dict(self.parameters)


@dataclass(frozen=True)
class TypeSubscription:
    """Insert, update or delete events on a type. Takes no parameters."""

    type_name: str
    operation: TypeOperation | str

    def __post_init__(self) -> None:
        try:
            operation = TypeOperation(self.operation)
        except ValueError as err:
            raise VantiqValidationError(
                "Operation must be one of 'insert', 'update', 'delete'"
            ) from err
        object.__setattr__(self, "operation", operation)

    @property
    def path(self) -> str:
        op = TypeOperation(self.operation).value
        return f"/types/{self.type_name}/{op}"

    @property
    def request_parameters(self) -> dict[str, Any]:
        return {}


SubscriptionRequest = (
    TopicSubscription | SourceSubscription | ServiceSubscription | TypeSubscription
)


def subscription_request(
    resource: str,
    name: str,
    operation: str | None = None,
    parameters: dict[str, Any] | None = None,
) -> SubscriptionRequest:
    """Build a typed request from string arguments.

    For ``services`` the ``operation`` is the service event type name. For
    ``types`` it must be one of insert/update/delete and ``parameters`` are
    ignored.

    Raises:
        VantiqValidationError: Unsupported resource or missing operation
    """
    params = dict(parameters or {})
    if resource == "topics":
        return TopicSubscription(
            name,
            persistent=bool(params.pop(PERSISTENT, False)),
            subscription_name=params.pop(SUBSCRIPTION_NAME, None),
            parameters=params,
        )
    if resource == "sources":
        return SourceSubscription(name, parameters=params)
    if resource == "services":
        if not operation:
            raise VantiqValidationError(
                "Subscriptions to 'services' require a service event name"
            )
        return ServiceSubscription(name, operation, parameters=params)
    if resource == "types":
        if operation is None:
            raise VantiqValidationError(
                "Operation must be one of 'insert', 'update', 'delete'"
            )
        return TypeSubscription(name, operation)
    raise VantiqValidationError(
        'Only "topics", "sources", "services" and "types" support subscribe'
    )
