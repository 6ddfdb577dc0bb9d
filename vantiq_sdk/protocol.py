"""Control-message builders and event accessors for the Vantiq socket.

Outbound control messages are JSON objects of the form::

    {"accessToken": ..., "op": ..., "resourceName": ...,
     "resourceId": ..., "parameters": {...}}

Inbound event deliveries look like::

    {"headers": {"X-Request-Id": "/topics/foo"}, "status": 100,
     "body": {"value": ..., "subscriptionName": ..., "sequenceId": ...,
              "partitionId": ...}}
"""

from __future__ import annotations

from typing import Any

OP_VALIDATE = "validate"
OP_SUBSCRIBE = "subscribe"
OP_ACKNOWLEDGE = "acknowledge"

EVENTS_RESOURCE = "events"
CREDENTIALS_RESOURCE = "system.credentials"

REQUEST_ID_HEADER = "X-Request-Id"
REQUEST_ID = "requestId"
SUBSCRIPTION_NAME = "subscriptionName"
SUBSCRIPTION_ID = "subscriptionId"
SEQUENCE_ID = "sequenceId"
PARTITION_ID = "partitionId"
PERSISTENT = "persistent"

STATUS_OK = 200


def build_validate(access_token: str) -> dict[str, Any]:
    """Build the first message sent on a new socket."""
    return {
        "op": OP_VALIDATE,
        "resourceName": CREDENTIALS_RESOURCE,
        "object": access_token,
    }


def build_subscribe(
    access_token: str, path: str, parameters: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Build an event subscription request.

    The path doubles as the request id, which the server echoes back in the
    ``X-Request-Id`` header of every delivered event.
    """
    params = dict(parameters or {})
    params[REQUEST_ID] = path
    return {
        "accessToken": access_token,
        "op": OP_SUBSCRIBE,
        "resourceName": EVENTS_RESOURCE,
        "resourceId": path,
        "parameters": params,
    }


def build_acknowledge(access_token: str, parameters: dict[str, Any]) -> dict[str, Any]:
    """Build a reliable-delivery acknowledgement."""
    return {
        "accessToken": access_token,
        "op": OP_ACKNOWLEDGE,
        "resourceName": EVENTS_RESOURCE,
        "resourceId": parameters.get(REQUEST_ID),
        "parameters": dict(parameters),
    }


def build_acknowledge_params(
    subscription_name: str,
    request_id: str,
    sequence_id: Any,
    partition_id: Any,
) -> dict[str, Any]:
    return {
        SUBSCRIPTION_NAME: subscription_name,
        REQUEST_ID: request_id,
        SEQUENCE_ID: sequence_id,
        PARTITION_ID: partition_id,
    }


def is_validation_ok(message: Any) -> bool:
    """Return True when a validate response reports success."""
    return isinstance(message, dict) and message.get("status") == STATUS_OK


def get_request_id(message: dict[str, Any]) -> str | None:
    headers = message.get("headers")
    if not isinstance(headers, dict):
        return None
    return headers.get(REQUEST_ID_HEADER)


def get_subscription_name(message: dict[str, Any]) -> str | None:
    """Return the server-issued reliable subscription name, if present."""
    body = message.get("body")
    if not isinstance(body, dict):
        return None
    return body.get(SUBSCRIPTION_NAME) or body.get(SUBSCRIPTION_ID)
