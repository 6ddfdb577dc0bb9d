"""Asyncio client for the Vantiq REST and event-socket API."""

__version__ = "0.1.0"

from .client import SYSTEM_RESOURCES, VantiqClient, resource_path
from .config import VantiqConfig
from .errors import (
    VantiqAuthenticationFailed,
    VantiqClientError,
    VantiqConnectionError,
    VantiqHandshakeError,
    VantiqNotAuthenticated,
    VantiqProtocolError,
    VantiqResponseError,
    VantiqTimeout,
    VantiqValidationError,
)
from .http import VantiqHttpClient, VantiqResponse
from .multipart import build_upload_body
from .protocol import build_acknowledge, build_subscribe, build_validate
from .session import VantiqSession
from .subscriber import SubscriberState, VantiqSubscriber
from .subscriptions import (
    ServiceSubscription,
    SourceSubscription,
    TopicSubscription,
    TypeOperation,
    TypeSubscription,
    subscription_request,
)
from .ws import connect_websocket, websocket_url
from .ws_client import VantiqWsClient, VantiqWsMessage, VantiqWsMessageType

__all__ = [
    "SYSTEM_RESOURCES",
    "ServiceSubscription",
    "SourceSubscription",
    "SubscriberState",
    "TopicSubscription",
    "TypeOperation",
    "TypeSubscription",
    "VantiqAuthenticationFailed",
    "VantiqClient",
    "VantiqClientError",
    "VantiqConfig",
    "VantiqConnectionError",
    "VantiqHandshakeError",
    "VantiqHttpClient",
    "VantiqNotAuthenticated",
    "VantiqProtocolError",
    "VantiqResponse",
    "VantiqResponseError",
    "VantiqSession",
    "VantiqSubscriber",
    "VantiqTimeout",
    "VantiqValidationError",
    "VantiqWsClient",
    "VantiqWsMessage",
    "VantiqWsMessageType",
    "__version__",
    "build_acknowledge",
    "build_subscribe",
    "build_upload_body",
    "build_validate",
    "connect_websocket",
    "resource_path",
    "subscription_request",
    "websocket_url",
]
