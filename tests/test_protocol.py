"""Tests for socket control messages and event accessors."""

from __future__ import annotations

from vantiq_sdk.protocol import (
    build_subscribe,
    get_request_id,
    get_subscription_name,
    is_validation_ok,
)


def test_subscribe_does_not_mutate_parameters():
    params = {"persistent": True}

    message = build_subscribe("tok", "/topics/a", params)

    assert message["parameters"] == {"persistent": True, "requestId": "/topics/a"}
    assert params == {"persistent": True}


def test_validation_status():
    assert is_validation_ok({"status": 200})
    assert not is_validation_ok({"status": 401})
    assert not is_validation_ok([])


def test_request_id():
    assert get_request_id({"headers": {"X-Request-Id": "/topics/a"}}) == "/topics/a"
    assert get_request_id({"status": 100}) is None


def test_subscription_name_falls_back_to_id():
    assert get_subscription_name({"body": {"subscriptionName": "n"}}) == "n"
    assert get_subscription_name({"body": {"subscriptionId": "i"}}) == "i"
    assert get_subscription_name({"body": "text"}) is None
