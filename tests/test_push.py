"""Unit tests for push gateway client and reconciliation helpers."""

import asyncio

import httpx
import pytest

from conftest import GATEWAY_URL, RecordingGateway
from pushrelay.common.errors import PushGatewayError
from pushrelay.common.push import PushGatewayClient, PushMessage, PushTicket, chunked, unregistered_tokens


def _message(token: str) -> PushMessage:
    return PushMessage(to=token, title="t", body="b")


def test_chunked_preserves_order_and_bounds_size():
    """Chunks concatenate back to the input and never exceed the size."""

    items = list(range(250))
    chunks = chunked(items, 100)

    assert [len(c) for c in chunks] == [100, 100, 50]
    assert [x for chunk in chunks for x in chunk] == items
    assert chunked([], 100) == []


def test_chunked_rejects_non_positive_size():
    with pytest.raises(ValueError):
        chunked([1, 2], 0)


def test_message_wire_format_uses_gateway_field_names():
    message = PushMessage(to="tok", title="Hi", body="There", data={"a": 1}, priority="high", channel_id="chat")

    assert message.to_wire() == {
        "to": "tok",
        "sound": "default",
        "title": "Hi",
        "body": "There",
        "data": {"a": 1},
        "priority": "high",
        "channelId": "chat",
    }


def test_unregistered_tokens_uses_positional_alignment():
    """Only DeviceNotRegistered errors flag the token at the same index."""

    messages = [_message("a"), _message("b"), _message("c")]
    tickets = [
        PushTicket(status="error", details={"error": "MessageRateExceeded"}),
        PushTicket(status="error", details={"error": "DeviceNotRegistered"}),
        PushTicket(status="ok", id="x"),
    ]

    assert unregistered_tokens(messages, tickets) == ["b"]


def test_send_returns_tickets_and_posts_json_array():
    gateway = RecordingGateway()
    client = gateway.client()

    tickets = asyncio.run(client.send([_message("a"), _message("b")]))

    assert [t.status for t in tickets] == ["ok", "ok"]
    assert [m["to"] for m in gateway.batches[0]] == ["a", "b"]


def test_send_raises_on_error_status():
    gateway = RecordingGateway(lambda batch, n: httpx.Response(500, text="boom"))

    with pytest.raises(PushGatewayError) as excinfo:
        asyncio.run(gateway.client().send([_message("a")]))

    assert excinfo.value.status == 500
    assert excinfo.value.details == "boom"


def test_send_raises_on_malformed_body():
    gateway = RecordingGateway(lambda batch, n: httpx.Response(200, json={"errors": []}))

    with pytest.raises(PushGatewayError):
        asyncio.run(gateway.client().send([_message("a")]))


def test_send_wraps_network_errors():
    def unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = PushGatewayClient(GATEWAY_URL, transport=httpx.MockTransport(unreachable))

    with pytest.raises(PushGatewayError):
        asyncio.run(client.send([_message("a")]))
