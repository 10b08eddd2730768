"""Expo push gateway client, message/ticket shapes and reconciliation helpers.

The gateway answers a batch POST with `{"data": [ticket, ...]}` where tickets
are positionally aligned 1:1 with the submitted messages. Reconciliation relies
on that alignment, so message lists must never be reordered between building
the request and reading the tickets.
"""

from typing import Any, Literal, Sequence, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pushrelay.common.errors import PushGatewayError
from pushrelay.common.logging import logger


DEVICE_NOT_REGISTERED = "DeviceNotRegistered"

T = TypeVar("T")


class PushMessage(BaseModel):
    """One push message addressed to a single device token."""

    model_config = ConfigDict(populate_by_name=True)

    to: str
    sound: str | None = "default"
    title: str
    body: str
    data: dict[str, Any] | None = None
    priority: str | None = None
    channel_id: str | None = Field(default=None, alias="channelId")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class TicketDetails(BaseModel):
    model_config = ConfigDict(extra="allow")

    error: str | None = None


class PushTicket(BaseModel):
    """Gateway delivery-attempt result for one submitted message."""

    model_config = ConfigDict(extra="allow")

    status: Literal["ok", "error"]
    id: str | None = None
    message: str | None = None
    details: TicketDetails | None = None

    @property
    def device_not_registered(self) -> bool:
        return (
            self.status == "error"
            and self.details is not None
            and self.details.error == DEVICE_NOT_REGISTERED
        )


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    """Split `items` into consecutive slices of at most `size` elements."""

    if size < 1:
        raise ValueError(f"chunk size must be positive, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def unregistered_tokens(messages: Sequence[PushMessage], tickets: Sequence[PushTicket]) -> list[str]:
    """Return the tokens whose aligned ticket reports DeviceNotRegistered."""

    invalid = []
    for message, ticket in zip(messages, tickets):
        if ticket.device_not_registered:
            invalid.append(message.to)
    return invalid


class PushGatewayClient:
    """Lazy `httpx.AsyncClient` wrapper shared by every request of a process."""

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                    "Accept-Encoding": "gzip, deflate",
                },
            )
        return self._client

    async def send(self, messages: Sequence[PushMessage]) -> list[PushTicket]:
        """POST one batch and return its tickets, raising on any outright failure."""

        try:
            resp = await self.client().post(self.url, json=[m.to_wire() for m in messages])
        except httpx.HTTPError as exc:
            raise PushGatewayError("Push gateway unreachable", details=str(exc)) from exc

        if resp.is_error:
            logger.error("push_gateway_error status=%s body=%s", resp.status_code, resp.text)
            raise PushGatewayError("Push gateway error", details=resp.text, status=resp.status_code)

        try:
            body = resp.json()
        except ValueError as exc:
            raise PushGatewayError("Push gateway returned malformed body", details=resp.text) from exc
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, list):
            raise PushGatewayError("Push gateway returned malformed body", details=resp.text)
        try:
            return [PushTicket.model_validate(ticket) for ticket in data]
        except ValidationError as exc:
            raise PushGatewayError("Push gateway returned malformed ticket", details=str(exc)) from exc

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
