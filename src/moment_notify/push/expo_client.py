"""Expo push service client.

Sending is two-phase: ``send`` returns one ticket per message, a provisional
acceptance, and ``get_receipts`` later tells whether the platform service
actually accepted the delivery. Both calls are chunked to the provider
limits and retried on transport errors, 429 and 5xx responses.
"""

from enum import StrEnum
from typing import Any, Literal

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_exponential

from moment_notify.constants import PUSH_RECEIPT_CHUNK_SIZE, PUSH_SEND_CHUNK_SIZE
from moment_notify.exceptions import PermanentTargetError, TransientDeliveryError
from moment_notify.settings import Settings

SEND_PATH = "/--/api/v2/push/send"
RECEIPTS_PATH = "/--/api/v2/push/getReceipts"

DEVICE_NOT_REGISTERED = "DeviceNotRegistered"


class DeliveryStatus(StrEnum):
    """Classification of a ticket or receipt."""

    OK = "ok"
    PERMANENT_INVALID = "permanent_invalid"
    ERROR = "error"


class PushMessage(BaseModel):
    """A single push message; ``content_available`` with no title makes a silent validation push."""

    model_config = ConfigDict(populate_by_name=True)

    to: str
    title: str | None = None
    body: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    sound: Literal["default"] | None = "default"
    badge: int | None = None
    priority: Literal["default", "normal", "high"] = "high"
    channel_id: str | None = Field(default=None, alias="channelId")
    content_available: bool | None = Field(default=None, alias="_contentAvailable")

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class _ProviderResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: Literal["ok", "error"]
    message: str | None = None
    details: dict[str, Any] | None = None

    @property
    def error_code(self) -> str | None:
        return (self.details or {}).get("error")

    @property
    def delivery_status(self) -> DeliveryStatus:
        if self.status == "ok":
            return DeliveryStatus.OK
        if self.error_code == DEVICE_NOT_REGISTERED:
            return DeliveryStatus.PERMANENT_INVALID
        return DeliveryStatus.ERROR

    def raise_for_status(self, target: str) -> None:
        """Raise the delivery error matching this result for ``target``; accepted results pass.

        Raises:
            PermanentTargetError: If the provider reports the token as not registered
            TransientDeliveryError: For any other per-message error
        """
        match self.delivery_status:
            case DeliveryStatus.PERMANENT_INVALID:
                raise PermanentTargetError(target, self.error_code or DEVICE_NOT_REGISTERED)
            case DeliveryStatus.ERROR:
                raise TransientDeliveryError(self.message or self.error_code or "provider error", target=target)


class PushTicketResult(_ProviderResult):
    """Per-message answer to a send; ``id`` is present when accepted."""

    id: str | None = None


class PushReceiptResult(_ProviderResult):
    """Final delivery outcome for a ticket."""


class _RetryableStatus(Exception):
    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"HTTP {response.status_code}")


def chunked(items: list, size: int):
    """Split ``items`` into consecutive lists of at most ``size``."""
    for start in range(0, len(items), size):
        yield items[start : start + size]


class ExpoPushClient:
    """Async client for the Expo push API.

    Raises ``TransientDeliveryError`` when a request cannot be completed after
    all retries; per-message problems are reported in the returned results.
    """

    def __init__(
        self,
        base_url: str = "https://exp.host",
        access_token: str | None = None,
        timeout: float = 10.0,
        max_attempts: int = 3,
        backoff_multiplier: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json", "Accept-Encoding": "gzip, deflate", "Content-Type": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        self._client = httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout, transport=transport)
        self._max_attempts = max_attempts
        self._backoff_multiplier = backoff_multiplier

    @classmethod
    def from_settings(cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> "ExpoPushClient":
        return cls(
            base_url=settings.expo_base_url,
            access_token=settings.expo_access_token,
            timeout=settings.push_request_timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, body: Any) -> dict[str, Any]:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_attempts),
                wait=wait_exponential(multiplier=self._backoff_multiplier, max=5),
                retry=retry_if_exception_type((httpx.TransportError, _RetryableStatus)),
                before_sleep=before_sleep_log(logger, "WARNING"),
                reraise=True,
            ):
                with attempt:
                    response = await self._client.post(path, json=body)
                    if response.status_code == 429 or response.status_code >= 500:
                        raise _RetryableStatus(response)
        except httpx.TransportError as e:
            raise TransientDeliveryError(f"Push provider unreachable: {e!r}") from e
        except _RetryableStatus as e:
            raise TransientDeliveryError(f"Push provider returned HTTP {e.response.status_code}") from e

        if response.is_error:
            raise TransientDeliveryError(f"Push provider rejected request: HTTP {response.status_code} {response.text[:200]}")

        try:
            return response.json()
        except ValueError as e:
            raise TransientDeliveryError(f"Push provider returned invalid JSON: {e}") from e

    async def send(self, messages: list[PushMessage]) -> list[PushTicketResult]:
        """Send messages in chunks of at most 100.

        Returns:
            One ticket per message, in input order

        Raises:
            TransientDeliveryError: If a chunk could not be sent
        """
        tickets: list[PushTicketResult] = []
        for chunk in chunked(messages, PUSH_SEND_CHUNK_SIZE):
            body = await self._post(SEND_PATH, [message.to_payload() for message in chunk])
            data = body.get("data") or []
            if len(data) != len(chunk):
                raise TransientDeliveryError(f"Push provider returned {len(data)} tickets for {len(chunk)} messages")
            tickets.extend(PushTicketResult.model_validate(item) for item in data)
        logger.debug(f"Sent {len(messages)} push messages")
        return tickets

    async def get_receipts(self, ticket_ids: list[str]) -> dict[str, PushReceiptResult]:
        """Fetch receipts in chunks of at most 300 ids.

        Ids whose receipt is not available yet are absent from the result.

        Raises:
            TransientDeliveryError: If a chunk could not be fetched
        """
        receipts: dict[str, PushReceiptResult] = {}
        for chunk in chunked(ticket_ids, PUSH_RECEIPT_CHUNK_SIZE):
            body = await self._post(RECEIPTS_PATH, {"ids": chunk})
            for ticket_id, item in (body.get("data") or {}).items():
                receipts[ticket_id] = PushReceiptResult.model_validate(item)
        return receipts
