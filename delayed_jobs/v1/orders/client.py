"""HTTP client for the order service used by the order job handlers."""

from datetime import datetime
from typing import Protocol

import httpx
from pydantic import BaseModel, Field, ValidationError

from delayed_jobs.config.settings import Settings

STATUS_PENDING = "PENDING"
STATUS_PAID = "PAID"
STATUS_PROCESSING = "PROCESSING"
STATUS_SHIPPED = "SHIPPED"
STATUS_DELIVERED = "DELIVERED"
STATUS_CANCELLED = "CANCELLED"


class Order(BaseModel):
    """The subset of an order the job handlers need."""

    id: str
    order_number: str | None = None
    status: str
    customer_email: str | None = None
    tracking_number: str | None = None
    payment_intent_id: str | None = None
    paid_at: datetime | None = None
    item_count: int = Field(default=0, ge=0)

    @property
    def is_paid(self) -> bool:
        return self.payment_intent_id is not None and self.paid_at is not None


class OrderLookupError(Exception):
    """The order service could not be reached or answered with an error."""


class InvalidOrderError(OrderLookupError):
    """The order service answered with a body that is not a valid order."""


class OrderLookup(Protocol):
    async def get_order(self, order_id: str) -> Order | None: ...


class OrderServiceClient:
    """
    Reads orders from ``GET {base_url}/orders/{id}``.

    A 404 means the order does not exist and yields None. Connection
    problems and other error statuses raise ``OrderLookupError``. A
    successful response whose body is not an order raises
    ``InvalidOrderError``.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "OrderServiceClient":
        return cls(settings.orders_base_url, timeout=settings.orders_timeout_s)

    async def get_order(self, order_id: str) -> Order | None:
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        ) as client:
            try:
                response = await client.get(f"/orders/{order_id}")
            except httpx.RequestError as e:
                raise OrderLookupError(f"Order service unreachable: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise OrderLookupError(
                f"Order service returned {response.status_code} for order {order_id}"
            )

        try:
            return Order.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise InvalidOrderError(
                f"Order service returned an invalid order for {order_id}: {e}"
            ) from e
