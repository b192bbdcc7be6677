"""Payment Gateway Adapter (Razorpay REST API over httpx)

The gateway is the only authority on whether money moved. Its signed
callbacks are trusted; everything else it says is fetched over HTTP and may
be slow or unavailable. Transport problems surface as
``UpstreamUnavailableError`` (outcome unknown), never as a failed payment.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, List, Optional

import httpx

from app.config import settings
from app.core.exceptions import (
    GatewayRequestError,
    GatewayTimeoutError,
    UpstreamUnavailableError,
)
from app.utils.time import to_epoch_seconds

logger = logging.getLogger(__name__)

# Payment statuses that mean the user's money has been taken
SUCCESSFUL_PAYMENT_STATUSES = frozenset({"authorized", "captured"})


@dataclass(frozen=True)
class GatewayOrder:
    id: str
    amount: int
    currency: str
    receipt: Optional[str]
    status: str
    notes: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "GatewayOrder":
        notes = data.get("notes") or {}
        return cls(
            id=data["id"],
            amount=int(data["amount"]),
            currency=data.get("currency", settings.CURRENCY),
            receipt=data.get("receipt"),
            status=data.get("status", "created"),
            # Razorpay returns [] instead of {} for empty notes
            notes=notes if isinstance(notes, dict) else {},
        )


@dataclass(frozen=True)
class GatewayPayment:
    id: str
    order_id: Optional[str]
    amount: int
    status: str
    method: Optional[str] = None
    error_description: Optional[str] = None

    @property
    def is_successful(self) -> bool:
        return self.status in SUCCESSFUL_PAYMENT_STATUSES

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "GatewayPayment":
        return cls(
            id=data["id"],
            order_id=data.get("order_id"),
            amount=int(data.get("amount", 0)),
            status=data.get("status", "created"),
            method=data.get("method"),
            error_description=data.get("error_description"),
        )


def _hmac_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class PaymentGateway:
    """Thin async client for the payment processor"""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        webhook_secret: str = "",
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.key_id = key_id
        self._key_secret = key_secret
        self._webhook_secret = webhook_secret
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, transport: Optional[httpx.AsyncBaseTransport] = None) -> "PaymentGateway":
        return cls(
            key_id=settings.RAZORPAY_KEY_ID,
            key_secret=settings.RAZORPAY_KEY_SECRET,
            webhook_secret=settings.RAZORPAY_WEBHOOK_SECRET,
            base_url=settings.RAZORPAY_API_BASE,
            timeout=settings.GATEWAY_TIMEOUT_SECONDS,
            transport=transport,
        )

    # Signatures

    def verify_payment_signature(self, gateway_order_id: str, payment_id: str, signature: str) -> bool:
        """Checkout callback signature: HMAC-SHA256("{order_id}|{payment_id}", key_secret)"""
        if not signature:
            return False
        expected = _hmac_hex(self._key_secret, f"{gateway_order_id}|{payment_id}".encode("utf-8"))
        return hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8"))

    def verify_webhook_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        """Webhook signature: HMAC-SHA256(raw body, webhook_secret)"""
        if not self._webhook_secret:
            logger.warning("Webhook secret not configured; rejecting webhook")
            return False
        if not signature:
            return False
        expected = _hmac_hex(self._webhook_secret, raw_body)
        return hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8"))

    # Remote calls

    async def create_order(
        self,
        amount: int,
        currency: Optional[str] = None,
        receipt: Optional[str] = None,
        notes: Optional[Dict[str, str]] = None,
    ) -> GatewayOrder:
        """
        Create a gateway order for ``amount`` minor units.

        Not retried: a retry after an ambiguous failure could create a second
        gateway order for the same bill.
        """
        payload = {
            "amount": amount,
            "currency": currency or settings.CURRENCY,
            "receipt": receipt,
            "notes": notes or {},
        }
        data = await self._request("POST", "/orders", json=payload)
        order = GatewayOrder.from_api(data)
        logger.info(
            "Gateway order created",
            extra={"gateway_order_id": order.id, "amount": order.amount, "receipt": receipt},
        )
        return order

    async def fetch_payment(self, payment_id: str) -> GatewayPayment:
        data = await self._request("GET", f"/payments/{payment_id}")
        return GatewayPayment.from_api(data)

    async def fetch_order_payments(self, gateway_order_id: str) -> List[GatewayPayment]:
        data = await self._request("GET", f"/orders/{gateway_order_id}/payments")
        return [GatewayPayment.from_api(item) for item in data.get("items", [])]

    async def list_orders(self, since: datetime, until: datetime, count: int = 100) -> List[GatewayOrder]:
        """Gateway orders created in [since, until], following pagination"""
        orders: List[GatewayOrder] = []
        skip = 0
        while True:
            data = await self._request(
                "GET",
                "/orders",
                params={
                    "from": to_epoch_seconds(since),
                    "to": to_epoch_seconds(until),
                    "count": count,
                    "skip": skip,
                },
            )
            items = data.get("items", [])
            orders.extend(GatewayOrder.from_api(item) for item in items)
            if len(items) < count:
                return orders
            skip += count

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        async with httpx.AsyncClient(
            base_url=self._base_url,
            auth=(self.key_id, self._key_secret),
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.request(method, path, **kwargs)
            except httpx.TimeoutException as exc:
                logger.warning("Gateway timeout", extra={"method": method, "path": path})
                raise GatewayTimeoutError() from exc
            except httpx.TransportError as exc:
                logger.warning(
                    "Gateway unreachable",
                    extra={"method": method, "path": path, "error": str(exc)},
                )
                raise UpstreamUnavailableError() from exc

        if response.status_code >= 500:
            logger.warning(
                "Gateway server error",
                extra={"method": method, "path": path, "status_code": response.status_code},
            )
            raise UpstreamUnavailableError()
        if response.status_code >= 400:
            description = self._extract_error_message(response)
            logger.error(
                "Gateway rejected request",
                extra={
                    "method": method,
                    "path": path,
                    "status_code": response.status_code,
                    "gateway_error": description,
                },
            )
            raise GatewayRequestError(gateway_status=response.status_code)

        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamUnavailableError("Payment gateway returned an unreadable response") from exc

    @staticmethod
    def _extract_error_message(response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return response.text or f"status {response.status_code}"
        if isinstance(payload, dict):
            error = payload.get("error")
            if isinstance(error, dict) and error.get("description"):
                return str(error["description"])
        return f"status {response.status_code}"


@lru_cache
def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency: process-wide gateway client"""
    return PaymentGateway.from_settings()
