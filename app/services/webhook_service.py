"""Webhook Dispatcher - authenticates gateway events and routes them to the order ledger"""

import json
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import WebhookSignatureError
from app.services.order_service import OrderService
from app.services.payment_gateway import PaymentGateway

logger = logging.getLogger(__name__)


class WebhookDispatcher:
    @staticmethod
    async def dispatch(
        db: AsyncSession,
        gateway: PaymentGateway,
        raw_body: bytes,
        signature: Optional[str],
    ) -> bool:
        """
        Verify and apply one gateway webhook delivery.

        The signature is checked against the raw bytes before anything is
        parsed. Once it passes, the delivery is acknowledged whatever happens
        to the order, so this only raises for a bad signature.

        Returns:
            True if an order changed state
        """
        if not gateway.verify_webhook_signature(raw_body, signature):
            logger.warning(
                "Webhook signature rejected",
                extra={"body_length": len(raw_body), "has_signature": bool(signature)},
            )
            raise WebhookSignatureError()

        try:
            event = json.loads(raw_body)
        except ValueError:
            logger.error("Signed webhook body is not JSON", extra={"body_length": len(raw_body)})
            return False
        if not isinstance(event, dict):
            logger.error("Signed webhook body is not an object")
            return False

        event_type = event.get("event") or ""
        payload = event.get("payload") if isinstance(event.get("payload"), dict) else {}
        logger.info("Webhook received", extra={"event": event_type})

        return await OrderService.apply_webhook_event(db, event_type, payload)
