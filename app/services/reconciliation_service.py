"""Reconciliation Service - closes gaps between gateway orders and the order ledger"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import GatewayRequestError, UpstreamUnavailableError
from app.models.enums import OrderStatus
from app.models.order import Order
from app.services.order_service import OrderService, parse_payment_method
from app.services.payment_gateway import PaymentGateway
from app.utils.time import get_utc_now

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationReport:
    checked: int = 0
    completed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)
    orphaned_gateway_orders: List[str] = field(default_factory=list)


class ReconciliationService:
    @staticmethod
    async def sweep(
        db: AsyncSession,
        gateway: PaymentGateway,
        older_than_minutes: Optional[int] = None,
    ) -> ReconciliationReport:
        """
        Resolve stale PENDING orders from the gateway's payment records and
        report gateway orders the ledger never saved.

        - a successful (authorized/captured) payment completes the order
        - only failed payments fail it
        - no payments, or no answer from the gateway, leaves it PENDING
        """
        minutes = settings.RECONCILIATION_STALE_MINUTES if older_than_minutes is None else older_than_minutes
        now = get_utc_now()
        cutoff = now - timedelta(minutes=minutes)
        report = ReconciliationReport()

        result = await db.execute(
            select(Order)
            .where(
                Order.status == OrderStatus.PENDING,
                Order.created_at < cutoff,
                Order.gateway_order_id.is_not(None),
            )
            .order_by(Order.created_at)
        )
        stale_orders = list(result.scalars().all())

        for order in stale_orders:
            report.checked += 1
            try:
                payments = await gateway.fetch_order_payments(order.gateway_order_id)
            except (UpstreamUnavailableError, GatewayRequestError) as exc:
                logger.warning(
                    "Reconciliation skipped order; gateway did not answer",
                    extra={"order_id": order.order_id, "error": exc.code},
                )
                report.unresolved.append(order.order_id)
                continue

            successful = next((p for p in payments if p.is_successful), None)
            if successful:
                changed = await OrderService.complete_order(
                    db, order, successful.id, method=parse_payment_method(successful.method)
                )
                if changed:
                    report.completed.append(order.order_id)
            elif payments and all(p.status == "failed" for p in payments):
                reason = payments[-1].error_description or "Payment failed at gateway"
                changed = await OrderService.fail_order(db, order, reason, payments[-1].id)
                if changed:
                    report.failed.append(order.order_id)
            else:
                report.unresolved.append(order.order_id)
                continue

            await db.commit()
            logger.info(
                "Order reconciled",
                extra={"order_id": order.order_id, "completed": bool(successful)},
            )

        await ReconciliationService._find_orphans(db, gateway, cutoff - timedelta(days=1), cutoff, report)

        logger.info(
            "Reconciliation sweep finished",
            extra={
                "checked": report.checked,
                "completed": len(report.completed),
                "failed": len(report.failed),
                "unresolved": len(report.unresolved),
                "orphaned": len(report.orphaned_gateway_orders),
            },
        )
        return report

    @staticmethod
    async def _find_orphans(db, gateway: PaymentGateway, since, until, report: ReconciliationReport) -> None:
        """Gateway orders in the window with no ledger order behind them"""
        try:
            gateway_orders = await gateway.list_orders(since, until)
        except (UpstreamUnavailableError, GatewayRequestError) as exc:
            logger.warning("Could not list gateway orders", extra={"error": exc.code})
            return

        ids = [o.id for o in gateway_orders]
        if not ids:
            return
        result = await db.execute(select(Order.gateway_order_id).where(Order.gateway_order_id.in_(ids)))
        known = set(result.scalars().all())

        for gateway_order in gateway_orders:
            if gateway_order.id not in known:
                logger.error(
                    "Reconciliation gap: gateway order has no ledger order",
                    extra={
                        "gateway_order_id": gateway_order.id,
                        "receipt": gateway_order.receipt,
                        "amount": gateway_order.amount,
                        "notes": gateway_order.notes,
                    },
                )
                report.orphaned_gateway_orders.append(gateway_order.id)
