"""Partner Analytics Service - counters derived from completed orders"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.models.enums import OrderStatus
from app.models.order import Order
from app.models.partner import Partner
from app.models.user import User
from app.services.settlement import round_half_up

logger = logging.getLogger(__name__)


class PartnerAnalyticsService:
    """
    Keeps the counters embedded on ``Partner`` (and the user's lifetime stats)
    in step with COMPLETED orders.

    ``record_completed_order`` must run exactly once per order, in the same
    transaction as that order's PENDING -> COMPLETED update. The order ledger
    guarantees this by only calling it when its conditional update won.
    """

    @staticmethod
    async def record_completed_order(
        db: AsyncSession,
        partner_id: UUID,
        original_amount: int,
        discount_amount: int,
        user_id: Optional[UUID] = None,
    ) -> None:
        """Increment totals in SQL and recompute the average (not committed)"""
        stmt = (
            update(Partner)
            .where(Partner.id == partner_id)
            .values(
                total_orders=Partner.total_orders + 1,
                total_revenue=Partner.total_revenue + original_amount,
                total_discount_given=Partner.total_discount_given + discount_amount,
            )
            .returning(Partner.total_orders, Partner.total_revenue)
            .execution_options(synchronize_session=False)
        )
        row = (await db.execute(stmt)).one_or_none()
        if row is None:
            raise NotFoundError("Partner not found")

        total_orders, total_revenue = row
        await db.execute(
            update(Partner)
            .where(Partner.id == partner_id)
            .values(average_order_value=round_half_up(total_revenue, total_orders))
            .execution_options(synchronize_session=False)
        )

        if user_id is not None:
            await db.execute(
                update(User)
                .where(User.id == user_id)
                .values(
                    total_savings=User.total_savings + discount_amount,
                    total_orders=User.total_orders + 1,
                )
                .execution_options(synchronize_session=False)
            )

        logger.info(
            "Partner analytics updated",
            extra={
                "partner_id": str(partner_id),
                "total_orders": total_orders,
                "total_revenue": total_revenue,
            },
        )

    @staticmethod
    async def rebuild(db: AsyncSession, partner_id: UUID) -> Partner:
        """Recompute a partner's counters from its COMPLETED orders and commit"""
        partner = await db.get(Partner, partner_id)
        if not partner:
            raise NotFoundError("Partner not found")

        result = await db.execute(
            select(
                func.count(Order.id),
                func.coalesce(func.sum(Order.original_amount), 0),
                func.coalesce(func.sum(Order.discount_amount), 0),
            ).where(Order.partner_id == partner_id, Order.status == OrderStatus.COMPLETED)
        )
        total_orders, total_revenue, total_discount = result.one()

        partner.total_orders = int(total_orders)
        partner.total_revenue = int(total_revenue)
        partner.total_discount_given = int(total_discount)
        partner.average_order_value = (
            round_half_up(int(total_revenue), int(total_orders)) if total_orders else 0
        )
        await db.commit()
        await db.refresh(partner)

        logger.info(
            "Partner analytics rebuilt",
            extra={"partner_id": str(partner_id), "total_orders": partner.total_orders},
        )
        return partner
