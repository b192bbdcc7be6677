"""Order Service - payment orders, verification and the order state machine"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, update, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    ForbiddenError,
    GatewayOrderMismatchError,
    GatewayRequestError,
    InvalidInputError,
    InvalidStateError,
    MerchantInactiveError,
    NotFoundError,
    PaymentSignatureError,
    UpstreamUnavailableError,
)
from app.models.enums import ORDER_TRANSITIONS, OrderStatus, PaymentMethod
from app.models.order import Order
from app.models.partner import Partner
from app.models.user import User
from app.services.analytics_service import PartnerAnalyticsService
from app.services.bill_service import BillService
from app.services.payment_gateway import GatewayOrder, PaymentGateway
from app.services.sequence_service import SequenceService, ORDER_SEQUENCE
from app.services.settlement import Split, compute_split
from app.utils.time import get_utc_now

logger = logging.getLogger(__name__)

COMPLETE_EVENTS = frozenset({"payment.captured", "order.paid"})
FAIL_EVENTS = frozenset({"payment.failed"})
REFUND_EVENTS = frozenset({"refund.created", "refund.processed"})


@dataclass
class CheckoutResult:
    """A freshly created PENDING order and what the client needs to open checkout"""
    order: Order
    gateway_order: GatewayOrder
    partner: Partner


def parse_payment_method(method: Optional[str]) -> Optional[PaymentMethod]:
    if not method:
        return None
    return PaymentMethod.__members__.get(method.upper())


def _entity(payload: Dict[str, Any], name: str) -> Dict[str, Any]:
    """``payload[name]["entity"]`` from a gateway event, or {}"""
    wrapper = payload.get(name) or {}
    entity = wrapper.get("entity") if isinstance(wrapper, dict) else None
    return entity if isinstance(entity, dict) else {}


class OrderService:
    """Service layer for payment orders"""

    # Creation

    @staticmethod
    async def create_from_bill(
        db: AsyncSession,
        gateway: PaymentGateway,
        bill_id: str,
        user: User,
    ) -> CheckoutResult:
        """
        Consume a bill and open a gateway order for its discounted amount.

        Bill consumption, the order row and the sequence id share one
        transaction. If the gateway call fails everything is rolled back and
        the bill stays ACTIVE. If the commit fails after the gateway order
        exists, the gateway holds an order the ledger does not; that gap is
        logged and closed by the reconciliation sweep.
        """
        order_pk = uuid.uuid4()
        try:
            validated = await BillService.consume_bill(db, bill_id, user.id, order_pk)
            bill, split = validated.bill, validated.split
            order_code = await SequenceService.next_id(db, ORDER_SEQUENCE)
            gateway_order = await gateway.create_order(
                amount=split.final_amount,
                receipt=f"bill_{bill.bill_id}",
                notes={
                    "order_id": order_code,
                    "bill_id": bill.bill_id,
                    "partner_id": str(bill.partner_id),
                    "user_id": str(user.id),
                },
            )
        except Exception:
            await db.rollback()
            raise

        order = OrderService._build_order(
            order_pk=order_pk,
            order_code=order_code,
            user_id=user.id,
            partner_id=bill.partner_id,
            split=split,
            gateway_order=gateway_order,
            bill_request_id=bill.id,
            description=bill.description,
        )
        await OrderService._persist(db, order, gateway_order)

        logger.info(
            "Order created from bill",
            extra={
                "order_id": order.order_id,
                "bill_id": bill_id,
                "gateway_order_id": gateway_order.id,
                "final_amount": split.final_amount,
            },
        )
        return CheckoutResult(order=order, gateway_order=gateway_order, partner=validated.partner)

    @staticmethod
    async def create_direct(
        db: AsyncSession,
        gateway: PaymentGateway,
        partner_id: UUID,
        amount: int,
        user: User,
        notes: Optional[str] = None,
    ) -> CheckoutResult:
        """
        Pay a partner without a bill. There is no locked rate, so the
        partner's current discount rate applies; the split is computed exactly
        as for bill payments.
        """
        partner = await db.get(Partner, partner_id)
        if not partner:
            raise NotFoundError("Partner not found")
        if not partner.can_accept_orders:
            raise MerchantInactiveError()
        if not settings.MIN_BILL_AMOUNT <= amount <= settings.MAX_BILL_AMOUNT:
            raise InvalidInputError(
                f"Amount must be between {settings.MIN_BILL_AMOUNT} and {settings.MAX_BILL_AMOUNT} paise",
                field="amount",
            )

        split = compute_split(amount, partner.discount_rate, settings.PLATFORM_FEE_RATE)
        order_pk = uuid.uuid4()
        try:
            order_code = await SequenceService.next_id(db, ORDER_SEQUENCE)
            gateway_order = await gateway.create_order(
                amount=split.final_amount,
                receipt=order_code,
                notes={
                    "order_id": order_code,
                    "partner_id": str(partner.id),
                    "user_id": str(user.id),
                },
            )
        except Exception:
            await db.rollback()
            raise

        order = OrderService._build_order(
            order_pk=order_pk,
            order_code=order_code,
            user_id=user.id,
            partner_id=partner.id,
            split=split,
            gateway_order=gateway_order,
            notes=notes,
        )
        await OrderService._persist(db, order, gateway_order)

        logger.info(
            "Direct order created",
            extra={
                "order_id": order.order_id,
                "partner_id": str(partner.id),
                "gateway_order_id": gateway_order.id,
                "final_amount": split.final_amount,
            },
        )
        return CheckoutResult(order=order, gateway_order=gateway_order, partner=partner)

    @staticmethod
    def _build_order(
        order_pk: UUID,
        order_code: str,
        user_id: UUID,
        partner_id: UUID,
        split: Split,
        gateway_order: GatewayOrder,
        bill_request_id: Optional[UUID] = None,
        description: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Order:
        return Order(
            id=order_pk,
            order_id=order_code,
            user_id=user_id,
            partner_id=partner_id,
            bill_request_id=bill_request_id,
            original_amount=split.original_amount,
            discount_rate=split.discount_rate,
            discount_amount=split.discount_amount,
            platform_fee=split.platform_fee,
            final_amount=split.final_amount,
            partner_payout=split.partner_payout,
            description=description,
            notes=notes,
            gateway_order_id=gateway_order.id,
            status=OrderStatus.PENDING,
        )

    @staticmethod
    async def _persist(db: AsyncSession, order: Order, gateway_order: GatewayOrder) -> None:
        db.add(order)
        try:
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            logger.error(
                "Reconciliation gap: gateway order created but ledger order not saved",
                extra={
                    "order_id": order.order_id,
                    "gateway_order_id": gateway_order.id,
                    "receipt": gateway_order.receipt,
                },
                exc_info=True,
            )
            raise
        await db.refresh(order)

    # Lookup

    @staticmethod
    async def get_by_order_id(db: AsyncSession, order_id: str) -> Optional[Order]:
        result = await db.execute(select(Order).where(Order.order_id == order_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_gateway_order_id(db: AsyncSession, gateway_order_id: str) -> Optional[Order]:
        result = await db.execute(select(Order).where(Order.gateway_order_id == gateway_order_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_gateway_payment_id(
        db: AsyncSession,
        payment_id: str,
        status: Optional[OrderStatus] = None,
    ) -> Optional[Order]:
        query = select(Order).where(Order.gateway_payment_id == payment_id)
        if status:
            query = query.where(Order.status == status)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_order_for_user(db: AsyncSession, order_id: str, user_id: UUID) -> Order:
        order = await OrderService.get_by_order_id(db, order_id)
        if not order:
            raise NotFoundError("Order not found")
        if order.user_id != user_id:
            raise ForbiddenError("You do not have access to this order")
        return order

    @staticmethod
    async def list_user_orders(
        db: AsyncSession,
        user_id: UUID,
        skip: int = 0,
        limit: int = 20,
        status: Optional[OrderStatus] = None,
    ) -> tuple[List[Order], int]:
        """Get a user's orders, newest first, with the total count"""
        query = select(Order).where(Order.user_id == user_id)
        if status:
            query = query.where(Order.status == status)
        return await OrderService._paginate(db, query, skip, limit)

    @staticmethod
    async def list_partner_orders(
        db: AsyncSession,
        partner_id: UUID,
        skip: int = 0,
        limit: int = 20,
        status: Optional[OrderStatus] = None,
    ) -> tuple[List[Order], int]:
        """Get a partner's orders, newest first, with the total count"""
        query = select(Order).where(Order.partner_id == partner_id)
        if status:
            query = query.where(Order.status == status)
        return await OrderService._paginate(db, query, skip, limit)

    @staticmethod
    async def _paginate(db: AsyncSession, query, skip: int, limit: int) -> tuple[List[Order], int]:
        count_stmt = select(func.count()).select_from(query.subquery())
        total = (await db.execute(count_stmt)).scalar_one()

        result = await db.execute(
            query.order_by(Order.created_at.desc(), Order.order_id.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all()), total

    # State machine

    @staticmethod
    async def _transition(
        db: AsyncSession,
        order: Order,
        from_status: OrderStatus,
        to_status: OrderStatus,
        **values: Any,
    ) -> bool:
        """
        Move ``order`` from ``from_status`` to ``to_status`` if it is still in
        ``from_status``. Returns whether this call made the change. Not
        committed.
        """
        if to_status not in ORDER_TRANSITIONS[from_status]:
            raise InvalidStateError(f"Order cannot move from {from_status.value} to {to_status.value}")

        result = await db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == from_status)
            .values(status=to_status, updated_at=get_utc_now(), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def complete_order(
        db: AsyncSession,
        order: Order,
        payment_id: Optional[str],
        signature: Optional[str] = None,
        method: Optional[PaymentMethod] = None,
    ) -> bool:
        """PENDING -> COMPLETED plus analytics, both in the caller's transaction"""
        values: Dict[str, Any] = {"completed_at": get_utc_now()}
        if payment_id:
            values["gateway_payment_id"] = payment_id
        if signature:
            values["gateway_signature"] = signature
        if method:
            values["payment_method"] = method

        won = await OrderService._transition(db, order, OrderStatus.PENDING, OrderStatus.COMPLETED, **values)
        if won:
            await PartnerAnalyticsService.record_completed_order(
                db,
                partner_id=order.partner_id,
                original_amount=order.original_amount,
                discount_amount=order.discount_amount,
                user_id=order.user_id,
            )
        return won

    @staticmethod
    async def fail_order(
        db: AsyncSession,
        order: Order,
        reason: str,
        payment_id: Optional[str] = None,
    ) -> bool:
        values: Dict[str, Any] = {"notes": reason}
        if payment_id:
            values["gateway_payment_id"] = payment_id
        return await OrderService._transition(db, order, OrderStatus.PENDING, OrderStatus.FAILED, **values)

    # Verification

    @staticmethod
    async def verify_payment(
        db: AsyncSession,
        gateway: PaymentGateway,
        order_id: str,
        gateway_order_id: str,
        payment_id: str,
        signature: str,
        requesting_user_id: UUID,
    ) -> Order:
        """
        Verify the checkout callback for an order and complete it.

        Retries are expected: verifying an order that is already COMPLETED
        returns it unchanged and does not touch analytics again.

        Raises:
            NotFoundError: no such order
            ForbiddenError: order belongs to someone else
            InvalidStateError: order is FAILED, REFUNDED or otherwise not payable
            GatewayOrderMismatchError: gateway order id does not match the order
            PaymentSignatureError: signature invalid (order is marked FAILED)
        """
        order = await OrderService.get_order_for_user(db, order_id, requesting_user_id)

        if order.status == OrderStatus.COMPLETED:
            logger.info("Order already completed; verify is a no-op", extra={"order_id": order_id})
            return order
        if order.status != OrderStatus.PENDING:
            raise InvalidStateError(f"Order is {order.status.value}")
        if order.gateway_order_id != gateway_order_id:
            logger.warning(
                "Gateway order mismatch",
                extra={
                    "order_id": order_id,
                    "expected": order.gateway_order_id,
                    "received": gateway_order_id,
                },
            )
            raise GatewayOrderMismatchError()

        if not gateway.verify_payment_signature(gateway_order_id, payment_id, signature):
            # The claimed payment id is unverified; it is logged but never stored
            await OrderService.fail_order(db, order, "Payment signature verification failed")
            await db.commit()
            logger.warning(
                "Payment signature rejected",
                extra={
                    "order_id": order_id,
                    "gateway_order_id": gateway_order_id,
                    "payment_id": payment_id,
                    "user_id": str(requesting_user_id),
                },
            )
            raise PaymentSignatureError()

        method = await OrderService._fetch_payment_method(gateway, payment_id)
        won = await OrderService.complete_order(db, order, payment_id, signature, method)
        if won:
            await db.commit()
            logger.info(
                "Order completed",
                extra={"order_id": order_id, "payment_id": payment_id, "source": "verify"},
            )
        else:
            await db.rollback()

        await db.refresh(order)
        if order.status != OrderStatus.COMPLETED:
            raise InvalidStateError(f"Order is {order.status.value}")
        return order

    @staticmethod
    async def _fetch_payment_method(gateway: PaymentGateway, payment_id: str) -> Optional[PaymentMethod]:
        """Payment instrument, if the gateway answers in time. Never fails the payment."""
        try:
            payment = await gateway.fetch_payment(payment_id)
        except (UpstreamUnavailableError, GatewayRequestError) as exc:
            logger.warning(
                "Could not fetch payment details",
                extra={"payment_id": payment_id, "error": exc.code},
            )
            return None
        return parse_payment_method(payment.method)

    # Gateway events

    @staticmethod
    async def apply_webhook_event(db: AsyncSession, event_type: str, payload: Dict[str, Any]) -> bool:
        """
        Apply a verified gateway event. Returns True when an order changed.

        Events for orders that are no longer in the expected state are
        ignored, so redelivery and races with ``verify_payment`` are harmless.
        """
        payment = _entity(payload, "payment")
        gateway_order_id = payment.get("order_id") or _entity(payload, "order").get("id")

        if event_type in COMPLETE_EVENTS or event_type in FAIL_EVENTS:
            if not gateway_order_id:
                logger.warning("Gateway event without order id", extra={"event": event_type})
                return False
            order = await OrderService.get_by_gateway_order_id(db, gateway_order_id)
            if not order:
                logger.warning(
                    "Gateway event for unknown order",
                    extra={"event": event_type, "gateway_order_id": gateway_order_id},
                )
                return False
            if order.status != OrderStatus.PENDING:
                logger.info(
                    "Gateway event ignored",
                    extra={"event": event_type, "order_id": order.order_id, "status": order.status.value},
                )
                return False

            if event_type in COMPLETE_EVENTS:
                changed = await OrderService.complete_order(
                    db, order, payment.get("id"), method=parse_payment_method(payment.get("method"))
                )
            else:
                reason = payment.get("error_description") or "Payment failed at gateway"
                changed = await OrderService.fail_order(db, order, reason, payment.get("id"))
            return await OrderService._finish_event(db, order, event_type, changed)

        if event_type in REFUND_EVENTS:
            refund = _entity(payload, "refund")
            payment_id = refund.get("payment_id") or payment.get("id")
            order = (
                await OrderService.get_by_gateway_payment_id(db, payment_id, status=OrderStatus.COMPLETED)
                if payment_id
                else None
            )
            if not order and gateway_order_id:
                order = await OrderService.get_by_gateway_order_id(db, gateway_order_id)
            if not order:
                logger.warning("Refund for unknown order", extra={"event": event_type, "payment_id": payment_id})
                return False
            if order.status != OrderStatus.COMPLETED:
                logger.info(
                    "Refund event ignored",
                    extra={"event": event_type, "order_id": order.order_id, "status": order.status.value},
                )
                return False
            changed = await OrderService._transition(
                db, order, OrderStatus.COMPLETED, OrderStatus.REFUNDED, refunded_at=get_utc_now()
            )
            return await OrderService._finish_event(db, order, event_type, changed)

        logger.debug("Unhandled gateway event", extra={"event": event_type})
        return False

    @staticmethod
    async def _finish_event(db: AsyncSession, order: Order, event_type: str, changed: bool) -> bool:
        if changed:
            await db.commit()
            await db.refresh(order)
            logger.info(
                "Order updated from gateway event",
                extra={"event": event_type, "order_id": order.order_id, "status": order.status.value},
            )
        else:
            await db.rollback()
        return changed
