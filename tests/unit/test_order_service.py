"""Unit tests for OrderService."""

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.core.exceptions import (
    BillAlreadyUsedError,
    ForbiddenError,
    GatewayOrderMismatchError,
    GatewayTimeoutError,
    InvalidInputError,
    InvalidStateError,
    MerchantInactiveError,
    NotFoundError,
    PaymentSignatureError,
    UpstreamUnavailableError,
)
from app.models.bill_request import BillRequest
from app.models.enums import BillStatus, OrderStatus, PartnerStatus, PaymentMethod
from app.models.order import Order
from app.models.partner import Partner
from app.models.user import User
from app.services.bill_service import BillService
from app.services.order_service import OrderService
from conftest import sign_payment


async def _bill(db, partner, amount=100000, rate="6"):
    return await BillService.create_bill(db, partner, amount=amount, discount_rate=Decimal(rate))


async def _checkout(db, gateway, partner, user, **kwargs):
    bill = await _bill(db, partner, **kwargs)
    return await OrderService.create_from_bill(db, gateway, bill.bill_id, user)


async def _verify(db, gateway, order, user, payment_id="pay_00000000000001", signature=None):
    return await OrderService.verify_payment(
        db,
        gateway,
        order_id=order.order_id,
        gateway_order_id=order.gateway_order_id,
        payment_id=payment_id,
        signature=signature or sign_payment(order.gateway_order_id, payment_id),
        requesting_user_id=user.id,
    )


async def _fresh(session_factory, model, pk):
    async with session_factory() as fresh:
        return await fresh.get(model, pk)


# Creation from a bill

@pytest.mark.asyncio
async def test_create_from_bill(db, gateway, razorpay, partner, user, session_factory):
    result = await _checkout(db, gateway, partner, user)
    order = result.order

    assert order.order_id == "TT-000001"
    assert order.status == OrderStatus.PENDING
    assert order.original_amount == 100000
    assert order.discount_rate == Decimal("6")
    assert order.discount_amount == 6000
    assert order.final_amount == 94000
    assert order.platform_fee == 1000
    assert order.partner_payout == 99000
    assert order.user_id == user.id
    assert order.partner_id == partner.id

    gateway_order = razorpay.orders[order.gateway_order_id]
    assert gateway_order["amount"] == 94000
    assert gateway_order["receipt"] == "bill_BR-000001"
    assert gateway_order["notes"]["order_id"] == "TT-000001"
    assert result.gateway_order.id == order.gateway_order_id
    assert result.partner.id == partner.id

    bill = await _fresh(session_factory, BillRequest, order.bill_request_id)
    assert bill.status == BillStatus.USED
    assert bill.used_by == user.id
    assert bill.order_id == order.id


@pytest.mark.asyncio
async def test_bill_cannot_be_paid_twice(db, gateway, partner, user, other_user, session_factory):
    first = await _checkout(db, gateway, partner, user)
    bill = await _fresh(session_factory, BillRequest, first.order.bill_request_id)

    with pytest.raises(BillAlreadyUsedError):
        await OrderService.create_from_bill(db, gateway, bill.bill_id, other_user)

    async with session_factory() as check:
        orders = (await check.execute(select(Order).where(Order.bill_request_id == bill.id))).scalars().all()
    assert len(orders) == 1


@pytest.mark.asyncio
async def test_gateway_failure_leaves_bill_payable(db, gateway, razorpay, partner, user, session_factory):
    bill = await _bill(db, partner)
    bill_pk, bill_code = bill.id, bill.bill_id
    razorpay.fail_with = "timeout"

    with pytest.raises(GatewayTimeoutError):
        await OrderService.create_from_bill(db, gateway, bill_code, user)

    async with session_factory() as check:
        stored = (await check.execute(select(BillRequest).where(BillRequest.id == bill_pk))).scalar_one()
        assert stored.status == BillStatus.ACTIVE
        assert stored.used_by is None
        assert (await check.execute(select(Order))).scalars().all() == []

    # The rollback expired the session's instances
    await db.refresh(user)

    # The retry succeeds once the gateway is back
    razorpay.fail_with = None
    result = await OrderService.create_from_bill(db, gateway, bill_code, user)
    assert result.order.status == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_cannot_pay_unknown_bill(db, gateway, user):
    with pytest.raises(NotFoundError):
        await OrderService.create_from_bill(db, gateway, "BR-000404", user)


# Direct payments

@pytest.mark.asyncio
async def test_create_direct_uses_live_rate(db, gateway, razorpay, partner, user):
    partner.discount_rate = Decimal("10")
    await db.commit()

    result = await OrderService.create_direct(db, gateway, partner.id, 25050, user, notes="Lunch")
    order = result.order

    assert order.bill_request_id is None
    assert order.discount_amount == 2505
    assert order.final_amount == 22545
    # Fee from the original amount, half up: 250.5 -> 251
    assert order.platform_fee == 251
    assert order.partner_payout == 24799
    assert order.notes == "Lunch"
    assert razorpay.orders[order.gateway_order_id]["receipt"] == order.order_id


@pytest.mark.asyncio
async def test_create_direct_rejections(db, gateway, partner, user):
    with pytest.raises(NotFoundError):
        await OrderService.create_direct(db, gateway, uuid.uuid4(), 1000, user)
    with pytest.raises(InvalidInputError):
        await OrderService.create_direct(db, gateway, partner.id, 50, user)

    partner.payout_enabled = False
    await db.commit()
    with pytest.raises(MerchantInactiveError):
        await OrderService.create_direct(db, gateway, partner.id, 1000, user)


# Verification

@pytest.mark.asyncio
async def test_verify_completes_order(db, gateway, razorpay, partner, user, session_factory):
    order = (await _checkout(db, gateway, partner, user)).order
    payment = razorpay.add_payment(order.gateway_order_id, method="upi")

    verified = await _verify(db, gateway, order, user, payment_id=payment["id"])

    assert verified.status == OrderStatus.COMPLETED
    assert verified.completed_at is not None
    assert verified.gateway_payment_id == payment["id"]
    assert verified.payment_method == PaymentMethod.UPI

    stored_partner = await _fresh(session_factory, Partner, partner.id)
    assert stored_partner.total_orders == 1
    assert stored_partner.total_revenue == 100000
    assert stored_partner.total_discount_given == 6000
    assert stored_partner.average_order_value == 100000

    stored_user = await _fresh(session_factory, User, user.id)
    assert stored_user.total_orders == 1
    assert stored_user.total_savings == 6000


@pytest.mark.asyncio
async def test_verify_twice_is_idempotent(db, gateway, razorpay, partner, user, session_factory):
    order = (await _checkout(db, gateway, partner, user)).order
    payment = razorpay.add_payment(order.gateway_order_id)

    first = await _verify(db, gateway, order, user, payment_id=payment["id"])
    second = await _verify(db, gateway, order, user, payment_id=payment["id"])

    assert first.status == second.status == OrderStatus.COMPLETED
    stored_partner = await _fresh(session_factory, Partner, partner.id)
    assert stored_partner.total_orders == 1
    assert stored_partner.total_revenue == 100000


@pytest.mark.asyncio
async def test_verify_from_a_stale_session_does_not_double_count(gateway, razorpay, partner, user, session_factory):
    """A retry whose session still sees the order as PENDING loses the conditional update."""
    async with session_factory() as setup:
        order = (await _checkout(setup, gateway, await setup.get(Partner, partner.id), user)).order
    payment = razorpay.add_payment(order.gateway_order_id)

    async with session_factory() as first, session_factory() as retry:
        stale = await OrderService.get_by_order_id(retry, order.order_id)
        assert stale.status == OrderStatus.PENDING

        await _verify(first, gateway, order, user, payment_id=payment["id"])
        again = await _verify(retry, gateway, stale, user, payment_id=payment["id"])
        assert again.status == OrderStatus.COMPLETED

    stored_partner = await _fresh(session_factory, Partner, partner.id)
    assert stored_partner.total_orders == 1


@pytest.mark.asyncio
async def test_tampered_signature_fails_order(db, gateway, razorpay, partner, user, session_factory):
    order = (await _checkout(db, gateway, partner, user)).order
    payment = razorpay.add_payment(order.gateway_order_id)
    tampered = sign_payment(order.gateway_order_id, payment["id"])[:-4] + "beef"

    with pytest.raises(PaymentSignatureError):
        await _verify(db, gateway, order, user, payment_id=payment["id"], signature=tampered)

    stored = await _fresh(session_factory, Order, order.id)
    assert stored.status == OrderStatus.FAILED
    assert stored.completed_at is None
    assert stored.gateway_payment_id is None
    assert (await _fresh(session_factory, Partner, partner.id)).total_orders == 0

    # A FAILED order cannot be completed afterwards
    with pytest.raises(InvalidStateError):
        await _verify(db, gateway, order, user, payment_id=payment["id"])


@pytest.mark.asyncio
async def test_verify_checks_owner_and_gateway_order(db, gateway, partner, user, other_user):
    order = (await _checkout(db, gateway, partner, user)).order

    with pytest.raises(NotFoundError):
        await OrderService.verify_payment(db, gateway, "TT-999999", "order_x", "pay_x", "sig", user.id)

    with pytest.raises(ForbiddenError):
        await _verify(db, gateway, order, other_user)

    with pytest.raises(GatewayOrderMismatchError):
        await OrderService.verify_payment(
            db,
            gateway,
            order_id=order.order_id,
            gateway_order_id="order_someone_elses",
            payment_id="pay_1",
            signature=sign_payment("order_someone_elses", "pay_1"),
            requesting_user_id=user.id,
        )
    await db.refresh(order)
    assert order.status == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_slow_payment_lookup_does_not_fail_payment(db, gateway, razorpay, partner, user):
    order = (await _checkout(db, gateway, partner, user)).order
    payment = razorpay.add_payment(order.gateway_order_id)
    razorpay.fail_with = "timeout"

    verified = await _verify(db, gateway, order, user, payment_id=payment["id"])
    assert verified.status == OrderStatus.COMPLETED
    assert verified.payment_method is None


# Listing

@pytest.mark.asyncio
async def test_list_orders(db, gateway, partner, user, other_user):
    for _ in range(3):
        await _checkout(db, gateway, partner, user, amount=1000)
    await _checkout(db, gateway, partner, other_user, amount=1000)

    mine, total = await OrderService.list_user_orders(db, user.id, skip=0, limit=2)
    assert total == 3
    assert len(mine) == 2
    assert all(o.user_id == user.id for o in mine)

    partner_orders, partner_total = await OrderService.list_partner_orders(db, partner.id)
    assert partner_total == 4

    completed, completed_total = await OrderService.list_partner_orders(
        db, partner.id, status=OrderStatus.COMPLETED
    )
    assert completed == [] and completed_total == 0


@pytest.mark.asyncio
async def test_get_order_for_user(db, gateway, partner, user, other_user):
    order = (await _checkout(db, gateway, partner, user)).order
    assert (await OrderService.get_order_for_user(db, order.order_id, user.id)).id == order.id
    with pytest.raises(ForbiddenError):
        await OrderService.get_order_for_user(db, order.order_id, other_user.id)
    with pytest.raises(NotFoundError):
        await OrderService.get_order_for_user(db, "TT-000999", user.id)


@pytest.mark.asyncio
async def test_order_survives_bill_cancellation_attempt(db, gateway, partner, user):
    result = await _checkout(db, gateway, partner, user)
    bill = await db.get(BillRequest, result.order.bill_request_id)
    with pytest.raises(InvalidStateError):
        await BillService.cancel_bill(db, partner.id, bill.bill_id)
    await db.refresh(result.order)
    assert result.order.status == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_inactive_partner_blocks_payment(db, gateway, partner, user):
    bill = await _bill(db, partner)
    partner.status = PartnerStatus.SUSPENDED
    await db.commit()
    with pytest.raises(MerchantInactiveError):
        await OrderService.create_from_bill(db, gateway, bill.bill_id, user)


@pytest.mark.asyncio
async def test_unavailable_gateway_is_not_a_failed_payment(db, gateway, razorpay, partner, user):
    bill = await _bill(db, partner)
    user_id = user.id
    razorpay.fail_with = 503
    with pytest.raises(UpstreamUnavailableError):
        await OrderService.create_from_bill(db, gateway, bill.bill_id, user)
    assert (await OrderService.list_user_orders(db, user_id))[1] == 0
