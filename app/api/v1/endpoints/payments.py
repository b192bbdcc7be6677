"""Payment endpoints: direct payments, checkout verification and gateway webhooks"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.models.user import User
from app.schemas.bill import MerchantInfo
from app.schemas.order import (
    CheckoutResponse,
    DirectPaymentCreate,
    GatewayCheckout,
    OrderResponse,
    PaymentVerifyRequest,
)
from app.schemas.responses import SuccessResponse, PaginatedResponse
from app.services.order_service import OrderService
from app.services.payment_gateway import PaymentGateway
from app.services.webhook_service import WebhookDispatcher

router = APIRouter()


@router.post("/create", response_model=SuccessResponse[CheckoutResponse], status_code=201)
async def create_direct_payment(
    payment_in: DirectPaymentCreate,
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db),
    gateway: PaymentGateway = Depends(deps.get_payment_gateway),
) -> Any:
    """Pay a partner directly, without scanning a bill"""
    result = await OrderService.create_direct(
        db,
        gateway,
        partner_id=payment_in.partner_id,
        amount=payment_in.amount,
        user=current_user,
        notes=payment_in.notes,
    )
    order = result.order
    return SuccessResponse(
        data=CheckoutResponse(
            order_id=order.order_id,
            order=OrderResponse.from_order(order),
            gateway=GatewayCheckout(
                order_id=result.gateway_order.id,
                amount=result.gateway_order.amount,
                currency=result.gateway_order.currency,
                key=gateway.key_id,
            ),
            merchant=MerchantInfo.from_partner(result.partner),
        ),
        message="Payment order created",
    )


@router.post("/verify", response_model=SuccessResponse[OrderResponse])
async def verify_payment(
    body: PaymentVerifyRequest,
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db),
    gateway: PaymentGateway = Depends(deps.get_payment_gateway),
) -> Any:
    """
    Verify the gateway's checkout callback. Safe to retry: an order that is
    already completed is returned as is.
    """
    order = await OrderService.verify_payment(
        db,
        gateway,
        order_id=body.order_id,
        gateway_order_id=body.gateway_order_id,
        payment_id=body.payment_id,
        signature=body.signature,
        requesting_user_id=current_user.id,
    )
    return SuccessResponse(data=OrderResponse.from_order(order), message="Payment verified successfully")


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(None),
    db: AsyncSession = Depends(deps.get_db),
    gateway: PaymentGateway = Depends(deps.get_payment_gateway),
) -> Any:
    """Gateway event callback, authenticated by the signature over the raw body"""
    raw_body = await request.body()
    await WebhookDispatcher.dispatch(db, gateway, raw_body, x_razorpay_signature)
    return {"received": True}


@router.get("/history", response_model=PaginatedResponse[OrderResponse])
async def payment_history(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """The caller's payments, newest first"""
    skip = (page - 1) * page_size
    orders, total = await OrderService.list_user_orders(db, current_user.id, skip=skip, limit=page_size)
    total_pages = (total + page_size - 1) // page_size
    return PaginatedResponse(
        data=[OrderResponse.from_order(o) for o in orders],
        meta={
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": total_pages
        }
    )
