"""Bill endpoints: partners issue QR bills, users scan and pay them"""

from typing import Any, List

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.config import settings
from app.core.rate_limit import limiter, SCAN_LIMIT
from app.models.partner import Partner
from app.models.user import User
from app.schemas.bill import (
    ActiveBill,
    AmountBreakdown,
    BillCreate,
    BillCreateResponse,
    BillPayRequest,
    BillValidateRequest,
    BillValidateResponse,
    MerchantInfo,
    PartnerAmountBreakdown,
)
from app.schemas.order import CheckoutResponse, GatewayCheckout, OrderResponse
from app.schemas.responses import SuccessResponse
from app.services.bill_service import BillService
from app.services.order_service import OrderService
from app.services.payment_gateway import PaymentGateway
from app.services.settlement import to_minor_units

router = APIRouter()


@router.post("/create", response_model=SuccessResponse[BillCreateResponse], status_code=201)
async def create_bill(
    bill_in: BillCreate,
    partner: Partner = Depends(deps.require_partner),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Create a bill and its QR token. The discount rate is locked on the bill.
    """
    expiry_minutes = bill_in.expiry_minutes or settings.DEFAULT_BILL_EXPIRY_MINUTES
    bill = await BillService.create_bill(
        db,
        partner,
        amount=to_minor_units(bill_in.amount),
        discount_rate=bill_in.discount_rate,
        description=bill_in.description,
        expiry_minutes=expiry_minutes,
    )
    split = BillService.preview_split(bill.amount, bill.discount_rate)
    return SuccessResponse(
        data=BillCreateResponse(
            bill_id=bill.bill_id,
            qr_token=bill.qr_token,
            amounts=PartnerAmountBreakdown.from_split(split),
            description=bill.description,
            expires_at=bill.expires_at,
            expiry_minutes=expiry_minutes,
            merchant=MerchantInfo.from_partner(partner),
        ),
        message="Bill created successfully",
    )


@router.get("/active", response_model=SuccessResponse[List[ActiveBill]])
async def list_active_bills(
    partner: Partner = Depends(deps.require_partner),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """List the partner's open bills, newest first"""
    bills = await BillService.list_active(db, partner.id)
    return SuccessResponse(data=[ActiveBill.from_bill(b) for b in bills])


@router.delete("/{bill_id}", response_model=SuccessResponse[dict])
async def cancel_bill(
    bill_id: str,
    partner: Partner = Depends(deps.require_partner),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """Cancel an ACTIVE bill. Orders already created from it are unaffected."""
    bill = await BillService.cancel_bill(db, partner.id, bill_id)
    return SuccessResponse(
        data={"bill_id": bill.bill_id, "status": bill.status},
        message="Bill cancelled successfully",
    )


@router.post("/validate", response_model=SuccessResponse[BillValidateResponse])
@limiter.limit(SCAN_LIMIT)
async def validate_bill(
    request: Request,
    body: BillValidateRequest,
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """Validate a scanned QR code and show what the user will pay"""
    validated = await BillService.validate_token(db, body.qr_token)
    bill = validated.bill
    return SuccessResponse(
        data=BillValidateResponse(
            bill_id=bill.bill_id,
            merchant=MerchantInfo.from_partner(validated.partner),
            amounts=AmountBreakdown.from_split(validated.split),
            description=bill.description,
            expires_at=bill.expires_at,
        ),
        message="Bill is valid",
    )


@router.post("/pay", response_model=SuccessResponse[CheckoutResponse], status_code=201)
@limiter.limit(SCAN_LIMIT)
async def pay_bill(
    request: Request,
    body: BillPayRequest,
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db),
    gateway: PaymentGateway = Depends(deps.get_payment_gateway),
) -> Any:
    """Consume the bill and open a payment order for the discounted amount"""
    result = await OrderService.create_from_bill(db, gateway, body.bill_id, current_user)
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
