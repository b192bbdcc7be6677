"""Order and Payment Pydantic Schemas"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.enums import OrderStatus, PaymentMethod
from app.schemas.bill import MerchantInfo
from app.services.settlement import to_major_units


class OrderResponse(BaseModel):
    """Schema for order responses"""
    id: UUID
    order_id: str
    user_id: UUID
    partner_id: UUID
    bill_request_id: Optional[UUID] = None

    original_amount: Decimal
    discount_rate: Decimal
    discount_amount: Decimal
    platform_fee: Decimal
    final_amount: Decimal
    partner_payout: Decimal
    final_amount_in_paise: int

    description: Optional[str] = None
    notes: Optional[str] = None
    status: OrderStatus
    payment_method: Optional[PaymentMethod] = None
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None

    created_at: datetime
    completed_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None

    @classmethod
    def from_order(cls, order) -> "OrderResponse":
        return cls(
            id=order.id,
            order_id=order.order_id,
            user_id=order.user_id,
            partner_id=order.partner_id,
            bill_request_id=order.bill_request_id,
            original_amount=to_major_units(order.original_amount),
            discount_rate=order.discount_rate,
            discount_amount=to_major_units(order.discount_amount),
            platform_fee=to_major_units(order.platform_fee),
            final_amount=to_major_units(order.final_amount),
            partner_payout=to_major_units(order.partner_payout),
            final_amount_in_paise=order.final_amount,
            description=order.description,
            notes=order.notes,
            status=order.status,
            payment_method=order.payment_method,
            gateway_order_id=order.gateway_order_id,
            gateway_payment_id=order.gateway_payment_id,
            created_at=order.created_at,
            completed_at=order.completed_at,
            refunded_at=order.refunded_at,
        )


class GatewayCheckout(BaseModel):
    """What the client needs to open the gateway's checkout"""
    order_id: str
    amount: int = Field(..., description="Amount in paise")
    currency: str
    key: str


class CheckoutResponse(BaseModel):
    order_id: str
    order: OrderResponse
    gateway: GatewayCheckout
    merchant: MerchantInfo


# Requests

class DirectPaymentCreate(BaseModel):
    """Schema for paying a partner without a bill (amount in paise)"""
    partner_id: UUID
    amount: int = Field(..., gt=0, description="Amount in paise")
    notes: Optional[str] = Field(None, max_length=500)


class PaymentVerifyRequest(BaseModel):
    """Checkout callback fields, forwarded by the client"""
    order_id: str = Field(..., min_length=1, max_length=20)
    gateway_order_id: str = Field(..., min_length=1, max_length=64)
    payment_id: str = Field(..., min_length=1, max_length=64)
    signature: str = Field(..., min_length=1, max_length=256)
