"""Bill Pydantic Schemas"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict

from app.models.enums import BillStatus, BusinessCategory
from app.services.settlement import Split, to_major_units


class MerchantInfo(BaseModel):
    """Public partner details shown to a paying user"""
    partner_id: UUID
    business_name: str
    category: BusinessCategory

    @classmethod
    def from_partner(cls, partner) -> "MerchantInfo":
        return cls(partner_id=partner.id, business_name=partner.business_name, category=partner.category)


class AmountBreakdown(BaseModel):
    """Display amounts in rupees with the exact paise values alongside"""
    original_amount: Decimal
    discount_rate: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    original_amount_in_paise: int
    discount_amount_in_paise: int
    final_amount_in_paise: int

    @classmethod
    def from_split(cls, split: Split) -> "AmountBreakdown":
        return cls(
            original_amount=to_major_units(split.original_amount),
            discount_rate=split.discount_rate,
            discount_amount=to_major_units(split.discount_amount),
            final_amount=to_major_units(split.final_amount),
            original_amount_in_paise=split.original_amount,
            discount_amount_in_paise=split.discount_amount,
            final_amount_in_paise=split.final_amount,
        )


class PartnerAmountBreakdown(AmountBreakdown):
    """Breakdown for the issuing partner, including what it will receive"""
    platform_fee: Decimal
    partner_payout: Decimal
    platform_fee_in_paise: int
    partner_payout_in_paise: int

    @classmethod
    def from_split(cls, split: Split) -> "PartnerAmountBreakdown":
        base = AmountBreakdown.from_split(split).model_dump()
        return cls(
            **base,
            platform_fee=to_major_units(split.platform_fee),
            partner_payout=to_major_units(split.partner_payout),
            platform_fee_in_paise=split.platform_fee,
            partner_payout_in_paise=split.partner_payout,
        )


# Requests

class BillCreate(BaseModel):
    """Schema for creating a bill (amount in rupees)"""
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2, description="Bill amount in rupees")
    discount_rate: Decimal = Field(..., ge=0, le=100, max_digits=5, decimal_places=2, description="Discount percentage")
    description: Optional[str] = Field(None, max_length=200)
    expiry_minutes: Optional[int] = Field(None, ge=1, description="Minutes until the QR code expires")


class BillValidateRequest(BaseModel):
    qr_token: str = Field(..., min_length=1, max_length=2048)


class BillPayRequest(BaseModel):
    bill_id: str = Field(..., min_length=1, max_length=20)


# Responses

class BillCreateResponse(BaseModel):
    bill_id: str
    qr_token: str
    amounts: PartnerAmountBreakdown
    description: Optional[str] = None
    expires_at: datetime
    expiry_minutes: int
    merchant: MerchantInfo


class ActiveBill(BaseModel):
    """Schema for a partner's open bill"""
    bill_id: str
    amount: Decimal
    amount_in_paise: int
    discount_rate: Decimal
    description: Optional[str] = None
    status: BillStatus
    qr_token: Optional[str] = None
    expires_at: datetime
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_bill(cls, bill) -> "ActiveBill":
        return cls(
            bill_id=bill.bill_id,
            amount=to_major_units(bill.amount),
            amount_in_paise=bill.amount,
            discount_rate=bill.discount_rate,
            description=bill.description,
            status=bill.status,
            qr_token=bill.qr_token,
            expires_at=bill.expires_at,
            created_at=bill.created_at,
        )


class BillValidateResponse(BaseModel):
    bill_id: str
    merchant: MerchantInfo
    amounts: AmountBreakdown
    description: Optional[str] = None
    expires_at: datetime
