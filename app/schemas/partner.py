"""Partner Pydantic Schemas"""

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel

from app.models.enums import BusinessCategory, PartnerStatus
from app.services.settlement import to_major_units


class PartnerAnalytics(BaseModel):
    """Schema for a partner's sales counters"""
    partner_id: UUID
    business_name: str
    category: BusinessCategory
    status: PartnerStatus
    discount_rate: Decimal

    total_orders: int
    total_revenue: Decimal
    total_discount_given: Decimal
    average_order_value: Decimal
    total_revenue_in_paise: int
    total_discount_given_in_paise: int
    average_order_value_in_paise: int

    @classmethod
    def from_partner(cls, partner) -> "PartnerAnalytics":
        return cls(
            partner_id=partner.id,
            business_name=partner.business_name,
            category=partner.category,
            status=partner.status,
            discount_rate=partner.discount_rate,
            total_orders=partner.total_orders or 0,
            total_revenue=to_major_units(partner.total_revenue or 0),
            total_discount_given=to_major_units(partner.total_discount_given or 0),
            average_order_value=to_major_units(partner.average_order_value or 0),
            total_revenue_in_paise=partner.total_revenue or 0,
            total_discount_given_in_paise=partner.total_discount_given or 0,
            average_order_value_in_paise=partner.average_order_value or 0,
        )
