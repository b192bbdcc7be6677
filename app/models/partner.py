"""Partner (merchant) profile with embedded analytics counters"""

from sqlalchemy import Column, String, Boolean, BigInteger, Integer, Numeric, ForeignKey, Uuid
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship

from app.models.base import BaseModel
from app.models.enums import PartnerStatus, BusinessCategory


class Partner(BaseModel):
    """
    Merchant account that issues bills and receives payouts.

    ``discount_rate`` is the live rate the partner advertises. Bills copy the
    rate at creation time and never read it again.
    """
    __tablename__ = "partners"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False, index=True)

    business_name = Column(String(255), nullable=False, index=True)
    category = Column(SAEnum(BusinessCategory, name="business_category"), nullable=False)
    discount_rate = Column(Numeric(5, 2), nullable=False, default=5)

    status = Column(SAEnum(PartnerStatus, name="partner_status"), default=PartnerStatus.PENDING, nullable=False, index=True)
    is_verified = Column(Boolean, default=False, nullable=False)
    payout_enabled = Column(Boolean, default=True, nullable=False)

    # Analytics, derived from completed orders (minor units)
    total_orders = Column(Integer, default=0, nullable=False)
    total_revenue = Column(BigInteger, default=0, nullable=False)
    total_discount_given = Column(BigInteger, default=0, nullable=False)
    average_order_value = Column(BigInteger, default=0, nullable=False)

    # Relationships
    user = relationship("User", back_populates="partner")

    @property
    def is_active(self) -> bool:
        return self.status == PartnerStatus.ACTIVE

    @property
    def can_accept_orders(self) -> bool:
        return self.is_active and bool(self.payout_enabled)

    def __repr__(self) -> str:
        return f"<Partner {self.business_name} - {self.status}>"
