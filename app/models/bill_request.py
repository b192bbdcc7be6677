"""Bill requests: partner-issued, time-boxed payment offers behind a QR code"""

from sqlalchemy import Column, String, Text, DateTime, BigInteger, Numeric, ForeignKey, Uuid, Index
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship

from app.models.base import BaseModel, PartnerScopedMixin
from app.models.enums import BillStatus


class BillRequest(BaseModel, PartnerScopedMixin):
    """
    A bill locks the amount and discount rate at creation. It is consumed by
    at most one order; USED, CANCELLED and EXPIRED are terminal.
    """
    __tablename__ = "bill_requests"
    __table_args__ = (
        Index("ix_bill_requests_partner_created", "partner_id", "created_at"),
    )

    bill_id = Column(String(20), unique=True, nullable=False, index=True)

    amount = Column(BigInteger, nullable=False)  # minor units
    discount_rate = Column(Numeric(5, 2), nullable=False)  # locked at creation
    description = Column(String(200), nullable=True)
    qr_token = Column(Text, unique=True, nullable=True)

    status = Column(SAEnum(BillStatus, name="bill_status"), default=BillStatus.ACTIVE, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)

    used_by = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    used_at = Column(DateTime, nullable=True)
    order_id = Column(Uuid(as_uuid=True), nullable=True, index=True)

    # Relationships
    partner = relationship("Partner")

    def __repr__(self) -> str:
        return f"<BillRequest {self.bill_id} - {self.status}>"
