"""Orders: payment transactions brokered through the gateway"""

from sqlalchemy import Column, String, Text, DateTime, BigInteger, Numeric, Boolean, ForeignKey, Uuid, Index
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship

from app.models.base import BaseModel, PartnerScopedMixin
from app.models.enums import OrderStatus, PaymentMethod


class Order(BaseModel, PartnerScopedMixin):
    """
    One payment, usually derived from exactly one bill.

    Settlement amounts are computed once at creation and never recomputed:
    final_amount = original_amount - discount_amount and
    partner_payout = original_amount - platform_fee.
    """
    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_user_status_created", "user_id", "status", "created_at"),
        Index("ix_orders_partner_status_created", "partner_id", "status", "created_at"),
    )

    order_id = Column(String(20), unique=True, nullable=False, index=True)

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    bill_request_id = Column(Uuid(as_uuid=True), ForeignKey("bill_requests.id", ondelete="SET NULL"), nullable=True, index=True)

    # Amounts (minor units)
    original_amount = Column(BigInteger, nullable=False)
    discount_rate = Column(Numeric(5, 2), nullable=False)
    discount_amount = Column(BigInteger, nullable=False)
    platform_fee = Column(BigInteger, nullable=False, default=0)
    final_amount = Column(BigInteger, nullable=False)
    partner_payout = Column(BigInteger, nullable=False)
    description = Column(String(200), nullable=True)

    # Gateway correlation
    payment_method = Column(SAEnum(PaymentMethod, name="payment_method"), nullable=True)
    gateway_order_id = Column(String(64), unique=True, nullable=True, index=True)
    gateway_payment_id = Column(String(64), nullable=True, index=True)
    gateway_signature = Column(String(256), nullable=True)

    status = Column(SAEnum(OrderStatus, name="order_status"), default=OrderStatus.PENDING, nullable=False, index=True)
    notes = Column(Text, nullable=True)

    # Settlement
    is_settled = Column(Boolean, default=False, nullable=False)
    settled_at = Column(DateTime, nullable=True)

    completed_at = Column(DateTime, nullable=True)
    refunded_at = Column(DateTime, nullable=True)

    # Relationships
    partner = relationship("Partner")
    user = relationship("User")

    def __repr__(self) -> str:
        return f"<Order {self.order_id} - {self.status}>"
