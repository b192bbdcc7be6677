"""Users: paying customers and partner account holders"""

from sqlalchemy import Column, String, Boolean, BigInteger, Integer, JSON
from sqlalchemy.orm import relationship

from app.models.base import BaseModel
from app.models.enums import UserRole


class User(BaseModel):
    """
    Application user. Identity is issued by the auth provider; this table only
    keeps what the payment flow needs (roles, activity flag, lifetime stats).
    """
    __tablename__ = "users"

    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(20), unique=True, nullable=True, index=True)
    name = Column(String(255), nullable=False)

    roles = Column(JSON, nullable=False, default=lambda: [UserRole.USER.value])
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    # Lifetime stats (minor units), bumped on each completed order
    total_savings = Column(BigInteger, default=0, nullable=False)
    total_orders = Column(Integer, default=0, nullable=False)

    # Relationships
    partner = relationship("Partner", back_populates="user", uselist=False)

    def has_role(self, role: UserRole) -> bool:
        return role.value in (self.roles or [])

    def __repr__(self) -> str:
        return f"<User {self.email}>"
