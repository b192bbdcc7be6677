"""Models Package - Export all models for easy imports"""

from app.models.base import BaseModel, PartnerScopedMixin
from app.models.enums import *
from app.models.user import User
from app.models.partner import Partner
from app.models.bill_request import BillRequest
from app.models.order import Order
from app.models.sequence import SequenceCounter


__all__ = [
    # Base classes
    "BaseModel",
    "PartnerScopedMixin",

    # Accounts
    "User",
    "Partner",

    # Payments
    "BillRequest",
    "Order",

    # Infrastructure
    "SequenceCounter",
]
