"""Centralized Enum Definitions"""

import enum


# Users & partners
class UserRole(str, enum.Enum):
    """Role claims carried by a user account"""
    USER = "USER"
    PARTNER = "PARTNER"
    ADMIN = "ADMIN"


class PartnerStatus(str, enum.Enum):
    """Partner (merchant) lifecycle"""
    PENDING = "PENDING"
    UNDER_REVIEW = "UNDER_REVIEW"
    VERIFIED = "VERIFIED"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    REJECTED = "REJECTED"
    BLOCKED = "BLOCKED"


class BusinessCategory(str, enum.Enum):
    """Partner business categories"""
    RESTAURANT = "RESTAURANT"
    CAFE = "CAFE"
    RETAIL = "RETAIL"
    GROCERY = "GROCERY"
    SALON = "SALON"
    GYM = "GYM"
    HOTEL = "HOTEL"
    TRAVEL = "TRAVEL"
    ENTERTAINMENT = "ENTERTAINMENT"
    OTHER = "OTHER"


# Bills
class BillStatus(str, enum.Enum):
    """Bill request status. Everything but ACTIVE is terminal."""
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    USED = "USED"
    CANCELLED = "CANCELLED"


# Orders
class OrderStatus(str, enum.Enum):
    """Payment order status"""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, enum.Enum):
    """Payment instrument reported by the gateway"""
    UPI = "UPI"
    CARD = "CARD"
    NETBANKING = "NETBANKING"
    WALLET = "WALLET"


# Allowed order transitions; anything not listed is rejected
ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {
        OrderStatus.PROCESSING,
        OrderStatus.COMPLETED,
        OrderStatus.FAILED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.PROCESSING: set(),
    OrderStatus.COMPLETED: {OrderStatus.REFUNDED},
    OrderStatus.FAILED: set(),
    OrderStatus.REFUNDED: set(),
    OrderStatus.CANCELLED: set(),
}
