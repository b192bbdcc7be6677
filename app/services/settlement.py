"""Settlement Calculator - pure integer money arithmetic

All amounts are integers in minor currency units (paise). Rates are decimal
percentages (``Decimal("6")`` is 6%). Every division by 100 goes through
``round_half_up`` so the bill preview, the validation screen and the payment
order always agree to the paisa.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Rate = Union[Decimal, int, str]

_MINOR_UNITS_PER_MAJOR = 100


@dataclass(frozen=True)
class Split:
    """How one payment is divided between the user, the platform and the partner"""
    original_amount: int
    discount_rate: Decimal
    discount_amount: int
    final_amount: int
    platform_fee_rate: Decimal
    platform_fee: int
    partner_payout: int


def round_half_up(numerator: int, denominator: int) -> int:
    """Integer division rounding halves away from zero (denominator > 0)"""
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    if numerator < 0:
        return -round_half_up(-numerator, denominator)
    return (2 * numerator + denominator) // (2 * denominator)


def percentage_of(amount: int, rate: Rate) -> int:
    """``amount * rate / 100`` in exact integer arithmetic, rounded half up"""
    num, den = Decimal(rate).as_integer_ratio()
    return round_half_up(amount * num, den * 100)


def compute_split(original_amount: int, discount_rate: Rate, platform_fee_rate: Rate) -> Split:
    """
    Compute the settlement split for a payment.

    The final amount is always derived by subtraction, so
    ``discount_amount + final_amount == original_amount`` exactly. The platform
    fee is charged on the original amount, not on what the user pays.

    Args:
        original_amount: Bill amount in minor units
        discount_rate: Discount percentage locked on the bill (0-100)
        platform_fee_rate: Platform fee percentage (0-100)

    Returns:
        Split with discount, final amount, platform fee and partner payout
    """
    if isinstance(original_amount, bool) or not isinstance(original_amount, int):
        raise TypeError("original_amount must be an integer number of minor units")
    if original_amount < 0:
        raise ValueError("original_amount must not be negative")

    discount_rate = Decimal(discount_rate)
    platform_fee_rate = Decimal(platform_fee_rate)
    for name, rate in (("discount_rate", discount_rate), ("platform_fee_rate", platform_fee_rate)):
        if not (Decimal(0) <= rate <= Decimal(100)):
            raise ValueError(f"{name} must be between 0 and 100")

    discount_amount = percentage_of(original_amount, discount_rate)
    platform_fee = percentage_of(original_amount, platform_fee_rate)

    return Split(
        original_amount=original_amount,
        discount_rate=discount_rate,
        discount_amount=discount_amount,
        final_amount=original_amount - discount_amount,
        platform_fee_rate=platform_fee_rate,
        platform_fee=platform_fee,
        partner_payout=original_amount - platform_fee,
    )


def to_minor_units(amount: Union[Decimal, int, str]) -> int:
    """Major units (rupees) -> minor units (paise), rounded half up to the paisa"""
    minor = (Decimal(amount) * _MINOR_UNITS_PER_MAJOR).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return int(minor)


def to_major_units(amount: int) -> Decimal:
    """Minor units -> major units for display, e.g. 94000 -> Decimal('940.00')"""
    return (Decimal(amount) / _MINOR_UNITS_PER_MAJOR).quantize(Decimal("0.01"))
