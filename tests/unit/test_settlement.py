"""Unit tests for the settlement calculator."""

from decimal import Decimal

import pytest

from app.services.settlement import (
    compute_split,
    percentage_of,
    round_half_up,
    to_major_units,
    to_minor_units,
)


def test_reference_scenario():
    """Rs 1000 at 6% discount with a 1% platform fee."""
    split = compute_split(100000, Decimal("6"), Decimal("1"))
    assert split.discount_amount == 6000
    assert split.final_amount == 94000
    assert split.platform_fee == 1000
    assert split.partner_payout == 99000


def test_fee_is_charged_on_original_amount():
    split = compute_split(10000, Decimal("50"), Decimal("1"))
    assert split.final_amount == 5000
    assert split.platform_fee == 100


@pytest.mark.parametrize("amount", [100, 101, 999, 12345, 9_999_999])
@pytest.mark.parametrize("rate", ["0", "2.5", "6", "12.75", "33.33", "50"])
def test_discount_and_final_amount_sum_to_original(amount, rate):
    split = compute_split(amount, Decimal(rate), Decimal("1"))
    assert split.discount_amount + split.final_amount == amount
    assert split.platform_fee + split.partner_payout == amount


def test_half_paisa_rounds_up():
    # 150 * 5% = 7.5 paise
    assert percentage_of(150, Decimal("5")) == 8
    # 149 * 5% = 7.45 paise
    assert percentage_of(149, Decimal("5")) == 7


def test_fractional_rate_is_exact():
    # 0.1 has no exact float representation; Decimal keeps it exact
    assert percentage_of(1000, Decimal("0.1")) == 1
    assert percentage_of(5, Decimal("10")) == 1  # 0.5 rounds up


def test_round_half_up():
    assert round_half_up(5, 2) == 3
    assert round_half_up(4, 2) == 2
    assert round_half_up(7, 3) == 2
    assert round_half_up(-5, 2) == -3
    with pytest.raises(ValueError):
        round_half_up(1, 0)


def test_rates_accept_strings_and_ints():
    assert compute_split(1000, "10", 1).discount_amount == 100


@pytest.mark.parametrize("amount", [-1, 1.5, True, "100"])
def test_amount_must_be_non_negative_int(amount):
    with pytest.raises((TypeError, ValueError)):
        compute_split(amount, Decimal("6"), Decimal("1"))


@pytest.mark.parametrize("rate", ["-1", "100.01"])
def test_rate_bounds(rate):
    with pytest.raises(ValueError):
        compute_split(1000, Decimal(rate), Decimal("1"))
    with pytest.raises(ValueError):
        compute_split(1000, Decimal("6"), Decimal(rate))


def test_unit_conversion():
    assert to_minor_units(Decimal("1000")) == 100000
    assert to_minor_units(Decimal("12.345")) == 1235
    assert to_minor_units("0.01") == 1
    assert to_major_units(94000) == Decimal("940.00")
    assert str(to_major_units(5)) == "0.05"
