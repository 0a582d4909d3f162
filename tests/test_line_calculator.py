from decimal import Decimal

import pytest

from ledger.errors import ValidationError
from ledger.models.obligation import Line
from ledger.services.line_calculator import compute_line_totals

RATE = Decimal("0.15")


def test_percentage_discount_with_tax():
    line = Line(quantity=3, unit_price=Decimal("100"), discount_mode="percentage", discount_value=Decimal("10"))
    t = compute_line_totals(line, RATE)
    assert t.raw_subtotal == Decimal("300")
    assert t.discount_amount == Decimal("30")
    assert t.price_after_discount == Decimal("90")
    assert t.line_subtotal == Decimal("270")
    assert t.tax_amount == Decimal("40.5")
    assert t.line_total == Decimal("310.5")


def test_fixed_discount_is_capped_at_subtotal():
    line = Line(quantity=1, unit_price=Decimal("50"), discount_mode="fixed", discount_value=Decimal("80"))
    t = compute_line_totals(line, RATE)
    assert t.raw_subtotal == Decimal("50")
    assert t.discount_amount == Decimal("50")
    assert t.price_after_discount == Decimal("0")
    assert t.line_total == Decimal("0")


def test_fixed_discount_reduces_unit_price():
    line = Line(quantity=2, unit_price=Decimal("40"), discount_mode="fixed", discount_value=Decimal("15"))
    t = compute_line_totals(line, Decimal("0"))
    assert t.discount_amount == Decimal("15")
    assert t.price_after_discount == Decimal("25")
    assert t.line_subtotal == Decimal("50")


def test_percentage_above_hundred_is_clamped():
    line = Line(quantity=2, unit_price=Decimal("10"), discount_mode="percentage", discount_value=Decimal("150"))
    t = compute_line_totals(line, RATE)
    assert t.discount_amount == Decimal("20")
    assert t.price_after_discount == Decimal("0")
    assert t.line_total == Decimal("0")


@pytest.mark.parametrize("qty, price", [(0, Decimal("99")), (4, Decimal("0"))])
def test_zero_quantity_or_price_gives_zeros(qty, price):
    t = compute_line_totals(Line(quantity=qty, unit_price=price, discount_value=Decimal("5")), RATE)
    assert t.raw_subtotal == t.discount_amount == t.line_subtotal == t.tax_amount == t.line_total == 0


def test_tax_disabled_means_zero_rate():
    t = compute_line_totals(Line(quantity=2, unit_price=Decimal("12.50")))
    assert t.tax_amount == 0
    assert t.line_total == Decimal("25.00")


def test_negative_values_rejected():
    with pytest.raises(ValueError):
        Line(quantity=-1, unit_price=Decimal("10"))
    bad = Line.model_construct(
        description="", quantity=2, unit_price=Decimal("-3"),
        discount_mode="percentage", discount_value=Decimal("0"),
    )
    with pytest.raises(ValidationError):
        compute_line_totals(bad, RATE)
    with pytest.raises(ValidationError):
        compute_line_totals(Line(quantity=1, unit_price=Decimal("1")), Decimal("-0.1"))


def test_legacy_line_keys():
    fixed = Line.model_validate({"quantity": 2, "unitPrice": 50, "discountAmount": 10, "discountPercent": 0})
    assert fixed.discount_mode == "fixed"
    assert fixed.discount_value == Decimal("10")
    pct = Line.model_validate({"quantity": 1, "unitPrice": "80", "discountPercent": 25, "discountAmount": 0})
    assert pct.discount_mode == "percentage"
    assert compute_line_totals(pct).line_subtotal == Decimal("60")


@pytest.mark.parametrize("mode, value", [
    ("percentage", Decimal("0")),
    ("percentage", Decimal("33.3")),
    ("percentage", Decimal("100")),
    ("fixed", Decimal("0.01")),
    ("fixed", Decimal("49.99")),
    ("fixed", Decimal("1000")),
])
def test_discount_never_exceeds_raw_subtotal(mode, value):
    line = Line(quantity=3, unit_price=Decimal("19.99"), discount_mode=mode, discount_value=value)
    t = compute_line_totals(line, RATE)
    assert 0 <= t.discount_amount <= t.raw_subtotal
    assert t.price_after_discount >= 0
    assert t.line_subtotal >= 0
