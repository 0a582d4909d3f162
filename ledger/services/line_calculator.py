from __future__ import annotations
from decimal import Decimal
from typing import Any

from ledger.errors import ValidationError
from ledger.models.common import ZERO
from ledger.models.obligation import Line
from ledger.models.reconciliation import LineTotals
from ledger.services.rounding import clamp, to_decimal

HUNDRED = Decimal("100")


def _check_line(line: Line) -> None:
    # model_construct() contourne les contraintes pydantic
    if line.quantity < 0:
        raise ValidationError("quantity must not be negative", field="quantity")
    if line.unit_price < 0:
        raise ValidationError("unit price must not be negative", field="unit_price")
    if line.discount_value < 0:
        raise ValidationError("discount must not be negative", field="discount_value")


def compute_line_totals(line: Line, tax_rate: Any = ZERO) -> LineTotals:
    """Remise, sous-total, TVA et total d'une ligne.

    `tax_rate` vaut 0 si la TVA est désactivée sur l'obligation.
    """
    _check_line(line)
    rate = to_decimal(tax_rate)
    if rate < 0:
        raise ValidationError("tax rate must not be negative", field="tax_rate")

    qty = Decimal(line.quantity)
    unit = line.unit_price
    if qty == 0 or unit == 0:
        return LineTotals()

    raw = qty * unit
    if line.discount_mode == "percentage":
        pct = clamp(line.discount_value, ZERO, HUNDRED)
        discount = raw * pct / HUNDRED
        price_after = unit * (1 - pct / HUNDRED)
    else:
        discount = min(raw, max(ZERO, line.discount_value))
        price_after = unit - min(unit, line.discount_value)

    subtotal = price_after * qty
    tax = subtotal * rate
    return LineTotals(
        raw_subtotal=raw,
        discount_amount=discount,
        price_after_discount=price_after,
        line_subtotal=subtotal,
        tax_amount=tax,
        line_total=subtotal + tax,
    )
