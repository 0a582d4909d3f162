from __future__ import annotations
from decimal import Decimal
from typing import Any, Mapping, Optional

from ledger.models.common import ZERO
from ledger.models.obligation import DiscountSetting, Obligation
from ledger.models.reconciliation import ObligationTotals
from ledger.services.discounts import effective_lines
from ledger.services.line_calculator import HUNDRED, compute_line_totals
from ledger.services.rounding import clamp_non_negative, round_currency, to_decimal


def obligation_level_discount(subtotal: Decimal, setting: Optional[DiscountSetting]) -> Decimal:
    if setting is None or setting.value <= 0 or subtotal <= 0:
        return ZERO
    if setting.mode == "percentage":
        return subtotal * min(HUNDRED, setting.value) / HUNDRED
    return min(subtotal, setting.value)


def compute_obligation_totals(obligation: Obligation) -> ObligationTotals:
    rate = obligation.effective_tax_rate

    # Facture d'abonnement : montant du plan, pas de remise
    if obligation.is_plan_driven:
        plan = clamp_non_negative(obligation.plan_amount)
        tax = plan * rate
        return ObligationTotals(
            total_before_discount=plan,
            total_after_discount=plan,
            total_tax=tax,
            grand_total=plan + tax,
        )

    line_totals = [compute_line_totals(ln, rate) for ln in effective_lines(obligation)]
    before = sum((lt.raw_subtotal for lt in line_totals), ZERO)
    after_lines = sum((lt.line_subtotal for lt in line_totals), ZERO)

    ob_discount = obligation_level_discount(after_lines, obligation.invoice_discount)
    after = clamp_non_negative(after_lines - ob_discount)
    tax = after * rate
    return ObligationTotals(
        total_before_discount=before,
        line_level_discount=before - after_lines,
        obligation_discount=ob_discount,
        total_discount=before - after,
        total_after_discount=after,
        total_tax=tax,
        grand_total=clamp_non_negative(after + tax),
        lines=line_totals,
    )


def resolve_grand_total(record: Mapping[str, Any]) -> Decimal:
    """Total d'un enregistrement brut, résolu une seule fois à la frontière.

    Ordre : total persisté, puis sous-total + TVA persistés, puis recalcul.
    """
    for key in ("grand_total", "total_amount"):
        total = to_decimal(record.get(key))
        if total > 0:
            return round_currency(total)

    subtotal_plus_tax = to_decimal(record.get("subtotal")) + to_decimal(record.get("tax_amount"))
    if subtotal_plus_tax > 0:
        return round_currency(subtotal_plus_tax)

    data = {"counterparty_id": "", **record}
    if "lines" not in data and isinstance(data.get("invoice_items"), list):
        data["lines"] = data["invoice_items"]
    try:
        ob = Obligation.model_validate(data)
    except ValueError:
        return ZERO
    return round_currency(compute_obligation_totals(ob).grand_total)
