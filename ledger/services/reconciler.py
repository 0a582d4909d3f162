"""Rapprochement paiements / obligation : payé, reste dû, statut.

Pur : aucune écriture, l'appelant persiste le résultat.
"""
from __future__ import annotations
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Optional

from ledger.errors import InconsistentStateError, ValidationError
from ledger.models.common import ObligationStatus, ZERO, utcnow
from ledger.models.payment import Payment
from ledger.models.reconciliation import Reconciliation
from ledger.services.rounding import (
    OVERPAY_TOLERANCE,
    clamp_non_negative,
    is_negligible,
    round_currency,
    to_decimal,
)

logger = logging.getLogger(__name__)


def _amount(p: Any) -> Decimal:
    if isinstance(p, Payment):
        return p.amount
    if isinstance(p, dict):
        return to_decimal(p.get("amount", p.get("paid_amount")))
    return to_decimal(p)


def _as_date(d: Any) -> Optional[date]:
    if d is None or d == "":
        return None
    if isinstance(d, datetime):
        return d.date()
    if isinstance(d, date):
        return d
    return datetime.fromisoformat(str(d)).date()


def classify(
    grand_total: Decimal,
    paid_amount: Decimal,
    remaining_amount: Decimal,
    due_date: Any = None,
    today: Optional[date] = None,
) -> ObligationStatus:
    if remaining_amount == 0 and grand_total > 0:
        return "PAID"
    if paid_amount > 0:
        # un acompte existe : reste PARTIAL même après l'échéance
        return "PARTIAL"
    due = _as_date(due_date)
    if due is not None and due < (today or utcnow().date()):
        return "OVERDUE"
    return "DRAFT"


def _remaining(grand_total: Decimal, paid: Decimal) -> Decimal:
    remaining = round_currency(clamp_non_negative(grand_total - paid))
    return ZERO if is_negligible(remaining) else remaining


def _cap_paid(grand_total: Decimal, paid: Decimal) -> Decimal:
    if paid - grand_total > OVERPAY_TOLERANCE:
        error = InconsistentStateError(
            "payments exceed grand total", paid_amount=paid, grand_total=grand_total,
        )
        # corrigé sur place : journalisé, jamais levé
        logger.warning(
            "Payments (%s) exceed grand total (%s); clamping paid amount", paid, grand_total,
            extra={"error": error},
        )
        return grand_total
    return paid


def reconcile_payments(
    grand_total: Any,
    payments: Iterable[Any] = (),
    due_date: Any = None,
    *,
    persisted_paid: Any = ZERO,
    today: Optional[date] = None,
) -> Reconciliation:
    """Payé / reste dû / statut d'une obligation.

    `payments` : paiements (objets, dicts ou montants), du plus ancien au plus récent.
    Sans aucun paiement, on retombe sur `persisted_paid` (anciens enregistrements).
    """
    total = to_decimal(grand_total)
    amounts = [_amount(p) for p in payments]
    paid = sum(amounts, ZERO) if amounts else to_decimal(persisted_paid)
    paid = _cap_paid(total, paid)
    remaining = _remaining(total, paid)
    return Reconciliation(
        paid_amount=round_currency(paid),
        remaining_amount=remaining,
        status=classify(total, paid, remaining, due_date, today),
    )


def validate_new_payment(amount: Any, remaining_amount: Any) -> Decimal:
    value = to_decimal(amount)
    if value <= 0:
        raise ValidationError("Payment amount must be greater than zero", field="amount", amount=value)
    remaining = to_decimal(remaining_amount)
    if value - remaining > OVERPAY_TOLERANCE:
        raise ValidationError(
            "Payment amount cannot exceed remaining amount",
            field="amount", amount=value, remaining=remaining,
        )
    return value


def apply_new_payment(
    grand_total: Any,
    current: Reconciliation,
    amount: Any,
    due_date: Any = None,
    today: Optional[date] = None,
) -> Reconciliation:
    """Valide un nouveau paiement puis renvoie l'état à persister sur l'obligation."""
    total = to_decimal(grand_total)
    value = validate_new_payment(amount, current.remaining_amount)
    new_paid = current.paid_amount + value
    if total > 0:
        new_paid = min(new_paid, total)
    new_paid = round_currency(new_paid)
    remaining = _remaining(total, new_paid)
    return Reconciliation(
        paid_amount=new_paid,
        remaining_amount=remaining,
        status=classify(total, new_paid, remaining, due_date, today),
    )
