"""Ventilation d'un paiement global sur les obligations ouvertes d'un tiers (FIFO).

Arrondi à 2 décimales à chaque étape, comme le cumul d'origine.
"""
from __future__ import annotations
import logging
from typing import Any, Iterable, List

from ledger.errors import ValidationError
from ledger.models.common import ZERO
from ledger.models.reconciliation import (
    AllocationResult,
    AllocationUpdate,
    BalanceSummary,
    CreditApplication,
    OpenObligation,
)
from ledger.services.rounding import clamp_non_negative, round_currency, to_decimal

logger = logging.getLogger(__name__)


def _open(ob: Any) -> OpenObligation:
    if isinstance(ob, OpenObligation):
        return ob
    if isinstance(ob, dict):
        d = dict(ob)
        if "remaining_amount" not in d and "remaining" in d:
            d["remaining_amount"] = d.pop("remaining")
        return OpenObligation.model_validate(d)
    return OpenObligation.model_validate(ob, from_attributes=True)


def allocate_payment(
    payment_amount: Any,
    open_obligations: Iterable[Any],
    credit_balance: Any = ZERO,
) -> AllocationResult:
    """Applique `payment_amount` aux obligations dans l'ordre reçu (la plus ancienne d'abord).

    Le reliquat devient un avoir : `new_credit_balance = credit_balance - leftover`.
    """
    amount = round_currency(payment_amount)
    if amount <= 0:
        raise ValidationError("Payment amount must be greater than zero", field="amount", amount=amount)

    remaining_payment = amount
    updates: List[AllocationUpdate] = []
    for ob in map(_open, open_obligations):
        if remaining_payment <= 0:
            break
        if ob.remaining_amount <= 0:
            continue

        applied = round_currency(min(ob.remaining_amount, remaining_payment))
        new_remaining = round_currency(ob.remaining_amount - applied)
        new_paid = round_currency(ob.paid_amount + applied)
        if new_remaining <= 0:
            status = "PAID"
        elif new_paid > 0:
            status = "PARTIAL"
        else:
            status = ob.status
        updates.append(AllocationUpdate(
            obligation_id=ob.id,
            applied=applied,
            paid_amount=new_paid,
            remaining_amount=new_remaining,
            status=status,
        ))
        remaining_payment = round_currency(remaining_payment - applied)

    leftover = clamp_non_negative(remaining_payment)
    new_credit = round_currency(to_decimal(credit_balance) - leftover)
    if leftover > 0:
        logger.info("Payment of %s left %s as counterparty credit", amount, leftover)
    return AllocationResult(updates=updates, leftover=leftover, new_credit_balance=new_credit)


def summarize_balance(open_remaining: Iterable[Any], persisted_balance: Any = ZERO) -> BalanceSummary:
    """Solde d'un tiers : reste dû des obligations + ajustement persisté (négatif = avoir)."""
    outstanding = round_currency(sum((to_decimal(r) for r in open_remaining), ZERO))
    persisted = to_decimal(persisted_balance)
    current = round_currency(outstanding + persisted)
    return BalanceSummary(
        outstanding=outstanding,
        persisted_balance=persisted,
        current_balance=current,
        credit_balance=-current if current < 0 else ZERO,
        payable_balance=current if current > 0 else ZERO,
    )


def apply_credit(grand_total: Any, available_credit: Any, persisted_balance: Any = ZERO) -> CreditApplication:
    """Consomme l'avoir disponible sur une nouvelle obligation.

    Le solde persisté remonte du montant consommé (l'avoir diminue).
    """
    total = round_currency(grand_total)
    credit = clamp_non_negative(available_credit)
    applied = round_currency(min(credit, total))
    remaining = round_currency(clamp_non_negative(total - applied))
    if remaining <= 0 and total > 0:
        status = "PAID"
    elif applied > 0:
        status = "PARTIAL"
    else:
        status = "DRAFT"
    return CreditApplication(
        applied=applied,
        paid_amount=applied,
        remaining_amount=remaining,
        status=status,
        new_balance=round_currency(to_decimal(persisted_balance) + applied),
    )
