from datetime import datetime
from decimal import Decimal

import pytest

from ledger.errors import ValidationError
from ledger.models.reconciliation import OpenObligation
from ledger.services.allocator import allocate_payment, apply_credit, summarize_balance


def test_oldest_obligation_paid_first():
    result = allocate_payment(
        Decimal("500"),
        [{"id": "po1", "remaining": 200}, {"id": "po2", "remaining": 400}],
        Decimal("0"),
    )
    first, second = result.updates
    assert (first.obligation_id, first.applied, first.status) == ("po1", Decimal("200.00"), "PAID")
    assert first.remaining_amount == 0
    assert (second.obligation_id, second.applied, second.status) == ("po2", Decimal("300.00"), "PARTIAL")
    assert second.remaining_amount == Decimal("100.00")
    assert result.leftover == 0
    assert result.new_credit_balance == 0


def test_leftover_becomes_credit():
    result = allocate_payment("700", [{"id": "a", "remaining_amount": 200}, {"id": "b", "remaining_amount": 400}], "-50")
    assert result.leftover == Decimal("100.00")
    assert result.new_credit_balance == Decimal("-150.00")
    assert all(u.status == "PAID" for u in result.updates)


def test_settled_obligations_are_skipped():
    result = allocate_payment(
        Decimal("50"),
        [
            OpenObligation(id="done", remaining_amount=Decimal("0"), paid_amount=Decimal("80"), status="PAID"),
            OpenObligation(id="open", remaining_amount=Decimal("120"), paid_amount=Decimal("30"), status="PARTIAL"),
        ],
    )
    assert [u.obligation_id for u in result.updates] == ["open"]
    assert result.updates[0].paid_amount == Decimal("80.00")
    assert result.updates[0].remaining_amount == Decimal("70.00")


def test_stops_once_payment_is_used_up():
    result = allocate_payment(Decimal("100"), [{"id": "a", "remaining": 100}, {"id": "b", "remaining": 40}])
    assert [u.obligation_id for u in result.updates] == ["a"]


def test_accepts_objects_with_attributes():
    class Row:
        def __init__(self, id, remaining_amount):
            self.id = id
            self.created_at = datetime(2026, 1, 1)
            self.paid_amount = Decimal("0")
            self.remaining_amount = remaining_amount
            self.status = "DRAFT"

    result = allocate_payment(Decimal("10"), [Row("r1", Decimal("25"))])
    assert result.updates[0].status == "PARTIAL"


@pytest.mark.parametrize("amount, remaining", [
    ("250.50", ["120.10", "80.05", "99.99"]),
    ("0.03", ["0.01", "0.01"]),
    ("1000", ["333.33", "333.33", "333.33"]),
    ("19.99", []),
])
def test_applied_plus_leftover_equals_payment(amount, remaining):
    result = allocate_payment(
        Decimal(amount),
        [{"id": str(i), "remaining": Decimal(r)} for i, r in enumerate(remaining)],
    )
    assert result.total_applied + result.leftover == Decimal(amount)


@pytest.mark.parametrize("amount", [0, "-10", "0.001"])
def test_non_positive_payment_rejected(amount):
    with pytest.raises(ValidationError):
        allocate_payment(amount, [{"id": "a", "remaining": 10}])


def test_summarize_balance_with_credit():
    summary = summarize_balance([Decimal("100"), "50.5"], Decimal("-200"))
    assert summary.outstanding == Decimal("150.50")
    assert summary.current_balance == Decimal("-49.50")
    assert summary.credit_balance == Decimal("49.50")
    assert summary.payable_balance == 0


def test_summarize_balance_payable():
    summary = summarize_balance([Decimal("70")], Decimal("0"))
    assert summary.payable_balance == Decimal("70.00")
    assert summary.credit_balance == 0


def test_apply_credit_partially_covers_obligation():
    credit = apply_credit(Decimal("300"), Decimal("49.50"), Decimal("-49.50"))
    assert credit.applied == Decimal("49.50")
    assert credit.remaining_amount == Decimal("250.50")
    assert credit.status == "PARTIAL"
    assert credit.new_balance == Decimal("0.00")


def test_apply_credit_fully_covers_obligation():
    credit = apply_credit(Decimal("30"), Decimal("49.50"), Decimal("-49.50"))
    assert credit.applied == Decimal("30.00")
    assert credit.status == "PAID"
    assert credit.new_balance == Decimal("-19.50")


def test_apply_credit_without_credit():
    credit = apply_credit(Decimal("30"), Decimal("0"))
    assert credit.applied == 0
    assert credit.status == "DRAFT"
