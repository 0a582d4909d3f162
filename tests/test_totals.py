from decimal import Decimal

from ledger.models.obligation import DiscountSetting, Line, Obligation
from ledger.services.totals import compute_obligation_totals, resolve_grand_total


def test_line_and_invoice_discounts_with_tax():
    ob = Obligation(
        counterparty_id="c1",
        lines=[
            Line(quantity=2, unit_price=Decimal("100"), discount_mode="percentage", discount_value=Decimal("10")),
            Line(quantity=1, unit_price=Decimal("50")),
        ],
        invoice_discount=DiscountSetting(mode="fixed", value=Decimal("30")),
    )
    t = compute_obligation_totals(ob)
    assert t.total_before_discount == Decimal("250")
    assert t.line_level_discount == Decimal("20")
    assert t.obligation_discount == Decimal("30")
    assert t.total_after_discount == Decimal("200")
    assert t.total_discount == Decimal("50")
    assert t.total_tax == Decimal("30")
    assert t.grand_total == Decimal("230")
    assert len(t.lines) == 2


def test_invoice_percentage_discount_on_post_line_subtotal():
    ob = Obligation(
        counterparty_id="c1",
        lines=[Line(quantity=4, unit_price=Decimal("25"))],
        tax_enabled=False,
        invoice_discount=DiscountSetting(mode="percentage", value=Decimal("20")),
    )
    t = compute_obligation_totals(ob)
    assert t.obligation_discount == Decimal("20")
    assert t.grand_total == Decimal("80")


def test_invoice_fixed_discount_capped_at_subtotal():
    ob = Obligation(
        counterparty_id="c1",
        lines=[Line(quantity=1, unit_price=Decimal("40"))],
        invoice_discount=DiscountSetting(mode="fixed", value=Decimal("75")),
    )
    t = compute_obligation_totals(ob)
    assert t.total_after_discount == 0
    assert t.grand_total == 0
    assert t.total_discount == Decimal("40")


def test_plan_driven_obligation_ignores_discounts():
    ob = Obligation(
        counterparty_id="c1",
        plan_amount=Decimal("500"),
        invoice_discount=DiscountSetting(mode="percentage", value=Decimal("50")),
    )
    t = compute_obligation_totals(ob)
    assert t.total_after_discount == Decimal("500")
    assert t.total_tax == Decimal("75")
    assert t.grand_total == Decimal("575")
    assert t.total_discount == 0


def test_global_fixed_discount_distributed_before_totals():
    ob = Obligation(
        counterparty_id="c1",
        lines=[Line(quantity=1, unit_price=Decimal("300")), Line(quantity=1, unit_price=Decimal("100"))],
        tax_enabled=False,
        discount_scope="global",
        global_discount=DiscountSetting(mode="fixed", value=Decimal("40")),
    )
    t = compute_obligation_totals(ob)
    assert [lt.discount_amount for lt in t.lines] == [Decimal("30"), Decimal("10")]
    assert t.line_level_discount == Decimal("40")
    assert t.grand_total == Decimal("360")


def test_tax_disabled_and_empty_lines():
    t = compute_obligation_totals(Obligation(counterparty_id="c1", tax_enabled=False))
    assert t.grand_total == 0
    assert t.total_tax == 0


def test_resolve_grand_total_prefers_persisted_fields():
    assert resolve_grand_total({"grand_total": "230.004"}) == Decimal("230.00")
    assert resolve_grand_total({"grand_total": 0, "total_amount": "1,150.00"}) == Decimal("1150.00")
    assert resolve_grand_total({"subtotal": 100, "tax_amount": 15}) == Decimal("115.00")


def test_resolve_grand_total_recomputes_legacy_items():
    record = {"invoice_items": [{"quantity": 2, "unitPrice": 50, "discountPercent": 10}], "tax_enabled": False}
    assert resolve_grand_total(record) == Decimal("90.00")


def test_resolve_grand_total_unusable_record():
    assert resolve_grand_total({"lines": "not a list"}) == 0
