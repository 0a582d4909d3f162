from __future__ import annotations
from datetime import date, datetime
from typing import Iterable, List, Optional, Tuple

from ledger.models.common import ZERO
from ledger.models.obligation import Obligation
from ledger.models.payment import Payment
from ledger.models.reconciliation import Statement, StatementEntry
from ledger.services.rounding import round_currency


def _day(d: datetime) -> date:
    return d.date() if isinstance(d, datetime) else d


def build_statement(
    counterparty_id: str,
    obligations: Iterable[Obligation],
    payments: Iterable[Payment],
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> Statement:
    """Relevé de compte : obligations au débit, paiements au crédit, solde cumulé."""
    rows: List[Tuple[date, int, StatementEntry]] = []
    for ob in obligations:
        if ob.counterparty_id != counterparty_id:
            continue
        rows.append((_day(ob.created_at), 0, StatementEntry(
            entry_date=_day(ob.created_at),
            reference=ob.number or ob.id,
            description=f"{'Invoice' if ob.kind == 'invoice' else 'Purchase order'} {ob.number or ob.id}",
            debit=round_currency(ob.grand_total),
        )))
    for p in payments:
        if p.counterparty_id != counterparty_id:
            continue
        rows.append((_day(p.paid_at), 1, StatementEntry(
            entry_date=_day(p.paid_at),
            reference=p.reference or p.id,
            description=f"Payment ({p.method})",
            credit=round_currency(p.amount),
        )))

    # à date égale, le débit passe avant le crédit
    rows.sort(key=lambda r: (r[0], r[1]))
    entries: List[StatementEntry] = []
    running = ZERO
    total_debit = total_credit = ZERO
    for day, _, entry in rows:
        if (start and day < start) or (end and day > end):
            continue
        running += entry.debit - entry.credit
        total_debit += entry.debit
        total_credit += entry.credit
        entries.append(entry.model_copy(update={"balance": running}))

    return Statement(
        counterparty_id=counterparty_id,
        entries=entries,
        total_debit=total_debit,
        total_credit=total_credit,
        closing_balance=entries[-1].balance if entries else ZERO,
    )
