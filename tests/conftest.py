# tests/conftest.py
# ---------------------------------------------------------------------
# - Chaque test travaille dans son propre dossier de données (tmp_path)
# - Fixtures : services prêts à l'emploi + un client et un fournisseur
# ---------------------------------------------------------------------
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from ledger.models.counterparty import Counterparty
from ledger.models.obligation import Line, Obligation
from ledger.services.workflow_service import WorkflowService

TODAY = date(2026, 3, 15)


@pytest.fixture()
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture()
def workflow(data_dir):
    return WorkflowService(data_dir)


@pytest.fixture()
def customer(workflow):
    return workflow.counterparties.add_counterparty(
        Counterparty(kind="customer", name="Acme Trading", email="ap@acme-trading.com")
    )


@pytest.fixture()
def supplier(workflow):
    return workflow.counterparties.add_counterparty(
        Counterparty(kind="supplier", name="Gulf Supplies")
    )


def make_obligation(counterparty_id: str, amount, *, created_at=None, tax_enabled=False, **kw) -> Obligation:
    """Obligation à une ligne (quantité 1) pour un montant donné."""
    return Obligation(
        counterparty_id=counterparty_id,
        lines=[Line(description="item", quantity=1, unit_price=Decimal(str(amount)))],
        tax_enabled=tax_enabled,
        created_at=created_at or datetime(2026, 3, 1, 9, 0),
        **kw,
    )
