from __future__ import annotations
import logging
import os
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional, Tuple

from ledger.config import DATA_DIR
from ledger.errors import ConcurrentUpdateError, LedgerError, ValidationError
from ledger.models.obligation import Obligation
from ledger.models.payment import Payment, PaymentMethod
from ledger.models.reconciliation import AllocationResult, BalanceSummary, OpenObligation, Statement
from ledger.services.allocator import allocate_payment, apply_credit, summarize_balance
from ledger.services.counterparty_service import CounterpartyService
from ledger.services.obligation_service import ObligationService
from ledger.services.payment_service import PaymentService
from ledger.services.reconciler import apply_new_payment
from ledger.services.statement import build_statement
from ledger.services.rounding import round_currency
from ledger.storage.repo import JsonRepository

logger = logging.getLogger(__name__)


def _check_version(repo: JsonRepository, record: Any) -> None:
    stored = int(repo.require(record.id).get("version") or 0)
    if stored != record.version:
        raise ConcurrentUpdateError(repo.entity_name, record.id, record.version, stored)


class WorkflowService:
    """Enchaîne lecture → calcul → écriture pour les paiements et les avoirs."""

    def __init__(self, data_dir: Optional[os.PathLike | str] = None):
        base = Path(data_dir or DATA_DIR)
        self.payments = PaymentService(base)
        self.invoices = ObligationService("invoice", base, payments=self.payments)
        self.purchase_orders = ObligationService("purchase_order", base, payments=self.payments)
        self.counterparties = CounterpartyService(base)

    def _service_for(self, kind: str) -> ObligationService:
        return self.purchase_orders if kind == "purchase_order" else self.invoices

    # Encaissement sur une obligation précise
    def record_payment(
        self,
        obligation_id: str,
        amount: Any,
        method: PaymentMethod = "cash",
        *,
        kind: str = "invoice",
        paid_at: Optional[datetime] = None,
        reference: Optional[str] = None,
        today: Optional[date] = None,
    ) -> Tuple[Obligation, Payment]:
        svc = self._service_for(kind)
        # montant arrondi une seule fois : validé, appliqué et enregistré à l'identique
        value = round_currency(amount)
        ob = svc.get_by_id(obligation_id)
        current = svc.reconcile(ob, today)
        # lève ValidationError avant toute écriture
        new_state = apply_new_payment(ob.grand_total, current, value, ob.due_date, today)
        pay = Payment(
            obligation_id=ob.id,
            counterparty_id=ob.counterparty_id,
            amount=value,
            method=method,
            paid_at=paid_at or datetime.now(),
            reference=reference,
        )

        with svc.repo.lock:
            before = svc.repo.snapshot([ob.id])
            # 1) compare-and-swap sur l'obligation : un paiement concurrent fait échouer celui-ci
            saved = svc.save_state(ob, new_state)
            # 2) paiement ; en cas d'échec l'obligation reprend son état lu
            try:
                self.payments.add_payment(pay)
            except LedgerError:
                svc.repo.restore(before)
                raise
        logger.info("Recorded payment of %s on %s %s, status %s", pay.amount, kind, ob.number, saved.status)
        return saved, pay

    # Paiement global fournisseur ventilé sur ses bons de commande
    def record_supplier_payment(
        self,
        counterparty_id: str,
        amount: Any,
        method: PaymentMethod = "bank_transfer",
        *,
        paid_at: Optional[datetime] = None,
        reference: Optional[str] = None,
        today: Optional[date] = None,
    ) -> AllocationResult:
        value = round_currency(amount)
        supplier = self.counterparties.get_by_id(counterparty_id)
        open_obs = self.purchase_orders.open_obligations(counterparty_id, today)
        result = allocate_payment(
            value,
            [OpenObligation(id=ob.id, created_at=ob.created_at, paid_amount=rec.paid_amount,
                            remaining_amount=rec.remaining_amount, status=rec.status)
             for ob, rec in open_obs],
            supplier.balance,
        )
        by_id = {ob.id: ob for ob, _ in open_obs}
        touched = [by_id[u.obligation_id] for u in result.updates]
        pay = Payment(
            obligation_id=None,
            counterparty_id=counterparty_id,
            amount=value,
            method=method,
            paid_at=paid_at or datetime.now(),
            reference=reference,
        )

        po_repo, cp_repo = self.purchase_orders.repo, self.counterparties.repo
        with po_repo.lock, cp_repo.lock:
            # toutes les versions (bons de commande et fournisseur) avant la première écriture
            for ob in touched:
                _check_version(po_repo, ob)
            _check_version(cp_repo, supplier)

            po_before = po_repo.snapshot([ob.id for ob in touched])
            cp_before = cp_repo.snapshot([supplier.id])
            try:
                for u in result.updates:
                    ob = by_id[u.obligation_id].model_copy(update={"paid_amount": u.paid_amount, "status": u.status})
                    ob.touch()
                    po_repo.update(ob, expected_version=ob.version)
                if result.new_credit_balance != supplier.balance:
                    supplier.balance = result.new_credit_balance
                    supplier.touch()
                    cp_repo.update(supplier, expected_version=supplier.version)
                self.payments.add_payment(pay)
            except LedgerError:
                logger.warning("Supplier payment for %s failed, restoring %d order(s)", supplier.name, len(touched))
                po_repo.restore(po_before)
                cp_repo.restore(cp_before)
                raise

        logger.info(
            "Supplier payment of %s for %s allocated over %d order(s), leftover %s",
            value, supplier.name, len(result.updates), result.leftover,
        )
        return result

    # Bon de commande avec consommation de l'avoir fournisseur
    def create_purchase_order(self, ob: Obligation, use_credit: bool = False) -> Obligation:
        if not use_credit:
            return self.purchase_orders.create_obligation(ob)

        cp_repo = self.counterparties.repo
        with cp_repo.lock:
            supplier = self.counterparties.get_by_id(ob.counterparty_id)
            balance = self.counterparty_balance(ob.counterparty_id)
            self.purchase_orders.apply_defaults(ob)
            grand_total = self.purchase_orders.compute_totals(ob).grand_total
            credit = apply_credit(grand_total, balance.credit_balance, supplier.balance)
            if credit.applied <= 0:
                return self.purchase_orders.create_obligation(ob)

            # l'avoir n'est consommé que si le fournisseur n'a pas bougé depuis la lecture
            _check_version(cp_repo, supplier)
            ob.paid_amount = credit.paid_amount
            created = self.purchase_orders.create_obligation(ob)
            supplier.balance = credit.new_balance
            try:
                self.counterparties.update_counterparty(supplier)
            except LedgerError:
                # avoir non consommé : le bon de commande payé avec est retiré
                self.purchase_orders.repo.delete(created.id)
                logger.warning("Credit for %s changed concurrently, order %s withdrawn", supplier.name, created.number)
                raise
        logger.info("Applied %s supplier credit to %s", credit.applied, created.number)
        return created

    def counterparty_balance(self, counterparty_id: str, today: Optional[date] = None) -> BalanceSummary:
        cp = self.counterparties.get_by_id(counterparty_id)
        svc = self.purchase_orders if cp.kind == "supplier" else self.invoices
        remaining = [rec.remaining_amount for _, rec in svc.open_obligations(counterparty_id, today)]
        return summarize_balance(remaining, cp.balance)

    def statement(
        self,
        counterparty_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> Statement:
        cp = self.counterparties.get_by_id(counterparty_id)
        svc = self.purchase_orders if cp.kind == "supplier" else self.invoices
        if start and end and start > end:
            raise ValidationError("statement start date is after end date", field="start")
        return build_statement(
            counterparty_id,
            svc.list_by_counterparty(counterparty_id),
            self.payments.list_for_counterparty(counterparty_id),
            start,
            end,
        )
