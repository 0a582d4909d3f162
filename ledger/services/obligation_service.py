# ledger/services/obligation_service.py
from __future__ import annotations
import logging
import os
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError as SchemaError

from ledger.config import DATA_DIR, load_settings
from ledger.errors import NotFoundError, ValidationError
from ledger.models.obligation import DiscountScope, DiscountSetting, Line, Obligation, ObligationKind
from ledger.models.reconciliation import ObligationTotals, Reconciliation, SequenceNumber
from ledger.services.discounts import switch_discount_scope
from ledger.services.payment_service import PaymentService
from ledger.services.reconciler import reconcile_payments
from ledger.services.rounding import round_currency
from ledger.services.sequence import SequenceCounter, assign_sequence
from ledger.services.totals import compute_obligation_totals
from ledger.storage.repo import JsonRepository

logger = logging.getLogger(__name__)

COLLECTIONS: Dict[str, str] = {
    "invoice": "invoices.json",
    "purchase_order": "purchase_orders.json",
}


# ---------- Service ----------
class ObligationService:
    """Factures (ou bons de commande) : totaux, numérotation, état de paiement."""

    def __init__(
        self,
        kind: ObligationKind = "invoice",
        data_dir: Optional[os.PathLike | str] = None,
        payments: Optional[PaymentService] = None,
    ):
        base = Path(data_dir or DATA_DIR)
        self.kind = kind
        self.data_dir = base
        self.settings = load_settings(base)
        self.repo = JsonRepository(
            base / COLLECTIONS[kind], entity_name=kind, key="id",
            backup_enabled=self.settings.backup_enabled, backup_keep=self.settings.backup_keep,
        )
        self.payments = payments or PaymentService(base)
        self.counter = SequenceCounter(base)

    @property
    def prefix(self) -> str:
        return self.settings.numbering.prefix_for(self.kind)

    # ----------- CRUD/list -----------
    def list_obligations(self) -> List[Obligation]:
        out: List[Obligation] = []
        for d in self.repo.list_all():
            try:
                out.append(Obligation.model_validate(d))
            except SchemaError as e:
                logger.warning("Skipping invalid %s record %s: %s", self.kind, d.get("id"), e)
        return out

    def list_by_counterparty(self, counterparty_id: str) -> List[Obligation]:
        obs = [ob for ob in self.list_obligations() if ob.counterparty_id == counterparty_id]
        return sorted(obs, key=lambda ob: (ob.created_at, ob.id))

    def get_by_id(self, obligation_id: str) -> Obligation:
        return Obligation.model_validate(self.repo.require(obligation_id))

    def compute_totals(self, ob: Obligation) -> ObligationTotals:
        return compute_obligation_totals(ob)

    def apply_defaults(self, ob: Obligation) -> Obligation:
        # taux de TVA des réglages sauf s'il a été fixé explicitement
        if "tax_rate" not in ob.model_fields_set:
            ob.tax_rate = self.settings.tax_rate
        ob.kind = self.kind
        return ob

    def create_obligation(self, ob: Obligation) -> Obligation:
        """Calcule le total, attribue un numéro stable puis enregistre."""
        if not ob.counterparty_id:
            raise ValidationError("counterparty is required", field="counterparty_id")
        if not ob.lines and ob.plan_amount is None:
            raise ValidationError("an obligation needs lines or a plan amount", field="lines")

        self.apply_defaults(ob)
        totals = compute_obligation_totals(ob)
        ob.grand_total = round_currency(totals.grand_total)
        rec = reconcile_payments(ob.grand_total, (), ob.due_date, persisted_paid=ob.paid_amount)
        ob.paid_amount, ob.status = rec.paid_amount, rec.status
        ob.version = 0
        with self.repo.lock:
            # numéro pris seulement une fois l'enregistrement accepté
            if self.repo.get_by_id(ob.id) is not None:
                raise ValidationError(f"{self.kind} with id={ob.id} already exists", field="id")
            if not ob.number:
                ob.ordinal, ob.number = self.counter.next(self.prefix, ob.created_at.year)
            self.repo.add(ob)
        logger.info("Created %s %s for %s (total %s)", self.kind, ob.number, ob.counterparty_id, ob.grand_total)
        return ob

    def edit_lines(
        self,
        obligation_id: str,
        lines: List[Line],
        plan_amount=None,
        invoice_discount: Optional[DiscountSetting] = None,
    ) -> Obligation:
        """Modifie les lignes tant qu'aucun paiement n'est enregistré."""
        ob = self.get_by_id(obligation_id)
        if self.payments.list_for_obligation(obligation_id) or ob.paid_amount > 0:
            raise ValidationError("lines cannot be edited once a payment exists", field="lines")
        changes = {"lines": list(lines)}
        if plan_amount is not None:
            changes["plan_amount"] = plan_amount
        if invoice_discount is not None:
            changes["invoice_discount"] = invoice_discount
        ob = ob.model_copy(update=changes)
        if ob.discount_scope == "global":
            ob = switch_discount_scope(ob, "global", ob.global_discount)
        return self._save_totals(ob)

    def set_discount_scope(
        self,
        obligation_id: str,
        scope: DiscountScope,
        setting: Optional[DiscountSetting] = None,
    ) -> Obligation:
        ob = self.get_by_id(obligation_id)
        if self.payments.list_for_obligation(obligation_id) or ob.paid_amount > 0:
            raise ValidationError("discounts cannot change once a payment exists", field="discount_scope")
        return self._save_totals(switch_discount_scope(ob, scope, setting))

    def _save_totals(self, ob: Obligation) -> Obligation:
        ob.grand_total = round_currency(compute_obligation_totals(ob).grand_total)
        ob.status = reconcile_payments(ob.grand_total, (), ob.due_date).status
        return Obligation.model_validate(self.repo.update(ob, expected_version=ob.version))

    def delete_obligation(self, obligation_id: str) -> None:
        if self.payments.list_for_obligation(obligation_id):
            raise ValidationError("an obligation with payments cannot be deleted", field="id")
        if not self.repo.delete(obligation_id):
            raise NotFoundError(self.kind, obligation_id)

    # ----------- rapprochement -----------
    def reconcile(self, ob: Obligation, today: Optional[date] = None) -> Reconciliation:
        # Bons de commande : le payé persisté fait foi (ventilations fournisseur non liées)
        payments = () if ob.kind == "purchase_order" else self.payments.list_for_obligation(ob.id)
        return reconcile_payments(ob.grand_total, payments, ob.due_date, persisted_paid=ob.paid_amount, today=today)

    def save_state(self, ob: Obligation, rec: Reconciliation) -> Obligation:
        """Persiste payé/statut par compare-and-swap sur la version lue."""
        ob = ob.model_copy(update={"paid_amount": rec.paid_amount, "status": rec.status})
        ob.touch()
        return Obligation.model_validate(self.repo.update(ob, expected_version=ob.version))

    def open_obligations(self, counterparty_id: str, today: Optional[date] = None) -> List[Tuple[Obligation, Reconciliation]]:
        """Obligations encore dues d'un tiers, de la plus ancienne à la plus récente."""
        out: List[Tuple[Obligation, Reconciliation]] = []
        for ob in self.list_by_counterparty(counterparty_id):
            rec = self.reconcile(ob, today)
            if rec.remaining_amount > 0:
                out.append((ob, rec))
        return out

    # ----------- numérotation -----------
    def sequence_view(self) -> Dict[str, SequenceNumber]:
        return assign_sequence(self.list_obligations(), self.prefix)

