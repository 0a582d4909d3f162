from __future__ import annotations
import logging
import os
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError as SchemaError

from ledger.config import DATA_DIR, load_settings
from ledger.errors import NotFoundError
from ledger.models.payment import Payment
from ledger.storage.repo import JsonRepository

logger = logging.getLogger(__name__)


class PaymentService:
    """Registre des paiements : ajout et lecture seulement, jamais de modification."""

    def __init__(self, data_dir: Optional[os.PathLike | str] = None):
        base = Path(data_dir or DATA_DIR)
        settings = load_settings(base)
        self.repo = JsonRepository(
            base / "payments.json", entity_name="payment", key="id",
            backup_enabled=settings.backup_enabled, backup_keep=settings.backup_keep,
        )

    def _hydrate(self, rows) -> List[Payment]:
        out: List[Payment] = []
        for d in rows:
            try:
                out.append(Payment.model_validate(d))
            except SchemaError as e:
                logger.warning("Skipping invalid payment record %s: %s", d.get("id"), e)
        return out

    def add_payment(self, p: Payment) -> Payment:
        self.repo.add(p)
        return p

    def list_payments(self) -> List[Payment]:
        return self._hydrate(self.repo.list_all())

    def get_by_id(self, payment_id: str) -> Payment:
        d = self.repo.get_by_id(payment_id)
        if d is None:
            raise NotFoundError("payment", payment_id)
        return Payment.model_validate(d)

    def list_for_obligation(self, obligation_id: str) -> List[Payment]:
        rows = self.repo.find(lambda d: d.get("obligation_id") == obligation_id)
        return sorted(self._hydrate(rows), key=lambda p: (p.paid_at, p.id))

    def list_for_counterparty(self, counterparty_id: str) -> List[Payment]:
        rows = self.repo.find(lambda d: d.get("counterparty_id") == counterparty_id)
        return sorted(self._hydrate(rows), key=lambda p: (p.paid_at, p.id))
