from __future__ import annotations
from typing import List, Optional
import logging
import os
from pathlib import Path

from pydantic import ValidationError as SchemaError

from ledger.config import DATA_DIR, load_settings
from ledger.errors import NotFoundError
from ledger.models.counterparty import Counterparty, CounterpartyKind
from ledger.storage.repo import JsonRepository

logger = logging.getLogger(__name__)


class CounterpartyService:
    def __init__(self, data_dir: Optional[os.PathLike | str] = None):
        base = Path(data_dir or DATA_DIR)
        settings = load_settings(base)
        self.repo = JsonRepository(
            base / "counterparties.json", entity_name="counterparty", key="id",
            backup_enabled=settings.backup_enabled, backup_keep=settings.backup_keep,
        )

    def list_counterparties(self, kind: Optional[CounterpartyKind] = None) -> List[Counterparty]:
        out: List[Counterparty] = []
        for d in self.repo.list_all():
            try:
                c = Counterparty.model_validate(d)
            except SchemaError as e:
                # On ignore les entrées invalides pour ne pas bloquer les listes
                logger.warning("Skipping invalid counterparty record %s: %s", d.get("id"), e)
                continue
            if kind is None or c.kind == kind:
                out.append(c)
        return out

    def add_counterparty(self, c: Counterparty) -> Counterparty:
        self.repo.add(c)
        return c

    def update_counterparty(self, c: Counterparty) -> Counterparty:
        saved = self.repo.update(c, expected_version=c.version)
        return Counterparty.model_validate(saved)

    def delete_counterparty(self, counterparty_id: str) -> None:
        if not self.repo.delete(counterparty_id):
            raise NotFoundError("counterparty", counterparty_id)

    def get_by_id(self, counterparty_id: str) -> Counterparty:
        return Counterparty.model_validate(self.repo.require(counterparty_id))
