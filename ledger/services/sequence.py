from __future__ import annotations
import logging
import os
import threading
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Tuple

from ledger.config import load_settings, save_settings
from ledger.errors import ValidationError
from ledger.models.reconciliation import SequenceNumber

logger = logging.getLogger(__name__)


def format_label(prefix: str, year: int, ordinal: int) -> str:
    return f"{prefix}-{year}-{ordinal:03d}"


def _key(ob: Any) -> Tuple[datetime, str]:
    if isinstance(ob, dict):
        created, oid = ob.get("created_at"), ob.get("id")
    else:
        created, oid = getattr(ob, "created_at", None), getattr(ob, "id", None)
    if not oid:
        raise ValidationError("obligation without id cannot be numbered", field="id")
    if isinstance(created, str):
        created = datetime.fromisoformat(created)
    if not isinstance(created, datetime):
        raise ValidationError(f"obligation {oid} has no created_at", field="created_at")
    return created, str(oid)


def assign_sequence(obligations: Iterable[Any], prefix: str = "INV") -> Dict[str, SequenceNumber]:
    """Numéros d'affichage recalculés depuis la collection complète.

    Tri par (created_at, id). Une obligation insérée avec un created_at plus ancien
    décale les numéros suivants : utiliser `SequenceCounter` pour un numéro stable.
    """
    keyed = sorted(_key(ob) for ob in obligations)
    out: Dict[str, SequenceNumber] = {}
    for idx, (created, oid) in enumerate(keyed):
        ordinal = idx + 1
        out[oid] = SequenceNumber(
            obligation_id=oid,
            ordinal=ordinal,
            label=format_label(prefix, created.year, ordinal),
        )
    return out


class SequenceCounter:
    """Compteur monotone par (préfixe, année), persisté dans settings.json."""

    _lock = threading.Lock()

    def __init__(self, data_dir: Optional[os.PathLike | str] = None):
        self.data_dir = data_dir

    def peek(self, prefix: str, year: int) -> int:
        return load_settings(self.data_dir).numbering.counters.get(f"{prefix}-{year}", 0)

    def next(self, prefix: str, year: int) -> Tuple[int, str]:
        with self._lock:
            settings = load_settings(self.data_dir)
            seq_key = f"{prefix}-{year}"
            ordinal = settings.numbering.counters.get(seq_key, 0) + 1
            settings.numbering.counters[seq_key] = ordinal
            save_settings(settings, self.data_dir)
        label = format_label(prefix, year, ordinal)
        logger.debug("Allocated sequence %s", label)
        return ordinal, label
