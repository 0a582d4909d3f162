from __future__ import annotations
from typing import Any, Optional


class LedgerError(Exception):
    """Erreur de base du moteur de rapprochement (code machine + données)."""

    code = "LEDGER_ERROR"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return self.message


class ValidationError(LedgerError, ValueError):
    """Entrée refusée avant toute écriture (montant, remise, identifiant…)."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None, **details: Any):
        super().__init__(message, field=field, **details)
        self.field = field


class InconsistentStateError(LedgerError):
    # Le rapprochement corrige ces cas (clamp) et journalise au lieu de lever.
    code = "INCONSISTENT_STATE"


class NotFoundError(LedgerError, KeyError):
    code = "NOT_FOUND"

    def __init__(self, entity: str, key: Any):
        super().__init__(f"{entity} with id={key} not found", entity=entity, key=key)
        self.entity = entity
        self.key = key

    def __str__(self) -> str:
        return self.message


class ConcurrentUpdateError(LedgerError):
    """Compare-and-swap refusé : l'enregistrement a changé depuis la lecture."""

    code = "CONCURRENT_UPDATE"

    def __init__(self, entity: str, key: Any, expected: int, actual: int):
        super().__init__(
            f"{entity} {key} was modified concurrently (expected version {expected}, found {actual})",
            entity=entity, key=key, expected=expected, actual=actual,
        )
        self.entity = entity
        self.key = key
        self.expected = expected
        self.actual = actual
