"""Règles d'arrondi et de comparaison partagées par tous les calculs monétaires.

Tous les montants sont des `Decimal`. La tolérance `NEGLIGIBLE` ne sert qu'à la
frontière avec les anciennes données saisies en flottants.
"""
from __future__ import annotations
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from ledger.models.common import ZERO

CENT = Decimal("0.01")
NEGLIGIBLE = Decimal("0.01")
OVERPAY_TOLERANCE = Decimal("0.0001")


def to_decimal(val: Any, default: Decimal = ZERO) -> Decimal:
    """Conversion souple -> Decimal (None, "", "1 200,50", float…)."""
    if val is None or val == "":
        return default
    if isinstance(val, Decimal):
        return val
    if isinstance(val, bool):
        return Decimal(int(val))
    if isinstance(val, (int, float)):
        # str() évite de traîner le bruit binaire du flottant
        return Decimal(str(val))
    s = re.sub(r"[^0-9,.\-]", "", str(val))
    if s.count(",") and not s.count("."):
        s = s.replace(",", ".")
    else:
        s = s.replace(",", "")
    try:
        return Decimal(s)
    except (InvalidOperation, ValueError):
        return default


def round_currency(x: Any) -> Decimal:
    return to_decimal(x).quantize(CENT, rounding=ROUND_HALF_UP)


def is_negligible(x: Any) -> bool:
    return abs(to_decimal(x)) <= NEGLIGIBLE


def clamp_non_negative(x: Any) -> Decimal:
    d = to_decimal(x)
    return d if d > ZERO else ZERO


def clamp(x: Any, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(high, to_decimal(x)))
