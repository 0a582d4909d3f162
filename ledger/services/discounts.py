"""Remise globale : une seule remise appliquée à toutes les lignes.

Fonctions pures : les lignes reçues ne sont jamais modifiées, on renvoie des copies.
"""
from __future__ import annotations
from typing import List, Optional, Sequence

from ledger.models.common import ZERO
from ledger.models.obligation import DiscountScope, DiscountSetting, Line, Obligation
from ledger.services.line_calculator import HUNDRED
from ledger.services.rounding import clamp


def clear_discounts(lines: Sequence[Line]) -> List[Line]:
    return [ln.model_copy(update={"discount_mode": "percentage", "discount_value": ZERO}) for ln in lines]


def distribute_discount(lines: Sequence[Line], setting: Optional[DiscountSetting]) -> List[Line]:
    """Répartit `setting` sur les lignes comme s'il s'agissait de remises par ligne.

    - pourcentage : même taux sur chaque ligne (borné à [0, 100])
    - montant fixe : au prorata du sous-total brut de chaque ligne, plafonné à ce sous-total
    """
    if setting is None or setting.value <= 0:
        return clear_discounts(lines)

    if setting.mode == "percentage":
        pct = clamp(setting.value, ZERO, HUNDRED)
        return [ln.model_copy(update={"discount_mode": "percentage", "discount_value": pct}) for ln in lines]

    total_raw = sum((ln.unit_price * ln.quantity for ln in lines), ZERO)
    if total_raw == 0:
        return [ln.model_copy(update={"discount_mode": "fixed", "discount_value": ZERO}) for ln in lines]

    out: List[Line] = []
    for ln in lines:
        raw = ln.unit_price * ln.quantity
        share = setting.value * (raw / total_raw)
        out.append(ln.model_copy(update={"discount_mode": "fixed", "discount_value": min(raw, share)}))
    return out


def effective_lines(obligation: Obligation) -> List[Line]:
    if obligation.discount_scope == "global":
        return distribute_discount(obligation.lines, obligation.global_discount)
    return list(obligation.lines)


def switch_discount_scope(
    obligation: Obligation,
    scope: DiscountScope,
    setting: Optional[DiscountSetting] = None,
) -> Obligation:
    """Bascule individuelle <-> globale et renvoie une nouvelle obligation.

    Vers "global" : les remises par ligne sont remises à zéro avant la répartition.
    Vers "individual" : la remise globale est remise à zéro.
    """
    if scope == "global":
        lines = distribute_discount(clear_discounts(obligation.lines), setting)
        return obligation.model_copy(update={
            "discount_scope": "global",
            "global_discount": setting,
            "lines": lines,
        })
    return obligation.model_copy(update={
        "discount_scope": "individual",
        "global_discount": None,
    })
