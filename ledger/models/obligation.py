from __future__ import annotations
from pydantic import BaseModel, Field, model_validator
from typing import Any, List, Literal, Optional
from datetime import date
from decimal import Decimal, InvalidOperation

from .common import DiscountMode, ObligationStatus, Versioned, ZERO


def _positive(value: Any) -> bool:
    try:
        return value is not None and Decimal(str(value)) > 0
    except (InvalidOperation, ValueError):
        return False


ObligationKind = Literal["invoice", "purchase_order"]
DiscountScope = Literal["individual", "global"]


class DiscountSetting(BaseModel):
    mode: DiscountMode = "percentage"
    value: Decimal = Field(default=ZERO, ge=0)


class Line(BaseModel):
    description: str = ""
    quantity: int = Field(default=1, ge=0)
    unit_price: Decimal = Field(default=ZERO, ge=0)
    discount_mode: DiscountMode = "percentage"
    discount_value: Decimal = Field(default=ZERO, ge=0)

    class Config:
        extra = "ignore"  # tolère les anciennes clés des lignes stockées

    @model_validator(mode="before")
    @classmethod
    def _legacy_keys(cls, data: Any) -> Any:
        # Anciennes lignes : unitPrice / discountPercent / discountAmount.
        # Une remise fixe > 0 l'emporte sur le pourcentage.
        if not isinstance(data, dict) or "discount_mode" in data:
            return data
        d = dict(data)
        if "unit_price" not in d and "unitPrice" in d:
            d["unit_price"] = d.pop("unitPrice")
        fixed = d.pop("discountAmount", None)
        pct = d.pop("discountPercent", None)
        if _positive(fixed):
            d["discount_mode"] = "fixed"
            d["discount_value"] = fixed
        elif pct not in (None, ""):
            d["discount_mode"] = "percentage"
            d["discount_value"] = pct
        return d


class Obligation(Versioned):
    """Facture client ou bon de commande fournisseur."""
    kind: ObligationKind = "invoice"
    counterparty_id: str

    lines: List[Line] = Field(default_factory=list)
    plan_amount: Optional[Decimal] = Field(default=None, ge=0)  # facture d'abonnement (montant fixe)

    tax_enabled: bool = True
    tax_rate: Decimal = Field(default=Decimal("0.15"), ge=0)

    discount_scope: DiscountScope = "individual"
    global_discount: Optional[DiscountSetting] = None
    invoice_discount: Optional[DiscountSetting] = None

    due_date: Optional[date] = None

    # dérivés / persistés
    grand_total: Decimal = ZERO
    paid_amount: Decimal = ZERO
    status: ObligationStatus = "DRAFT"

    number: Optional[str] = None
    ordinal: Optional[int] = None
    notes: Optional[str] = None

    class Config:
        extra = "ignore"

    @property
    def effective_tax_rate(self) -> Decimal:
        return self.tax_rate if self.tax_enabled else ZERO

    @property
    def is_plan_driven(self) -> bool:
        return self.plan_amount is not None and not self.lines
