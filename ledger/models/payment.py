from __future__ import annotations
from pydantic import BaseModel, Field, model_validator
from typing import Any, Literal, Optional
from datetime import datetime
from decimal import Decimal

from .common import gen_id, utcnow

PaymentMethod = Literal["cash", "bank_transfer", "credit_card", "cheque"]


class Payment(BaseModel):
    """Encaissement / décaissement. Jamais modifié : une correction = un nouveau paiement."""
    id: str = Field(default_factory=gen_id)
    obligation_id: Optional[str] = None  # None : paiement fournisseur pas encore ventilé
    counterparty_id: Optional[str] = None
    amount: Decimal = Field(gt=0)
    paid_at: datetime = Field(default_factory=utcnow)
    method: PaymentMethod = "cash"
    reference: Optional[str] = None
    notes: Optional[str] = None

    class Config:
        extra = "ignore"

    @model_validator(mode="before")
    @classmethod
    def _legacy_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        d = dict(data)
        for old, new in (("paid_amount", "amount"), ("payment_amount", "amount"),
                         ("payment_date", "paid_at"), ("invoice_id", "obligation_id"),
                         ("payment_method", "method")):
            if new not in d and old in d:
                d[new] = d.pop(old)
        if d.get("method") == "bank-transfer":
            d["method"] = "bank_transfer"
        elif d.get("method") == "credit-card":
            d["method"] = "credit_card"
        return d
