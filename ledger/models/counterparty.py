from __future__ import annotations
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, EmailStr

from .common import Versioned, ZERO

CounterpartyKind = Literal["customer", "supplier"]


class Address(BaseModel):
    line1: str
    line2: str | None = None
    postal_code: str | None = None
    city: str


class Counterparty(Versioned):
    kind: CounterpartyKind = "customer"
    name: str
    contact_name: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    address: Address | None = None
    tax_number: str | None = None
    # ajustement persisté du solde dû ; négatif = avoir (crédit) du tiers
    balance: Decimal = ZERO
    credit_limit: Decimal = ZERO
    notes: str | None = None

    class Config:
        extra = "ignore"
