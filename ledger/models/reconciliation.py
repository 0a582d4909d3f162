from __future__ import annotations
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date, datetime
from decimal import Decimal

from .common import ObligationStatus, ZERO


class LineTotals(BaseModel):
    raw_subtotal: Decimal = ZERO
    discount_amount: Decimal = ZERO
    price_after_discount: Decimal = ZERO
    line_subtotal: Decimal = ZERO
    tax_amount: Decimal = ZERO
    line_total: Decimal = ZERO


class ObligationTotals(BaseModel):
    total_before_discount: Decimal = ZERO
    line_level_discount: Decimal = ZERO
    obligation_discount: Decimal = ZERO
    total_discount: Decimal = ZERO
    total_after_discount: Decimal = ZERO
    total_tax: Decimal = ZERO
    grand_total: Decimal = ZERO
    lines: List[LineTotals] = Field(default_factory=list)


class Reconciliation(BaseModel):
    paid_amount: Decimal = ZERO
    remaining_amount: Decimal = ZERO
    status: ObligationStatus = "DRAFT"


class SequenceNumber(BaseModel):
    obligation_id: str
    ordinal: int
    label: str


class OpenObligation(BaseModel):
    """Vue minimale d'une obligation ouverte pour la ventilation FIFO."""
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    paid_amount: Decimal = ZERO
    remaining_amount: Decimal = ZERO
    status: ObligationStatus = "DRAFT"

    class Config:
        extra = "ignore"


class AllocationUpdate(BaseModel):
    obligation_id: Optional[str] = None
    applied: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    status: ObligationStatus


class AllocationResult(BaseModel):
    updates: List[AllocationUpdate] = Field(default_factory=list)
    leftover: Decimal = ZERO
    new_credit_balance: Decimal = ZERO

    @property
    def total_applied(self) -> Decimal:
        return sum((u.applied for u in self.updates), ZERO)


class BalanceSummary(BaseModel):
    outstanding: Decimal = ZERO
    persisted_balance: Decimal = ZERO
    current_balance: Decimal = ZERO
    credit_balance: Decimal = ZERO
    payable_balance: Decimal = ZERO


class CreditApplication(BaseModel):
    applied: Decimal = ZERO
    paid_amount: Decimal = ZERO
    remaining_amount: Decimal = ZERO
    status: ObligationStatus = "DRAFT"
    new_balance: Decimal = ZERO


class StatementEntry(BaseModel):
    entry_date: date
    reference: str
    description: str = ""
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    balance: Decimal = ZERO


class Statement(BaseModel):
    counterparty_id: str
    entries: List[StatementEntry] = Field(default_factory=list)
    total_debit: Decimal = ZERO
    total_credit: Decimal = ZERO
    closing_balance: Decimal = ZERO
