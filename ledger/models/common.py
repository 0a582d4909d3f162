from __future__ import annotations
from datetime import datetime, timezone
from decimal import Decimal
from typing import Literal
import uuid

from pydantic import BaseModel, Field

DiscountMode = Literal["percentage", "fixed"]
ObligationStatus = Literal["DRAFT", "PARTIAL", "PAID", "OVERDUE"]

ZERO = Decimal("0")


def gen_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    # naïf en UTC, comme les dates déjà stockées dans les JSON
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Versioned(BaseModel):
    """Enregistrement persistant protégé par compare-and-swap sur `version`."""
    id: str = Field(default_factory=gen_id)
    version: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def touch(self):
        object.__setattr__(self, "updated_at", utcnow())
