"""
Ledger model - append-only record of monetary events.

Design principles:
- Created once, never updated or deleted
- amount is signed by the caller: positive for Income, negative for Expense
- Optionally linked to the obligation that produced it
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from bursar.models.base import MongoModel, UtcDatetime
from bursar.models.obligation import ObligationRef


class TransactionType(str, Enum):
    INCOME = "Income"
    EXPENSE = "Expense"


class TransactionStatus(str, Enum):
    PENDING = "Pending"
    COMPLETED = "Completed"


class PaymentMethod(str, Enum):
    CASH = "Cash"
    BANK_TRANSFER = "Bank Transfer"
    CHEQUE = "Cheque"
    ONLINE = "Online"
    CREDIT_CARD = "Credit Card"


FEE_COLLECTION_CATEGORY = "Fee Collection"


class LedgerEntry(MongoModel):
    """One monetary event. The ledger never re-derives the sign from ``type``."""
    type: TransactionType
    amount: Decimal
    category: str = Field(min_length=1)
    description: str = ""

    date: UtcDatetime
    time: Optional[str] = None  # e.g. "02:15 PM"
    payment_method: Optional[PaymentMethod] = None
    status: TransactionStatus = TransactionStatus.COMPLETED

    obligation: Optional[ObligationRef] = None
    reference_id: Optional[str] = None  # e.g. "admission-<admission id>"

    created_by: str = "admin"


class LedgerFilter(BaseModel):
    """Ledger query. Every field is optional; dates are inclusive on start, exclusive on end."""
    start: Optional[UtcDatetime] = None
    end: Optional[UtcDatetime] = None
    type: Optional[TransactionType] = None
    category: Optional[str] = None
    status: Optional[TransactionStatus] = None
    obligation: Optional[ObligationRef] = None
    reference_id: Optional[str] = None

    def to_query(self) -> dict:
        query: dict = {}
        if self.type is not None:
            query["type"] = self.type.value
        if self.category:
            query["category"] = self.category
        if self.status is not None:
            query["status"] = self.status.value
        if self.obligation is not None:
            query["obligation.kind"] = self.obligation.kind.value
            query["obligation.id"] = self.obligation.id
        if self.reference_id:
            query["reference_id"] = self.reference_id
        if self.start or self.end:
            query["date"] = {}
            if self.start:
                query["date"]["$gte"] = self.start
            if self.end:
                query["date"]["$lt"] = self.end
        return query

    def matches(self, entry: "LedgerEntry") -> bool:
        """Same predicate as to_query, evaluated in memory."""
        if self.type is not None and entry.type is not self.type:
            return False
        if self.category and entry.category != self.category:
            return False
        if self.status is not None and entry.status is not self.status:
            return False
        if self.obligation is not None and entry.obligation != self.obligation:
            return False
        if self.reference_id and entry.reference_id != self.reference_id:
            return False
        if self.start and entry.date < self.start:
            return False
        if self.end and entry.date >= self.end:
            return False
        return True
