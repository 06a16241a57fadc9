from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from bursar.models.base import UtcDatetime
from bursar.models.ledger import PaymentMethod, TransactionStatus, TransactionType
from bursar.models.obligation import ObligationRef


class TransactionCreate(BaseModel):
    """Manual ledger entry. The sign of amount is taken as given."""
    type: TransactionType
    amount: Decimal
    category: str = Field(..., min_length=1)
    description: str = ""
    date: UtcDatetime
    time: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    status: TransactionStatus = TransactionStatus.COMPLETED
    obligation: Optional[ObligationRef] = None
    reference_id: Optional[str] = None


class LedgerEntryResponse(BaseModel):
    id: str = Field(validation_alias="_id", serialization_alias="id")
    type: TransactionType
    amount: Decimal
    category: str
    description: str
    date: datetime
    time: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    status: TransactionStatus
    obligation: Optional[ObligationRef] = None
    reference_id: Optional[str] = None
    created_by: str
    created_at: datetime

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)
