from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from bursar.models.base import UtcDatetime
from bursar.models.obligation import ObligationKind, ObligationStatus, PayrollBreakdown, status_label


class ObligationCreate(BaseModel):
    """Request body to create an expense, fee collection or payroll record."""
    category: Optional[str] = None  # payroll defaults to "Salary"
    total_amount: Optional[Decimal] = Field(None, ge=0)  # derived from payroll when omitted
    counterparty_ref: str = Field(..., min_length=1)
    description: str = ""
    due_date: Optional[UtcDatetime] = None
    issue_date: Optional[UtcDatetime] = None
    payroll: Optional[PayrollBreakdown] = None

    # Import an obligation that is already settled
    paid_in_full: bool = False
    payment_method: Optional[str] = None
    payment_date: Optional[UtcDatetime] = None


class ObligationUpdate(BaseModel):
    """Explicit edit. Only the fields sent are changed."""
    category: Optional[str] = None
    total_amount: Optional[Decimal] = Field(None, ge=0)
    counterparty_ref: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    due_date: Optional[UtcDatetime] = None
    issue_date: Optional[UtcDatetime] = None
    payroll: Optional[PayrollBreakdown] = None
    expected_version: Optional[int] = None


class PaymentRequest(BaseModel):
    """Request body to pay (part of) an obligation."""
    amount: Decimal
    payment_method: Optional[str] = None
    payment_date: Optional[UtcDatetime] = None
    description: Optional[str] = None
    expected_version: Optional[int] = None


class ObligationResponse(BaseModel):
    id: str = Field(validation_alias="_id", serialization_alias="id")
    kind: ObligationKind
    category: str
    total_amount: Decimal
    paid_amount: Decimal
    counterparty_ref: str
    status: ObligationStatus
    description: str
    due_date: Optional[datetime] = None
    issue_date: Optional[datetime] = None
    receipt_number: Optional[str] = None
    last_payment_method: Optional[str] = None
    last_paid_at: Optional[datetime] = None
    payroll: Optional[PayrollBreakdown] = None
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    @computed_field
    @property
    def remaining_amount(self) -> Decimal:
        return self.total_amount - self.paid_amount

    @computed_field
    @property
    def status_label(self) -> str:
        return status_label(self.kind, self.status)


class ObligationWriteResponse(BaseModel):
    """An obligation after a write, plus best-effort warnings."""
    obligation: ObligationResponse
    ledger_entry_id: Optional[str] = None
    warnings: List[str] = []
