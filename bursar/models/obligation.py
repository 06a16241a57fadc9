"""
Obligation model - money owed by or to a counterparty.

Design principles:
- One document per expense, fee collection or payroll record
- paid_amount only grows through payments; total_amount only changes by edit
- Status is derived from (paid_amount, total_amount) on every write
- version is bumped on every write and guards concurrent payments
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from bursar.models.base import MongoModel, UtcDatetime

ZERO = Decimal("0")


class ObligationKind(str, Enum):
    EXPENSE = "expense"
    FEE = "fee"
    PAYROLL = "payroll"


class ObligationStatus(str, Enum):
    UNPAID = "Unpaid"
    PARTIAL_PAID = "Partial Paid"
    PAID = "Paid"


EXPENSE_CATEGORIES = (
    "Salaries",
    "Utilities",
    "Supplies",
    "Maintenance",
    "Equipment",
    "Transportation",
    "Other",
)
FEE_TYPES = ("Tuition", "Admission", "Exam", "Transport", "Other")
PAYROLL_CATEGORY = "Salary"

CATEGORIES = {
    ObligationKind.EXPENSE: EXPENSE_CATEGORIES,
    ObligationKind.FEE: FEE_TYPES,
    ObligationKind.PAYROLL: (PAYROLL_CATEGORY,),
}


def derive_status(paid_amount: Decimal, total_amount: Decimal) -> ObligationStatus:
    """
    Status as a pure function of the two amounts.

    Checked in order: nothing paid is Unpaid (even for a zero total), reaching
    the total is Paid, anything in between is Partial Paid.
    """
    if paid_amount == ZERO:
        return ObligationStatus.UNPAID
    if paid_amount >= total_amount:
        return ObligationStatus.PAID
    return ObligationStatus.PARTIAL_PAID


def status_label(kind: ObligationKind, status: ObligationStatus) -> str:
    """Screen label: expenses and payroll call an unpaid record 'Pending'."""
    if status is ObligationStatus.UNPAID and kind is not ObligationKind.FEE:
        return "Pending"
    return status.value


class ObligationRef(BaseModel):
    """The one identifier used to address an obligation: its kind plus its id."""
    model_config = ConfigDict(frozen=True)

    kind: ObligationKind
    id: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


class PayrollBreakdown(BaseModel):
    """How a payroll total is made up; the amount owed is the net salary."""
    employee_id: Optional[str] = None
    department: Optional[str] = None
    base_salary: Decimal = Field(ge=0)
    allowances: Decimal = Field(default=ZERO, ge=0)
    deductions: Decimal = Field(default=ZERO, ge=0)

    @computed_field
    @property
    def net_salary(self) -> Decimal:
        return self.base_salary + self.allowances - self.deductions


class Obligation(MongoModel):
    """
    Money owed: total_amount, of which paid_amount has been settled.

    Invariants:
    - 0 <= paid_amount <= total_amount
    - status == derive_status(paid_amount, total_amount)
    - with a payroll breakdown, total_amount == payroll.net_salary
    """
    kind: ObligationKind
    category: str
    total_amount: Decimal = Field(ge=0)
    paid_amount: Decimal = Field(default=ZERO, ge=0)
    counterparty_ref: str
    status: ObligationStatus = ObligationStatus.UNPAID
    description: str = ""

    due_date: Optional[UtcDatetime] = None
    issue_date: Optional[UtcDatetime] = None
    receipt_number: Optional[str] = None

    last_payment_method: Optional[str] = None
    last_paid_at: Optional[UtcDatetime] = None

    payroll: Optional[PayrollBreakdown] = None

    version: int = 1

    @property
    def ref(self) -> ObligationRef:
        return ObligationRef(kind=self.kind, id=self.id)

    def remaining_amount(self) -> Decimal:
        """How much is still owed."""
        return self.total_amount - self.paid_amount

    def is_fully_paid(self) -> bool:
        return self.status is ObligationStatus.PAID
