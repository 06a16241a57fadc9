"""
Documents read and written by the admission approval saga.

The saga itself is persisted as an EnrollmentSaga: one record per approval
attempt, holding the outcome of every step and the ids produced so far, so a
run that stopped on a best-effort failure can be resumed.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from bursar.models.base import MongoModel, _utcnow


class AdmissionStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class Admission(MongoModel):
    first_name: str
    last_name: str = ""
    email: str
    phone: str = ""
    class_name: str  # grade as entered, e.g. "7", "Grade 7"
    section: Optional[str] = None
    gender: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    admission_date: Optional[datetime] = None
    address: Optional[str] = None
    previous_school: Optional[str] = None
    parent_name: str = ""
    parent_phone: str = ""
    parent_email: Optional[str] = None
    status: AdmissionStatus = AdmissionStatus.PENDING
    student_id: Optional[str] = None

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part) or "Student"


class SchoolClass(MongoModel):
    name: str
    grade: str  # normalized, e.g. "Grade 7"
    section: str
    capacity: int = Field(ge=0)
    current_students: int = Field(default=0, ge=0)
    status: str = "Active"

    def is_full(self) -> bool:
        return self.current_students >= self.capacity


class FeeSchedule(MongoModel):
    grade: str
    admission_fee: Decimal = Field(ge=0)
    tuition_fee: Decimal = Field(ge=0)


class Student(MongoModel):
    user_id: str
    name: str
    email: str
    class_name: str  # e.g. "Grade 7B"
    section: str
    class_id: Optional[str] = None
    phone: str = ""
    parent_name: str = ""
    parent_phone: str = ""
    parent_email: Optional[str] = None
    gender: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    admission_date: Optional[datetime] = None
    address: Optional[str] = None
    previous_school: Optional[str] = None
    status: str = "Active"


class SagaState(str, Enum):
    RUNNING = "running"
    ABORTED = "aborted"
    COMPLETED = "completed"
    COMPLETED_WITH_WARNINGS = "completed_with_warnings"


class StepStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    COMPENSATED = "compensated"


class SagaStep(str, Enum):
    VALIDATE_ASSIGNMENT = "validate_assignment"
    RESOLVE_CLASS = "resolve_class"
    CREATE_USER = "create_user"
    CREATE_STUDENT = "create_student"
    INCREMENT_ENROLLMENT = "increment_enrollment"
    LINK_ADMISSION = "link_admission"
    RESOLVE_FEES = "resolve_fees"
    CREATE_ADMISSION_FEE = "create_admission_fee"
    CREATE_TUITION_FEE = "create_tuition_fee"
    RECORD_ADMISSION_FEE_TRANSACTION = "record_admission_fee_transaction"
    RECORD_TUITION_FEE_TRANSACTION = "record_tuition_fee_transaction"


class StepOutcome(BaseModel):
    step: SagaStep
    status: StepStatus
    detail: str = ""
    attempts: int = 1
    recorded_at: datetime = Field(default_factory=_utcnow)


class EnrollmentSaga(MongoModel):
    admission_id: str
    state: SagaState = SagaState.RUNNING
    created_by: str = "admin"
    steps: List[StepOutcome] = []

    # Context produced by the steps, needed to resume
    grade: Optional[str] = None
    section: Optional[str] = None
    class_id: Optional[str] = None
    class_name: Optional[str] = None
    user_id: Optional[str] = None
    username: Optional[str] = None
    student_id: Optional[str] = None
    admission_fee: Optional[Decimal] = None
    tuition_fee: Optional[Decimal] = None
    admission_fee_obligation_id: Optional[str] = None
    tuition_fee_obligation_id: Optional[str] = None

    def outcome(self, step: SagaStep) -> Optional[StepOutcome]:
        """Latest recorded outcome of a step."""
        for outcome in reversed(self.steps):
            if outcome.step is step:
                return outcome
        return None

    def record(self, step: SagaStep, status: StepStatus, detail: str = "") -> StepOutcome:
        """Record an outcome, replacing an earlier one for the same step."""
        previous = self.outcome(step)
        attempts = previous.attempts + 1 if previous else 1
        self.steps = [s for s in self.steps if s.step is not step]
        outcome = StepOutcome(step=step, status=status, detail=detail, attempts=attempts)
        self.steps.append(outcome)
        return outcome

    def failed_steps(self) -> List[SagaStep]:
        return [s.step for s in self.steps if s.status is StepStatus.FAILED]
