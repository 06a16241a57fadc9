from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from bursar.models.enrollment import SagaState, StepOutcome
from bursar.services.enrollment_service import EnrollmentResult


class FeeScheduleUpdate(BaseModel):
    admission_fee: Decimal = Field(..., ge=0)
    tuition_fee: Decimal = Field(..., ge=0)


class FeeScheduleResponse(BaseModel):
    grade: str
    admission_fee: Decimal
    tuition_fee: Decimal
    updated_at: datetime


class EnrollmentResponse(BaseModel):
    saga_id: str
    admission_id: str
    state: SagaState
    user_id: Optional[str] = None
    username: Optional[str] = None
    student_id: Optional[str] = None
    class_name: Optional[str] = None
    admission_fee: Optional[Decimal] = None
    tuition_fee: Optional[Decimal] = None
    admission_fee_obligation_id: Optional[str] = None
    tuition_fee_obligation_id: Optional[str] = None
    steps: List[StepOutcome] = []
    warnings: List[str] = []

    @classmethod
    def from_result(cls, result: EnrollmentResult) -> "EnrollmentResponse":
        saga = result.saga
        return cls(
            saga_id=saga.id,
            admission_id=saga.admission_id,
            state=saga.state,
            user_id=saga.user_id,
            username=saga.username,
            student_id=saga.student_id,
            class_name=saga.class_name,
            admission_fee=saga.admission_fee,
            tuition_fee=saga.tuition_fee,
            admission_fee_obligation_id=saga.admission_fee_obligation_id,
            tuition_fee_obligation_id=saga.tuition_fee_obligation_id,
            steps=saga.steps,
            warnings=result.warnings,
        )
