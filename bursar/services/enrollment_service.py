"""
Admission approval: turns an approved application into a student, a user
account, two fee obligations and their pending ledger entries.

The run is an explicit state machine persisted as an EnrollmentSaga.

    validate_assignment, resolve_class     preconditions, raise, nothing saved
    create_user, create_student            mandatory, failure aborts the saga
    increment_enrollment ... record_*      best-effort, failure is a warning

A fee entry is only recorded once its fee obligation exists, so it is always
linked.

A saga that completed with warnings can be resumed; only its failed
best-effort steps run again.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Tuple

from bursar.core.config import settings
from bursar.core.exceptions import (
    AdmissionAlreadyProcessed,
    AdmissionNotFound,
    CapacityExceeded,
    ClassNotFound,
    EnrollmentAborted,
    MissingAssignment,
    PreconditionError,
    SagaNotFound,
)
from bursar.models.enrollment import (
    Admission,
    AdmissionStatus,
    EnrollmentSaga,
    SagaState,
    SagaStep,
    StepStatus,
    Student,
)
from bursar.models.ledger import (
    FEE_COLLECTION_CATEGORY,
    LedgerEntry,
    TransactionStatus,
    TransactionType,
)
from bursar.models.obligation import ObligationKind, ObligationRef, ZERO
from bursar.models.user import UserProfile
from bursar.repositories.admission_repo import AdmissionRepository
from bursar.repositories.class_repo import ClassRepository
from bursar.repositories.fee_schedule_repo import FeeScheduleRepository
from bursar.repositories.saga_repo import SagaRepository
from bursar.repositories.student_repo import StudentRepository
from bursar.repositories.user_repo import UserRepository
from bursar.schemas.obligation import ObligationCreate
from bursar.services.ledger_service import TransactionLedger
from bursar.services.obligation_service import ObligationService
from bursar.utils.identifiers import (
    format_time,
    generate_username,
    normalize_grade,
    normalize_section,
)

logger = logging.getLogger(__name__)

BEST_EFFORT_STEPS = (
    SagaStep.INCREMENT_ENROLLMENT,
    SagaStep.LINK_ADMISSION,
    SagaStep.RESOLVE_FEES,
    SagaStep.CREATE_ADMISSION_FEE,
    SagaStep.CREATE_TUITION_FEE,
    SagaStep.RECORD_ADMISSION_FEE_TRANSACTION,
    SagaStep.RECORD_TUITION_FEE_TRANSACTION,
)

# fee type, saga attribute holding the amount, saga attribute holding the obligation id
FEE_STEPS = {
    SagaStep.CREATE_ADMISSION_FEE: ("Admission", "admission_fee", "admission_fee_obligation_id"),
    SagaStep.CREATE_TUITION_FEE: ("Tuition", "tuition_fee", "tuition_fee_obligation_id"),
}
FEE_TRANSACTION_STEPS = {
    SagaStep.RECORD_ADMISSION_FEE_TRANSACTION: SagaStep.CREATE_ADMISSION_FEE,
    SagaStep.RECORD_TUITION_FEE_TRANSACTION: SagaStep.CREATE_TUITION_FEE,
}


class StepFailed(Exception):
    """A best-effort step did not take effect."""


@dataclass
class EnrollmentResult:
    saga: EnrollmentSaga
    warnings: List[str] = field(default_factory=list)

    @property
    def saga_id(self) -> Optional[str]:
        return self.saga.id

    @property
    def state(self) -> SagaState:
        return self.saga.state

    @property
    def student_id(self) -> Optional[str]:
        return self.saga.student_id

    @property
    def username(self) -> Optional[str]:
        return self.saga.username


class EnrollmentService:
    def __init__(
        self,
        admissions: AdmissionRepository,
        classes: ClassRepository,
        users: UserRepository,
        students: StudentRepository,
        fee_schedules: FeeScheduleRepository,
        obligations: ObligationService,
        sagas: SagaRepository,
        ledger: TransactionLedger,
    ):
        self.admissions = admissions
        self.classes = classes
        self.users = users
        self.students = students
        self.fee_schedules = fee_schedules
        self.obligations = obligations
        self.sagas = sagas
        self.ledger = ledger

    async def approve_admission(self, admission_id: str, actor_role: str = "admin") -> EnrollmentResult:
        """
        Approve an admission and enroll the applicant.

        Raises:
            AdmissionNotFound, AdmissionAlreadyProcessed, MissingAssignment,
            ClassNotFound, CapacityExceeded: before anything is written
            EnrollmentAborted: the user or student could not be created; the
                aborted saga is saved and a created user is soft-deleted
        """
        admission = await self._load_admission(admission_id)
        if admission.status is not AdmissionStatus.PENDING or admission.student_id:
            raise AdmissionAlreadyProcessed(
                f"Admission {admission_id} is already {admission.status.value}"
            )
        existing = await self.sagas.find_by_admission(admission_id)
        if existing is not None:
            raise AdmissionAlreadyProcessed(
                f"Admission {admission_id} already has enrollment {existing.id} ({existing.state.value})"
            )

        section = normalize_section(admission.section or "")
        if not section:
            raise MissingAssignment(f"Admission {admission_id} has no section assigned")
        grade = normalize_grade(admission.class_name)

        school_class = await self.classes.find_by_grade_section(grade, section)
        if school_class is None:
            raise ClassNotFound(f"No active class found for {grade} section {section}")
        if school_class.is_full():
            raise CapacityExceeded(school_class.name, school_class.capacity)

        saga = EnrollmentSaga(
            admission_id=admission_id,
            created_by=actor_role,
            grade=grade,
            section=section,
            class_id=school_class.id,
            class_name=f"{grade}{section}",
        )
        saga.record(SagaStep.VALIDATE_ASSIGNMENT, StepStatus.SUCCEEDED, f"{grade} / {section}")
        saga.record(
            SagaStep.RESOLVE_CLASS,
            StepStatus.SUCCEEDED,
            f"{school_class.name}: {school_class.current_students}/{school_class.capacity}"
        )
        saga = await self.sagas.save(saga)
        logger.info("Enrollment %s started for admission %s into %s", saga.id, admission_id, saga.class_name)

        saga = await self._create_user(saga, admission)
        saga = await self._create_student(saga, admission)
        return await self._run_best_effort(saga, admission)

    async def resume(self, saga_id: str) -> EnrollmentResult:
        """Re-run the failed best-effort steps of a saga. Completed sagas are returned as is."""
        saga = await self.sagas.get(saga_id)
        if saga is None:
            raise SagaNotFound(saga_id)
        if saga.state is SagaState.ABORTED:
            raise PreconditionError(
                f"Enrollment {saga_id} was aborted and cannot be resumed; approve the admission again"
            )
        if saga.state is SagaState.COMPLETED:
            return EnrollmentResult(saga=saga)

        admission = await self._load_admission(saga.admission_id)
        logger.info("Resuming enrollment %s: %s", saga_id, [s.value for s in saga.failed_steps()])
        return await self._run_best_effort(saga, admission, only_failed=True)

    async def _load_admission(self, admission_id: str) -> Admission:
        admission = await self.admissions.get(admission_id)
        if admission is None:
            raise AdmissionNotFound(admission_id)
        return admission

    async def _abort(self, saga: EnrollmentSaga, step: SagaStep, exc: Exception) -> EnrollmentAborted:
        saga.record(step, StepStatus.FAILED, str(exc))
        saga.state = SagaState.ABORTED
        saga = await self.sagas.save(saga)
        logger.error("Enrollment %s aborted at %s: %s", saga.id, step.value, exc)
        return EnrollmentAborted(step.value, str(exc), saga.id)

    async def _create_user(self, saga: EnrollmentSaga, admission: Admission) -> EnrollmentSaga:
        try:
            username = generate_username(admission.email)
            profile = UserProfile(
                username=username,
                email=admission.email,
                name=admission.full_name,
                role="student",
                password=settings.DEFAULT_STUDENT_PASSWORD,
            )
            user_id = await self.users.create_user(profile)
        except Exception as exc:
            raise await self._abort(saga, SagaStep.CREATE_USER, exc) from exc

        saga.user_id = user_id
        saga.username = username
        saga.record(SagaStep.CREATE_USER, StepStatus.SUCCEEDED, username)
        return await self.sagas.save(saga)

    async def _create_student(self, saga: EnrollmentSaga, admission: Admission) -> EnrollmentSaga:
        student = Student(
            user_id=saga.user_id,
            name=admission.full_name,
            email=admission.email,
            class_name=saga.class_name,
            section=saga.section,
            class_id=saga.class_id,
            phone=admission.phone,
            parent_name=admission.parent_name,
            parent_phone=admission.parent_phone,
            parent_email=admission.parent_email,
            gender=admission.gender,
            date_of_birth=admission.date_of_birth,
            admission_date=admission.admission_date or datetime.now(timezone.utc),
            address=admission.address,
            previous_school=admission.previous_school,
        )
        try:
            student_id = await self.students.create(student)
        except Exception as exc:
            await self._compensate_user(saga)
            raise await self._abort(saga, SagaStep.CREATE_STUDENT, exc) from exc

        saga.student_id = student_id
        saga.record(SagaStep.CREATE_STUDENT, StepStatus.SUCCEEDED, student_id)
        return await self.sagas.save(saga)

    async def _compensate_user(self, saga: EnrollmentSaga) -> None:
        """Soft-delete the user created for a student that could not be created."""
        try:
            deleted = await self.users.soft_delete_user(saga.user_id)
        except Exception as exc:
            logger.error("Could not remove user %s after failed enrollment: %s", saga.user_id, exc)
            saga.record(SagaStep.CREATE_USER, StepStatus.FAILED, f"compensation failed: {exc}")
            return

        if deleted:
            saga.record(SagaStep.CREATE_USER, StepStatus.COMPENSATED, f"user {saga.user_id} soft-deleted")
        else:
            saga.record(SagaStep.CREATE_USER, StepStatus.FAILED, f"user {saga.user_id} not found for compensation")

    async def _run_best_effort(
        self, saga: EnrollmentSaga, admission: Admission, only_failed: bool = False
    ) -> EnrollmentResult:
        warnings: List[str] = []
        for step in BEST_EFFORT_STEPS:
            previous = saga.outcome(step)
            if only_failed and previous is not None and previous.status is not StepStatus.FAILED:
                continue

            try:
                status, detail, warning = await self._run_step(step, saga, admission)
            except Exception as exc:
                status, detail = StepStatus.FAILED, str(exc)
                warning = f"{step.value.replace('_', ' ').capitalize()} failed: {exc}"
                logger.warning("Enrollment %s step %s failed: %s", saga.id, step.value, exc)

            saga.record(step, status, detail)
            if warning:
                warnings.append(warning)

        saga.state = (
            SagaState.COMPLETED_WITH_WARNINGS
            if saga.failed_steps() or warnings
            else SagaState.COMPLETED
        )
        saga = await self.sagas.save(saga)
        logger.info(
            "Enrollment %s %s: student %s, %d warning(s)",
            saga.id, saga.state.value, saga.student_id, len(warnings)
        )
        return EnrollmentResult(saga=saga, warnings=warnings)

    async def _run_step(
        self, step: SagaStep, saga: EnrollmentSaga, admission: Admission
    ) -> Tuple[StepStatus, str, Optional[str]]:
        """Run one best-effort step; returns (status, detail, warning)."""
        if step is SagaStep.INCREMENT_ENROLLMENT:
            if not await self.classes.increment_enrollment(saga.class_id):
                raise StepFailed(f"class {saga.class_id} was not updated")
            return StepStatus.SUCCEEDED, saga.class_id, None

        if step is SagaStep.LINK_ADMISSION:
            if not await self.admissions.mark_approved(saga.admission_id, saga.student_id):
                raise StepFailed(f"admission {saga.admission_id} was not updated")
            return StepStatus.SUCCEEDED, saga.student_id, None

        if step is SagaStep.RESOLVE_FEES:
            return await self._resolve_fees(saga)

        if step in FEE_STEPS:
            return await self._create_fee(step, saga, admission)

        return await self._record_fee_transaction(step, saga, admission)

    async def _resolve_fees(self, saga: EnrollmentSaga) -> Tuple[StepStatus, str, Optional[str]]:
        try:
            schedule = await self.fee_schedules.get_by_grade(saga.grade)
            reason = None if schedule else f"no fee structure configured for {saga.grade}"
        except Exception as exc:
            schedule = None
            reason = f"fee structure lookup for {saga.grade} failed: {exc}"

        if schedule is not None:
            saga.admission_fee = schedule.admission_fee
            saga.tuition_fee = schedule.tuition_fee
            return StepStatus.SUCCEEDED, "fee schedule", None

        saga.admission_fee = settings.DEFAULT_ADMISSION_FEE
        saga.tuition_fee = settings.DEFAULT_TUITION_FEE
        warning = (
            f"Using default fees (admission {saga.admission_fee}, tuition {saga.tuition_fee}): {reason}"
        )
        logger.warning("Enrollment %s: %s", saga.id, warning)
        return StepStatus.SUCCEEDED, "defaults", warning

    async def _create_fee(
        self, step: SagaStep, saga: EnrollmentSaga, admission: Admission
    ) -> Tuple[StepStatus, str, Optional[str]]:
        fee_type, amount_attr, id_attr = FEE_STEPS[step]
        amount: Optional[Decimal] = getattr(saga, amount_attr)
        if amount is None:
            raise StepFailed("fee amounts were not resolved")

        label = "Monthly tuition" if fee_type == "Tuition" else "Admission"
        now = datetime.now(timezone.utc)
        result = await self.obligations.create(
            ObligationKind.FEE,
            ObligationCreate(
                category=fee_type,
                total_amount=amount,
                counterparty_ref=saga.student_id,
                description=f"{label} fee for {admission.full_name} - {saga.class_name}",
                issue_date=now,
                due_date=now,
            ),
            created_by=saga.created_by,
        )
        setattr(saga, id_attr, result.obligation.id)
        return StepStatus.SUCCEEDED, result.obligation.id, None

    async def _record_fee_transaction(
        self, step: SagaStep, saga: EnrollmentSaga, admission: Admission
    ) -> Tuple[StepStatus, str, Optional[str]]:
        fee_type, amount_attr, id_attr = FEE_STEPS[FEE_TRANSACTION_STEPS[step]]
        amount: Optional[Decimal] = getattr(saga, amount_attr)
        if amount is None:
            raise StepFailed("fee amounts were not resolved")
        if amount <= ZERO:
            return StepStatus.SKIPPED, "zero amount", None

        obligation_id = getattr(saga, id_attr)
        if not obligation_id:
            raise StepFailed(f"{fee_type.lower()} fee obligation does not exist yet")
        now = datetime.now(timezone.utc)
        entry = LedgerEntry(
            type=TransactionType.INCOME,
            amount=amount,
            category=FEE_COLLECTION_CATEGORY,
            description=f"{fee_type} Fee - {admission.full_name} ({saga.class_name})",
            date=now,
            time=format_time(now),
            status=TransactionStatus.PENDING,
            obligation=ObligationRef(kind=ObligationKind.FEE, id=obligation_id),
            reference_id=f"{fee_type.lower()}-{saga.admission_id}",
            created_by=saga.created_by,
        )
        entry_id, warning = await self.ledger.append_best_effort(entry)
        if entry_id is None:
            return StepStatus.FAILED, warning, warning
        return StepStatus.SUCCEEDED, entry_id, None
