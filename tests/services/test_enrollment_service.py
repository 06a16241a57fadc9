from decimal import Decimal

import pytest

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
from bursar.models.enrollment import AdmissionStatus, FeeSchedule, SagaState, SagaStep, StepStatus
from bursar.models.ledger import TransactionStatus, TransactionType
from bursar.models.obligation import ObligationKind, ObligationRef, ObligationStatus


@pytest.mark.asyncio
async def test_approval_without_fee_schedule_uses_defaults(
    enrollment_service, pending_admission, grade7_class, obligation_repo, ledger_repo, caplog
):
    result = await enrollment_service.approve_admission(pending_admission.id)

    assert result.state == SagaState.COMPLETED_WITH_WARNINGS
    assert len(result.warnings) == 1
    assert "default fees" in result.warnings[0].lower()
    assert "Using default fees" in caplog.text

    fees = await obligation_repo.list(kind=ObligationKind.FEE, counterparty_ref=result.student_id)
    assert sorted((f.category, f.total_amount) for f in fees) == [
        ("Admission", Decimal("5000")),
        ("Tuition", Decimal("3000")),
    ]
    assert all(f.status == ObligationStatus.UNPAID for f in fees)
    assert all(f.paid_amount == Decimal("0") for f in fees)

    assert len(ledger_repo.entries) == 2
    assert all(e.status == TransactionStatus.PENDING for e in ledger_repo.entries)
    assert all(e.type == TransactionType.INCOME for e in ledger_repo.entries)
    assert {e.reference_id for e in ledger_repo.entries} == {
        f"admission-{pending_admission.id}",
        f"tuition-{pending_admission.id}",
    }
    assert {e.obligation.id for e in ledger_repo.entries} == {f.id for f in fees}


@pytest.mark.asyncio
async def test_approval_with_fee_schedule(
    enrollment_service, pending_admission, grade7_class, fee_schedule_repo,
    class_repo, admission_repo, user_repo, student_repo, saga_repo
):
    await fee_schedule_repo.upsert(FeeSchedule(grade="Grade 7", admission_fee=Decimal("7000"), tuition_fee=Decimal("4500")))

    result = await enrollment_service.approve_admission(pending_admission.id, actor_role="admin")

    assert result.state == SagaState.COMPLETED
    assert result.warnings == []
    assert result.saga.admission_fee == Decimal("7000")
    assert result.saga.tuition_fee == Decimal("4500")
    assert result.saga.class_name == "Grade 7B"

    assert class_repo.docs[grade7_class.id].current_students == 13
    admission = admission_repo.docs[pending_admission.id]
    assert admission.status == AdmissionStatus.APPROVED
    assert admission.student_id == result.student_id

    profile = user_repo.profiles[result.saga.user_id]
    assert profile.username.startswith("ayesha_khan_")
    assert profile.role == "student"
    student = student_repo.docs[result.student_id]
    assert student.class_id == grade7_class.id
    assert student.section == "B"

    stored = saga_repo.docs[result.saga_id]
    assert stored.state == SagaState.COMPLETED
    assert stored.failed_steps() == []


@pytest.mark.asyncio
async def test_zero_fee_creates_obligation_but_no_transaction(
    enrollment_service, pending_admission, grade7_class, fee_schedule_repo, obligation_repo, ledger_repo
):
    await fee_schedule_repo.upsert(FeeSchedule(grade="Grade 7", admission_fee=Decimal("0"), tuition_fee=Decimal("3000")))

    result = await enrollment_service.approve_admission(pending_admission.id)

    assert len(await obligation_repo.list(kind=ObligationKind.FEE)) == 2
    assert [e.amount for e in ledger_repo.entries] == [Decimal("3000")]
    assert result.saga.outcome(SagaStep.RECORD_ADMISSION_FEE_TRANSACTION).status == StepStatus.SKIPPED
    assert result.state == SagaState.COMPLETED


@pytest.mark.asyncio
async def test_fee_lookup_error_falls_back_to_defaults(
    enrollment_service, pending_admission, grade7_class, fee_schedule_repo, obligation_repo
):
    fee_schedule_repo.fail_with = RuntimeError("fee_schedules timed out")

    result = await enrollment_service.approve_admission(pending_admission.id)

    assert result.state == SagaState.COMPLETED_WITH_WARNINGS
    assert "fee_schedules timed out" in result.warnings[0]
    totals = sorted(f.total_amount for f in await obligation_repo.list(kind=ObligationKind.FEE))
    assert totals == [Decimal("3000"), Decimal("5000")]


@pytest.mark.asyncio
async def test_unknown_admission(enrollment_service):
    with pytest.raises(AdmissionNotFound):
        await enrollment_service.approve_admission("507f1f77bcf86cd799439011")


@pytest.mark.asyncio
async def test_missing_section(enrollment_service, admission_repo, grade7_class, saga_repo):
    admission = admission_repo.add(first_name="Bilal", email="bilal@example.com", class_name="Grade 7")

    with pytest.raises(MissingAssignment):
        await enrollment_service.approve_admission(admission.id)

    assert saga_repo.docs == {}


@pytest.mark.asyncio
async def test_class_not_found(enrollment_service, pending_admission, saga_repo, user_repo):
    with pytest.raises(ClassNotFound):
        await enrollment_service.approve_admission(pending_admission.id)

    assert saga_repo.docs == {}
    assert user_repo.profiles == {}


@pytest.mark.asyncio
async def test_full_class(enrollment_service, pending_admission, class_repo, user_repo):
    class_repo.add(name="Grade 7B", grade="Grade 7", section="B", capacity=30, current_students=30)

    with pytest.raises(CapacityExceeded):
        await enrollment_service.approve_admission(pending_admission.id)

    assert user_repo.profiles == {}


@pytest.mark.asyncio
async def test_already_approved(enrollment_service, pending_admission, grade7_class):
    await enrollment_service.approve_admission(pending_admission.id)

    with pytest.raises(AdmissionAlreadyProcessed):
        await enrollment_service.approve_admission(pending_admission.id)


@pytest.mark.asyncio
async def test_user_creation_failure_aborts(enrollment_service, pending_admission, grade7_class, user_repo, saga_repo, obligation_repo):
    user_repo.fail_with = RuntimeError("duplicate username")

    with pytest.raises(EnrollmentAborted) as excinfo:
        await enrollment_service.approve_admission(pending_admission.id)

    assert excinfo.value.step == "create_user"
    saga = saga_repo.docs[excinfo.value.saga_id]
    assert saga.state == SagaState.ABORTED
    assert saga.outcome(SagaStep.CREATE_USER).status == StepStatus.FAILED
    assert obligation_repo.docs == {}


@pytest.mark.asyncio
async def test_student_failure_compensates_user(
    enrollment_service, pending_admission, grade7_class, user_repo, student_repo, saga_repo, class_repo
):
    student_repo.fail_with = RuntimeError("students collection unavailable")

    with pytest.raises(EnrollmentAborted) as excinfo:
        await enrollment_service.approve_admission(pending_admission.id)

    assert excinfo.value.step == "create_student"
    saga = saga_repo.docs[excinfo.value.saga_id]
    assert saga.state == SagaState.ABORTED
    assert user_repo.deleted == [saga.user_id]
    assert saga.outcome(SagaStep.CREATE_USER).status == StepStatus.COMPENSATED
    assert saga.outcome(SagaStep.CREATE_STUDENT).status == StepStatus.FAILED
    assert class_repo.docs[grade7_class.id].current_students == 12

    # an aborted approval can be retried from scratch
    student_repo.fail_with = None
    result = await enrollment_service.approve_admission(pending_admission.id)
    assert result.student_id is not None


@pytest.mark.asyncio
async def test_best_effort_failures_then_resume(
    enrollment_service, pending_admission, grade7_class, class_repo, admission_repo, ledger_repo, fee_schedule_repo
):
    await fee_schedule_repo.upsert(FeeSchedule(grade="Grade 7", admission_fee=Decimal("5000"), tuition_fee=Decimal("3000")))
    class_repo.fail_increment = True
    admission_repo.fail_mark_approved = True
    ledger_repo.fail_with = RuntimeError("transactions unavailable")

    result = await enrollment_service.approve_admission(pending_admission.id)

    assert result.state == SagaState.COMPLETED_WITH_WARNINGS
    assert set(result.saga.failed_steps()) == {
        SagaStep.INCREMENT_ENROLLMENT,
        SagaStep.LINK_ADMISSION,
        SagaStep.RECORD_ADMISSION_FEE_TRANSACTION,
        SagaStep.RECORD_TUITION_FEE_TRANSACTION,
    }
    assert len(result.warnings) == 4
    fee_ids = (result.saga.admission_fee_obligation_id, result.saga.tuition_fee_obligation_id)
    assert all(fee_ids)

    class_repo.fail_increment = False
    admission_repo.fail_mark_approved = False
    ledger_repo.fail_with = None

    resumed = await enrollment_service.resume(result.saga_id)

    assert resumed.state == SagaState.COMPLETED
    assert resumed.saga.failed_steps() == []
    assert class_repo.docs[grade7_class.id].current_students == 13
    assert admission_repo.docs[pending_admission.id].status == AdmissionStatus.APPROVED
    assert len(ledger_repo.entries) == 2
    # fee obligations were not created twice
    assert (resumed.saga.admission_fee_obligation_id, resumed.saga.tuition_fee_obligation_id) == fee_ids
    assert resumed.saga.outcome(SagaStep.INCREMENT_ENROLLMENT).attempts == 2
    assert resumed.saga.outcome(SagaStep.CREATE_ADMISSION_FEE).attempts == 1


@pytest.mark.asyncio
async def test_fee_entry_waits_for_its_obligation(
    enrollment_service, pending_admission, grade7_class, obligation_repo, ledger_repo, fee_schedule_repo
):
    await fee_schedule_repo.upsert(FeeSchedule(grade="Grade 7", admission_fee=Decimal("5000"), tuition_fee=Decimal("3000")))
    obligation_repo.create_failures = [RuntimeError("obligations unavailable")]

    result = await enrollment_service.approve_admission(pending_admission.id)

    assert set(result.saga.failed_steps()) == {
        SagaStep.CREATE_ADMISSION_FEE,
        SagaStep.RECORD_ADMISSION_FEE_TRANSACTION,
    }
    assert result.saga.admission_fee_obligation_id is None
    assert [e.reference_id for e in ledger_repo.entries] == [f"tuition-{pending_admission.id}"]

    resumed = await enrollment_service.resume(result.saga_id)

    assert resumed.state == SagaState.COMPLETED
    admission_ref = ObligationRef(kind=ObligationKind.FEE, id=resumed.saga.admission_fee_obligation_id)
    linked = await ledger_repo.list_by_obligation(admission_ref)
    assert [e.reference_id for e in linked] == [f"admission-{pending_admission.id}"]
    assert all(e.obligation is not None for e in ledger_repo.entries)
    assert len(ledger_repo.entries) == 2


@pytest.mark.asyncio
async def test_resume_completed_saga_is_a_no_op(enrollment_service, pending_admission, grade7_class, fee_schedule_repo, ledger_repo):
    await fee_schedule_repo.upsert(FeeSchedule(grade="Grade 7", admission_fee=Decimal("5000"), tuition_fee=Decimal("3000")))
    result = await enrollment_service.approve_admission(pending_admission.id)

    resumed = await enrollment_service.resume(result.saga_id)

    assert resumed.state == SagaState.COMPLETED
    assert len(ledger_repo.entries) == 2


@pytest.mark.asyncio
async def test_resume_unknown_or_aborted(enrollment_service, pending_admission, grade7_class, user_repo):
    with pytest.raises(SagaNotFound):
        await enrollment_service.resume("507f1f77bcf86cd799439011")

    user_repo.fail_with = RuntimeError("down")
    with pytest.raises(EnrollmentAborted) as excinfo:
        await enrollment_service.approve_admission(pending_admission.id)

    with pytest.raises(PreconditionError):
        await enrollment_service.resume(excinfo.value.saga_id)
