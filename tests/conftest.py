import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

import pytest
from bson import ObjectId

from bursar.models.enrollment import (
    Admission,
    AdmissionStatus,
    EnrollmentSaga,
    FeeSchedule,
    SagaState,
    SchoolClass,
    Student,
)
from bursar.models.ledger import LedgerEntry, LedgerFilter
from bursar.models.obligation import (
    Obligation,
    ObligationKind,
    ObligationRef,
    derive_status,
)
from bursar.models.user import UserProfile
from bursar.services.enrollment_service import EnrollmentService
from bursar.services.events import ObligationEvents
from bursar.services.ledger_service import TransactionLedger
from bursar.services.obligation_service import ObligationService
from bursar.services.payment_service import PaymentService
from bursar.services.reconciliation_service import ReconciliationService
from bursar.utils.payment_validation import PaymentMeta


def new_id() -> str:
    return str(ObjectId())


class InMemoryObligationRepository:
    """Same contract as ObligationRepository, kept in a dict."""

    def __init__(self):
        self.docs: Dict[str, Obligation] = {}
        self.writes = 0
        # raised in order by the next create calls
        self.create_failures: List[Exception] = []

    async def create(self, obligation: Obligation) -> Obligation:
        if self.create_failures:
            raise self.create_failures.pop(0)
        stored = obligation.model_copy(update={"id": new_id()})
        self.docs[stored.id] = stored
        return stored

    async def get(self, ref: ObligationRef) -> Optional[Obligation]:
        obligation = self.docs.get(ref.id)
        if obligation is None or obligation.kind is not ref.kind:
            return None
        return obligation

    async def list(self, kind=None, status=None, category=None, counterparty_ref=None) -> List[Obligation]:
        return [
            o for o in self.docs.values()
            if (kind is None or o.kind is kind)
            and (status is None or o.status is status)
            and (not category or o.category == category)
            and (not counterparty_ref or o.counterparty_ref == counterparty_ref)
        ]

    async def update(self, ref: ObligationRef, fields: dict, expected_version: int) -> Optional[Obligation]:
        current = await self.get(ref)
        if current is None or current.version != expected_version:
            return None
        data = current.model_dump()
        data.update(fields)
        data["version"] = current.version + 1
        data["updated_at"] = datetime.now(timezone.utc)
        updated = Obligation.model_validate(data)
        self.docs[ref.id] = updated
        self.writes += 1
        return updated

    async def apply_payment(self, ref, paid_amount, status, payment_method, paid_at, expected_version):
        return await self.update(
            ref,
            {
                "paid_amount": paid_amount,
                "status": status.value,
                "last_payment_method": payment_method,
                "last_paid_at": paid_at,
            },
            expected_version,
        )

    async def delete(self, ref: ObligationRef) -> bool:
        if await self.get(ref) is None:
            return False
        del self.docs[ref.id]
        return True


class InMemoryLedgerRepository:
    """Append-only list of entries; create can be made to fail or hang."""

    def __init__(self):
        self.entries: List[LedgerEntry] = []
        self.fail_with: Optional[Exception] = None
        self.delay: float = 0

    async def create(self, entry: LedgerEntry) -> LedgerEntry:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        stored = entry.model_copy(update={"id": new_id()})
        self.entries.append(stored)
        return stored

    async def get(self, entry_id: str) -> Optional[LedgerEntry]:
        return next((e for e in self.entries if e.id == entry_id), None)

    async def list_all(self, ledger_filter: Optional[LedgerFilter] = None) -> List[LedgerEntry]:
        if ledger_filter is None:
            return list(self.entries)
        return [e for e in self.entries if ledger_filter.matches(e)]

    async def list_by_obligation(self, ref: ObligationRef) -> List[LedgerEntry]:
        return await self.list_all(LedgerFilter(obligation=ref))

    async def count_by_obligation(self, ref: ObligationRef) -> int:
        return len(await self.list_by_obligation(ref))


class InMemoryAdmissionRepository:
    def __init__(self):
        self.docs: Dict[str, Admission] = {}
        self.fail_mark_approved = False

    def add(self, **fields) -> Admission:
        admission = Admission(id=new_id(), **fields)
        self.docs[admission.id] = admission
        return admission

    async def get(self, admission_id: str) -> Optional[Admission]:
        return self.docs.get(admission_id)

    async def mark_approved(self, admission_id: str, student_id: str) -> bool:
        if self.fail_mark_approved:
            raise RuntimeError("admissions collection unavailable")
        admission = self.docs.get(admission_id)
        if admission is None:
            return False
        self.docs[admission_id] = admission.model_copy(
            update={"status": AdmissionStatus.APPROVED, "student_id": student_id}
        )
        return True


class InMemoryClassRepository:
    def __init__(self):
        self.docs: Dict[str, SchoolClass] = {}
        self.fail_increment = False

    def add(self, **fields) -> SchoolClass:
        school_class = SchoolClass(id=new_id(), **fields)
        self.docs[school_class.id] = school_class
        return school_class

    async def find_by_grade_section(self, grade: str, section: str) -> Optional[SchoolClass]:
        return next(
            (c for c in self.docs.values()
             if c.grade == grade and c.section == section and c.status == "Active"),
            None,
        )

    async def increment_enrollment(self, class_id: str) -> bool:
        if self.fail_increment:
            raise RuntimeError("classes collection unavailable")
        school_class = self.docs.get(class_id)
        if school_class is None:
            return False
        self.docs[class_id] = school_class.model_copy(
            update={"current_students": school_class.current_students + 1}
        )
        return True


class InMemoryUserRepository:
    def __init__(self):
        self.profiles: Dict[str, UserProfile] = {}
        self.deleted: List[str] = []
        self.fail_with: Optional[Exception] = None

    async def create_user(self, profile: UserProfile) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        user_id = new_id()
        self.profiles[user_id] = profile
        return user_id

    async def soft_delete_user(self, user_id: str) -> bool:
        if user_id not in self.profiles:
            return False
        self.deleted.append(user_id)
        return True


class InMemoryStudentRepository:
    def __init__(self):
        self.docs: Dict[str, Student] = {}
        self.fail_with: Optional[Exception] = None

    async def create(self, student: Student) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        student_id = new_id()
        self.docs[student_id] = student
        return student_id


class InMemoryFeeScheduleRepository:
    def __init__(self):
        self.docs: Dict[str, FeeSchedule] = {}
        self.fail_with: Optional[Exception] = None

    async def get_by_grade(self, grade: str) -> Optional[FeeSchedule]:
        if self.fail_with is not None:
            raise self.fail_with
        return self.docs.get(grade)

    async def list(self) -> List[FeeSchedule]:
        return sorted(self.docs.values(), key=lambda s: s.grade)

    async def upsert(self, schedule: FeeSchedule) -> FeeSchedule:
        self.docs[schedule.grade] = schedule
        return schedule


class InMemorySagaRepository:
    def __init__(self):
        self.docs: Dict[str, EnrollmentSaga] = {}
        self.saves = 0

    async def save(self, saga: EnrollmentSaga) -> EnrollmentSaga:
        if saga.id is None:
            saga = saga.model_copy(update={"id": new_id()})
        self.docs[saga.id] = saga.model_copy(deep=True)
        self.saves += 1
        return saga

    async def get(self, saga_id: str) -> Optional[EnrollmentSaga]:
        saga = self.docs.get(saga_id)
        return saga.model_copy(deep=True) if saga else None

    async def find_by_admission(self, admission_id: str) -> Optional[EnrollmentSaga]:
        return next(
            (s for s in self.docs.values()
             if s.admission_id == admission_id and s.state is not SagaState.ABORTED),
            None,
        )


@pytest.fixture
def obligation_repo():
    return InMemoryObligationRepository()


@pytest.fixture
def ledger_repo():
    return InMemoryLedgerRepository()


@pytest.fixture
def ledger(ledger_repo):
    return TransactionLedger(ledger_repo, append_timeout=0.2)


@pytest.fixture
def events():
    """A private hub that records every event it publishes."""
    hub = ObligationEvents()
    hub.received = []

    async def record(event):
        hub.received.append(event)

    hub.subscribe(record)
    return hub


@pytest.fixture
def payment_service(obligation_repo, ledger, events):
    return PaymentService(obligation_repo, ledger, events)


@pytest.fixture
def obligation_service(obligation_repo, ledger, events):
    return ObligationService(obligation_repo, ledger, events)


@pytest.fixture
def reconciliation_service(obligation_repo, ledger_repo):
    return ReconciliationService(obligation_repo, ledger_repo)


@pytest.fixture
def payment_meta():
    return PaymentMeta(
        payment_method="Cash",
        payment_date=datetime(2024, 5, 10, 9, 30, tzinfo=timezone.utc),
    )


@pytest.fixture
def make_obligation(obligation_repo):
    """Store an obligation directly, bypassing the services."""

    async def factory(kind=ObligationKind.EXPENSE, total="1000", paid="0", category=None, counterparty_ref="Acme Supplies"):
        total, paid = Decimal(total), Decimal(paid)
        if category is None:
            category = {
                ObligationKind.EXPENSE: "Supplies",
                ObligationKind.FEE: "Tuition",
                ObligationKind.PAYROLL: "Salary",
            }[kind]
        return await obligation_repo.create(Obligation(
            kind=kind,
            category=category,
            total_amount=total,
            paid_amount=paid,
            counterparty_ref=counterparty_ref,
            status=derive_status(paid, total),
        ))

    return factory


@pytest.fixture
def admission_repo():
    return InMemoryAdmissionRepository()


@pytest.fixture
def class_repo():
    return InMemoryClassRepository()


@pytest.fixture
def user_repo():
    return InMemoryUserRepository()


@pytest.fixture
def student_repo():
    return InMemoryStudentRepository()


@pytest.fixture
def fee_schedule_repo():
    return InMemoryFeeScheduleRepository()


@pytest.fixture
def saga_repo():
    return InMemorySagaRepository()


@pytest.fixture
def enrollment_service(
    admission_repo, class_repo, user_repo, student_repo,
    fee_schedule_repo, obligation_service, saga_repo, ledger
):
    return EnrollmentService(
        admissions=admission_repo,
        classes=class_repo,
        users=user_repo,
        students=student_repo,
        fee_schedules=fee_schedule_repo,
        obligations=obligation_service,
        sagas=saga_repo,
        ledger=ledger,
    )


@pytest.fixture
def grade7_class(class_repo):
    return class_repo.add(name="Grade 7B", grade="Grade 7", section="B", capacity=30, current_students=12)


@pytest.fixture
def pending_admission(admission_repo):
    return admission_repo.add(
        first_name="Ayesha",
        last_name="Khan",
        email="ayesha.khan@example.com",
        phone="0300-1234567",
        class_name="7",
        section="B",
        parent_name="Imran Khan",
        parent_phone="0300-7654321",
    )
