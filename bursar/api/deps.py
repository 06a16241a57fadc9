"""Service factories for the routers. Tests replace get_db or a whole factory."""
from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from bursar.db.mongo import get_db
from bursar.repositories.admission_repo import AdmissionRepository
from bursar.repositories.class_repo import ClassRepository
from bursar.repositories.fee_schedule_repo import FeeScheduleRepository
from bursar.repositories.ledger_repo import LedgerRepository
from bursar.repositories.obligation_repo import ObligationRepository
from bursar.repositories.saga_repo import SagaRepository
from bursar.repositories.student_repo import StudentRepository
from bursar.repositories.user_repo import UserRepository
from bursar.services.enrollment_service import EnrollmentService
from bursar.services.ledger_service import TransactionLedger
from bursar.services.obligation_service import ObligationService
from bursar.services.payment_service import PaymentService
from bursar.services.reconciliation_service import ReconciliationService


def get_ledger(db: AsyncIOMotorDatabase = Depends(get_db)) -> TransactionLedger:
    return TransactionLedger(LedgerRepository(db))


def get_obligation_service(
    db: AsyncIOMotorDatabase = Depends(get_db),
    ledger: TransactionLedger = Depends(get_ledger)
) -> ObligationService:
    return ObligationService(ObligationRepository(db), ledger)


def get_payment_service(
    db: AsyncIOMotorDatabase = Depends(get_db),
    ledger: TransactionLedger = Depends(get_ledger)
) -> PaymentService:
    return PaymentService(ObligationRepository(db), ledger)


def get_reconciliation_service(db: AsyncIOMotorDatabase = Depends(get_db)) -> ReconciliationService:
    return ReconciliationService(ObligationRepository(db), LedgerRepository(db))


def get_fee_schedule_repo(db: AsyncIOMotorDatabase = Depends(get_db)) -> FeeScheduleRepository:
    return FeeScheduleRepository(db)


def get_enrollment_service(
    db: AsyncIOMotorDatabase = Depends(get_db),
    ledger: TransactionLedger = Depends(get_ledger),
    obligations: ObligationService = Depends(get_obligation_service)
) -> EnrollmentService:
    return EnrollmentService(
        admissions=AdmissionRepository(db),
        classes=ClassRepository(db),
        users=UserRepository(db),
        students=StudentRepository(db),
        fee_schedules=FeeScheduleRepository(db),
        obligations=obligations,
        sagas=SagaRepository(db),
        ledger=ledger,
    )
