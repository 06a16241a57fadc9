from fastapi import APIRouter
from bursar.api.v1.endpoints import obligations, transactions, reports, fee_schedules, admissions

api_router = APIRouter()

api_router.include_router(obligations.router, prefix="/obligations", tags=["obligations"])
api_router.include_router(transactions.router, prefix="/transactions", tags=["transactions"])
api_router.include_router(reports.router, prefix="/reports", tags=["reports"])
api_router.include_router(fee_schedules.router, prefix="/fee-schedules", tags=["fee schedules"])
api_router.include_router(admissions.router, tags=["enrollment"])
