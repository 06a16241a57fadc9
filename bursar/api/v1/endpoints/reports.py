from datetime import datetime
from decimal import Decimal
from typing import Dict, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from bursar.api.deps import get_reconciliation_service
from bursar.core.auth import FINANCE_ROLES, require_roles
from bursar.models.obligation import ObligationKind, ObligationRef
from bursar.models.user import Actor
from bursar.services.reconciliation_service import ReconciliationService, Window

router = APIRouter()

Period = Literal["all", "month", "today"]


class ObligationSummaryResponse(BaseModel):
    kind: Optional[ObligationKind] = None
    total_obligated: Decimal
    total_paid: Decimal
    total_outstanding: Decimal
    count: int
    by_status: Dict[str, int]


class LedgerSummaryResponse(BaseModel):
    period: str
    income: Decimal
    expenses: Decimal
    pending: Decimal
    net: Decimal
    entry_count: int
    paid_in_period: Decimal


class ReconciliationResponse(BaseModel):
    kind: ObligationKind
    id: str
    paid_amount: Decimal
    ledger_total: Decimal
    drift: Decimal
    entry_count: int
    in_sync: bool


def resolve_window(
    period: Period,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None
) -> Window:
    """An explicit range wins over the named period."""
    if start is not None or end is not None:
        return Window(start=start, end=end)
    if period == "month":
        return Window.this_month()
    if period == "today":
        return Window.today()
    return Window.all_time()


@router.get("/obligations", response_model=ObligationSummaryResponse)
async def obligation_summary(
    kind: Optional[ObligationKind] = None,
    actor: Actor = Depends(require_roles(*FINANCE_ROLES)),
    service: ReconciliationService = Depends(get_reconciliation_service)
):
    """Totals obligated, paid and outstanding, with counts by status"""
    summary = await service.obligation_summary(kind)
    return ObligationSummaryResponse(
        kind=kind,
        total_obligated=summary.total_obligated,
        total_paid=summary.total_paid,
        total_outstanding=summary.total_outstanding,
        count=summary.count,
        by_status=summary.by_status
    )


@router.get("/outstanding-by-category", response_model=Dict[str, Decimal])
async def outstanding_by_category(
    kind: Optional[ObligationKind] = None,
    actor: Actor = Depends(require_roles(*FINANCE_ROLES)),
    service: ReconciliationService = Depends(get_reconciliation_service)
):
    return await service.outstanding_by_category(kind)


@router.get("/pending-collection")
async def pending_collection(
    actor: Actor = Depends(require_roles(*FINANCE_ROLES)),
    service: ReconciliationService = Depends(get_reconciliation_service)
):
    """Fees still owed by students"""
    return {"pending_collection": await service.pending_collection()}


@router.get("/ledger", response_model=LedgerSummaryResponse)
async def ledger_summary(
    period: Period = "all",
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    kind: Optional[ObligationKind] = None,
    actor: Actor = Depends(require_roles(*FINANCE_ROLES)),
    service: ReconciliationService = Depends(get_reconciliation_service)
):
    """Income, expenses and pending amounts for a period"""
    window = resolve_window(period, start, end)
    summary = await service.ledger_summary(window)
    return LedgerSummaryResponse(
        period=period if start is None and end is None else "custom",
        income=summary.income,
        expenses=summary.expenses,
        pending=summary.pending,
        net=summary.net,
        entry_count=summary.entry_count,
        paid_in_period=await service.paid_in_period(window, kind)
    )


@router.get("/obligations/{kind}/{obligation_id}/reconciliation", response_model=ReconciliationResponse)
async def reconcile_obligation(
    kind: ObligationKind,
    obligation_id: str,
    actor: Actor = Depends(require_roles(*FINANCE_ROLES)),
    service: ReconciliationService = Depends(get_reconciliation_service)
):
    """Compare an obligation's paid amount with its completed transactions"""
    report = await service.reconcile_obligation(ObligationRef(kind=kind, id=obligation_id))
    return ReconciliationResponse(
        kind=report.ref.kind,
        id=report.ref.id,
        paid_amount=report.paid_amount,
        ledger_total=report.ledger_total,
        drift=report.drift,
        entry_count=report.entry_count,
        in_sync=report.in_sync
    )
