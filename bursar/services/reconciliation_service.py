"""
Dashboard aggregates over obligations and the ledger.

Nothing here is cached or persisted: every call re-reads the collections and
recomputes. The arithmetic lives in plain functions over lists so it can be
used on data already in hand.
"""

import calendar
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from bursar.core.exceptions import ObligationNotFound
from bursar.models.base import ensure_utc
from bursar.models.ledger import LedgerEntry, LedgerFilter, TransactionStatus, TransactionType
from bursar.models.obligation import (
    Obligation,
    ObligationKind,
    ObligationRef,
    ObligationStatus,
    derive_status,
    ZERO,
)
from bursar.repositories.ledger_repo import LedgerRepository
from bursar.repositories.obligation_repo import ObligationRepository


@dataclass(frozen=True)
class Window:
    """Half-open time range [start, end). A missing bound is unbounded."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def __post_init__(self):
        # naive bounds are UTC, like every stored date
        for name in ("start", "end"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, ensure_utc(value))

    @classmethod
    def all_time(cls) -> "Window":
        return cls()

    @classmethod
    def this_month(cls, now: Optional[datetime] = None) -> "Window":
        now = now or datetime.now(timezone.utc)
        start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        days = calendar.monthrange(now.year, now.month)[1]
        return cls(start=start, end=start + timedelta(days=days))

    @classmethod
    def today(cls, now: Optional[datetime] = None) -> "Window":
        now = now or datetime.now(timezone.utc)
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return cls(start=start, end=start + timedelta(days=1))

    def contains(self, moment: datetime) -> bool:
        moment = ensure_utc(moment)
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None and moment >= self.end:
            return False
        return True


@dataclass
class ObligationSummary:
    total_obligated: Decimal = ZERO
    total_paid: Decimal = ZERO
    total_outstanding: Decimal = ZERO
    count: int = 0
    by_status: Dict[str, int] = field(
        default_factory=lambda: {status.value: 0 for status in ObligationStatus}
    )


@dataclass
class LedgerSummary:
    income: Decimal = ZERO
    expenses: Decimal = ZERO
    pending: Decimal = ZERO
    entry_count: int = 0

    @property
    def net(self) -> Decimal:
        return self.income - self.expenses


@dataclass
class ReconciliationReport:
    """How an obligation's paid_amount compares with its Completed ledger entries."""
    ref: ObligationRef
    paid_amount: Decimal
    ledger_total: Decimal
    entry_count: int

    @property
    def drift(self) -> Decimal:
        return self.paid_amount - self.ledger_total

    @property
    def in_sync(self) -> bool:
        return self.drift == ZERO


def is_outstanding(obligation: Obligation) -> bool:
    """Unpaid or Partial Paid, judged from the amounts rather than the stored status."""
    return derive_status(obligation.paid_amount, obligation.total_amount) is not ObligationStatus.PAID


def outstanding_amount(obligation: Obligation) -> Decimal:
    if not is_outstanding(obligation):
        return ZERO
    return max(obligation.remaining_amount(), ZERO)


def summarize_obligations(obligations: Iterable[Obligation]) -> ObligationSummary:
    summary = ObligationSummary()
    for obligation in obligations:
        status = derive_status(obligation.paid_amount, obligation.total_amount)
        summary.count += 1
        summary.total_obligated += obligation.total_amount
        summary.total_paid += obligation.paid_amount
        summary.total_outstanding += outstanding_amount(obligation)
        summary.by_status[status.value] += 1
    return summary


def outstanding_by_category(obligations: Iterable[Obligation]) -> Dict[str, Decimal]:
    """Σ(total - paid) of outstanding obligations per category, in first-seen order."""
    totals: Dict[str, Decimal] = OrderedDict()
    for obligation in obligations:
        if not is_outstanding(obligation):
            continue
        totals[obligation.category] = totals.get(obligation.category, ZERO) + outstanding_amount(obligation)
    return dict(totals)


def completed_total(entries: Iterable[LedgerEntry], window: Optional[Window] = None) -> Decimal:
    """Σ|amount| of Completed entries, optionally within a window."""
    total = ZERO
    for entry in entries:
        if entry.status is not TransactionStatus.COMPLETED:
            continue
        if window is not None and not window.contains(entry.date):
            continue
        total += abs(entry.amount)
    return total


def summarize_ledger(entries: Iterable[LedgerEntry]) -> LedgerSummary:
    summary = LedgerSummary()
    for entry in entries:
        summary.entry_count += 1
        amount = abs(entry.amount)
        if entry.status is TransactionStatus.PENDING:
            summary.pending += amount
        elif entry.type is TransactionType.INCOME:
            summary.income += amount
        else:
            summary.expenses += amount
    return summary


def reconcile(obligation: Obligation, entries: List[LedgerEntry]) -> ReconciliationReport:
    """
    Compare paid_amount with the Completed entries linked to the obligation.

    Entries are summed by magnitude, so the sign convention of the kind does
    not matter here. The report only describes drift; it never repairs it.
    """
    linked = [e for e in entries if e.obligation == obligation.ref]
    return ReconciliationReport(
        ref=obligation.ref,
        paid_amount=obligation.paid_amount,
        ledger_total=completed_total(linked),
        entry_count=len(linked),
    )


class ReconciliationService:
    """Read-side aggregates, recomputed from the current store on every call."""

    def __init__(self, obligations: ObligationRepository, ledger: LedgerRepository):
        self.obligations = obligations
        self.ledger = ledger

    async def obligation_summary(self, kind: Optional[ObligationKind] = None) -> ObligationSummary:
        return summarize_obligations(await self.obligations.list(kind=kind))

    async def outstanding_by_category(self, kind: Optional[ObligationKind] = None) -> Dict[str, Decimal]:
        return outstanding_by_category(await self.obligations.list(kind=kind))

    async def pending_collection(self) -> Decimal:
        """What students still owe across all fee collections."""
        summary = await self.obligation_summary(ObligationKind.FEE)
        return summary.total_outstanding

    async def paid_in_period(
        self, window: Window, kind: Optional[ObligationKind] = None
    ) -> Decimal:
        """
        Money that moved in the window according to the ledger.

        With a kind, only entries linked to obligations of that kind count.
        """
        entries = await self.ledger.list_all(
            LedgerFilter(start=window.start, end=window.end, status=TransactionStatus.COMPLETED)
        )
        if kind is not None:
            entries = [e for e in entries if e.obligation is not None and e.obligation.kind is kind]
        return completed_total(entries, window)

    async def ledger_summary(self, window: Optional[Window] = None) -> LedgerSummary:
        window = window or Window.all_time()
        entries = await self.ledger.list_all(LedgerFilter(start=window.start, end=window.end))
        return summarize_ledger(entries)

    async def reconcile_obligation(self, ref: ObligationRef) -> ReconciliationReport:
        obligation = await self.obligations.get(ref)
        if obligation is None:
            raise ObligationNotFound(ref)
        return reconcile(obligation, await self.ledger.list_by_obligation(ref))
