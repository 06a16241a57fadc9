from datetime import datetime, timezone
from decimal import Decimal

import pytest

from bursar.core.exceptions import LedgerEntryNotFound
from bursar.models.ledger import LedgerEntry, LedgerFilter, TransactionStatus, TransactionType
from bursar.models.obligation import ObligationKind, ObligationRef


def entry(amount, type=TransactionType.INCOME, day=1, status=TransactionStatus.COMPLETED, obligation=None, category="Fee Collection"):
    return LedgerEntry(
        type=type,
        amount=Decimal(amount),
        category=category,
        date=datetime(2024, 5, day, 10, 0, tzinfo=timezone.utc),
        status=status,
        obligation=obligation,
    )


@pytest.mark.asyncio
async def test_append_and_get(ledger):
    entry_id = await ledger.append(entry("250"))

    stored = await ledger.get(entry_id)
    assert stored.amount == Decimal("250")
    assert stored.created_by == "admin"


@pytest.mark.asyncio
async def test_get_unknown_entry(ledger):
    with pytest.raises(LedgerEntryNotFound):
        await ledger.get("507f1f77bcf86cd799439011")


@pytest.mark.asyncio
async def test_append_takes_sign_as_given(ledger):
    # an Expense with a positive amount is stored as is
    entry_id = await ledger.append(entry("300", type=TransactionType.EXPENSE, category="Utilities"))

    assert (await ledger.get(entry_id)).amount == Decimal("300")


@pytest.mark.asyncio
async def test_append_propagates_storage_error(ledger, ledger_repo):
    ledger_repo.fail_with = RuntimeError("disk full")

    with pytest.raises(RuntimeError):
        await ledger.append(entry("10"))


@pytest.mark.asyncio
async def test_append_best_effort_returns_warning(ledger, ledger_repo):
    ledger_repo.fail_with = RuntimeError("disk 100% full")

    entry_id, warning = await ledger.append_best_effort(entry("10"))

    assert entry_id is None
    assert "disk 100% full" in warning


@pytest.mark.asyncio
async def test_query_keeps_insertion_order_and_duplicates(ledger):
    first = await ledger.append(entry("100", day=3))
    second = await ledger.append(entry("100", day=1))

    entries = await ledger.query()

    assert [e.id for e in entries] == [first, second]


@pytest.mark.asyncio
async def test_query_filters(ledger):
    ref = ObligationRef(kind=ObligationKind.FEE, id="507f1f77bcf86cd799439011")
    await ledger.append(entry("100", day=1, obligation=ref))
    await ledger.append(entry("200", day=10, obligation=ref, status=TransactionStatus.PENDING))
    await ledger.append(entry("-50", day=10, type=TransactionType.EXPENSE, category="Supplies"))

    in_may_second_week = await ledger.query(LedgerFilter(
        start=datetime(2024, 5, 8, tzinfo=timezone.utc),
        end=datetime(2024, 5, 15, tzinfo=timezone.utc),
    ))
    pending = await ledger.query(LedgerFilter(status=TransactionStatus.PENDING))

    assert [e.amount for e in in_may_second_week] == [Decimal("200"), Decimal("-50")]
    assert [e.amount for e in pending] == [Decimal("200")]
    assert await ledger.count_by_obligation(ref) == 2
    assert len(await ledger.list_by_obligation(ref)) == 2


def test_filter_to_query():
    ref = ObligationRef(kind=ObligationKind.EXPENSE, id="abc")
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)

    query = LedgerFilter(start=start, type=TransactionType.EXPENSE, obligation=ref).to_query()

    assert query == {
        "type": "Expense",
        "obligation.kind": "expense",
        "obligation.id": "abc",
        "date": {"$gte": start},
    }


def test_naive_filter_dates_are_utc():
    ledger_filter = LedgerFilter(start=datetime(2024, 1, 1))

    assert ledger_filter.start.tzinfo == timezone.utc
