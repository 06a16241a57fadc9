from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends

from bursar.api.deps import get_ledger
from bursar.core.auth import FINANCE_ROLES, require_roles
from bursar.models.ledger import LedgerEntry, LedgerFilter, TransactionStatus, TransactionType
from bursar.models.obligation import ObligationKind, ObligationRef
from bursar.models.user import Actor
from bursar.schemas.ledger import LedgerEntryResponse, TransactionCreate
from bursar.services.ledger_service import TransactionLedger

router = APIRouter()


def to_response(entry: LedgerEntry) -> LedgerEntryResponse:
    return LedgerEntryResponse.model_validate(entry.model_dump())


@router.get("/", response_model=List[LedgerEntryResponse])
async def list_transactions(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    type: Optional[TransactionType] = None,
    category: Optional[str] = None,
    status: Optional[TransactionStatus] = None,
    obligation_kind: Optional[ObligationKind] = None,
    obligation_id: Optional[str] = None,
    reference_id: Optional[str] = None,
    actor: Actor = Depends(require_roles(*FINANCE_ROLES)),
    ledger: TransactionLedger = Depends(get_ledger)
):
    """List transactions in insertion order"""
    obligation = None
    if obligation_kind is not None and obligation_id:
        obligation = ObligationRef(kind=obligation_kind, id=obligation_id)

    entries = await ledger.query(LedgerFilter(
        start=start,
        end=end,
        type=type,
        category=category,
        status=status,
        obligation=obligation,
        reference_id=reference_id
    ))
    return [to_response(e) for e in entries]


@router.post("/", response_model=LedgerEntryResponse, status_code=201)
async def create_transaction(
    transaction_in: TransactionCreate,
    actor: Actor = Depends(require_roles(*FINANCE_ROLES)),
    ledger: TransactionLedger = Depends(get_ledger)
):
    """Record a manual income or expense"""
    entry = LedgerEntry(**transaction_in.model_dump(), created_by=actor.role)
    entry_id = await ledger.append(entry)
    return to_response(await ledger.get(entry_id))


@router.get("/{entry_id}", response_model=LedgerEntryResponse)
async def get_transaction(
    entry_id: str,
    actor: Actor = Depends(require_roles(*FINANCE_ROLES)),
    ledger: TransactionLedger = Depends(get_ledger)
):
    return to_response(await ledger.get(entry_id))
