from typing import List, Optional

from fastapi import APIRouter, Depends

from bursar.api.deps import get_obligation_service, get_payment_service
from bursar.core.auth import FINANCE_ROLES, require_roles
from bursar.models.obligation import Obligation, ObligationKind, ObligationRef, ObligationStatus
from bursar.models.user import Actor
from bursar.schemas.obligation import (
    ObligationCreate,
    ObligationResponse,
    ObligationUpdate,
    ObligationWriteResponse,
    PaymentRequest,
)
from bursar.services.obligation_service import ObligationService
from bursar.services.payment_service import PaymentResult, PaymentService
from bursar.utils.payment_validation import PaymentMeta

router = APIRouter()


def to_response(obligation: Obligation) -> ObligationResponse:
    return ObligationResponse.model_validate(obligation.model_dump())


def to_write_response(result: PaymentResult) -> ObligationWriteResponse:
    return ObligationWriteResponse(
        obligation=to_response(result.obligation),
        ledger_entry_id=result.ledger_entry_id,
        warnings=result.warnings
    )


@router.post("/{kind}", response_model=ObligationWriteResponse, status_code=201)
async def create_obligation(
    kind: ObligationKind,
    obligation_in: ObligationCreate,
    actor: Actor = Depends(require_roles(*FINANCE_ROLES)),
    service: ObligationService = Depends(get_obligation_service)
):
    """Create an expense, fee collection or payroll record"""
    result = await service.create(kind, obligation_in, created_by=actor.role)
    return to_write_response(result)


@router.get("/{kind}", response_model=List[ObligationResponse])
async def list_obligations(
    kind: ObligationKind,
    status: Optional[ObligationStatus] = None,
    category: Optional[str] = None,
    counterparty_ref: Optional[str] = None,
    actor: Actor = Depends(require_roles(*FINANCE_ROLES)),
    service: ObligationService = Depends(get_obligation_service)
):
    """List obligations of one kind, oldest first"""
    obligations = await service.list(
        kind=kind, status=status, category=category, counterparty_ref=counterparty_ref
    )
    return [to_response(o) for o in obligations]


@router.get("/{kind}/{obligation_id}", response_model=ObligationResponse)
async def get_obligation(
    kind: ObligationKind,
    obligation_id: str,
    actor: Actor = Depends(require_roles(*FINANCE_ROLES)),
    service: ObligationService = Depends(get_obligation_service)
):
    obligation = await service.get(ObligationRef(kind=kind, id=obligation_id))
    return to_response(obligation)


@router.patch("/{kind}/{obligation_id}", response_model=ObligationResponse)
async def update_obligation(
    kind: ObligationKind,
    obligation_id: str,
    changes: ObligationUpdate,
    actor: Actor = Depends(require_roles(*FINANCE_ROLES)),
    service: ObligationService = Depends(get_obligation_service)
):
    """Edit total or metadata; status is re-derived"""
    obligation = await service.edit(ObligationRef(kind=kind, id=obligation_id), changes)
    return to_response(obligation)


@router.delete("/{kind}/{obligation_id}")
async def delete_obligation(
    kind: ObligationKind,
    obligation_id: str,
    actor: Actor = Depends(require_roles(*FINANCE_ROLES)),
    service: ObligationService = Depends(get_obligation_service)
):
    """Delete an obligation no transaction refers to"""
    await service.delete(ObligationRef(kind=kind, id=obligation_id))
    return {"message": "Obligation deleted successfully"}


@router.post("/{kind}/{obligation_id}/payments", response_model=ObligationWriteResponse)
async def pay_obligation(
    kind: ObligationKind,
    obligation_id: str,
    payment: PaymentRequest,
    actor: Actor = Depends(require_roles(*FINANCE_ROLES)),
    service: PaymentService = Depends(get_payment_service)
):
    """Pay (part of) an obligation and record the transaction"""
    meta = PaymentMeta(
        payment_method=payment.payment_method,
        payment_date=payment.payment_date,
        description=payment.description,
        recorded_by=actor.role
    )
    result = await service.apply_payment(
        ObligationRef(kind=kind, id=obligation_id),
        payment.amount,
        meta,
        expected_version=payment.expected_version
    )
    return to_write_response(result)
