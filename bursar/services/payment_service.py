import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List, Optional

from bursar.core.exceptions import AmountInvalid, ObligationNotFound, StaleObligation
from bursar.models.ledger import (
    FEE_COLLECTION_CATEGORY,
    LedgerEntry,
    TransactionStatus,
    TransactionType,
)
from bursar.models.obligation import (
    PAYROLL_CATEGORY,
    Obligation,
    ObligationKind,
    ObligationRef,
    derive_status,
    ZERO,
)
from bursar.repositories.obligation_repo import ObligationRepository
from bursar.services.events import ObligationChanged, ObligationEvents, obligation_events
from bursar.services.ledger_service import TransactionLedger
from bursar.utils.identifiers import format_time
from bursar.utils.payment_validation import (
    PaymentMeta,
    to_amount,
    validate_payment_amount,
    validate_payment_meta,
)

logger = logging.getLogger(__name__)


@dataclass
class PaymentResult:
    """Read-after-write answer of a payment: the obligation as stored, plus side effects."""
    obligation: Obligation
    amount: Decimal
    ledger_entry_id: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


def ledger_sign(kind: ObligationKind) -> int:
    """Fees are money coming in; expenses and payroll are money going out."""
    return 1 if kind is ObligationKind.FEE else -1


def ledger_category(obligation: Obligation) -> str:
    if obligation.kind is ObligationKind.FEE:
        return FEE_COLLECTION_CATEGORY
    if obligation.kind is ObligationKind.PAYROLL:
        return PAYROLL_CATEGORY
    return obligation.category


def build_payment_entry(obligation: Obligation, amount: Decimal, meta: PaymentMeta) -> LedgerEntry:
    """The Completed ledger entry mirroring one payment against an obligation."""
    sign = ledger_sign(obligation.kind)
    remaining = obligation.remaining_amount()
    description = meta.description or (
        f"{obligation.description or obligation.category} - "
        f"{'Payment' if remaining == ZERO else 'Partial Payment'} ({amount})"
    )
    return LedgerEntry(
        type=TransactionType.INCOME if sign > 0 else TransactionType.EXPENSE,
        amount=amount * sign,
        category=ledger_category(obligation),
        description=description,
        date=meta.payment_date,
        time=format_time(meta.payment_date),
        payment_method=meta.payment_method,
        status=TransactionStatus.COMPLETED,
        obligation=obligation.ref,
        created_by=meta.recorded_by,
    )


class PaymentService:
    """
    Applies payments to obligations.

    The obligation write is the primary effect and either commits or raises.
    The ledger entry is secondary: it is attempted after the write, bounded
    by the ledger timeout, and its failure only shows up in warnings.
    """

    def __init__(
        self,
        obligations: ObligationRepository,
        ledger: TransactionLedger,
        events: Optional[ObligationEvents] = None,
    ):
        self.obligations = obligations
        self.ledger = ledger
        self.events = events if events is not None else obligation_events

    async def apply_payment(
        self,
        ref: ObligationRef,
        amount: Any,
        meta: PaymentMeta,
        expected_version: Optional[int] = None,
    ) -> PaymentResult:
        """
        Pay ``amount`` against the obligation at ``ref``.

        Raises:
            AmountInvalid: amount <= 0 or greater than the remaining balance
            MissingPaymentMethod / MissingDate: incomplete metadata
            ObligationNotFound: no such obligation
            StaleObligation: expected_version is out of date, or another
                payment was written between our read and our write
        """
        amount = to_amount(amount)
        if amount <= ZERO:
            raise AmountInvalid(f"Payment amount must be positive, got {amount}")
        validate_payment_meta(meta)

        obligation = await self.obligations.get(ref)
        if obligation is None:
            raise ObligationNotFound(ref)

        if expected_version is not None and expected_version != obligation.version:
            raise StaleObligation(ref, expected_version, obligation.version)

        validate_payment_amount(obligation, amount)

        new_paid = obligation.paid_amount + amount
        new_status = derive_status(new_paid, obligation.total_amount)

        updated = await self.obligations.apply_payment(
            ref,
            paid_amount=new_paid,
            status=new_status,
            payment_method=meta.payment_method,
            paid_at=meta.payment_date,
            expected_version=obligation.version,
        )
        if updated is None:
            raise StaleObligation(ref, obligation.version)

        logger.info(
            "Payment of %s applied to %s: paid %s/%s, status %s",
            amount, ref, updated.paid_amount, updated.total_amount, updated.status.value
        )

        result = PaymentResult(obligation=updated, amount=amount)
        entry_id, warning = await self.ledger.append_best_effort(
            build_payment_entry(updated, amount, meta)
        )
        result.ledger_entry_id = entry_id
        if warning:
            result.warnings.append(warning)

        await self.events.publish(ObligationChanged.of(updated, "paid"))
        return result
