import logging
from decimal import Decimal
from typing import List, Optional

from pymongo.errors import DuplicateKeyError

from bursar.core.exceptions import (
    AmountInvalid,
    InvalidCategory,
    ObligationLocked,
    ObligationNotFound,
    ObligationValidationError,
    StaleObligation,
)
from bursar.models.obligation import (
    CATEGORIES,
    PAYROLL_CATEGORY,
    Obligation,
    ObligationKind,
    ObligationRef,
    ObligationStatus,
    PayrollBreakdown,
    derive_status,
    ZERO,
)
from bursar.repositories.obligation_repo import ObligationRepository
from bursar.schemas.obligation import ObligationCreate, ObligationUpdate
from bursar.services.events import ObligationChanged, ObligationEvents, obligation_events
from bursar.services.ledger_service import TransactionLedger
from bursar.services.payment_service import PaymentResult, build_payment_entry
from bursar.utils.identifiers import extend_receipt_number, generate_receipt_number
from bursar.utils.payment_validation import (
    PaymentMeta,
    validate_payment_meta,
    validate_total_amount,
)

logger = logging.getLogger(__name__)

NULLABLE_FIELDS = {"due_date", "issue_date"}


def resolve_category(kind: ObligationKind, category: Optional[str]) -> str:
    """Check a category against the kind's enumeration; payroll is always Salary."""
    if kind is ObligationKind.PAYROLL and not category:
        return PAYROLL_CATEGORY

    allowed = CATEGORIES[kind]
    if category not in allowed:
        raise InvalidCategory(
            f"Invalid {kind.value} category {category!r}; expected one of {', '.join(allowed)}"
        )
    return category


def resolve_total(
    kind: ObligationKind, total_amount: Optional[Decimal], payroll: Optional[PayrollBreakdown]
) -> Decimal:
    """The amount owed. A payroll breakdown fixes it to the net salary."""
    if payroll is None:
        if total_amount is None:
            raise AmountInvalid("Total amount is required")
        return total_amount

    if kind is not ObligationKind.PAYROLL:
        raise ObligationValidationError(f"A salary breakdown is only allowed on payroll, not {kind.value}")
    net = payroll.net_salary
    if net < ZERO:
        raise AmountInvalid(
            f"Net salary cannot be negative: {payroll.base_salary} + {payroll.allowances} "
            f"- {payroll.deductions} = {net}"
        )
    if total_amount is not None and total_amount != net:
        raise AmountInvalid(f"Total amount ({total_amount}) does not match the net salary ({net})")
    return net


class ObligationService:
    """Create, read, edit and delete obligations. Payments go through PaymentService."""

    def __init__(
        self,
        obligations: ObligationRepository,
        ledger: TransactionLedger,
        events: Optional[ObligationEvents] = None,
    ):
        self.obligations = obligations
        self.ledger = ledger
        self.events = events if events is not None else obligation_events

    async def create(
        self, kind: ObligationKind, data: ObligationCreate, created_by: str = "admin"
    ) -> PaymentResult:
        """
        Create an obligation, unpaid unless ``paid_in_full`` is set.

        A pre-paid obligation needs payment metadata and gets one Completed
        ledger entry for its total, recorded best-effort.
        """
        category = resolve_category(kind, data.category)
        total_amount = resolve_total(kind, data.total_amount, data.payroll)
        validate_total_amount(total_amount)

        meta = None
        paid_amount = ZERO
        if data.paid_in_full:
            meta = PaymentMeta(
                payment_method=data.payment_method,
                payment_date=data.payment_date,
                recorded_by=created_by,
            )
            validate_payment_meta(meta)
            paid_amount = total_amount

        obligation = Obligation(
            kind=kind,
            category=category,
            total_amount=total_amount,
            paid_amount=paid_amount,
            counterparty_ref=data.counterparty_ref,
            status=derive_status(paid_amount, total_amount),
            description=data.description,
            due_date=data.due_date,
            issue_date=data.issue_date,
            receipt_number=generate_receipt_number() if kind is ObligationKind.FEE else None,
            last_payment_method=meta.payment_method if meta else None,
            last_paid_at=meta.payment_date if meta else None,
            payroll=data.payroll,
        )
        created = await self._insert(obligation)
        logger.info(
            "Created %s obligation %s (%s) for %s: %s, status %s",
            kind.value, created.id, category, created.counterparty_ref,
            created.total_amount, created.status.value
        )

        result = PaymentResult(obligation=created, amount=paid_amount)
        if meta is not None and paid_amount > ZERO:
            entry_id, warning = await self.ledger.append_best_effort(
                build_payment_entry(created, paid_amount, meta)
            )
            result.ledger_entry_id = entry_id
            if warning:
                result.warnings.append(warning)

        await self.events.publish(ObligationChanged.of(created, "created"))
        return result

    async def _insert(self, obligation: Obligation) -> Obligation:
        """Insert, drawing a longer receipt number once if the first one is taken."""
        try:
            return await self.obligations.create(obligation)
        except DuplicateKeyError:
            if obligation.receipt_number is None:
                raise
            retry = obligation.model_copy(
                update={"receipt_number": extend_receipt_number(obligation.receipt_number)}
            )
            logger.warning(
                "Receipt number %s already exists, retrying as %s",
                obligation.receipt_number, retry.receipt_number
            )
            return await self.obligations.create(retry)

    async def get(self, ref: ObligationRef) -> Obligation:
        obligation = await self.obligations.get(ref)
        if obligation is None:
            raise ObligationNotFound(ref)
        return obligation

    async def list(
        self,
        kind: Optional[ObligationKind] = None,
        status: Optional[ObligationStatus] = None,
        category: Optional[str] = None,
        counterparty_ref: Optional[str] = None,
    ) -> List[Obligation]:
        return await self.obligations.list(
            kind=kind, status=status, category=category, counterparty_ref=counterparty_ref
        )

    async def edit(self, ref: ObligationRef, changes: ObligationUpdate) -> Obligation:
        """
        Change the total or metadata of an obligation.

        The total may not drop below what has been paid. Status is always
        re-derived, so raising the total of a Paid obligation makes it
        Partial Paid again.

        A payroll record with a salary breakdown keeps its total equal to the
        net salary.
        """
        current = await self.get(ref)
        expected_version = changes.expected_version
        if expected_version is not None and expected_version != current.version:
            raise StaleObligation(ref, expected_version, current.version)

        # dates may be cleared with null, the other fields may not
        fields = {
            key: value
            for key, value in changes.model_dump(exclude_unset=True, exclude={"expected_version"}).items()
            if value is not None or key in NULLABLE_FIELDS
        }
        if "category" in fields:
            fields["category"] = resolve_category(ref.kind, fields["category"])
        if "payroll" in fields or ("total_amount" in fields and current.payroll is not None):
            payroll = changes.payroll if "payroll" in fields else current.payroll
            fields["total_amount"] = resolve_total(ref.kind, fields.get("total_amount"), payroll)

        total_amount = fields.get("total_amount", current.total_amount)
        validate_total_amount(total_amount, current.paid_amount)
        fields["status"] = derive_status(current.paid_amount, total_amount).value

        updated = await self.obligations.update(ref, fields, current.version)
        if updated is None:
            raise StaleObligation(ref, current.version)

        logger.info(
            "Edited %s: total %s, paid %s, status %s",
            ref, updated.total_amount, updated.paid_amount, updated.status.value
        )
        await self.events.publish(ObligationChanged.of(updated, "edited"))
        return updated

    async def delete(self, ref: ObligationRef) -> None:
        """Delete an obligation that no ledger entry references."""
        obligation = await self.get(ref)

        entry_count = await self.ledger.count_by_obligation(ref)
        if entry_count:
            raise ObligationLocked(ref, entry_count)

        if not await self.obligations.delete(ref):
            raise ObligationNotFound(ref)

        logger.info("Deleted %s", ref)
        await self.events.publish(ObligationChanged.of(obligation, "deleted"))
