"""Payment validation utilities."""
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from pydantic import BaseModel

from bursar.core.exceptions import AmountInvalid, InvalidPaymentMethod, MissingDate, MissingPaymentMethod
from bursar.models.base import UtcDatetime
from bursar.models.ledger import PaymentMethod
from bursar.models.obligation import Obligation, ZERO

PAYMENT_METHODS = tuple(method.value for method in PaymentMethod)


class PaymentMeta(BaseModel):
    """Who paid, how and when. Presence is checked by validate_payment_meta."""
    payment_method: Optional[str] = None
    payment_date: Optional[UtcDatetime] = None
    description: Optional[str] = None
    recorded_by: str = "admin"


def to_amount(value: Any) -> Decimal:
    """
    Parse a payment amount without going through float.

    Raises AmountInvalid for anything that is not a finite number.
    """
    if isinstance(value, bool):
        raise AmountInvalid(f"Payment amount must be a number, got {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise AmountInvalid(f"Payment amount must be a number, got {value!r}")
    if not amount.is_finite():
        raise AmountInvalid(f"Payment amount must be finite, got {value!r}")
    return amount


def validate_payment_meta(meta: PaymentMeta) -> None:
    """
    Validate payment metadata.

    Rules:
    - payment_method must be present and one of PaymentMethod
    - payment_date must be present
    """
    if not meta.payment_method or not meta.payment_method.strip():
        raise MissingPaymentMethod()
    if meta.payment_method not in PAYMENT_METHODS:
        raise InvalidPaymentMethod(
            f"Unknown payment method {meta.payment_method!r}; expected one of {', '.join(PAYMENT_METHODS)}"
        )
    if meta.payment_date is None:
        raise MissingDate()


def validate_payment_amount(obligation: Obligation, amount: Decimal) -> None:
    """
    Validate a payment against the obligation's remaining balance.

    Rules:
    - amount must be strictly positive
    - amount must not exceed total_amount - paid_amount
    Overpayments are rejected, never clamped.
    """
    if amount <= ZERO:
        raise AmountInvalid(f"Payment amount must be positive, got {amount}")

    remaining = obligation.remaining_amount()
    if amount > remaining:
        raise AmountInvalid(
            f"Payment amount ({amount}) exceeds remaining balance ({remaining})"
        )


def validate_total_amount(total_amount: Decimal, paid_amount: Decimal = ZERO) -> None:
    """A total may not be negative nor drop below what has already been paid."""
    if total_amount < ZERO:
        raise AmountInvalid(f"Total amount cannot be negative, got {total_amount}")
    if total_amount < paid_amount:
        raise AmountInvalid(
            f"Total amount ({total_amount}) cannot be lower than the amount "
            f"already paid ({paid_amount})"
        )
