"""
Typed errors raised by the obligation, ledger and enrollment services.

Every error carries a machine readable ``code`` and the HTTP status the API
layer answers with, so handlers never match on message text.

    BursarError
    +-- ObligationValidationError       400
    |   +-- AmountInvalid
    |   +-- InvalidCategory
    |   +-- MissingPaymentMethod
    |   +-- InvalidPaymentMethod
    |   +-- MissingDate
    +-- PreconditionError               409
    |   +-- ObligationNotFound          404
    |   +-- LedgerEntryNotFound         404
    |   +-- ObligationLocked
    |   +-- StaleObligation
    |   +-- AdmissionNotFound           404
    |   +-- AdmissionAlreadyProcessed
    |   +-- MissingAssignment
    |   +-- ClassNotFound               404
    |   +-- CapacityExceeded
    |   +-- SagaNotFound                404
    +-- EnrollmentAborted               502
"""


class BursarError(Exception):
    """Base class for all domain errors."""

    code: str = "BURSAR_ERROR"
    http_status: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ObligationValidationError(BursarError):
    code = "VALIDATION_ERROR"
    http_status = 400


class AmountInvalid(ObligationValidationError):
    code = "AMOUNT_INVALID"


class InvalidCategory(ObligationValidationError):
    code = "INVALID_CATEGORY"


class MissingPaymentMethod(ObligationValidationError):
    code = "MISSING_PAYMENT_METHOD"

    def __init__(self, message: str = "Payment method is required"):
        super().__init__(message)


class InvalidPaymentMethod(ObligationValidationError):
    code = "INVALID_PAYMENT_METHOD"


class MissingDate(ObligationValidationError):
    code = "MISSING_DATE"

    def __init__(self, message: str = "Payment date is required"):
        super().__init__(message)


class PreconditionError(BursarError):
    code = "PRECONDITION_FAILED"
    http_status = 409


class ObligationNotFound(PreconditionError):
    code = "OBLIGATION_NOT_FOUND"
    http_status = 404

    def __init__(self, ref):
        super().__init__(f"{ref.kind.value} obligation {ref.id} not found")
        self.ref = ref


class LedgerEntryNotFound(PreconditionError):
    code = "LEDGER_ENTRY_NOT_FOUND"
    http_status = 404

    def __init__(self, entry_id: str):
        super().__init__(f"Transaction {entry_id} not found")
        self.entry_id = entry_id


class ObligationLocked(PreconditionError):
    """The obligation is referenced by ledger entries and cannot be deleted."""

    code = "OBLIGATION_LOCKED"

    def __init__(self, ref, entry_count: int):
        super().__init__(
            f"{ref.kind.value} obligation {ref.id} is referenced by "
            f"{entry_count} ledger entries"
        )
        self.ref = ref
        self.entry_count = entry_count


class StaleObligation(PreconditionError):
    code = "STALE_OBLIGATION"

    def __init__(self, ref, expected_version: int, actual_version: int | None = None):
        detail = f"expected version {expected_version}"
        if actual_version is not None:
            detail += f", found {actual_version}"
        super().__init__(
            f"{ref.kind.value} obligation {ref.id} was modified concurrently ({detail})"
        )
        self.ref = ref
        self.expected_version = expected_version
        self.actual_version = actual_version


class AdmissionNotFound(PreconditionError):
    code = "ADMISSION_NOT_FOUND"
    http_status = 404

    def __init__(self, admission_id: str):
        super().__init__(f"Admission {admission_id} not found")
        self.admission_id = admission_id


class AdmissionAlreadyProcessed(PreconditionError):
    code = "ADMISSION_ALREADY_PROCESSED"


class MissingAssignment(PreconditionError):
    code = "MISSING_ASSIGNMENT"


class ClassNotFound(PreconditionError):
    code = "CLASS_NOT_FOUND"
    http_status = 404


class CapacityExceeded(PreconditionError):
    code = "CAPACITY_EXCEEDED"

    def __init__(self, class_name: str, capacity: int):
        super().__init__(
            f"Class {class_name} is at full capacity ({capacity}/{capacity})"
        )
        self.class_name = class_name
        self.capacity = capacity


class SagaNotFound(PreconditionError):
    code = "SAGA_NOT_FOUND"
    http_status = 404

    def __init__(self, saga_id: str):
        super().__init__(f"Enrollment {saga_id} not found")
        self.saga_id = saga_id


class EnrollmentAborted(BursarError):
    """A mandatory enrollment step failed; the saga record says which one."""

    code = "ENROLLMENT_ABORTED"
    http_status = 502

    def __init__(self, step: str, reason: str, saga_id: str | None = None):
        super().__init__(f"Enrollment aborted at step '{step}': {reason}")
        self.step = step
        self.reason = reason
        self.saga_id = saga_id
