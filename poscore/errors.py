"""Error taxonomy for the POS core.

ValidationError    local operator mistakes; the attempted operation is not applied.
ConsistencyError   hard preconditions (dispatch unpaid, unbalanced correction...).
NotFound           unknown catalog item, order, line or payment.
RepositoryError    the persistence collaborator failed; callers may retry.
"""


class PosError(Exception):
    code = "POS_ERROR"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


# ── validation ──────────────────────────────────────────────────────────────
class ValidationError(PosError):
    code = "VALIDATION"


class MissingRequiredSelection(ValidationError):
    code = "MISSING_REQUIRED_SELECTION"

    def __init__(self, group_names: list[str]):
        self.group_names = list(group_names)
        super().__init__("Missing required selection: " + ", ".join(self.group_names))

    def to_dict(self) -> dict:
        return {**super().to_dict(), "groups": self.group_names}


class SelectionLimitExceeded(ValidationError):
    code = "SELECTION_LIMIT_EXCEEDED"

    def __init__(self, group_name: str, max_selections: int):
        self.group_name = group_name
        self.max_selections = max_selections
        super().__init__(f"'{group_name}' allows at most {max_selections} selection(s)")


class InvalidSelection(ValidationError):
    code = "INVALID_SELECTION"


class InvalidQuantity(ValidationError):
    code = "INVALID_QUANTITY"


class MissingChannelFields(ValidationError):
    code = "MISSING_CHANNEL_FIELDS"

    def __init__(self, fields: list[str]):
        self.fields = list(fields)
        super().__init__("Missing required fields: " + ", ".join(self.fields))

    def to_dict(self) -> dict:
        return {**super().to_dict(), "fields": self.fields}


class PaymentRejected(ValidationError):
    code = "PAYMENT_REJECTED"


class InvalidAmount(PaymentRejected):
    code = "INVALID_AMOUNT"


class Overpayment(PaymentRejected):
    code = "OVERPAYMENT"


class ExceedsMethodCap(PaymentRejected):
    code = "EXCEEDS_METHOD_CAP"

    def __init__(self, method: str, cap):
        self.method = method
        self.cap = cap
        super().__init__(f"At most {cap} can be paid with {method}")


class InsufficientTender(PaymentRejected):
    code = "INSUFFICIENT_TENDER"


class MethodNotAllowed(PaymentRejected):
    code = "METHOD_NOT_ALLOWED"


# ── consistency ─────────────────────────────────────────────────────────────
class ConsistencyError(PosError):
    code = "CONSISTENCY"


class IllegalTransition(ConsistencyError):
    code = "ILLEGAL_TRANSITION"


class NotSettled(ConsistencyError):
    code = "NOT_SETTLED"


class OrderLocked(ConsistencyError):
    code = "ORDER_LOCKED"


class TotalBelowPaid(ConsistencyError):
    code = "TOTAL_BELOW_PAID"


class CorrectionUnbalanced(ConsistencyError):
    code = "CORRECTION_UNBALANCED"


class RefundRequired(ConsistencyError):
    code = "REFUND_REQUIRED"


class PaymentIdConflict(ConsistencyError):
    code = "PAYMENT_ID_CONFLICT"


class OperationInProgress(ConsistencyError):
    code = "OPERATION_IN_PROGRESS"


# ── lookup / collaborators ──────────────────────────────────────────────────
class NotFound(PosError):
    code = "NOT_FOUND"


class RepositoryError(PosError):
    code = "REPOSITORY_ERROR"
