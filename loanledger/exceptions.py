"""Error kinds raised by the liability engine.

Validation errors are raised before any schedule or ledger row is touched.
Business-rule outcomes (NonAmortizing, Unbalanced) ask the caller for a decision.
StorageFailure is the only retryable kind.
"""


class LiabilityError(ValueError):
    code = "liability_error"
    retryable = False


class InvalidTerm(LiabilityError):
    code = "invalid_term"


class NonAmortizing(LiabilityError):
    """Payment never covers the monthly interest, so the balance never falls."""
    code = "non_amortizing"


class BelowCurrentBalance(LiabilityError):
    code = "below_current_balance"


class OutOfRange(LiabilityError):
    code = "out_of_range"


class MissingAccount(LiabilityError):
    code = "missing_account"


class Unbalanced(LiabilityError):
    code = "unbalanced"


class ConfirmationMismatch(LiabilityError):
    code = "confirmation_mismatch"


class InvalidAmount(LiabilityError):
    code = "invalid_amount"


class InvalidInstallmentState(LiabilityError):
    code = "invalid_installment_state"


class NotFound(LiabilityError):
    code = "not_found"


class StorageFailure(LiabilityError):
    code = "storage_failure"
    retryable = True
