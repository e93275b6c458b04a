from dataclasses import dataclass
from typing import Optional

from loanledger.exceptions import LiabilityError


@dataclass(frozen=True)
class OperationResult:
    success: bool
    message: str
    error_code: Optional[str] = None
    retryable: bool = False
    updated_count: int = 0

    @classmethod
    def ok(cls, message: str, updated_count: int = 0) -> "OperationResult":
        return cls(success=True, message=message, updated_count=updated_count)

    @classmethod
    def failed(cls, error: LiabilityError) -> "OperationResult":
        return cls(
            success=False,
            message=str(error),
            error_code=error.code,
            retryable=error.retryable,
        )
