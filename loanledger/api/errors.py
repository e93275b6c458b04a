"""Map engine errors and failed operations onto HTTP responses."""

import logging

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from loanledger.api.schemas import OperationResponse
from loanledger.exceptions import LiabilityError
from loanledger.models.results import OperationResult

logger = logging.getLogger(__name__)

STATUS_BY_CODE = {
    "not_found": 404,
    "unbalanced": 409,
    "invalid_installment_state": 409,
    "storage_failure": 503,
}


def status_for(code: str | None) -> int:
    return STATUS_BY_CODE.get(code or "", 422)


def _detail(code: str | None, message: str, retryable: bool) -> dict:
    return {"code": code, "message": message, "retryable": retryable}


async def liability_error_handler(request: Request, exc: LiabilityError) -> JSONResponse:
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc)
    return JSONResponse(
        status_code=status_for(exc.code),
        content={"detail": _detail(exc.code, str(exc), exc.retryable)},
    )


def operation_response(result: OperationResult) -> OperationResponse:
    """Successful results pass through; failed ones become an HTTP error."""
    if not result.success:
        raise HTTPException(
            status_code=status_for(result.error_code),
            detail=_detail(result.error_code, result.message, result.retryable),
        )
    return OperationResponse(
        success=True,
        message=result.message,
        updated_count=result.updated_count,
    )
