"""Per-installment routes: skip, change amount, change date, pay."""

from uuid import UUID

from fastapi import APIRouter, Depends

from loanledger.api.deps import get_store
from loanledger.api.errors import operation_response
from loanledger.api.schemas import (
    AmountChangeRequest,
    DateChangeRequest,
    OperationResponse,
    PaymentRequest,
    SkipRequest,
)
from loanledger.data.store import LiabilityStore

router = APIRouter(prefix="/api/v1/liabilities/{liability_id}/schedule", tags=["schedule"])


@router.post("/{schedule_id}/skip", response_model=OperationResponse)
def skip_installment(
    liability_id: UUID, schedule_id: UUID, req: SkipRequest, store: LiabilityStore = Depends(get_store),
):
    return operation_response(store.skip_installment(liability_id, schedule_id, req.policy))


@router.post("/{schedule_id}/amount", response_model=OperationResponse)
def change_amount(
    liability_id: UUID, schedule_id: UUID, req: AmountChangeRequest, store: LiabilityStore = Depends(get_store),
):
    return operation_response(
        store.change_installment_amount(liability_id, schedule_id, req.new_amount, req.policy)
    )


@router.post("/{schedule_id}/date", response_model=OperationResponse)
def change_date(
    liability_id: UUID, schedule_id: UUID, req: DateChangeRequest, store: LiabilityStore = Depends(get_store),
):
    return operation_response(store.change_installment_date(liability_id, schedule_id, req.new_date))


@router.post("/{schedule_id}/pay", response_model=OperationResponse)
def pay_installment(
    liability_id: UUID, schedule_id: UUID, req: PaymentRequest, store: LiabilityStore = Depends(get_store),
):
    return operation_response(
        store.pay_installment(liability_id, schedule_id, account_id=req.account_id, paid_on=req.paid_on)
    )
