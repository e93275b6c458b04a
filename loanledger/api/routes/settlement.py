"""Settlement (close-out) routes."""

from uuid import UUID

from fastapi import APIRouter, Depends

from loanledger.api.deps import get_store
from loanledger.api.errors import operation_response
from loanledger.api.schemas import (
    AdjustmentIn,
    FundHoldingResponse,
    OperationResponse,
    SettlementPreviewRequest,
    SettlementPreviewResponse,
    SettlementRequest,
    SettlementStatusResponse,
)
from loanledger.data.store import LiabilityStore
from loanledger.engine.settlement import SettlementWizard
from loanledger.models.settlement import SettlementAdjustment

router = APIRouter(prefix="/api/v1/liabilities/{liability_id}/settlement", tags=["settlement"])


def _adjustment(a: AdjustmentIn) -> SettlementAdjustment:
    return SettlementAdjustment(type=a.type, amount=a.amount, on=a.on, account_id=a.account_id, note=a.note)


@router.get("", response_model=SettlementStatusResponse)
def get_status(liability_id: UUID, store: LiabilityStore = Depends(get_store)):
    status = store.get_settlement_status(liability_id)
    return SettlementStatusResponse(
        total_loan=status.total_loan,
        remaining_owed=status.remaining_owed,
        liability_funds_in_accounts=status.liability_funds_in_accounts,
        overfunded_by=status.overfunded_by,
        is_balanced=status.is_balanced,
        holdings=[
            FundHoldingResponse(account_id=h.account_id, account_name=h.account_name, amount=h.amount)
            for h in status.holdings
        ],
    )


@router.post("/preview", response_model=SettlementPreviewResponse)
def preview(liability_id: UUID, req: SettlementPreviewRequest, store: LiabilityStore = Depends(get_store)):
    """Projected balances after the given adjustments."""
    wizard = SettlementWizard(store.get_settlement_status(liability_id))
    for adj in req.adjustments:
        wizard.add(_adjustment(adj))
    projected = wizard.projected
    return SettlementPreviewResponse(
        projected_remaining=projected.projected_remaining,
        projected_funds=projected.projected_funds,
        is_balanced=projected.is_balanced,
        unaccounted_amount=projected.unaccounted_amount,
        requires_final_action=not projected.is_balanced,
    )


@router.post("", response_model=OperationResponse)
def execute(liability_id: UUID, req: SettlementRequest, store: LiabilityStore = Depends(get_store)):
    """Apply the adjustments and delete the liability, all or nothing."""
    result = store.execute_settlement(
        liability_id,
        [_adjustment(a) for a in req.adjustments],
        final_action=req.final_action,
        unaccounted_amount=req.unaccounted_amount,
        confirmation=req.confirmation,
        today=req.today,
    )
    return operation_response(result)
