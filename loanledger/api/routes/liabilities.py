"""Liability routes: create, read, impact preview and committed recalculation."""

from uuid import UUID

from fastapi import APIRouter, Depends

from loanledger.api.deps import get_store
from loanledger.api.errors import operation_response
from loanledger.api.schemas import (
    DrawRequest,
    ExtraPaymentApply,
    ExtraPaymentOptionResponse,
    ExtraPaymentRequest,
    ImpactRequest,
    ImpactResponse,
    InstallmentResponse,
    LiabilityCreate,
    LiabilityPaymentRequest,
    LiabilityResponse,
    OperationResponse,
    PaymentImpactResponse,
    RecalculateRequest,
)
from loanledger.data.store import LiabilityStore
from loanledger.exceptions import InvalidAmount
from loanledger.models.impact import ProposedChange, ProposedField
from loanledger.models.liability import Liability

router = APIRouter(prefix="/api/v1/liabilities", tags=["liabilities"])


def _to_response(liability: Liability) -> LiabilityResponse:
    return LiabilityResponse(
        id=liability.id,
        title=liability.title,
        currency=liability.currency,
        current_balance=liability.current_balance,
        original_amount=liability.original_amount,
        interest_rate_apy=liability.interest_rate_apy,
        interest_type=liability.interest_type,
        periodical_payment=liability.periodical_payment,
        start_date=liability.start_date,
        targeted_payoff_date=liability.targeted_payoff_date,
        status=liability.status.value,
        scheduled_total=liability.scheduled_total,
        installments=[
            InstallmentResponse(
                id=i.id,
                due_date=i.due_date,
                amount=i.amount,
                status=i.status.value,
                principal_component=i.principal_component,
                interest_component=i.interest_component,
                payment_number=i.payment_number,
                total_payments=i.total_payments,
                remaining_balance=i.remaining_balance,
                notes=i.notes,
            )
            for i in liability.installments
        ],
    )


@router.post("", response_model=LiabilityResponse, status_code=201)
def create_liability(req: LiabilityCreate, store: LiabilityStore = Depends(get_store)):
    """Create a liability and generate its schedule."""
    liability = store.create_liability(
        amount=req.amount,
        annual_rate_pct=req.interest_rate_apy,
        start_date=req.start_date,
        term_months=req.term_months,
        payment=req.periodical_payment,
        end_date=req.targeted_payoff_date,
        interest_type=req.interest_type,
        title=req.title,
        currency=req.currency,
    )
    return _to_response(liability)


@router.get("/{liability_id}", response_model=LiabilityResponse)
def get_liability(liability_id: UUID, store: LiabilityStore = Depends(get_store)):
    return _to_response(store.get_liability(liability_id))


@router.post("/{liability_id}/impact", response_model=ImpactResponse)
def preview_impact(liability_id: UUID, req: ImpactRequest, store: LiabilityStore = Depends(get_store)):
    """What a single change would do to payment, term and interest. Nothing is saved."""
    if req.field == ProposedField.END_DATE:
        value = req.new_date
    else:
        value = req.value
    if value is None:
        raise InvalidAmount(f"A value is required to preview a {req.field.value} change")

    preview = store.preview_impact(
        liability_id,
        ProposedChange(field=req.field, value=value),
        mode=req.mode,
        today=req.today,
        custom_payment=req.custom_payment,
        custom_end_date=req.custom_end_date,
    )
    return ImpactResponse(**preview.__dict__)


@router.post("/{liability_id}/extra-payment-options", response_model=list[ExtraPaymentOptionResponse])
def extra_payment_options(
    liability_id: UUID, req: ExtraPaymentRequest, store: LiabilityStore = Depends(get_store),
):
    options = store.extra_payment_options(liability_id, req.extra_amount, today=req.today)
    return [ExtraPaymentOptionResponse(**o.__dict__) for o in options]


@router.post("/{liability_id}/recalculate", response_model=OperationResponse)
def recalculate(liability_id: UUID, req: RecalculateRequest, store: LiabilityStore = Depends(get_store)):
    """Commit new terms and regenerate the pending part of the schedule."""
    result = store.recalculate(
        liability_id,
        payment=req.periodical_payment,
        annual_rate_pct=req.interest_rate_apy,
        end_date=req.targeted_payoff_date,
        new_total_amount=req.new_total_amount,
        mode=req.mode,
        today=req.today,
    )
    return operation_response(result)


@router.post("/{liability_id}/draws", response_model=OperationResponse)
def draw_funds(liability_id: UUID, req: DrawRequest, store: LiabilityStore = Depends(get_store)):
    """Move borrowed money into an account."""
    return operation_response(store.draw_funds(liability_id, req.account_id, req.amount, req.on))


@router.post("/{liability_id}/extra-payments", response_model=OperationResponse)
def apply_extra_payment(
    liability_id: UUID, req: ExtraPaymentApply, store: LiabilityStore = Depends(get_store),
):
    """Apply a one-off extra payment with the chosen strategy."""
    result = store.apply_extra_payment(
        liability_id,
        req.extra_amount,
        req.strategy,
        account_id=req.account_id,
        payments_to_skip=req.payments_to_skip,
        today=req.today,
    )
    return operation_response(result)


@router.post("/{liability_id}/payments/preview", response_model=PaymentImpactResponse)
def preview_payment(
    liability_id: UUID, req: LiabilityPaymentRequest, store: LiabilityStore = Depends(get_store),
):
    preview = store.preview_payment(liability_id, req.amount, paid_on=req.paid_on)
    return PaymentImpactResponse(**preview.__dict__)


@router.post("/{liability_id}/payments", response_model=OperationResponse)
def record_payment(
    liability_id: UUID, req: LiabilityPaymentRequest, store: LiabilityStore = Depends(get_store),
):
    """Pay any amount: interest for the period first, the rest off the balance."""
    return operation_response(
        store.record_payment(liability_id, req.amount, account_id=req.account_id, paid_on=req.paid_on)
    )
