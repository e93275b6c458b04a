"""Stateless amortization calculator routes."""

from fastapi import APIRouter

from loanledger.api.schemas import PaymentCalcRequest, PaymentCalcResponse, RateSolveRequest, RateSolveResponse
from loanledger.engine.amortization import amortization_rows, money, required_payment, solve_interest_rate

router = APIRouter(prefix="/api/v1/amortization", tags=["amortization"])


@router.post("/payment", response_model=PaymentCalcResponse)
def calculate_payment(req: PaymentCalcRequest):
    """Level payment for a balance, rate and term, with the interest it costs."""
    payment = required_payment(req.balance, req.interest_rate_apy, req.term_months, req.interest_type)
    if req.balance <= 0:
        return PaymentCalcResponse(monthly_payment=payment, total_interest=money(0), total_paid=money(0))

    rows = amortization_rows(req.balance, req.interest_rate_apy, payment, req.term_months, req.interest_type)
    interest = money(sum(r.interest for r in rows))
    return PaymentCalcResponse(
        monthly_payment=payment,
        total_interest=interest,
        total_paid=money(sum(r.payment for r in rows)),
    )


@router.post("/rate", response_model=RateSolveResponse)
def solve_rate(req: RateSolveRequest):
    """Annual rate at which the payment retires the balance over the term."""
    return RateSolveResponse(interest_rate_apy=solve_interest_rate(req.balance, req.payment, req.term_months))
