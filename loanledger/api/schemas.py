"""Pydantic schemas for API request/response models."""

from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from loanledger.config import settings
from loanledger.models.impact import ConstraintMode, ExtraPaymentStrategy, ProposedField
from loanledger.models.liability import AmountChangePolicy, InterestType, SkipPolicy
from loanledger.models.settlement import AdjustmentType, FinalAction


# ---- Request schemas ----

class LiabilityCreate(BaseModel):
    title: str = ""
    amount: Decimal = Field(..., gt=0)
    interest_rate_apy: Decimal = Field(Decimal("0"), ge=0, description="Annual percentage, 12 means 12%")
    interest_type: InterestType = InterestType.REDUCING
    start_date: date
    term_months: int | None = Field(None, gt=0, le=settings.max_schedule_periods)
    periodical_payment: Decimal | None = Field(None, gt=0)
    targeted_payoff_date: date | None = None
    currency: str = Field("USD", min_length=3, max_length=3)


class ImpactRequest(BaseModel):
    field: ProposedField
    value: Decimal | None = None
    new_date: date | None = Field(None, description="Used when field is end_date")
    mode: ConstraintMode = ConstraintMode.KEEP_PAYMENT_SAME
    custom_payment: Decimal | None = None
    custom_end_date: date | None = None
    today: date | None = None


class RecalculateRequest(BaseModel):
    periodical_payment: Decimal | None = Field(None, gt=0)
    interest_rate_apy: Decimal | None = Field(None, ge=0)
    targeted_payoff_date: date | None = None
    new_total_amount: Decimal | None = Field(None, gt=0)
    mode: ConstraintMode = ConstraintMode.KEEP_PAYMENT_SAME
    today: date | None = None


class SkipRequest(BaseModel):
    policy: SkipPolicy


class AmountChangeRequest(BaseModel):
    new_amount: Decimal
    policy: AmountChangePolicy = AmountChangePolicy.ONE_TIME


class DateChangeRequest(BaseModel):
    new_date: date


class PaymentRequest(BaseModel):
    account_id: UUID | None = None
    paid_on: date | None = None


class AccountCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    currency: str = Field("USD", min_length=3, max_length=3)
    balance: Decimal = Decimal("0")


class DrawRequest(BaseModel):
    account_id: UUID
    amount: Decimal = Field(..., gt=0)
    on: date | None = None


class AdjustmentIn(BaseModel):
    type: AdjustmentType
    amount: Decimal
    on: date
    account_id: UUID | None = None
    note: str = ""


class SettlementPreviewRequest(BaseModel):
    adjustments: list[AdjustmentIn] = []


class SettlementRequest(BaseModel):
    adjustments: list[AdjustmentIn] = []
    final_action: FinalAction | None = None
    unaccounted_amount: Decimal | None = None
    confirmation: str = Field(..., description='Must be the exact confirmation token, e.g. "DELETE"')
    today: date | None = None


class PaymentCalcRequest(BaseModel):
    balance: Decimal = Field(..., ge=0)
    interest_rate_apy: Decimal = Field(Decimal("0"), ge=0)
    term_months: int = Field(..., gt=0, le=settings.max_schedule_periods)
    interest_type: InterestType = InterestType.REDUCING


class ExtraPaymentRequest(BaseModel):
    extra_amount: Decimal
    today: date | None = None


class ExtraPaymentApply(BaseModel):
    extra_amount: Decimal = Field(..., gt=0)
    strategy: ExtraPaymentStrategy
    account_id: UUID | None = None
    payments_to_skip: int | None = Field(None, ge=1)
    today: date | None = None


class LiabilityPaymentRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    account_id: UUID | None = None
    paid_on: date | None = None


class RateSolveRequest(BaseModel):
    balance: Decimal = Field(..., gt=0)
    payment: Decimal = Field(..., gt=0)
    term_months: int = Field(..., gt=0, le=settings.max_schedule_periods)


# ---- Response schemas ----

class OperationResponse(BaseModel):
    success: bool
    message: str
    error_code: str | None = None
    retryable: bool = False
    updated_count: int = 0


class InstallmentResponse(BaseModel):
    id: UUID
    due_date: date
    amount: Decimal
    status: str
    principal_component: Decimal
    interest_component: Decimal
    payment_number: int
    total_payments: int
    remaining_balance: Decimal
    notes: dict = {}


class LiabilityResponse(BaseModel):
    id: UUID
    title: str
    currency: str
    current_balance: Decimal
    original_amount: Decimal
    interest_rate_apy: Decimal
    interest_type: InterestType
    periodical_payment: Decimal
    start_date: date
    targeted_payoff_date: date | None
    status: str
    scheduled_total: Decimal
    installments: list[InstallmentResponse]


class ImpactResponse(BaseModel):
    new_payment: Decimal
    new_term_months: int
    new_end_date: date
    new_total_interest: Decimal
    new_balance: Decimal
    new_rate_pct: Decimal
    old_payment: Decimal
    old_term_months: int | None
    old_end_date: date
    old_total_interest: Decimal | None
    payment_change: Decimal
    term_change_months: int | None
    interest_change: Decimal | None


class ExtraPaymentOptionResponse(BaseModel):
    strategy: ExtraPaymentStrategy
    new_payment: Decimal
    new_end_date: date
    interest_saved: Decimal
    payments_skipped: int


class PaymentImpactResponse(BaseModel):
    current_balance: Decimal
    new_balance: Decimal
    principal_paid: Decimal
    interest_paid: Decimal
    old_end_date: date
    new_end_date: date | None
    months_reduced: int


class FundHoldingResponse(BaseModel):
    account_id: UUID
    account_name: str
    amount: Decimal


class SettlementStatusResponse(BaseModel):
    total_loan: Decimal
    remaining_owed: Decimal
    liability_funds_in_accounts: Decimal
    overfunded_by: Decimal
    is_balanced: bool
    holdings: list[FundHoldingResponse]


class SettlementPreviewResponse(BaseModel):
    projected_remaining: Decimal
    projected_funds: Decimal
    is_balanced: bool
    unaccounted_amount: Decimal
    requires_final_action: bool


class AccountResponse(BaseModel):
    id: UUID
    name: str
    currency: str
    balance: Decimal


class PaymentCalcResponse(BaseModel):
    monthly_payment: Decimal
    total_interest: Decimal
    total_paid: Decimal


class RateSolveResponse(BaseModel):
    interest_rate_apy: Decimal
