"""Impact preview data types. Transient: never persisted."""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from loanledger.models.liability import InterestType


class ConstraintMode(Enum):
    KEEP_PAYMENT_SAME = "keep_payment_same"
    KEEP_END_DATE_SAME = "keep_end_date_same"
    CUSTOM_PAYMENT = "custom_payment"


class ProposedField(Enum):
    TOTAL_AMOUNT = "total_amount"
    RATE = "rate"
    END_DATE = "end_date"
    PAYMENT = "payment"


@dataclass(frozen=True)
class CurrentTerms:
    balance: Decimal
    payment: Decimal
    annual_rate_pct: Decimal
    end_date: date
    interest_type: InterestType = InterestType.REDUCING


@dataclass(frozen=True)
class ProposedChange:
    field: ProposedField
    value: Decimal | date


@dataclass(frozen=True)
class ImpactPreview:
    new_payment: Decimal
    new_term_months: int
    new_end_date: date
    new_total_interest: Decimal
    new_balance: Decimal
    new_rate_pct: Decimal

    old_payment: Decimal
    old_term_months: Optional[int]  # None when the current terms never amortize
    old_end_date: date
    old_total_interest: Optional[Decimal]

    payment_change: Decimal
    term_change_months: Optional[int]
    interest_change: Optional[Decimal]


class ExtraPaymentStrategy(Enum):
    REDUCE_PAYMENT = "reduce_payment"
    REDUCE_TERM = "reduce_term"
    SKIP_PAYMENTS = "skip_payments"
    REDUCE_PRINCIPAL = "reduce_principal"


@dataclass(frozen=True)
class ExtraPaymentOption:
    strategy: ExtraPaymentStrategy
    new_payment: Decimal
    new_end_date: date
    interest_saved: Decimal = Decimal("0")
    payments_skipped: int = 0


@dataclass(frozen=True)
class PaymentImpact:
    """What one payment of any size does to the balance and the payoff date."""
    current_balance: Decimal
    new_balance: Decimal
    principal_paid: Decimal
    interest_paid: Decimal
    old_end_date: date
    new_end_date: Optional[date]  # None when the current payment no longer amortizes
    months_reduced: int = 0
