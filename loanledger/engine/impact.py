"""Impact analyzer: what happens to payment, term and interest if one parameter changes.

Pure computation. No I/O. Safe to call on every keystroke; callers debounce.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, Optional

from loanledger.exceptions import BelowCurrentBalance, InvalidAmount, InvalidTerm, NonAmortizing
from loanledger.models.impact import (
    ConstraintMode,
    CurrentTerms,
    ExtraPaymentOption,
    ExtraPaymentStrategy,
    ImpactPreview,
    PaymentImpact,
    ProposedChange,
    ProposedField,
)
from loanledger.models.liability import InterestType
from loanledger.engine.amortization import (
    ZERO,
    add_months,
    amortization_rows,
    money,
    months_between,
    payment_breakdown,
    payoff_term,
    required_payment,
)


def validate_amount_update(current_balance: Decimal, new_total_amount: Decimal) -> None:
    """A liability's total can never be shrunk below what is still owed."""
    if new_total_amount < current_balance:
        shortfall = money(current_balance - new_total_amount)
        raise BelowCurrentBalance(
            f"Cannot reduce total amount below current balance ({money(current_balance)}). "
            f"Pay off at least {shortfall} first."
        )


def _interest_over(
    balance: Decimal,
    rate: Decimal,
    payment: Decimal,
    term: int,
    interest_type: InterestType,
) -> Decimal:
    if balance <= 0 or term <= 0:
        return Decimal("0.00")
    rows = amortization_rows(balance, rate, payment, term, interest_type)
    return money(sum((r.interest for r in rows), ZERO))


@dataclass(frozen=True)
class _Solve:
    balance: Decimal
    rate: Decimal
    interest_type: InterestType
    current_payment: Decimal
    end_date: date
    today: date
    custom_payment: Optional[Decimal]


# Each solver returns (payment, term_months, end_date)
Solver = Callable[[_Solve], tuple[Decimal, int, date]]


def _keep_payment_same(s: _Solve) -> tuple[Decimal, int, date]:
    term = payoff_term(s.balance, s.current_payment, s.rate, s.interest_type)
    return s.current_payment, term, add_months(s.today, term)


def _months_until(today: date, end: date) -> int:
    term = months_between(today, end)
    if term <= 0:
        raise InvalidTerm(f"End date {end.isoformat()} must be at least one month after {today.isoformat()}")
    return term


def _keep_end_date_same(s: _Solve) -> tuple[Decimal, int, date]:
    term = _months_until(s.today, s.end_date)
    payment = required_payment(s.balance, s.rate, term, s.interest_type)
    return payment, term, s.end_date


def _custom_payment(s: _Solve) -> tuple[Decimal, int, date]:
    if s.custom_payment is None or s.custom_payment <= 0:
        raise InvalidAmount("A custom payment amount greater than 0 is required")
    payment = money(s.custom_payment)
    term = payoff_term(s.balance, payment, s.rate, s.interest_type)
    return payment, term, add_months(s.today, term)


_CONSTRAINT_SOLVERS: dict[ConstraintMode, Solver] = {
    ConstraintMode.KEEP_PAYMENT_SAME: _keep_payment_same,
    ConstraintMode.KEEP_END_DATE_SAME: _keep_end_date_same,
    ConstraintMode.CUSTOM_PAYMENT: _custom_payment,
}


def _baseline(current: CurrentTerms) -> tuple[Optional[int], Optional[Decimal]]:
    try:
        term = payoff_term(current.balance, current.payment, current.annual_rate_pct, current.interest_type)
    except NonAmortizing:
        return None, None
    interest = _interest_over(
        current.balance, current.annual_rate_pct, current.payment, term, current.interest_type
    )
    return term, interest


def preview_impact(
    current: CurrentTerms,
    change: ProposedChange,
    mode: ConstraintMode = ConstraintMode.KEEP_PAYMENT_SAME,
    today: Optional[date] = None,
    custom_payment: Optional[Decimal] = None,
    custom_end_date: Optional[date] = None,
) -> ImpactPreview:
    """Preview the consequences of changing one financial parameter.

    Amount and rate edits are resolved by the constraint ``mode``. Payment edits
    always re-derive the term from the current balance and rate; end-date edits
    always re-derive the payment. ``custom_end_date`` replaces the current end date
    for KEEP_END_DATE_SAME.

    Raises BelowCurrentBalance, InvalidTerm, InvalidAmount or NonAmortizing.
    """
    today = today or date.today()
    balance = current.balance
    rate = current.annual_rate_pct

    if change.field == ProposedField.TOTAL_AMOUNT:
        validate_amount_update(current.balance, change.value)
        balance = change.value
    elif change.field == ProposedField.RATE:
        if change.value < 0:
            raise InvalidAmount("Interest rate cannot be negative")
        rate = change.value

    if change.field in (ProposedField.TOTAL_AMOUNT, ProposedField.RATE):
        solve = _Solve(
            balance=balance,
            rate=rate,
            interest_type=current.interest_type,
            current_payment=current.payment,
            end_date=custom_end_date or current.end_date,
            today=today,
            custom_payment=custom_payment,
        )
        new_payment, new_term, new_end = _CONSTRAINT_SOLVERS[mode](solve)
    elif change.field == ProposedField.PAYMENT:
        if change.value <= 0:
            raise InvalidAmount("Payment must be greater than 0")
        new_payment = money(change.value)
        new_term = payoff_term(balance, new_payment, rate, current.interest_type)
        new_end = add_months(today, new_term)
    else:
        new_end = change.value
        new_term = _months_until(today, new_end)
        new_payment = required_payment(balance, rate, new_term, current.interest_type)

    new_interest = _interest_over(balance, rate, new_payment, new_term, current.interest_type)
    old_term, old_interest = _baseline(current)

    return ImpactPreview(
        new_payment=new_payment,
        new_term_months=new_term,
        new_end_date=new_end,
        new_total_interest=new_interest,
        new_balance=money(balance),
        new_rate_pct=rate,
        old_payment=money(current.payment),
        old_term_months=old_term,
        old_end_date=current.end_date,
        old_total_interest=old_interest,
        payment_change=new_payment - money(current.payment),
        term_change_months=None if old_term is None else new_term - old_term,
        interest_change=None if old_interest is None else new_interest - old_interest,
    )


def extra_payment_options(
    current: CurrentTerms,
    extra_amount: Decimal,
    remaining_periods: int,
    first_due: date,
) -> list[ExtraPaymentOption]:
    """Ways to apply a one-off extra payment, with the interest each one saves."""
    if extra_amount <= 0:
        raise InvalidAmount("Extra payment amount must be greater than 0")
    if remaining_periods <= 0:
        return []

    itype = current.interest_type
    rate = current.annual_rate_pct
    new_balance = max(ZERO, current.balance - extra_amount)
    old_interest = _interest_over(current.balance, rate, current.payment, remaining_periods, itype)
    options: list[ExtraPaymentOption] = []

    reduced = required_payment(new_balance, rate, remaining_periods, itype)
    if reduced < current.payment:
        options.append(ExtraPaymentOption(
            strategy=ExtraPaymentStrategy.REDUCE_PAYMENT,
            new_payment=reduced,
            new_end_date=current.end_date,
            interest_saved=old_interest - _interest_over(new_balance, rate, reduced, remaining_periods, itype),
        ))

    try:
        shorter = payoff_term(new_balance, current.payment, rate, itype)
    except NonAmortizing:
        shorter = None
    if shorter is not None and 0 < shorter < remaining_periods:
        options.append(ExtraPaymentOption(
            strategy=ExtraPaymentStrategy.REDUCE_TERM,
            new_payment=money(current.payment),
            new_end_date=add_months(first_due, shorter - 1),
            interest_saved=old_interest - _interest_over(new_balance, rate, current.payment, shorter, itype),
        ))

    if current.payment > 0:
        skipped = int(extra_amount // current.payment)
        if 0 < skipped < remaining_periods:
            options.append(ExtraPaymentOption(
                strategy=ExtraPaymentStrategy.SKIP_PAYMENTS,
                new_payment=money(current.payment),
                new_end_date=current.end_date,
                payments_skipped=skipped,
            ))

    options.append(ExtraPaymentOption(
        strategy=ExtraPaymentStrategy.REDUCE_PRINCIPAL,
        new_payment=money(current.payment),
        new_end_date=current.end_date,
    ))
    return options


def payment_impact(
    current: CurrentTerms,
    amount: Decimal,
    paid_on: date,
    opening_balance: Optional[Decimal] = None,
) -> PaymentImpact:
    """Split a payment of any size into interest and principal and project the new payoff date.

    Interest for the period is settled first. A payment larger than the balance
    plus that interest is rejected rather than silently overpaying.
    """
    if amount <= 0:
        raise InvalidAmount("Payment must be greater than 0")
    split = payment_breakdown(
        amount, current.balance, current.annual_rate_pct, current.interest_type, opening_balance,
    )
    payoff_amount = money(current.balance) + split.interest
    if split.total_amount > payoff_amount:
        raise InvalidAmount(f"Payment {split.total_amount} is more than the payoff amount of {payoff_amount}")

    new_end: Optional[date] = paid_on
    if split.remaining_balance > 0:
        try:
            new_end = add_months(paid_on, payoff_term(
                split.remaining_balance, current.payment, current.annual_rate_pct, current.interest_type,
            ))
        except NonAmortizing:
            new_end = None

    return PaymentImpact(
        current_balance=money(current.balance),
        new_balance=split.remaining_balance,
        principal_paid=split.principal,
        interest_paid=split.interest,
        old_end_date=current.end_date,
        new_end_date=new_end,
        months_reduced=0 if new_end is None else max(0, months_between(new_end, current.end_date)),
    )
