"""Schedule regenerator.

Pure functions: a Liability in, a new Liability (with a new installment tuple) out.
Only the pending tail is ever replaced; completed, overdue and cancelled
installments are carried over untouched.
"""

import uuid
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Optional

from loanledger.config import settings
from loanledger.exceptions import InvalidAmount, InvalidTerm
from loanledger.models.impact import ExtraPaymentStrategy
from loanledger.models.liability import Installment, InterestType, Liability, LiabilityStatus, ScheduleStatus
from loanledger.engine.amortization import (
    ZERO,
    add_months,
    amortization_rows,
    money,
    months_between,
    payoff_term,
    required_payment,
)


def compute_schedule(
    liability_id: uuid.UUID,
    balance: Decimal,
    payment: Decimal,
    annual_rate_pct: Decimal,
    start_date: date,
    end_date: date,
    interest_type: InterestType = InterestType.REDUCING,
    first_payment_number: int = 1,
    max_periods: Optional[int] = None,
) -> list[Installment]:
    """Monthly installments from ``start_date`` (first due date) through ``end_date``.

    Stops early once the balance is retired. The final installment absorbs any
    remainder so principal components sum exactly to ``balance``.
    """
    if balance <= 0:
        return []
    if payment <= 0:
        raise InvalidAmount("Payment must be greater than 0")
    if end_date < start_date:
        raise InvalidTerm(
            f"End date {end_date.isoformat()} is before the first due date {start_date.isoformat()}"
        )

    periods = min(months_between(start_date, end_date) + 1, max_periods or settings.max_schedule_periods)
    rows = amortization_rows(balance, annual_rate_pct, payment, periods, interest_type)
    total = first_payment_number - 1 + len(rows)

    return [
        Installment(
            liability_id=liability_id,
            # Offsets from the anchor, not chained, so a 31st never drifts to the 28th
            due_date=add_months(start_date, row.period - 1),
            amount=row.payment,
            status=ScheduleStatus.PENDING,
            principal_component=row.principal,
            interest_component=row.interest,
            payment_number=first_payment_number + row.period - 1,
            total_payments=total,
            remaining_balance=row.balance,
        )
        for row in rows
    ]


def open_balance(liability: Liability) -> Decimal:
    """Balance the pending tail has to retire.

    Overdue installments are still owed and keep their own principal.
    """
    overdue_principal = sum(
        (i.principal_component for i in liability.installments if i.status == ScheduleStatus.OVERDUE), ZERO
    )
    return max(ZERO, liability.current_balance - overdue_principal)


def first_due_date(liability: Liability, today: date) -> date:
    """Where a regenerated tail starts.

    Before any payment the schedule is anchored to the liability start date;
    afterwards to today (or the last completed due date, if that is later). The
    existing cadence is kept when a pending installment falls on/after the anchor.
    """
    completed = liability.completed
    if completed:
        floor = max(today, max(c.due_date for c in completed))
    else:
        floor = liability.start_date

    for inst in sorted(liability.pending, key=lambda i: i.due_date):
        if inst.due_date >= floor:
            return inst.due_date
    return add_months(floor, 1)


def regenerate_schedule(
    liability: Liability,
    payment: Optional[Decimal] = None,
    annual_rate_pct: Optional[Decimal] = None,
    end_date: Optional[date] = None,
    today: Optional[date] = None,
    max_periods: Optional[int] = None,
) -> Liability:
    """Replace the pending tail with a schedule computed from the committed terms.

    Parameters left as None keep the liability's current value. When the liability
    has no target payoff date one is derived from the payment.
    """
    today = today or date.today()
    payment = money(payment if payment is not None else liability.periodical_payment)
    rate = annual_rate_pct if annual_rate_pct is not None else liability.interest_rate_apy

    kept = [i for i in liability.installments if not i.is_pending]
    # Numbering continues after everything already paid or still owed from the past
    numbered = [i for i in kept if i.status in (ScheduleStatus.COMPLETED, ScheduleStatus.OVERDUE)]
    balance = open_balance(liability)

    first_due = first_due_date(liability, today)
    end = end_date or liability.targeted_payoff_date
    if end is None and balance > 0:
        end = add_months(first_due, payoff_term(balance, payment, rate, liability.interest_type) - 1)

    start_number = max((i.payment_number for i in numbered), default=0) + 1
    fresh = compute_schedule(
        liability.id,
        balance,
        payment,
        rate,
        first_due,
        end or first_due,
        liability.interest_type,
        first_payment_number=start_number,
        max_periods=max_periods,
    )

    installments = sorted(kept + fresh, key=lambda i: (i.due_date, i.payment_number))
    return replace(
        liability,
        periodical_payment=payment,
        interest_rate_apy=rate,
        targeted_payoff_date=end,
        installments=tuple(installments),
    )


def _prepay(liability: Liability, amount: Decimal, count: int, today: date) -> tuple[Liability, Decimal]:
    """Mark the next ``count`` pending installments paid out of ``amount``.

    Returns the updated liability and whatever part of ``amount`` was left over.
    """
    upcoming = sorted(liability.pending, key=lambda i: (i.due_date, i.payment_number))[:count]
    if len(upcoming) < count:
        raise InvalidAmount(f"Only {len(upcoming)} pending installments are left to prepay")
    cost = sum((i.amount for i in upcoming), ZERO)
    if cost > amount:
        raise InvalidAmount(f"Prepaying {count} installments needs {money(cost)}, got {money(amount)}")

    prepaid = {
        i.id: replace(
            i,
            status=ScheduleStatus.COMPLETED,
            notes={**i.notes, "prepaid": True, "paid_on": today.isoformat()},
        )
        for i in upcoming
    }
    principal = sum((i.principal_component for i in upcoming), ZERO)
    updated = replace(
        liability,
        current_balance=money(max(ZERO, liability.current_balance - principal)),
        installments=tuple(prepaid.get(i.id, i) for i in liability.installments),
    )
    return updated, amount - cost


def apply_extra_payment(
    liability: Liability,
    amount: Decimal,
    strategy: ExtraPaymentStrategy,
    today: Optional[date] = None,
    payments_to_skip: Optional[int] = None,
    max_periods: Optional[int] = None,
) -> Liability:
    """Take a one-off extra payment off the balance and reshape the pending tail.

    reduce_payment keeps the end date and lowers the payment. reduce_term keeps
    the payment and brings the end date in. reduce_principal keeps both and lets
    the schedule finish early. skip_payments prepays the next installments
    (``payments_to_skip``, or as many as ``amount`` covers) and any leftover
    comes off the principal.
    """
    today = today or date.today()
    amount = money(amount)
    if amount <= 0:
        raise InvalidAmount("Extra payment amount must be greater than 0")
    if amount > liability.current_balance:
        raise InvalidAmount(
            f"Extra payment {amount} is more than the {money(liability.current_balance)} still owed"
        )

    if strategy == ExtraPaymentStrategy.SKIP_PAYMENTS:
        count = payments_to_skip
        if count is None and liability.periodical_payment > 0:
            count = int(amount // liability.periodical_payment)
        if not count or count <= 0:
            raise InvalidAmount(f"Extra payment {amount} does not cover a single installment")
        liability, leftover = _prepay(liability, amount, count, today)
        if leftover <= 0:
            return liability
        amount = leftover

    paid = replace(liability, current_balance=money(liability.current_balance - amount))
    balance = open_balance(paid)
    if balance <= 0:
        updated = regenerate_schedule(paid, today=today, max_periods=max_periods)
        return replace(updated, status=LiabilityStatus.PAID_OFF)

    first_due = first_due_date(paid, today)
    if strategy == ExtraPaymentStrategy.REDUCE_PAYMENT:
        end = paid.targeted_payoff_date
        if end is None:
            end = add_months(first_due, max(len(paid.pending), 1) - 1)
        payment = required_payment(balance, paid.interest_rate_apy, months_between(first_due, end) + 1, paid.interest_type)
        return regenerate_schedule(paid, payment, end_date=end, today=today, max_periods=max_periods)
    if strategy == ExtraPaymentStrategy.REDUCE_TERM:
        term = payoff_term(balance, paid.periodical_payment, paid.interest_rate_apy, paid.interest_type)
        end = add_months(first_due, term - 1)
        return regenerate_schedule(paid, end_date=end, today=today, max_periods=max_periods)
    return regenerate_schedule(paid, today=today, max_periods=max_periods)
