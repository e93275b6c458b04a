"""Amortization calculator.

Pure functions: Decimal in, Decimal out. No I/O. Rates are annual percentages
(Decimal("12") means 12% a year, i.e. 1% a month). Rounding to cents happens
only on the value a function returns, never on intermediate steps.
"""

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP, ROUND_CEILING

from scipy.optimize import brentq

from loanledger.config import settings
from loanledger.exceptions import InvalidTerm, NonAmortizing
from loanledger.models.liability import InterestType

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0")

# A solved term this close above an integer is the integer: the excess comes from
# cent-rounding the payment and the final installment absorbs it.
PERIOD_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class AmortizationRow:
    period: int
    payment: Decimal
    principal: Decimal
    interest: Decimal
    balance: Decimal


@dataclass(frozen=True)
class PaymentBreakdown:
    total_amount: Decimal
    principal: Decimal
    interest: Decimal
    remaining_balance: Decimal


def money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(TWO_PLACES, ROUND_HALF_UP)


def monthly_rate(annual_rate_pct: Decimal) -> Decimal:
    if annual_rate_pct <= 0:
        return ZERO
    return Decimal(annual_rate_pct) / 100 / 12


def check_term(term_months: int) -> int:
    """Reject terms that are not positive or run past ``settings.max_schedule_periods``."""
    if term_months <= 0:
        raise InvalidTerm(f"Term must be a positive number of months, got {term_months}")
    if term_months > settings.max_schedule_periods:
        raise InvalidTerm(
            f"Term of {term_months} months is longer than the {settings.max_schedule_periods} month limit"
        )
    return term_months


def _within_limit(periods: int, payment: Decimal) -> int:
    limit = settings.max_schedule_periods
    if periods > limit:
        raise NonAmortizing(
            f"A payment of {money(payment)} needs {periods} months, more than the {limit} month limit"
        )
    return max(1, periods)


def _annuity(balance: Decimal, r: Decimal, term_months: int) -> Decimal:
    if r == 0:
        return balance / term_months
    # P = B * r / (1 - (1 + r)^-n)
    return balance * r / (1 - (1 + r) ** -term_months)


def _payment_cents(exact: Decimal, interest: Decimal) -> Decimal:
    # On long high-rate terms half-up can land on the interest itself, which never amortizes
    payment = money(exact)
    if payment <= interest:
        payment = exact.quantize(TWO_PLACES, ROUND_CEILING)
    return payment


def monthly_payment(balance: Decimal, annual_rate_pct: Decimal, term_months: int) -> Decimal:
    """Level payment that retires ``balance`` in ``term_months`` periods."""
    check_term(term_months)
    if balance <= 0:
        return Decimal("0.00")
    r = monthly_rate(annual_rate_pct)
    return _payment_cents(_annuity(Decimal(balance), r, term_months), Decimal(balance) * r)


def remaining_payments(balance: Decimal, payment: Decimal, annual_rate_pct: Decimal) -> int:
    """Number of periods a fixed payment needs to retire ``balance``.

    Raises NonAmortizing when the payment does not exceed one month of interest,
    or when it would take longer than the configured schedule limit.
    """
    if balance <= 0:
        return 0
    if payment <= 0:
        raise NonAmortizing("A payment of 0 never reduces the balance")

    r = monthly_rate(annual_rate_pct)
    if r == 0:
        n = Decimal(balance) / Decimal(payment)
    else:
        interest = Decimal(balance) * r
        if payment <= interest:
            raise NonAmortizing(
                f"Payment {money(payment)} does not cover the monthly interest of {money(interest)}"
            )
        # n = -ln(1 - B*r/P) / ln(1 + r)
        n = -(1 - interest / Decimal(payment)).ln() / (1 + r).ln()

    periods = int((n - PERIOD_TOLERANCE).to_integral_value(rounding=ROUND_CEILING))
    return _within_limit(periods, payment)


def months_between(start: date, end: date) -> int:
    """Whole calendar months from ``start`` to ``end``. Days are ignored."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def add_months(dt: date, months: int) -> date:
    """Return a date ``months`` after ``dt``, clamping the day to the month's length."""
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def period_interest(
    outstanding: Decimal,
    opening_balance: Decimal,
    annual_rate_pct: Decimal,
    interest_type: InterestType = InterestType.REDUCING,
) -> Decimal:
    """Interest charged for one period.

    reducing: on what is still outstanding. fixed: flat on the opening balance.
    none: nothing.
    """
    if interest_type == InterestType.NONE:
        return Decimal("0.00")
    r = monthly_rate(annual_rate_pct)
    base = opening_balance if interest_type == InterestType.FIXED else outstanding
    return money(base * r)


def required_payment(
    balance: Decimal,
    annual_rate_pct: Decimal,
    term_months: int,
    interest_type: InterestType = InterestType.REDUCING,
) -> Decimal:
    """Payment needed for ``term_months`` under the given interest type."""
    if interest_type == InterestType.NONE:
        return monthly_payment(balance, ZERO, term_months)
    if interest_type == InterestType.FIXED:
        check_term(term_months)
        flat = Decimal(balance) * monthly_rate(annual_rate_pct)
        return _payment_cents(Decimal(balance) / term_months + flat, flat)
    return monthly_payment(balance, annual_rate_pct, term_months)


def payoff_term(
    balance: Decimal,
    payment: Decimal,
    annual_rate_pct: Decimal,
    interest_type: InterestType = InterestType.REDUCING,
) -> int:
    """Periods needed to retire ``balance`` under the given interest type."""
    if interest_type == InterestType.NONE:
        return remaining_payments(balance, payment, ZERO)
    if interest_type == InterestType.FIXED:
        if balance <= 0:
            return 0
        flat = Decimal(balance) * monthly_rate(annual_rate_pct)
        if payment <= flat:
            raise NonAmortizing(
                f"Payment {money(payment)} does not cover the flat interest of {money(flat)}"
            )
        n = Decimal(balance) / (Decimal(payment) - flat)
        return _within_limit(int((n - PERIOD_TOLERANCE).to_integral_value(rounding=ROUND_CEILING)), payment)
    return remaining_payments(balance, payment, annual_rate_pct)


def amortization_rows(
    balance: Decimal,
    annual_rate_pct: Decimal,
    payment: Decimal,
    periods: int,
    interest_type: InterestType = InterestType.REDUCING,
) -> list[AmortizationRow]:
    """Per-period principal/interest breakdown.

    The last row (period ``periods``, or the first row whose payment would overshoot
    the balance) takes exactly what is left, so principal always sums to ``balance``.
    """
    check_term(periods)

    opening = money(balance)
    outstanding = opening
    payment = money(payment)
    rows: list[AmortizationRow] = []

    for period in range(1, periods + 1):
        if outstanding <= 0:
            break
        interest = period_interest(outstanding, opening, annual_rate_pct, interest_type)

        if period == periods or payment - interest >= outstanding:
            principal = outstanding
            amount = principal + interest
        else:
            amount = payment
            interest = min(interest, amount)
            principal = amount - interest

        outstanding -= principal
        rows.append(AmortizationRow(
            period=period,
            payment=amount,
            principal=principal,
            interest=interest,
            balance=outstanding,
        ))

    return rows


def total_interest(
    balance: Decimal,
    payment: Decimal,
    annual_rate_pct: Decimal,
    interest_type: InterestType = InterestType.REDUCING,
) -> Decimal:
    """Interest still to be paid if ``payment`` is kept until payoff."""
    if balance <= 0:
        return Decimal("0.00")
    term = payoff_term(balance, payment, annual_rate_pct, interest_type)
    rows = amortization_rows(balance, annual_rate_pct, payment, term, interest_type)
    return money(sum((row.interest for row in rows), ZERO))


def payment_breakdown(
    payment: Decimal,
    balance: Decimal,
    annual_rate_pct: Decimal,
    interest_type: InterestType = InterestType.REDUCING,
    opening_balance: Decimal | None = None,
) -> PaymentBreakdown:
    """Split one payment into interest first, then principal."""
    if payment <= 0:
        return PaymentBreakdown(Decimal("0.00"), Decimal("0.00"), Decimal("0.00"), money(balance))

    opening = balance if opening_balance is None else opening_balance
    interest = period_interest(balance, opening, annual_rate_pct, interest_type)

    if payment >= balance + interest:
        return PaymentBreakdown(money(payment), money(balance), interest, Decimal("0.00"))

    interest_paid = min(interest, money(payment))
    principal = money(payment) - interest_paid
    return PaymentBreakdown(money(payment), principal, interest_paid, money(balance - principal))


def solve_interest_rate(balance: Decimal, payment: Decimal, term_months: int) -> Decimal:
    """Annual rate (percent) at which ``payment`` retires ``balance`` in ``term_months``.

    Uses Brent's method on the annuity residual, searched between 0% and 100%.
    """
    check_term(term_months)
    if payment * term_months <= balance:
        return Decimal("0.00")

    # Convert to float for scipy
    b, p = float(balance), float(payment)

    def residual(annual_pct: float) -> float:
        r = annual_pct / 100 / 12
        if r == 0:
            return b / term_months - p
        return b * r / (1 - (1 + r) ** -term_months) - p

    try:
        rate = brentq(residual, 0.0, 100.0, xtol=1e-8, maxiter=1000)
    except ValueError as e:
        raise NonAmortizing(
            f"No rate up to 100% makes {money(payment)} a month retire {money(balance)} in {term_months} months"
        ) from e
    return money(Decimal(str(rate)))
