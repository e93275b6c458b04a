"""Canonical test fixtures used across engine, store and API tests.

Fixture: $12,000 loan at 12% APY over 12 months, starting 2024-01-01.
First installment falls due 2024-02-01, the last on 2025-01-01, each $1,066.19.
"""

import pytest
from datetime import date
from decimal import Decimal

from loanledger.data.store import LiabilityStore, make_session_factory
from loanledger.engine.schedule import regenerate_schedule
from loanledger.models.impact import CurrentTerms
from loanledger.models.liability import Installment, InterestType, Liability, new_id

START = date(2024, 1, 1)
END = date(2025, 1, 1)
PAYMENT = Decimal("1066.19")


@pytest.fixture
def canonical_liability() -> Liability:
    """12000 @ 12% / 12 months with its full pending schedule."""
    draft = Liability(
        title="Car loan",
        current_balance=Decimal("12000.00"),
        original_amount=Decimal("12000.00"),
        interest_rate_apy=Decimal("12"),
        periodical_payment=PAYMENT,
        start_date=START,
        targeted_payoff_date=END,
    )
    return regenerate_schedule(draft, today=START)


@pytest.fixture
def canonical_terms() -> CurrentTerms:
    return CurrentTerms(
        balance=Decimal("12000"),
        payment=PAYMENT,
        annual_rate_pct=Decimal("12"),
        end_date=END,
        interest_type=InterestType.REDUCING,
    )


def make_liability(amounts, start: date = START, payoff: date | None = None) -> Liability:
    """A liability whose pending installments carry exactly ``amounts``, due monthly from ``start``."""
    liability_id = new_id()
    installments = []
    for n, amount in enumerate(amounts, start=1):
        month = (start.month - 1 + n) % 12 + 1
        year = start.year + (start.month - 1 + n) // 12
        installments.append(Installment(
            liability_id=liability_id,
            due_date=date(year, month, 1),
            amount=Decimal(amount),
            principal_component=Decimal(amount),
            payment_number=n,
            total_payments=len(amounts),
        ))
    total = sum((Decimal(a) for a in amounts), Decimal("0"))
    return Liability(
        id=liability_id,
        current_balance=total,
        original_amount=total,
        interest_rate_apy=Decimal("0"),
        periodical_payment=Decimal(amounts[0]),
        start_date=start,
        targeted_payoff_date=payoff or installments[-1].due_date,
        interest_type=InterestType.NONE,
        installments=tuple(installments),
    )


@pytest.fixture
def session_factory():
    return make_session_factory("sqlite://")


@pytest.fixture
def store(session_factory) -> LiabilityStore:
    return LiabilityStore(session_factory)


@pytest.fixture
def stored_liability(store) -> Liability:
    return store.create_liability(
        amount=Decimal("12000"),
        annual_rate_pct=Decimal("12"),
        start_date=START,
        term_months=12,
        title="Car loan",
    )
