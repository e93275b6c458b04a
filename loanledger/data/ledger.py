"""Account and borrowed-fund bookkeeping.

Every function works inside the caller's Session and never commits; the store
owns the transaction boundary.
"""

import logging
import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from loanledger.exceptions import InvalidAmount, MissingAccount
from loanledger.models.db import AccountFundRecord, AccountRecord, LedgerEntryRecord
from loanledger.models.settlement import FundHolding, LedgerMovement, MovementKind

logger = logging.getLogger(__name__)


def get_account(session: Session, account_id: uuid.UUID) -> AccountRecord:
    account = session.get(AccountRecord, account_id)
    if account is None:
        raise MissingAccount(f"Account {account_id} does not exist")
    return account


def get_fund(session: Session, account_id: uuid.UUID, liability_id: uuid.UUID) -> AccountFundRecord | None:
    return session.scalars(
        select(AccountFundRecord).where(
            AccountFundRecord.account_id == account_id,
            AccountFundRecord.liability_id == liability_id,
        )
    ).first()


def holdings(session: Session, liability_id: uuid.UUID) -> list[FundHolding]:
    """Borrowed funds of a liability, per account, largest first."""
    rows = session.execute(
        select(AccountFundRecord, AccountRecord.name)
        .join(AccountRecord, AccountFundRecord.account_id == AccountRecord.id)
        .where(AccountFundRecord.liability_id == liability_id, AccountFundRecord.balance > 0)
        .order_by(AccountFundRecord.balance.desc(), AccountFundRecord.id)
    ).all()
    return [FundHolding(account_id=fund.account_id, amount=fund.balance, account_name=name) for fund, name in rows]


def record_entry(
    session: Session,
    kind: MovementKind,
    amount: Decimal,
    on: date,
    liability_id: uuid.UUID | None = None,
    account_id: uuid.UUID | None = None,
    currency: str = "USD",
    description: str = "",
    details: dict | None = None,
) -> LedgerEntryRecord:
    entry = LedgerEntryRecord(
        liability_id=liability_id,
        account_id=account_id,
        kind=kind.value,
        amount=amount,
        currency=currency,
        entry_date=on,
        description=description[:255],
        details=details,
    )
    session.add(entry)
    return entry


def apply_movement(session: Session, liability_id: uuid.UUID, movement: LedgerMovement, currency: str = "USD") -> None:
    """Apply one planned movement to account and fund balances and log it."""
    if movement.account_id is not None and (movement.account_debit or movement.fund_reduction):
        account = get_account(session, movement.account_id)
        account.balance -= movement.account_debit
        if movement.fund_reduction:
            fund = get_fund(session, movement.account_id, liability_id)
            if fund is None:
                raise MissingAccount(
                    f"Account {movement.account_id} holds no funds of liability {liability_id}"
                )
            fund.balance -= movement.fund_reduction

    record_entry(
        session,
        movement.kind,
        movement.amount,
        movement.on,
        liability_id=liability_id,
        account_id=movement.account_id,
        currency=currency,
        description=movement.description,
        details={
            "account_debit": str(movement.account_debit),
            "fund_reduction": str(movement.fund_reduction),
            "owed_reduction": str(movement.owed_reduction),
        },
    )
    logger.debug("Applied %s of %s for liability %s", movement.kind.value, movement.amount, liability_id)


def draw_funds(
    session: Session,
    liability_id: uuid.UUID,
    account_id: uuid.UUID,
    amount: Decimal,
    on: date,
    currency: str = "USD",
) -> AccountFundRecord:
    """Put borrowed money into an account, tagged to the liability it came from."""
    if amount <= 0:
        raise InvalidAmount(f"Draw amount must be greater than 0, got {amount}")
    account = get_account(session, account_id)
    account.balance += amount

    fund = get_fund(session, account_id, liability_id)
    if fund is None:
        fund = AccountFundRecord(account_id=account_id, liability_id=liability_id, balance=Decimal("0"))
        session.add(fund)
    fund.balance += amount

    record_entry(
        session,
        MovementKind.DRAW,
        amount,
        on,
        liability_id=liability_id,
        account_id=account_id,
        currency=currency,
        description=f"Borrowed funds into {account.name}",
    )
    return fund


def drop_funds(session: Session, liability_id: uuid.UUID) -> int:
    """Remove every fund tag of a liability. Balances must already be released."""
    result = session.execute(delete(AccountFundRecord).where(AccountFundRecord.liability_id == liability_id))
    return result.rowcount or 0
