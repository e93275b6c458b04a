"""Settlement (close-out) data types."""

import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional


class AdjustmentType(Enum):
    REPAYMENT = "repayment"  # Reduces remaining owed
    REFUND = "refund"  # Liability money leaves the account
    CONVERT_TO_PERSONAL = "convert_to_personal"  # Reclassified, account balance unchanged
    EXPENSE_WRITEOFF = "expense_writeoff"  # Borrowed money already spent

    @property
    def needs_account(self) -> bool:
        return self != AdjustmentType.REPAYMENT

    @property
    def reduces_owed(self) -> bool:
        return self == AdjustmentType.REPAYMENT


class FinalAction(Enum):
    FORGIVE_DEBT = "forgive_debt"
    ERASE_FUNDS = "erase_funds"


class MovementKind(Enum):
    REPAYMENT = "liability_repayment"
    REFUND = "liability_refund"
    CONVERT_TO_PERSONAL = "convert_to_personal"
    EXPENSE_WRITEOFF = "liability_writeoff"
    DEBT_FORGIVEN = "debt_forgiven"
    FUNDS_ERASED = "funds_erased"
    FUND_RELEASED = "fund_released"
    LIABILITY_CLOSED = "liability_closed"
    DRAW = "liability_draw"
    INSTALLMENT_PAYMENT = "installment_payment"
    LIABILITY_PAYMENT = "liability_payment"
    EXTRA_PAYMENT = "extra_payment"


@dataclass(frozen=True)
class SettlementAdjustment:
    type: AdjustmentType
    amount: Decimal
    on: date
    account_id: Optional[uuid.UUID] = None
    note: str = ""
    id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass(frozen=True)
class FundHolding:
    """Borrowed money of one liability sitting in one account."""
    account_id: uuid.UUID
    amount: Decimal
    account_name: str = ""


@dataclass(frozen=True)
class SettlementStatus:
    total_loan: Decimal
    remaining_owed: Decimal
    liability_funds_in_accounts: Decimal
    overfunded_by: Decimal
    holdings: tuple[FundHolding, ...] = ()

    @property
    def is_balanced(self) -> bool:
        return self.remaining_owed == 0 and self.liability_funds_in_accounts == 0


@dataclass(frozen=True)
class ProjectedBalances:
    projected_remaining: Decimal
    projected_funds: Decimal

    @property
    def is_balanced(self) -> bool:
        return self.projected_remaining == 0 and self.projected_funds == 0

    @property
    def unaccounted_amount(self) -> Decimal:
        return abs(self.projected_remaining - self.projected_funds)


@dataclass(frozen=True)
class LedgerMovement:
    """One money movement to materialize against the ledger.

    account_debit lowers the account balance, fund_reduction lowers the borrowed
    fund tagged to the liability in that account, owed_reduction lowers the
    liability's current balance.
    """
    kind: MovementKind
    amount: Decimal
    on: date
    account_id: Optional[uuid.UUID] = None
    account_debit: Decimal = Decimal("0")
    fund_reduction: Decimal = Decimal("0")
    owed_reduction: Decimal = Decimal("0")
    description: str = ""
