"""Liability and installment data types.

A Liability owns its installments: the tuple is ordered by due date and is only
ever replaced wholesale by the schedule regenerator or the redistributor.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional


class InterestType(Enum):
    REDUCING = "reducing"
    FIXED = "fixed"
    NONE = "none"


class LiabilityStatus(Enum):
    ACTIVE = "active"
    PAID_OFF = "paid_off"
    PAUSED = "paused"
    OVERDUE = "overdue"


class ScheduleStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


def new_id() -> uuid.UUID:
    return uuid.uuid4()


@dataclass(frozen=True)
class Installment:
    liability_id: uuid.UUID
    due_date: date
    amount: Decimal
    status: ScheduleStatus = ScheduleStatus.PENDING
    principal_component: Decimal = Decimal("0")
    interest_component: Decimal = Decimal("0")
    payment_number: int = 0
    total_payments: int = 0
    remaining_balance: Decimal = Decimal("0")
    # Audit flags (skipped, original_amount, original_due_date, ...)
    notes: dict = field(default_factory=dict)
    id: uuid.UUID = field(default_factory=new_id)

    @property
    def is_pending(self) -> bool:
        return self.status == ScheduleStatus.PENDING

    @property
    def is_completed(self) -> bool:
        return self.status == ScheduleStatus.COMPLETED

    @property
    def counts_toward_total(self) -> bool:
        return self.status != ScheduleStatus.CANCELLED


@dataclass(frozen=True)
class Liability:
    current_balance: Decimal
    original_amount: Decimal
    interest_rate_apy: Decimal  # Annual percentage, e.g. Decimal("12") for 12%
    periodical_payment: Decimal
    start_date: date
    targeted_payoff_date: Optional[date] = None
    interest_type: InterestType = InterestType.REDUCING
    status: LiabilityStatus = LiabilityStatus.ACTIVE
    title: str = ""
    currency: str = "USD"
    installments: tuple[Installment, ...] = ()
    id: uuid.UUID = field(default_factory=new_id)

    @property
    def pending(self) -> list[Installment]:
        return [i for i in self.installments if i.is_pending]

    @property
    def completed(self) -> list[Installment]:
        return [i for i in self.installments if i.is_completed]

    @property
    def scheduled_total(self) -> Decimal:
        """Sum of every non-cancelled installment amount."""
        return sum(
            (i.amount for i in self.installments if i.counts_toward_total),
            Decimal("0"),
        )

    def installment(self, installment_id: uuid.UUID) -> Optional[Installment]:
        for inst in self.installments:
            if inst.id == installment_id:
                return inst
        return None


class SkipPolicy(Enum):
    ADD_TO_NEXT = "add_to_next"
    ADD_TO_END = "add_to_end"
    SPREAD_ACROSS = "spread_across"


class AmountChangePolicy(Enum):
    ONE_TIME = "one_time"
    UPDATE_ALL = "update_all"
    ADD_TO_NEXT = "add_to_next"
