"""Skip/edit redistributor: per-installment changes to a liability's schedule.

Pure functions. Each operation touches the fewest installments its policy needs
and returns a new Liability plus the number of rows changed. Skips conserve the
sum of non-cancelled amounts; amount edits change it by the stated delta.
"""

import uuid
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal, ROUND_DOWN

from loanledger.exceptions import InvalidAmount, InvalidInstallmentState, NotFound, OutOfRange
from loanledger.models.liability import (
    AmountChangePolicy,
    Installment,
    Liability,
    ScheduleStatus,
    SkipPolicy,
)
from loanledger.engine.amortization import TWO_PLACES, ZERO, add_months, money


@dataclass(frozen=True)
class Redistribution:
    liability: Liability
    updated_count: int


def _order(inst: Installment) -> tuple[date, int]:
    return inst.due_date, inst.payment_number


def _pending_target(liability: Liability, installment_id: uuid.UUID, verb: str) -> Installment:
    target = liability.installment(installment_id)
    if target is None:
        raise NotFound(f"Installment {installment_id} not found on liability {liability.id}")
    if not target.is_pending:
        raise InvalidInstallmentState(f"Can only {verb} pending installments (this one is {target.status.value})")
    return target


def _following_pending(liability: Liability, target: Installment) -> list[Installment]:
    return sorted(
        (i for i in liability.pending if i.id != target.id and _order(i) > _order(target)),
        key=_order,
    )


def _reprice(inst: Installment, amount: Decimal, **notes) -> Installment:
    """New amount; interest stays what it was, principal takes the difference."""
    principal = max(ZERO, amount - inst.interest_component)
    return replace(inst, amount=amount, principal_component=principal, notes={**inst.notes, **notes})


def _apply(
    liability: Liability,
    updates: dict[uuid.UUID, Installment],
    additions: list[Installment] | None = None,
) -> Liability:
    merged = [updates.get(i.id, i) for i in liability.installments] + list(additions or [])
    return replace(liability, installments=tuple(sorted(merged, key=_order)))


def split_evenly(amount: Decimal, parts: int) -> list[Decimal]:
    """Equal cent shares; whatever integer-cent division leaves goes on the last share."""
    share = (amount / parts).quantize(TWO_PLACES, ROUND_DOWN)
    shares = [share] * parts
    shares[-1] += amount - share * parts
    return shares


def _appended(liability: Liability, skipped: Installment) -> Installment:
    others = [i for i in liability.installments if i.counts_toward_total and i.id != skipped.id]
    last_due = max((i.due_date for i in others), default=skipped.due_date)
    number = max((i.payment_number for i in liability.installments), default=0) + 1
    return Installment(
        liability_id=liability.id,
        due_date=add_months(last_due, 1),
        amount=skipped.amount,
        principal_component=skipped.amount,
        interest_component=Decimal("0.00"),
        payment_number=number,
        total_payments=number,
        notes={"is_skipped_payment": True, "original_schedule_id": str(skipped.id)},
    )


def skip_installment(liability: Liability, installment_id: uuid.UUID, policy: SkipPolicy) -> Redistribution:
    """Cancel a pending installment and move its amount elsewhere per ``policy``.

    ADD_TO_NEXT and SPREAD_ACROSS fall back to appending a new installment when no
    pending installment follows the skipped one.
    """
    target = _pending_target(liability, installment_id, "skip")
    amount = target.amount
    updates = {
        target.id: replace(
            target,
            status=ScheduleStatus.CANCELLED,
            notes={**target.notes, "skipped": True, "skip_policy": policy.value},
        )
    }
    additions: list[Installment] = []
    following = _following_pending(liability, target)

    if policy == SkipPolicy.ADD_TO_NEXT and following:
        nxt = following[0]
        updates[nxt.id] = _reprice(nxt, nxt.amount + amount, includes_skipped=str(amount))
    elif policy == SkipPolicy.SPREAD_ACROSS and following:
        for inst, share in zip(following, split_evenly(amount, len(following))):
            updates[inst.id] = _reprice(inst, inst.amount + share, skipped_amount_portion=str(share))
    else:
        additions.append(_appended(liability, target))

    return Redistribution(_apply(liability, updates, additions), len(updates) + len(additions))


def change_installment_amount(
    liability: Liability,
    installment_id: uuid.UUID,
    new_amount: Decimal,
    policy: AmountChangePolicy,
) -> Redistribution:
    """Edit one pending installment's amount.

    ONE_TIME changes only this installment. UPDATE_ALL sets this and every later
    pending installment. ADD_TO_NEXT leaves this installment as it was and adds the
    delta to the next pending one.
    """
    if new_amount <= 0:
        raise InvalidAmount("Payment amount must be greater than 0")
    target = _pending_target(liability, installment_id, "change")
    new_amount = money(new_amount)
    delta = new_amount - target.amount
    updates: dict[uuid.UUID, Installment] = {}

    if policy == AmountChangePolicy.ONE_TIME:
        updates[target.id] = _reprice(target, new_amount, original_amount=str(target.amount))
    elif policy == AmountChangePolicy.UPDATE_ALL:
        for inst in [target] + _following_pending(liability, target):
            updates[inst.id] = _reprice(inst, new_amount, original_amount=str(inst.amount), bulk_update=True)
    else:
        following = _following_pending(liability, target)
        if not following:
            raise InvalidInstallmentState("No later pending installment to carry the change")
        nxt = following[0]
        if nxt.amount + delta <= 0:
            raise InvalidAmount(
                f"Carrying {delta} would leave the next installment at {nxt.amount + delta}"
            )
        updates[target.id] = replace(target, notes={**target.notes, "deferred_change": str(delta)})
        updates[nxt.id] = _reprice(nxt, nxt.amount + delta, adjustment_amount=str(delta))

    return Redistribution(_apply(liability, updates), len(updates))


def change_installment_date(liability: Liability, installment_id: uuid.UUID, new_date: date) -> Redistribution:
    """Move one pending installment within the liability's start/payoff bounds."""
    target = _pending_target(liability, installment_id, "reschedule")
    if new_date < liability.start_date:
        raise OutOfRange(
            f"New due date {new_date.isoformat()} is before the liability start date "
            f"({liability.start_date.isoformat()})"
        )
    if liability.targeted_payoff_date and new_date > liability.targeted_payoff_date:
        raise OutOfRange(
            f"New due date {new_date.isoformat()} is after the liability end date "
            f"({liability.targeted_payoff_date.isoformat()})"
        )

    original = target.notes.get("original_due_date", target.due_date.isoformat())
    moved = replace(
        target,
        due_date=new_date,
        notes={**target.notes, "postponed": new_date > target.due_date, "original_due_date": original},
    )
    return Redistribution(_apply(liability, {target.id: moved}), 1)
