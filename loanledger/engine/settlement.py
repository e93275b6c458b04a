"""Settlement reconciler: close-out math for a liability.

Pure functions over a status snapshot and a list of adjustments. The store
materializes the resulting LedgerMovements and deletes the liability in one
transaction.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from loanledger.exceptions import ConfirmationMismatch, InvalidAmount, MissingAccount, NotFound, Unbalanced
from loanledger.models.liability import Liability
from loanledger.models.settlement import (
    AdjustmentType,
    FinalAction,
    FundHolding,
    LedgerMovement,
    MovementKind,
    ProjectedBalances,
    SettlementAdjustment,
    SettlementStatus,
)
from loanledger.engine.amortization import ZERO, money

_ADJUSTMENT_KINDS = {
    AdjustmentType.REPAYMENT: MovementKind.REPAYMENT,
    AdjustmentType.REFUND: MovementKind.REFUND,
    AdjustmentType.CONVERT_TO_PERSONAL: MovementKind.CONVERT_TO_PERSONAL,
    AdjustmentType.EXPENSE_WRITEOFF: MovementKind.EXPENSE_WRITEOFF,
}


def settlement_status(liability: Liability, holdings: Iterable[FundHolding]) -> SettlementStatus:
    """Snapshot of what is still owed against what is still held."""
    holdings = tuple(h for h in holdings if h.amount > 0)
    funds = sum((h.amount for h in holdings), ZERO)
    remaining = liability.current_balance
    return SettlementStatus(
        total_loan=money(liability.original_amount),
        remaining_owed=money(remaining),
        liability_funds_in_accounts=money(funds),
        overfunded_by=money(max(ZERO, funds - remaining)),
        holdings=holdings,
    )


def validate_adjustment(adjustment: SettlementAdjustment) -> None:
    if adjustment.amount <= 0:
        raise InvalidAmount(f"Adjustment amount must be greater than 0, got {adjustment.amount}")
    if adjustment.type.needs_account and adjustment.account_id is None:
        raise MissingAccount(f"A {adjustment.type.value} adjustment needs an account")


def _drawn_from(adj: SettlementAdjustment, funds: dict[uuid.UUID, Decimal]) -> Decimal:
    """How much of a fund-side adjustment the account can actually cover."""
    held = funds.get(adj.account_id, ZERO)
    if held <= 0:
        raise MissingAccount(
            f"Account {adj.account_id} holds no funds of this liability for a {adj.type.value} adjustment"
        )
    return min(money(adj.amount), held)


def project_balances(status: SettlementStatus, adjustments: Iterable[SettlementAdjustment]) -> ProjectedBalances:
    """Owed and held amounts after the adjustments, each clamped at 0.

    Fund-side adjustments are capped at what their account holds, the same way
    the executed plan caps them.
    """
    funds = {h.account_id: h.amount for h in status.holdings}
    repaid = ZERO
    for adj in adjustments:
        validate_adjustment(adj)
        if adj.type.reduces_owed:
            repaid += adj.amount
        else:
            funds[adj.account_id] -= _drawn_from(adj, funds)
    return ProjectedBalances(
        projected_remaining=money(max(ZERO, status.remaining_owed - repaid)),
        projected_funds=money(sum(funds.values(), ZERO)),
    )


def require_resolution(
    projected: ProjectedBalances,
    final_action: Optional[FinalAction],
    unaccounted_amount: Optional[Decimal] = None,
) -> None:
    """Reject a close-out that is neither balanced nor explicitly resolved.

    A caller-supplied ``unaccounted_amount`` must match the recomputed one; a
    mismatch means the caller previewed against stale balances.
    """
    if projected.is_balanced:
        return
    if final_action is None:
        raise Unbalanced(
            f"Owed {projected.projected_remaining} and held {projected.projected_funds} do not both "
            f"reach 0; choose {FinalAction.FORGIVE_DEBT.value} or {FinalAction.ERASE_FUNDS.value}"
        )
    if unaccounted_amount is not None and money(unaccounted_amount) != projected.unaccounted_amount:
        raise Unbalanced(
            f"Unaccounted amount {money(unaccounted_amount)} does not match the current "
            f"{projected.unaccounted_amount}; refresh the settlement status"
        )


def check_confirmation(token: Optional[str], expected: str) -> None:
    if token != expected:
        raise ConfirmationMismatch(f'Type "{expected}" exactly to confirm deletion')


def _adjustment_movement(
    adj: SettlementAdjustment,
    funds: dict[uuid.UUID, Decimal],
    remaining: Decimal,
) -> LedgerMovement:
    amount = money(adj.amount)
    kind = _ADJUSTMENT_KINDS[adj.type]
    note = adj.note or adj.type.value.replace("_", " ")

    if adj.type == AdjustmentType.REPAYMENT:
        return LedgerMovement(
            kind=kind,
            amount=amount,
            on=adj.on,
            account_id=adj.account_id,
            account_debit=amount if adj.account_id else ZERO,
            owed_reduction=min(amount, remaining),
            description=note,
        )

    applied = _drawn_from(adj, funds)
    return LedgerMovement(
        kind=kind,
        amount=applied,
        on=adj.on,
        account_id=adj.account_id,
        # Converted money stays in the account, it just stops being borrowed
        account_debit=ZERO if adj.type == AdjustmentType.CONVERT_TO_PERSONAL else applied,
        fund_reduction=applied,
        description=note,
    )


def plan_settlement(
    status: SettlementStatus,
    adjustments: Sequence[SettlementAdjustment],
    final_action: Optional[FinalAction] = None,
    unaccounted_amount: Optional[Decimal] = None,
    today: Optional[date] = None,
) -> list[LedgerMovement]:
    """Every ledger movement a close-out needs, in the order they apply.

    Adjustments first, then the final action on the unaccounted remainder, then
    release of whatever borrowed funds and owed balance are left so nothing stays
    tagged to the deleted liability.
    """
    today = today or date.today()
    for adj in adjustments:
        validate_adjustment(adj)
    projected = project_balances(status, adjustments)
    require_resolution(projected, final_action, unaccounted_amount)

    funds = {h.account_id: h.amount for h in status.holdings}
    remaining = status.remaining_owed
    movements: list[LedgerMovement] = []

    for adj in adjustments:
        movement = _adjustment_movement(adj, funds, remaining)
        remaining -= movement.owed_reduction
        if movement.account_id is not None and movement.fund_reduction:
            funds[movement.account_id] -= movement.fund_reduction
        movements.append(movement)

    unaccounted = projected.unaccounted_amount
    if final_action == FinalAction.FORGIVE_DEBT:
        forgiven = min(unaccounted, remaining)
        if forgiven > 0:
            movements.append(LedgerMovement(
                kind=MovementKind.DEBT_FORGIVEN,
                amount=forgiven,
                on=today,
                owed_reduction=forgiven,
                description="Unaccounted debt forgiven",
            ))
            remaining -= forgiven
    elif final_action == FinalAction.ERASE_FUNDS:
        to_erase = min(unaccounted, sum(funds.values(), ZERO))
        for account_id in list(funds):
            if to_erase <= 0:
                break
            take = min(to_erase, funds[account_id])
            if take <= 0:
                continue
            movements.append(LedgerMovement(
                kind=MovementKind.FUNDS_ERASED,
                amount=take,
                on=today,
                account_id=account_id,
                account_debit=take,
                fund_reduction=take,
                description="Unaccounted liability funds erased",
            ))
            funds[account_id] -= take
            to_erase -= take

    for account_id, held in funds.items():
        if held > 0:
            movements.append(LedgerMovement(
                kind=MovementKind.FUND_RELEASED,
                amount=held,
                on=today,
                account_id=account_id,
                fund_reduction=held,
                description="Liability funds released to personal funds",
            ))
    if remaining > 0:
        movements.append(LedgerMovement(
            kind=MovementKind.LIABILITY_CLOSED,
            amount=remaining,
            on=today,
            owed_reduction=remaining,
            description="Remaining balance closed with the liability",
        ))
    return movements


class SettlementWizard:
    """Adjustment list for one close-out, with the projection kept current."""

    def __init__(self, status: SettlementStatus):
        self.status = status
        self._adjustments: list[SettlementAdjustment] = []

    @property
    def adjustments(self) -> tuple[SettlementAdjustment, ...]:
        return tuple(self._adjustments)

    @property
    def projected(self) -> ProjectedBalances:
        return project_balances(self.status, self._adjustments)

    def add(self, adjustment: SettlementAdjustment) -> ProjectedBalances:
        # Invalid adjustments never make it onto the list
        projected = project_balances(self.status, [*self._adjustments, adjustment])
        self._adjustments.append(adjustment)
        return projected

    def remove(self, adjustment_id: uuid.UUID) -> ProjectedBalances:
        kept = [a for a in self._adjustments if a.id != adjustment_id]
        if len(kept) == len(self._adjustments):
            raise NotFound(f"Adjustment {adjustment_id} is not in this settlement")
        self._adjustments = kept
        return self.projected

    def require_resolution(self, final_action: Optional[FinalAction]) -> None:
        require_resolution(self.projected, final_action)

    def plan(
        self,
        final_action: Optional[FinalAction] = None,
        unaccounted_amount: Optional[Decimal] = None,
        today: Optional[date] = None,
    ) -> list[LedgerMovement]:
        return plan_settlement(self.status, self._adjustments, final_action, unaccounted_amount, today)
