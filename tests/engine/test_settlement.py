import uuid
from datetime import date
from decimal import Decimal

import pytest

from loanledger.engine.settlement import (
    SettlementWizard,
    check_confirmation,
    plan_settlement,
    project_balances,
    settlement_status,
    validate_adjustment,
)
from loanledger.exceptions import ConfirmationMismatch, InvalidAmount, MissingAccount, NotFound, Unbalanced
from loanledger.models.settlement import (
    AdjustmentType,
    FinalAction,
    FundHolding,
    MovementKind,
    SettlementAdjustment,
    SettlementStatus,
)

ON = date(2024, 6, 1)
ACCOUNT_A = uuid.UUID("00000000-0000-0000-0000-00000000000a")
ACCOUNT_B = uuid.UUID("00000000-0000-0000-0000-00000000000b")


def _status(remaining: str, holdings: dict) -> SettlementStatus:
    held = tuple(FundHolding(account_id=a, amount=Decimal(v)) for a, v in holdings.items())
    funds = sum((h.amount for h in held), Decimal("0"))
    return SettlementStatus(
        total_loan=Decimal("1000"),
        remaining_owed=Decimal(remaining),
        liability_funds_in_accounts=funds,
        overfunded_by=max(Decimal("0"), funds - Decimal(remaining)),
        holdings=held,
    )


def _adj(kind: AdjustmentType, amount: str, account=None) -> SettlementAdjustment:
    return SettlementAdjustment(type=kind, amount=Decimal(amount), on=ON, account_id=account)


class TestSettlementStatus:
    def test_from_liability(self, canonical_liability):
        status = settlement_status(canonical_liability, [FundHolding(ACCOUNT_A, Decimal("13000"))])
        assert status.total_loan == Decimal("12000.00")
        assert status.remaining_owed == Decimal("12000.00")
        assert status.liability_funds_in_accounts == Decimal("13000.00")
        assert status.overfunded_by == Decimal("1000.00")
        assert not status.is_balanced

    def test_empty_holdings_are_dropped(self, canonical_liability):
        status = settlement_status(canonical_liability, [FundHolding(ACCOUNT_A, Decimal("0"))])
        assert status.holdings == ()
        assert status.overfunded_by == Decimal("0")


class TestProjection:
    def test_repayment_only_touches_owed_side(self):
        """500 owed, 500 held: a 500 repayment leaves the funds side untouched."""
        wizard = SettlementWizard(_status("500", {ACCOUNT_A: "500"}))
        projected = wizard.add(_adj(AdjustmentType.REPAYMENT, "500"))
        assert projected.projected_remaining == Decimal("0")
        assert projected.projected_funds == Decimal("500")
        assert not projected.is_balanced

        projected = wizard.add(_adj(AdjustmentType.REFUND, "500", ACCOUNT_A))
        assert projected.is_balanced

    def test_clamped_at_zero(self):
        projected = project_balances(_status("500", {}), [_adj(AdjustmentType.REPAYMENT, "800")])
        assert projected.projected_remaining == Decimal("0")

    def test_unaccounted_amount(self):
        projected = project_balances(_status("700", {ACCOUNT_A: "200"}), [])
        assert projected.unaccounted_amount == Decimal("500")

    def test_remove_recomputes(self):
        wizard = SettlementWizard(_status("500", {}))
        repayment = _adj(AdjustmentType.REPAYMENT, "500")
        assert wizard.add(repayment).is_balanced
        assert not wizard.remove(repayment.id).is_balanced
        assert wizard.adjustments == ()

    def test_remove_unknown(self):
        with pytest.raises(NotFound):
            SettlementWizard(_status("500", {})).remove(uuid.uuid4())

    def test_fund_side_capped_per_account(self):
        """A refund larger than its own account does not drain the other account."""
        status = _status("0", {ACCOUNT_A: "100", ACCOUNT_B: "200"})
        projected = project_balances(status, [_adj(AdjustmentType.REFUND, "300", ACCOUNT_A)])
        assert projected.projected_funds == Decimal("200")
        assert not projected.is_balanced
        with pytest.raises(Unbalanced):
            plan_settlement(status, [_adj(AdjustmentType.REFUND, "300", ACCOUNT_A)], today=ON)

    def test_projection_agrees_with_plan(self):
        status = _status("0", {ACCOUNT_A: "100", ACCOUNT_B: "400"})
        adjustments = [
            _adj(AdjustmentType.REFUND, "300", ACCOUNT_A),
            _adj(AdjustmentType.EXPENSE_WRITEOFF, "400", ACCOUNT_B),
        ]
        assert project_balances(status, adjustments).is_balanced
        movements = plan_settlement(status, adjustments, today=ON)
        assert sum(m.fund_reduction for m in movements) == Decimal("500")

    @pytest.mark.parametrize("kind", [AdjustmentType.REFUND, AdjustmentType.EXPENSE_WRITEOFF])
    def test_account_without_funds(self, kind):
        with pytest.raises(MissingAccount):
            project_balances(_status("0", {ACCOUNT_A: "200"}), [_adj(kind, "50", ACCOUNT_B)])

    def test_wizard_rejects_account_without_funds(self):
        wizard = SettlementWizard(_status("0", {ACCOUNT_A: "200"}))
        with pytest.raises(MissingAccount):
            wizard.add(_adj(AdjustmentType.REFUND, "200", ACCOUNT_B))
        assert wizard.adjustments == ()


class TestValidation:
    @pytest.mark.parametrize("kind", [
        AdjustmentType.REFUND, AdjustmentType.CONVERT_TO_PERSONAL, AdjustmentType.EXPENSE_WRITEOFF,
    ])
    def test_account_required(self, kind):
        with pytest.raises(MissingAccount):
            validate_adjustment(_adj(kind, "100"))

    def test_repayment_needs_no_account(self):
        validate_adjustment(_adj(AdjustmentType.REPAYMENT, "100"))

    def test_positive_amount(self):
        with pytest.raises(InvalidAmount):
            validate_adjustment(_adj(AdjustmentType.REPAYMENT, "0"))

    def test_rejected_adjustment_not_added(self):
        wizard = SettlementWizard(_status("500", {ACCOUNT_A: "500"}))
        with pytest.raises(MissingAccount):
            wizard.add(_adj(AdjustmentType.REFUND, "500"))
        assert wizard.adjustments == ()


class TestConfirmation:
    def test_exact_match(self):
        check_confirmation("DELETE", "DELETE")

    @pytest.mark.parametrize("token", ["delete", "DELETE ", "", None, "Delete"])
    def test_mismatch(self, token):
        with pytest.raises(ConfirmationMismatch):
            check_confirmation(token, "DELETE")


class TestPlanSettlement:
    def test_balanced_needs_no_final_action(self):
        movements = plan_settlement(
            _status("500", {ACCOUNT_A: "500"}),
            [_adj(AdjustmentType.REPAYMENT, "500", ACCOUNT_A), _adj(AdjustmentType.REFUND, "500", ACCOUNT_A)],
            today=ON,
        )
        assert [m.kind for m in movements] == [MovementKind.REPAYMENT, MovementKind.REFUND]
        repayment, refund = movements
        assert repayment.owed_reduction == Decimal("500")
        assert repayment.account_debit == Decimal("500")
        assert refund.fund_reduction == Decimal("500")
        assert refund.account_debit == Decimal("500")

    def test_unbalanced_without_final_action(self):
        with pytest.raises(Unbalanced):
            plan_settlement(_status("700", {ACCOUNT_A: "200"}), [], today=ON)

    def test_equal_but_nonzero_still_needs_decision(self):
        with pytest.raises(Unbalanced):
            plan_settlement(_status("500", {ACCOUNT_A: "500"}), [], today=ON)

    def test_stale_unaccounted_amount(self):
        with pytest.raises(Unbalanced):
            plan_settlement(
                _status("700", {ACCOUNT_A: "200"}), [], FinalAction.FORGIVE_DEBT,
                unaccounted_amount=Decimal("400"), today=ON,
            )

    def test_forgive_debt(self):
        movements = plan_settlement(
            _status("500", {ACCOUNT_A: "200"}), [], FinalAction.FORGIVE_DEBT,
            unaccounted_amount=Decimal("300"), today=ON,
        )
        assert [(m.kind, m.amount) for m in movements] == [
            (MovementKind.DEBT_FORGIVEN, Decimal("300")),
            (MovementKind.FUND_RELEASED, Decimal("200")),
            (MovementKind.LIABILITY_CLOSED, Decimal("200")),
        ]
        released = movements[1]
        assert released.account_debit == Decimal("0")
        assert released.fund_reduction == Decimal("200")

    def test_erase_funds(self):
        movements = plan_settlement(
            _status("100", {ACCOUNT_A: "300", ACCOUNT_B: "100"}), [], FinalAction.ERASE_FUNDS,
            unaccounted_amount=Decimal("300"), today=ON,
        )
        assert [(m.kind, m.account_id, m.amount) for m in movements] == [
            (MovementKind.FUNDS_ERASED, ACCOUNT_A, Decimal("300")),
            (MovementKind.FUND_RELEASED, ACCOUNT_B, Decimal("100")),
            (MovementKind.LIABILITY_CLOSED, None, Decimal("100")),
        ]
        assert movements[0].account_debit == Decimal("300")

    def test_writeoff_capped_at_fund(self):
        movements = plan_settlement(
            _status("0", {ACCOUNT_A: "200"}),
            [_adj(AdjustmentType.EXPENSE_WRITEOFF, "250", ACCOUNT_A)],
            today=ON,
        )
        assert movements[0].amount == Decimal("200")
        assert movements[0].fund_reduction == Decimal("200")

    def test_convert_keeps_account_balance(self):
        movements = plan_settlement(
            _status("0", {ACCOUNT_A: "200"}),
            [_adj(AdjustmentType.CONVERT_TO_PERSONAL, "200", ACCOUNT_A)],
            today=ON,
        )
        assert movements[0].account_debit == Decimal("0")
        assert movements[0].fund_reduction == Decimal("200")

    def test_convert_from_account_without_funds(self):
        with pytest.raises(MissingAccount):
            plan_settlement(
                _status("0", {ACCOUNT_A: "200"}),
                [_adj(AdjustmentType.CONVERT_TO_PERSONAL, "200", ACCOUNT_B)],
                FinalAction.ERASE_FUNDS,
                today=ON,
            )

    def test_wizard_plan(self):
        wizard = SettlementWizard(_status("500", {}))
        wizard.add(_adj(AdjustmentType.REPAYMENT, "500"))
        wizard.require_resolution(None)
        movements = wizard.plan(today=ON)
        assert [m.kind for m in movements] == [MovementKind.REPAYMENT]
        assert movements[0].account_debit == Decimal("0")
