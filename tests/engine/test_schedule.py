from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from loanledger.engine.schedule import apply_extra_payment, compute_schedule, first_due_date, regenerate_schedule
from loanledger.exceptions import InvalidAmount, InvalidTerm
from loanledger.models.impact import ExtraPaymentStrategy
from loanledger.models.liability import InterestType, LiabilityStatus, ScheduleStatus, new_id


def _complete(liability, count):
    """Mark the first ``count`` installments paid and take their principal off the balance."""
    done = list(liability.installments[:count])
    paid = sum(i.principal_component for i in done)
    installments = tuple(
        replace(i, status=ScheduleStatus.COMPLETED) if n < count else i
        for n, i in enumerate(liability.installments)
    )
    return replace(liability, installments=installments, current_balance=liability.current_balance - paid)


class TestComputeSchedule:
    def test_canonical_schedule(self):
        rows = compute_schedule(
            new_id(), Decimal("12000"), Decimal("1066.19"), Decimal("12"), date(2024, 2, 1), date(2025, 1, 1),
        )
        assert len(rows) == 12
        assert sum(r.principal_component for r in rows) == Decimal("12000.00")
        assert abs(sum(r.amount for r in rows) - Decimal("1066.19") * 12) < Decimal("0.50")
        assert [r.payment_number for r in rows] == list(range(1, 13))
        assert all(r.total_payments == 12 for r in rows)
        assert rows[0].due_date == date(2024, 2, 1)
        assert rows[-1].due_date == date(2025, 1, 1)
        assert rows[-1].remaining_balance == Decimal("0")
        assert all(r.status == ScheduleStatus.PENDING for r in rows)

    def test_month_end_anchor_does_not_drift(self):
        rows = compute_schedule(
            new_id(), Decimal("300"), Decimal("100"), Decimal("0"), date(2024, 1, 31), date(2024, 3, 31),
        )
        assert [r.due_date for r in rows] == [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31)]

    def test_stops_early_when_retired(self):
        rows = compute_schedule(
            new_id(), Decimal("12000"), Decimal("3000"), Decimal("12"), date(2024, 2, 1), date(2025, 1, 1),
        )
        assert len(rows) == 5
        assert sum(r.principal_component for r in rows) == Decimal("12000.00")

    def test_capped_periods_absorb_remainder(self):
        rows = compute_schedule(
            new_id(), Decimal("12000"), Decimal("1066.19"), Decimal("12"), date(2024, 2, 1), date(2025, 1, 1),
            max_periods=6,
        )
        assert len(rows) == 6
        assert sum(r.principal_component for r in rows) == Decimal("12000.00")

    def test_no_interest(self):
        rows = compute_schedule(
            new_id(), Decimal("1200"), Decimal("100"), Decimal("12"), date(2024, 2, 1), date(2025, 1, 1),
            interest_type=InterestType.NONE,
        )
        assert all(r.interest_component == 0 for r in rows)
        assert all(r.amount == Decimal("100.00") for r in rows)

    def test_fixed_interest_is_flat(self):
        rows = compute_schedule(
            new_id(), Decimal("12000"), Decimal("1120"), Decimal("12"), date(2024, 2, 1), date(2025, 1, 1),
            interest_type=InterestType.FIXED,
        )
        assert all(r.interest_component == Decimal("120.00") for r in rows)
        assert sum(r.principal_component for r in rows) == Decimal("12000.00")

    def test_nothing_owed(self):
        assert compute_schedule(
            new_id(), Decimal("0"), Decimal("100"), Decimal("12"), date(2024, 2, 1), date(2025, 1, 1),
        ) == []

    def test_invalid_inputs(self):
        with pytest.raises(InvalidAmount):
            compute_schedule(new_id(), Decimal("1000"), Decimal("0"), Decimal("12"), date(2024, 2, 1), date(2025, 1, 1))
        with pytest.raises(InvalidTerm):
            compute_schedule(new_id(), Decimal("1000"), Decimal("100"), Decimal("12"), date(2024, 2, 1), date(2024, 1, 1))


class TestFirstDueDate:
    def test_before_any_payment_anchors_to_start(self, canonical_liability):
        assert first_due_date(canonical_liability, date(2024, 6, 15)) == date(2024, 2, 1)

    def test_after_payments_anchors_to_today(self, canonical_liability):
        paid = _complete(canonical_liability, 2)
        assert first_due_date(paid, date(2024, 3, 15)) == date(2024, 4, 1)

    def test_no_pending_left(self, canonical_liability):
        paid = _complete(canonical_liability, 12)
        assert first_due_date(paid, date(2025, 1, 10)) == date(2025, 2, 10)


class TestRegenerateSchedule:
    def test_canonical_fixture(self, canonical_liability):
        assert len(canonical_liability.installments) == 12
        assert canonical_liability.installments[0].due_date == date(2024, 2, 1)
        assert sum(i.principal_component for i in canonical_liability.installments) == Decimal("12000.00")

    def test_completed_rows_untouched(self, canonical_liability):
        paid = _complete(canonical_liability, 2)
        regenerated = regenerate_schedule(paid, payment=Decimal("1500"), today=date(2024, 3, 15))

        assert regenerated.completed == paid.completed
        pending = regenerated.pending
        assert pending[0].payment_number == 3
        assert pending[0].due_date == date(2024, 4, 1)
        assert all(i.amount == Decimal("1500.00") for i in pending[:-1])
        assert sum(i.principal_component for i in pending) == paid.current_balance
        assert regenerated.periodical_payment == Decimal("1500.00")

    def test_replaces_all_pending_rows(self, canonical_liability):
        regenerated = regenerate_schedule(canonical_liability, annual_rate_pct=Decimal("0"), today=date(2024, 1, 1))
        old_ids = {i.id for i in canonical_liability.installments}
        assert not old_ids & {i.id for i in regenerated.installments}
        assert all(i.interest_component == 0 for i in regenerated.installments)
        assert sum(i.principal_component for i in regenerated.installments) == Decimal("12000.00")
        assert regenerated.interest_rate_apy == Decimal("0")

    def test_overdue_rows_kept_and_excluded(self, canonical_liability):
        first = canonical_liability.installments[0]
        overdue = replace(
            canonical_liability,
            installments=(replace(first, status=ScheduleStatus.OVERDUE),) + canonical_liability.installments[1:],
        )
        regenerated = regenerate_schedule(overdue, today=date(2024, 2, 10))

        assert regenerated.installments[0] == replace(first, status=ScheduleStatus.OVERDUE)
        pending = regenerated.pending
        assert pending[0].due_date == date(2024, 3, 1)
        assert pending[0].payment_number == 2
        assert sum(i.principal_component for i in pending) == Decimal("12000.00") - first.principal_component

    def test_missing_end_date_is_derived(self, canonical_liability):
        open_ended = replace(canonical_liability, targeted_payoff_date=None)
        regenerated = regenerate_schedule(open_ended, payment=Decimal("2000"), today=date(2024, 1, 1))
        assert len(regenerated.pending) == 7
        assert regenerated.targeted_payoff_date == date(2024, 8, 1)


class TestApplyExtraPayment:
    def test_reduce_payment_keeps_end_date(self, canonical_liability):
        updated = apply_extra_payment(
            canonical_liability, Decimal("6000"), ExtraPaymentStrategy.REDUCE_PAYMENT, today=date(2024, 1, 1),
        )
        assert updated.current_balance == Decimal("6000.00")
        assert updated.periodical_payment == Decimal("533.09")
        assert updated.targeted_payoff_date == date(2025, 1, 1)
        assert len(updated.pending) == 12

    def test_reduce_term_keeps_payment(self, canonical_liability):
        updated = apply_extra_payment(
            canonical_liability, Decimal("6000"), ExtraPaymentStrategy.REDUCE_TERM, today=date(2024, 1, 1),
        )
        assert updated.periodical_payment == Decimal("1066.19")
        assert updated.targeted_payoff_date == date(2024, 7, 1)
        assert len(updated.pending) == 6

    def test_reduce_principal_keeps_terms(self, canonical_liability):
        updated = apply_extra_payment(
            canonical_liability, Decimal("6000"), ExtraPaymentStrategy.REDUCE_PRINCIPAL, today=date(2024, 1, 1),
        )
        assert updated.periodical_payment == Decimal("1066.19")
        assert updated.targeted_payoff_date == date(2025, 1, 1)
        assert len(updated.pending) < 12
        assert sum(i.principal_component for i in updated.pending) == Decimal("6000.00")

    def test_skip_payments_prepays_installments(self, canonical_liability):
        first, second = canonical_liability.installments[:2]
        updated = apply_extra_payment(
            canonical_liability, Decimal("2132.38"), ExtraPaymentStrategy.SKIP_PAYMENTS, today=date(2024, 1, 1),
        )
        prepaid = [i for i in updated.installments if i.status == ScheduleStatus.COMPLETED]
        assert [i.id for i in prepaid] == [first.id, second.id]
        assert all(i.notes["prepaid"] for i in prepaid)
        assert len(updated.pending) == 10
        assert updated.current_balance == Decimal("12000") - first.principal_component - second.principal_component

    def test_skip_leftover_reduces_principal(self, canonical_liability):
        first, second = canonical_liability.installments[:2]
        updated = apply_extra_payment(
            canonical_liability, Decimal("2500"), ExtraPaymentStrategy.SKIP_PAYMENTS,
            today=date(2024, 1, 1), payments_to_skip=2,
        )
        assert len(updated.completed) == 2
        expected = Decimal("12000") - first.principal_component - second.principal_component - Decimal("367.62")
        assert updated.current_balance == expected

    def test_skip_more_than_pending(self, canonical_liability):
        with pytest.raises(InvalidAmount):
            apply_extra_payment(
                canonical_liability, Decimal("12000"), ExtraPaymentStrategy.SKIP_PAYMENTS,
                today=date(2024, 1, 1), payments_to_skip=13,
            )

    def test_skip_needs_a_whole_installment(self, canonical_liability):
        with pytest.raises(InvalidAmount):
            apply_extra_payment(
                canonical_liability, Decimal("500"), ExtraPaymentStrategy.SKIP_PAYMENTS, today=date(2024, 1, 1),
            )

    def test_paying_everything_closes_the_liability(self, canonical_liability):
        updated = apply_extra_payment(
            canonical_liability, Decimal("12000"), ExtraPaymentStrategy.REDUCE_PRINCIPAL, today=date(2024, 1, 1),
        )
        assert updated.status == LiabilityStatus.PAID_OFF
        assert updated.pending == []

    @pytest.mark.parametrize("amount", ["0", "-10", "12000.01"])
    def test_invalid_amount(self, canonical_liability, amount):
        with pytest.raises(InvalidAmount):
            apply_extra_payment(
                canonical_liability, Decimal(amount), ExtraPaymentStrategy.REDUCE_TERM, today=date(2024, 1, 1),
            )
