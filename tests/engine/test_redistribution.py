from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from conftest import make_liability
from loanledger.engine.redistribution import (
    change_installment_amount,
    change_installment_date,
    skip_installment,
    split_evenly,
)
from loanledger.exceptions import InvalidAmount, InvalidInstallmentState, NotFound, OutOfRange
from loanledger.models.liability import AmountChangePolicy, ScheduleStatus, SkipPolicy, new_id


def _amounts(liability):
    return [i.amount for i in liability.installments if i.counts_toward_total]


class TestSplitEvenly:
    def test_even_split(self):
        assert split_evenly(Decimal("100"), 4) == [Decimal("25")] * 4

    def test_remainder_on_last(self):
        assert split_evenly(Decimal("100"), 3) == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]

    def test_shares_sum_exactly(self):
        shares = split_evenly(Decimal("1066.19"), 7)
        assert sum(shares) == Decimal("1066.19")
        assert len(set(shares[:-1])) == 1


class TestSkip:
    def test_spread_across_four(self):
        liability = make_liability(["100", "250", "250", "250", "250"])
        result = skip_installment(liability, liability.installments[0].id, SkipPolicy.SPREAD_ACROSS)

        assert _amounts(result.liability) == [Decimal("275")] * 4
        assert result.liability.scheduled_total == Decimal("1100")
        assert result.updated_count == 5

    def test_spread_remainder_lands_on_last(self):
        liability = make_liability(["100", "200", "200", "200"])
        result = skip_installment(liability, liability.installments[0].id, SkipPolicy.SPREAD_ACROSS)
        assert _amounts(result.liability) == [Decimal("233.33"), Decimal("233.33"), Decimal("233.34")]

    def test_spread_only_over_later_installments(self):
        liability = make_liability(["250", "100", "250", "250"])
        result = skip_installment(liability, liability.installments[1].id, SkipPolicy.SPREAD_ACROSS)
        assert _amounts(result.liability) == [Decimal("250"), Decimal("300"), Decimal("300")]

    def test_add_to_next(self):
        liability = make_liability(["100", "250", "250"])
        result = skip_installment(liability, liability.installments[0].id, SkipPolicy.ADD_TO_NEXT)

        skipped = result.liability.installments[0]
        assert skipped.status == ScheduleStatus.CANCELLED
        assert skipped.notes["skipped"] is True
        assert _amounts(result.liability) == [Decimal("350"), Decimal("250")]
        assert result.updated_count == 2

    def test_add_to_end(self, canonical_liability):
        first = canonical_liability.installments[0]
        result = skip_installment(canonical_liability, first.id, SkipPolicy.ADD_TO_END)

        appended = result.liability.installments[-1]
        assert appended.amount == first.amount
        assert appended.due_date == date(2025, 2, 1)
        assert appended.payment_number == 13
        assert appended.notes["original_schedule_id"] == str(first.id)
        assert result.liability.scheduled_total == canonical_liability.scheduled_total

    def test_add_to_next_on_last_appends(self):
        liability = make_liability(["250", "250"])
        result = skip_installment(liability, liability.installments[-1].id, SkipPolicy.ADD_TO_NEXT)
        assert len(result.liability.installments) == 3
        assert result.liability.scheduled_total == Decimal("500")

    @pytest.mark.parametrize("policy", list(SkipPolicy))
    def test_total_is_preserved(self, canonical_liability, policy):
        target = canonical_liability.installments[4]
        result = skip_installment(canonical_liability, target.id, policy)
        assert result.liability.scheduled_total == canonical_liability.scheduled_total

    def test_completed_cannot_be_skipped(self, canonical_liability):
        first = canonical_liability.installments[0]
        paid = replace(
            canonical_liability,
            installments=(replace(first, status=ScheduleStatus.COMPLETED),) + canonical_liability.installments[1:],
        )
        with pytest.raises(InvalidInstallmentState):
            skip_installment(paid, first.id, SkipPolicy.ADD_TO_NEXT)

    def test_unknown_installment(self, canonical_liability):
        with pytest.raises(NotFound):
            skip_installment(canonical_liability, new_id(), SkipPolicy.ADD_TO_END)

    def test_completed_rows_unchanged(self, canonical_liability):
        first = canonical_liability.installments[0]
        done = replace(first, status=ScheduleStatus.COMPLETED)
        paid = replace(canonical_liability, installments=(done,) + canonical_liability.installments[1:])
        result = skip_installment(paid, paid.installments[1].id, SkipPolicy.SPREAD_ACROSS)
        assert result.liability.installments[0] == done


class TestChangeAmount:
    def test_one_time(self):
        liability = make_liability(["250", "250", "250"])
        result = change_installment_amount(
            liability, liability.installments[1].id, Decimal("400"), AmountChangePolicy.ONE_TIME,
        )
        assert _amounts(result.liability) == [Decimal("250"), Decimal("400"), Decimal("250")]
        assert result.liability.installments[1].notes["original_amount"] == "250"
        assert result.liability.scheduled_total == liability.scheduled_total + Decimal("150")
        assert result.updated_count == 1

    def test_update_all_from_here_on(self):
        liability = make_liability(["250"] * 5)
        result = change_installment_amount(
            liability, liability.installments[2].id, Decimal("300"), AmountChangePolicy.UPDATE_ALL,
        )
        assert _amounts(result.liability) == [Decimal("250"), Decimal("250")] + [Decimal("300")] * 3
        assert result.updated_count == 3

    def test_add_to_next_moves_delta(self):
        liability = make_liability(["250", "250", "250"])
        result = change_installment_amount(
            liability, liability.installments[0].id, Decimal("300"), AmountChangePolicy.ADD_TO_NEXT,
        )
        assert _amounts(result.liability) == [Decimal("250"), Decimal("300"), Decimal("250")]
        assert result.liability.scheduled_total == liability.scheduled_total + Decimal("50")

    def test_add_to_next_needs_a_next(self):
        liability = make_liability(["250", "250"])
        with pytest.raises(InvalidInstallmentState):
            change_installment_amount(
                liability, liability.installments[-1].id, Decimal("300"), AmountChangePolicy.ADD_TO_NEXT,
            )

    def test_add_to_next_cannot_zero_next(self):
        liability = make_liability(["500", "100"])
        with pytest.raises(InvalidAmount):
            change_installment_amount(
                liability, liability.installments[0].id, Decimal("350"), AmountChangePolicy.ADD_TO_NEXT,
            )

    def test_non_positive_amount(self):
        liability = make_liability(["250", "250"])
        with pytest.raises(InvalidAmount):
            change_installment_amount(
                liability, liability.installments[0].id, Decimal("0"), AmountChangePolicy.ONE_TIME,
            )

    def test_principal_follows_amount(self, canonical_liability):
        target = canonical_liability.installments[0]
        result = change_installment_amount(
            canonical_liability, target.id, Decimal("1500"), AmountChangePolicy.ONE_TIME,
        )
        changed = result.liability.installments[0]
        assert changed.interest_component == target.interest_component
        assert changed.principal_component == Decimal("1500") - target.interest_component


class TestChangeDate:
    def test_move_within_bounds(self):
        liability = make_liability(["250", "250", "250"])
        target = liability.installments[0]
        result = change_installment_date(liability, target.id, date(2024, 2, 20))

        moved = result.liability.installment(target.id)
        assert moved.due_date == date(2024, 2, 20)
        assert moved.notes["original_due_date"] == "2024-02-01"
        assert moved.notes["postponed"] is True
        assert result.liability.scheduled_total == liability.scheduled_total

    def test_keeps_first_original_date(self):
        liability = make_liability(["250", "250", "250"])
        target = liability.installments[0]
        once = change_installment_date(liability, target.id, date(2024, 2, 20)).liability
        twice = change_installment_date(once, target.id, date(2024, 2, 25)).liability
        assert twice.installment(target.id).notes["original_due_date"] == "2024-02-01"

    def test_reorders_schedule(self):
        liability = make_liability(["250", "250", "250"])
        target = liability.installments[0]
        result = change_installment_date(liability, target.id, date(2024, 3, 15))
        assert [i.due_date for i in result.liability.installments] == [
            date(2024, 3, 1), date(2024, 3, 15), date(2024, 4, 1),
        ]

    def test_before_start(self):
        liability = make_liability(["250", "250"])
        with pytest.raises(OutOfRange):
            change_installment_date(liability, liability.installments[0].id, date(2023, 12, 31))

    def test_after_payoff(self):
        liability = make_liability(["250", "250"])
        with pytest.raises(OutOfRange):
            change_installment_date(liability, liability.installments[0].id, date(2024, 3, 2))
