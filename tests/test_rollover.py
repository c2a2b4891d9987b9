"""Tests for rollover and period-closure rules."""

import pytest
from decimal import Decimal
from datetime import date

from hours_bank.engine.rollover import (
    apply_closure,
    elapsed_months,
    is_period_end,
    monthly_rollover,
    months_through_period_end,
    next_cycle_index,
    next_month,
    previous_month,
)
from hours_bank.models import Duration, ValidationError


class TestMonthlyRollover:
    def test_half_of_positive_balance(self):
        assert monthly_rollover(Duration.from_hours(10), Decimal("50")) == Duration.from_hours(5)

    def test_negative_balance_carries_in_full(self):
        assert monthly_rollover(Duration.from_hours(-10), Decimal("50")) == Duration.from_hours(-10)

    def test_negative_balance_ignores_zero_percent(self):
        assert monthly_rollover(Duration(-1), 0) == Duration(-1)

    def test_floors_to_whole_minutes(self):
        assert monthly_rollover(Duration(7), 50) == Duration(3)

    def test_tickets_round_to_cents(self):
        assert monthly_rollover(Decimal("10.55"), 50) == Decimal("5.28")

    def test_negative_tickets_unchanged(self):
        assert monthly_rollover(Decimal("-3.5"), 10) == Decimal("-3.5")

    def test_percent_above_range(self):
        with pytest.raises(ValidationError):
            monthly_rollover(Duration(60), Decimal("101"))

    def test_percent_below_range(self):
        with pytest.raises(ValidationError):
            monthly_rollover(Duration(60), -1)

    def test_never_exceeds_balance(self):
        for minutes in range(0, 600, 37):
            for percent in (0, 1, 33, 50, 99, 100):
                result = monthly_rollover(Duration(minutes), percent)
                assert Duration(0) <= result <= Duration(minutes)


class TestIsPeriodEnd:
    def test_quarterly_from_january(self):
        start = date(2024, 1, 1)
        ends = [m for m in range(1, 13) if is_period_end(m, 2024, start, 3)]
        assert ends == [3, 6, 9, 12]

    def test_continues_into_next_year(self):
        assert is_period_end(3, 2025, date(2024, 1, 1), 3)

    def test_semester_example(self):
        start = date(2024, 1, 1)
        assert not is_period_end(3, 2024, start, 6)
        assert is_period_end(6, 2024, start, 6)

    def test_start_mid_year(self):
        # Nov 2023 + 6 months ends in Apr 2024
        assert is_period_end(4, 2024, date(2023, 11, 1), 6)

    def test_before_contract_start(self):
        assert not is_period_end(10, 2023, date(2023, 11, 1), 1)

    def test_monthly_cycle(self):
        assert all(is_period_end(m, 2024, date(2024, 1, 1), 1) for m in range(1, 13))

    def test_invalid_month(self):
        with pytest.raises(ValidationError):
            is_period_end(13, 2024, date(2024, 1, 1), 3)

    def test_invalid_cycle(self):
        with pytest.raises(ValidationError):
            is_period_end(1, 2024, date(2024, 1, 1), 0)

    def test_elapsed_counts_start_month(self):
        assert elapsed_months(1, 2024, date(2024, 1, 1)) == 1
        assert elapsed_months(1, 2025, date(2024, 1, 1)) == 13


class TestApplyClosure:
    def test_zero_out_without_special_rollover(self):
        result = apply_closure(Duration.from_hours(10), False, 1, 1)
        assert result.final_balance == Duration()
        assert result.rollover_out == Duration()
        assert result.force_overage is False

    def test_special_rollover_carries_balance(self):
        result = apply_closure(Duration.from_hours(10), True, 1, 3)
        assert result.rollover_out == Duration.from_hours(10)
        assert result.final_balance == Duration.from_hours(10)
        assert result.force_overage is False

    def test_special_rollover_zeroes_on_last_cycle(self):
        result = apply_closure(Duration.from_hours(10), True, 3, 3)
        assert result.rollover_out == Duration()
        assert result.final_balance == Duration()

    def test_negative_forces_overage(self):
        for special, index, cycles in ((False, 1, 1), (True, 1, 3), (True, 3, 3)):
            result = apply_closure(Duration(-90), special, index, cycles)
            assert result.force_overage is True
            assert result.final_balance == Duration(-90)
            assert result.rollover_out == Duration()

    def test_tickets_zero_is_decimal(self):
        result = apply_closure(Decimal("4"), False, 1, 1)
        assert result.rollover_out == Decimal("0")
        assert isinstance(result.rollover_out, Decimal)

    def test_invalid_counters(self):
        with pytest.raises(ValidationError) as exc_info:
            apply_closure(Duration(0), True, 0, 0)
        assert len(exc_info.value.errors) == 2


class TestCycleNavigation:
    def test_next_cycle_index(self):
        assert next_cycle_index(1, 3) == 2
        assert next_cycle_index(3, 3) == 1
        assert next_cycle_index(1, 1) == 1

    def test_month_steps(self):
        assert next_month(12, 2024) == (1, 2025)
        assert previous_month(1, 2025) == (12, 2024)
        assert next_month(5, 2024) == (6, 2024)

    def test_months_to_period_end(self):
        assert months_through_period_end(2, 2024, date(2024, 1, 1), 3) == [(2, 2024), (3, 2024)]

    def test_period_end_month_alone(self):
        assert months_through_period_end(3, 2024, date(2024, 1, 1), 3) == [(3, 2024)]

    def test_crosses_year_boundary(self):
        months = months_through_period_end(12, 2024, date(2024, 6, 1), 6)
        assert months == [(12, 2024), (1, 2025), (2, 2025), (3, 2025), (4, 2025), (5, 2025)]
