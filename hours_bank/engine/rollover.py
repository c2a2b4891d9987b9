"""Rollover and period-closure rules.

Business Rules:
- Monthly rollover of a non-negative balance carries `percent` of it forward
  (hours floored to whole minutes, tickets rounded to 2 decimals).
- A negative balance always carries forward in full, whatever the percent.
- A period (cycle) is `cycle_length` months counted from the contract start
  month; closure rules run on its last month:
    negative balance            -> keep it, force overage, carry nothing
    positive, no special rule   -> zero out
    positive, special rule      -> carry in full until the cycle index
                                   reaches cycles_until_zeroing, then zero out

All functions here are pure.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, ROUND_HALF_UP

from hours_bank.models import (
    Amount,
    ClosureResult,
    Duration,
    ValidationError,
    is_negative,
)

_HUNDRED = Decimal("100")
_CENT = Decimal("0.01")


def monthly_rollover(balance: Amount, percent: Decimal | int) -> Amount:
    """Portion of a month's balance carried into the next month."""
    percent = Decimal(percent)
    if not Decimal("0") <= percent <= _HUNDRED:
        raise ValidationError(
            f"Rollover percent must be 0-100, got {percent}",
            operation="monthly_rollover",
            field="monthly_rollover_percent",
        )

    if is_negative(balance):
        return balance

    factor = percent / _HUNDRED
    if isinstance(balance, Duration):
        return balance.scale_floor(factor)
    return (balance * factor).quantize(_CENT, ROUND_HALF_UP)


def elapsed_months(month: int, year: int, contract_start: date) -> int:
    """Months since contract start, counting both the start and current month."""
    return (year - contract_start.year) * 12 + (month - contract_start.month) + 1


def is_period_end(month: int, year: int, contract_start: date, cycle_length: int) -> bool:
    """True when (month, year) is the last month of a contractual period."""
    errors = []
    if not 1 <= month <= 12:
        errors.append(f"Month must be 1-12, got {month}")
    if not 1 <= cycle_length <= 12:
        errors.append(f"Cycle length must be 1-12, got {cycle_length}")
    if errors:
        raise ValidationError(errors, operation="is_period_end", month=month, year=year)

    elapsed = elapsed_months(month, year, contract_start)
    return elapsed > 0 and elapsed % cycle_length == 0


def apply_closure(
    balance: Amount,
    has_special_rollover: bool,
    current_cycle_index: int,
    cycles_until_zeroing: int,
) -> ClosureResult:
    """Apply end-of-period rules to the closing balance."""
    errors = []
    if current_cycle_index < 1:
        errors.append(f"Current cycle index must be >= 1, got {current_cycle_index}")
    if cycles_until_zeroing < 1:
        errors.append(f"Cycles until zeroing must be >= 1, got {cycles_until_zeroing}")
    if errors:
        raise ValidationError(errors, operation="apply_closure")

    zero = Duration() if isinstance(balance, Duration) else Decimal("0")

    if is_negative(balance):
        return ClosureResult(final_balance=balance, force_overage=True, rollover_out=zero)

    if has_special_rollover and current_cycle_index < cycles_until_zeroing:
        return ClosureResult(final_balance=balance, force_overage=False, rollover_out=balance)

    return ClosureResult(final_balance=zero, force_overage=False, rollover_out=zero)


def next_cycle_index(current_cycle_index: int, cycles_until_zeroing: int) -> int:
    """Cycle index after a period closes; restarts at 1 once zeroing happened."""
    if current_cycle_index >= cycles_until_zeroing:
        return 1
    return current_cycle_index + 1


def previous_month(month: int, year: int) -> tuple[int, int]:
    if month == 1:
        return 12, year - 1
    return month - 1, year


def next_month(month: int, year: int) -> tuple[int, int]:
    if month == 12:
        return 1, year + 1
    return month + 1, year


def months_through_period_end(
    month: int,
    year: int,
    contract_start: date,
    cycle_length: int,
) -> list[tuple[int, int]]:
    """Ordered (month, year) list from the given month up to its period end, inclusive."""
    months = [(month, year)]
    current = (month, year)
    # a period never spans more than 12 months
    while not is_period_end(current[0], current[1], contract_start, cycle_length) and len(months) < 12:
        current = next_month(*current)
        months.append(current)
    return months
