"""Allocation segmentation — proportional split of a consolidated month.

Business Rules:
- Active allocations must sum to exactly 100%; otherwise nothing is produced.
- Every ledger field is scaled by percent/100:
    Duration fields       -> floored to whole minutes (never rounds up)
    ticket / money fields -> rounded to 2 decimals (HALF_UP)
- The billing rate is a price, not a quantity, so it is copied unscaled.
- Segments are derived data, recomputed on demand and never persisted.
"""

from __future__ import annotations

from dataclasses import fields
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from hours_bank.models import (
    LEDGER_AMOUNT_FIELDS,
    LEDGER_MONEY_FIELDS,
    Allocation,
    AllocationCheck,
    Duration,
    Ledger,
    MonthlyCalculation,
    PercentSumInvalidError,
    SegmentedCalculation,
    ValidationError,
)

_HUNDRED = Decimal("100")
_CENT = Decimal("0.01")


def _active(allocations: Iterable[Allocation]) -> list[Allocation]:
    return [a for a in allocations if a.active]


def _percent_sum(allocations: Iterable[Allocation]) -> Decimal:
    return sum((Decimal(a.baseline_share_percent) for a in allocations), Decimal("0"))


def validate_sum(allocations: Iterable[Allocation]) -> None:
    """Raise PercentSumInvalidError unless active shares sum to exactly 100."""
    total = _percent_sum(_active(allocations))
    if total != _HUNDRED:
        raise PercentSumInvalidError(total, operation="validate_sum")


def validate_allocations(allocations: Iterable[Allocation]) -> AllocationCheck:
    """Non-raising check of an allocation set, collecting every problem."""
    active = _active(allocations)
    errors: list[str] = []

    if not active:
        errors.append("No active allocations configured")

    for alloc in active:
        if not alloc.name or not alloc.name.strip():
            errors.append(f"Allocation {alloc.id}: name is required")
        if not Decimal("0") <= Decimal(alloc.baseline_share_percent) <= _HUNDRED:
            errors.append(
                f"Allocation '{alloc.name}': percent must be 0-100, got {alloc.baseline_share_percent}"
            )

    total = _percent_sum(active)
    if active and total != _HUNDRED:
        errors.append(f"Allocation percentages must sum to 100, got {total}")

    return AllocationCheck(valid=not errors, errors=errors, percent_sum=total)


def _scale(value, factor: Decimal):
    if isinstance(value, Duration):
        return value.scale_floor(factor)
    return (value * factor).quantize(_CENT, ROUND_HALF_UP)


def _scale_ledger(ledger: Optional[Ledger], factor: Decimal) -> Optional[Ledger]:
    if ledger is None:
        return None
    values = {}
    for f in fields(ledger):
        value = getattr(ledger, f.name)
        if f.name in LEDGER_AMOUNT_FIELDS or f.name in LEDGER_MONEY_FIELDS:
            value = _scale(value, factor)
        values[f.name] = value
    return type(ledger)(**values)


def segment_one(calculation: MonthlyCalculation, allocation: Allocation) -> SegmentedCalculation:
    """Scale one consolidated calculation by a single allocation's share."""
    percent = Decimal(allocation.baseline_share_percent)
    factor = percent / _HUNDRED
    return SegmentedCalculation(
        calculation_id=calculation.id,
        allocation_id=allocation.id,
        allocation_name=allocation.name,
        percent=percent,
        hours=_scale_ledger(calculation.hours, factor),
        tickets=_scale_ledger(calculation.tickets, factor),
        amount_to_bill=_scale(calculation.amount_to_bill, factor),
    )


def segment(
    calculation: MonthlyCalculation,
    allocations: Iterable[Allocation],
) -> list[SegmentedCalculation]:
    """Split a consolidated calculation across its company's active allocations."""
    active = _active(allocations)
    if not active:
        raise ValidationError(
            "No active allocations configured",
            operation="segment",
            company_id=calculation.company_id,
            month=calculation.month,
            year=calculation.year,
        )
    total = _percent_sum(active)
    if total != _HUNDRED:
        raise PercentSumInvalidError(
            total,
            operation="segment",
            company_id=calculation.company_id,
            month=calculation.month,
            year=calculation.year,
        )
    return [segment_one(calculation, alloc) for alloc in active]


def _sum_field(values: list, template):
    if isinstance(template, Duration):
        return sum(values, Duration())
    return sum(values, Decimal("0"))


def _within(total, expected, segments: int, duration_tolerance: int, amount_tolerance: Decimal) -> bool:
    # each floor or round drifts by less than one unit
    units = max(1, segments - 1)
    if isinstance(expected, Duration):
        return abs((total - expected).minutes) <= duration_tolerance * units
    return abs(total - expected) <= amount_tolerance * units


def verify_segmented_sum(
    consolidated: MonthlyCalculation,
    segmented: list[SegmentedCalculation],
    duration_tolerance: int = 1,
    amount_tolerance: Decimal = _CENT,
) -> bool:
    """Re-sum every segmented field and compare it with the consolidated one."""
    if not segmented:
        return False
    n = len(segmented)

    for source in consolidated.ledgers:
        parts = [s.ledger(source.unit) for s in segmented]
        if any(p is None for p in parts):
            return False
        for name in LEDGER_AMOUNT_FIELDS + LEDGER_MONEY_FIELDS:
            expected = getattr(source, name)
            total = _sum_field([getattr(p, name) for p in parts], expected)
            if not _within(total, expected, n, duration_tolerance, amount_tolerance):
                return False

    billed = sum((s.amount_to_bill for s in segmented), Decimal("0"))
    return _within(billed, consolidated.amount_to_bill, n, duration_tolerance, amount_tolerance)
