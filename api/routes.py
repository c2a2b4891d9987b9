"""API routes for the Hours Bank."""

from __future__ import annotations

import functools
from typing import Optional

from fastapi import APIRouter, Depends, Query

from hours_bank.config import get_settings
from hours_bank.models import (
    Adjustment,
    AdjustmentDirection,
    AdjustmentResult,
    Ledger,
    MonthlyCalculation,
    SegmentedCalculation,
    ValidationError,
    VersionRecord,
)
from hours_bank.parsers.hours_parser import parse_hours, parse_quantity
from hours_bank.service import HoursBank

from api.schemas import (
    AdjustmentRequest,
    AdjustmentResponse,
    AdjustmentSummary,
    CalculationResponse,
    CycleResponse,
    DeactivationRequest,
    DiffResponse,
    FieldChangeResponse,
    LedgerSummary,
    RecalculationRequest,
    SegmentResponse,
    VersionRecordResponse,
)

router = APIRouter(prefix="/api/v1")


@functools.lru_cache
def get_bank() -> HoursBank:
    """Process-wide bank; seeded from HOURS_BANK_FIXTURE_PATH when set."""
    settings = get_settings()
    if settings.fixture_path:
        return HoursBank.from_fixture(settings.fixture_path, settings)
    return HoursBank.in_memory(settings)


# ── Response builders ────────────────────────────────────────────


def _ledger_summary(ledger: Optional[Ledger]) -> Optional[LedgerSummary]:
    if ledger is None:
        return None
    return LedgerSummary(
        unit=ledger.unit.value,
        baseline=str(ledger.baseline),
        rollover_from_previous=str(ledger.rollover_from_previous),
        available_balance=str(ledger.available_balance),
        consumption=str(ledger.consumption),
        billed_requests=str(ledger.billed_requests),
        adjustments=str(ledger.adjustments),
        total_consumption=str(ledger.total_consumption),
        balance=str(ledger.balance),
        rollover_to_next=str(ledger.rollover_to_next),
        overage_amount=str(ledger.overage_amount),
        overage_value=float(ledger.overage_value),
        rate_used=float(ledger.rate_used) if ledger.rate_used is not None else None,
    )


def _calculation_response(calc: MonthlyCalculation) -> CalculationResponse:
    return CalculationResponse(
        id=calc.id,
        company_id=calc.company_id,
        month=calc.month,
        year=calc.year,
        version=calc.version,
        contract_kind=calc.contract_kind.value,
        is_period_end=calc.is_period_end,
        cycle_index=calc.cycle_index,
        hours=_ledger_summary(calc.hours),
        tickets=_ledger_summary(calc.tickets),
        amount_to_bill=float(calc.amount_to_bill),
        public_note=calc.public_note,
        warnings=list(calc.warnings),
        created_by=calc.created_by,
        created_at=calc.created_at.isoformat(),
    )


def _segment_response(seg: SegmentedCalculation) -> SegmentResponse:
    return SegmentResponse(
        allocation_id=seg.allocation_id,
        allocation_name=seg.allocation_name,
        percent=float(seg.percent),
        hours=_ledger_summary(seg.hours),
        tickets=_ledger_summary(seg.tickets),
        amount_to_bill=float(seg.amount_to_bill),
    )


def _adjustment_summary(adj: Adjustment) -> AdjustmentSummary:
    return AdjustmentSummary(
        id=adj.id,
        company_id=adj.company_id,
        month=adj.month,
        year=adj.year,
        direction=adj.direction.value,
        hours=str(adj.hours_delta) if adj.hours_delta is not None else None,
        tickets=float(adj.tickets_delta) if adj.tickets_delta is not None else None,
        note=adj.note,
        author=adj.author,
        active=adj.active,
        created_at=adj.created_at.isoformat(),
        deactivated_at=adj.deactivated_at.isoformat() if adj.deactivated_at else None,
        deactivated_by=adj.deactivated_by,
        deactivation_reason=adj.deactivation_reason,
    )


def _adjustment_response(result: AdjustmentResult) -> AdjustmentResponse:
    return AdjustmentResponse(
        adjustment=_adjustment_summary(result.adjustment),
        recalculated_months=result.recalculated_months,
        calculations=[_calculation_response(c) for c in result.calculations],
    )


def _record_response(record: VersionRecord) -> VersionRecordResponse:
    return VersionRecordResponse(
        id=record.id,
        calculation_id=record.calculation_id,
        from_version=record.from_version,
        to_version=record.to_version,
        change_kind=record.change_kind.value,
        reason=record.reason,
        author=record.author,
        created_at=record.created_at.isoformat(),
        before=record.before,
        after=record.after,
    )


# ── Endpoints ────────────────────────────────────────────────────


@router.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok"}


@router.post(
    "/companies/{company_id}/calculations/{year}/{month}",
    response_model=CalculationResponse,
)
async def compute(company_id: str, year: int, month: int, author: Optional[str] = None, bank: HoursBank = Depends(get_bank)):
    """Compute the month again, appending a new version."""
    return _calculation_response(await bank.compute(company_id, month, year, author=author))


@router.get(
    "/companies/{company_id}/calculations/{year}/{month}",
    response_model=CalculationResponse,
)
async def get_or_compute(company_id: str, year: int, month: int, bank: HoursBank = Depends(get_bank)):
    """Latest version of the month, computing it on first access."""
    return _calculation_response(await bank.get_or_compute(company_id, month, year))


@router.post(
    "/companies/{company_id}/calculations/{year}/{month}/recalculate",
    response_model=list[CalculationResponse],
)
async def recalculate(
    company_id: str,
    year: int,
    month: int,
    body: RecalculationRequest,
    bank: HoursBank = Depends(get_bank),
):
    """Force the cascade from this month through its period end."""
    results = await bank.adjustments.recalculate(company_id, month, year, author=body.author, reason=body.reason)
    return [_calculation_response(c) for c in results]


@router.get(
    "/companies/{company_id}/calculations/{year}/{month}/segments",
    response_model=list[SegmentResponse],
)
async def segments(company_id: str, year: int, month: int, bank: HoursBank = Depends(get_bank)):
    return [_segment_response(s) for s in await bank.segment(company_id, month, year)]


@router.get(
    "/companies/{company_id}/calculations/{year}/{month}/history",
    response_model=list[VersionRecordResponse],
)
async def history(company_id: str, year: int, month: int, bank: HoursBank = Depends(get_bank)):
    return [_record_response(r) for r in await bank.history(company_id, month, year)]


@router.post(
    "/companies/{company_id}/cycles/{year}/{month}/close",
    response_model=CycleResponse,
)
async def close_cycle(company_id: str, year: int, month: int, bank: HoursBank = Depends(get_bank)):
    params = await bank.close_cycle(company_id, month, year)
    closed = params.last_closed_period
    return CycleResponse(
        company_id=company_id,
        current_cycle_index=params.current_cycle_index,
        last_closed_period=f"{closed[0]:02d}/{closed[1]}" if closed else None,
    )


@router.post("/companies/{company_id}/adjustments", response_model=AdjustmentResponse)
async def create_adjustment(company_id: str, body: AdjustmentRequest, bank: HoursBank = Depends(get_bank)):
    """Record a manual adjustment and recompute through the period end."""
    try:
        direction = AdjustmentDirection(body.direction)
    except ValueError:
        raise ValidationError(
            f"Direction must be 'entry' or 'exit', got '{body.direction}'",
            operation="create_adjustment", company_id=company_id, field="direction",
        )

    result = await bank.create_adjustment(
        company_id,
        body.month,
        body.year,
        direction,
        body.note,
        author=body.author,
        hours_delta=parse_hours(body.hours) if body.hours else None,
        tickets_delta=parse_quantity(body.tickets) if body.tickets is not None else None,
    )
    return _adjustment_response(result)


@router.get("/companies/{company_id}/adjustments", response_model=list[AdjustmentSummary])
async def list_adjustments(
    company_id: str,
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = None,
    include_inactive: bool = False,
    bank: HoursBank = Depends(get_bank),
):
    adjustments = await bank.adjustments.list(company_id, month, year, include_inactive)
    return [_adjustment_summary(a) for a in adjustments]


@router.post("/adjustments/{adjustment_id}/deactivate", response_model=AdjustmentResponse)
async def deactivate_adjustment(adjustment_id: str, body: DeactivationRequest, bank: HoursBank = Depends(get_bank)):
    result = await bank.deactivate_adjustment(adjustment_id, body.reason, author=body.author)
    return _adjustment_response(result)


@router.get("/versions/diff", response_model=DiffResponse)
async def diff(first: str, second: str, bank: HoursBank = Depends(get_bank)):
    """Field-level differences between two version records."""
    result = await bank.diff(first, second)
    return DiffResponse(
        added=result.added,
        removed=result.removed,
        changed=[FieldChangeResponse(field=c.field, before=c.before, after=c.after) for c in result.changed],
    )
