"""Manual adjustments and the forward recomputation cascade.

An adjustment changes one month's consumption. Because every month's
rollover feeds the next, the adjusted month and every following month up to
its period end are recomputed, one at a time, in calendar order. Submissions
for the same company share the calculator's lock with plain computes, so no
two writers race for the same version; different companies proceed in parallel.

A failure mid-cascade leaves the months already recomputed in place; calling
`recalculate` from the failed month completes the chain.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from hours_bank.config import Settings, get_settings
from hours_bank.engine.calculator import MonthlyCalculator
from hours_bank.engine.rollover import months_through_period_end
from hours_bank.engine.validator import validate_adjustment, validate_deactivation
from hours_bank.models import (
    Adjustment,
    AdjustmentDirection,
    AdjustmentResult,
    CalculationNotFoundError,
    ChangeKind,
    Duration,
    MonthlyCalculation,
    NotFoundError,
    ValidationError,
)
from hours_bank.parameters import ParameterResolver
from hours_bank.stores import AdjustmentStore, CalculationStore

logger = logging.getLogger(__name__)


class AdjustmentManager:
    def __init__(
        self,
        calculator: MonthlyCalculator,
        parameters: ParameterResolver,
        calculations: CalculationStore,
        adjustments: AdjustmentStore,
        settings: Optional[Settings] = None,
    ) -> None:
        self._calculator = calculator
        self._parameters = parameters
        self._calculations = calculations
        self._adjustments = adjustments
        self._settings = settings or get_settings()

    def lock_for(self, company_id: str) -> asyncio.Lock:
        return self._calculator.lock_for(company_id)

    async def create(
        self,
        company_id: str,
        month: int,
        year: int,
        direction: AdjustmentDirection,
        note: str,
        author: Optional[str] = None,
        hours_delta: Optional[Duration] = None,
        tickets_delta: Optional[Decimal] = None,
    ) -> AdjustmentResult:
        """Record an adjustment against an already computed month and cascade."""
        author = author or self._settings.system_author
        params = await self._parameters.resolve(company_id)
        validate_adjustment(
            params.contract_kind,
            hours_delta,
            tickets_delta,
            note,
            self._settings.min_note_length,
            company_id=company_id,
            month=month,
            year=year,
        )

        async with self.lock_for(company_id):
            if await self._calculations.latest(company_id, month, year) is None:
                raise CalculationNotFoundError(
                    "No calculation exists for this month; compute it before adjusting",
                    operation="create_adjustment",
                    company_id=company_id,
                    month=month,
                    year=year,
                )

            adjustment = Adjustment(
                company_id=company_id,
                month=month,
                year=year,
                direction=direction,
                note=note.strip(),
                author=author,
                hours_delta=abs(hours_delta) if hours_delta is not None else None,
                tickets_delta=abs(tickets_delta) if tickets_delta is not None else None,
            )
            await self._adjustments.add(adjustment)
            logger.info(
                "Adjustment %s (%s) recorded for %s %02d/%d by %s",
                adjustment.id, direction.value, company_id, month, year, author,
            )

            calculations = await self._cascade(
                company_id, month, year, author,
                reason=adjustment.note, first_kind=ChangeKind.ADJUSTMENT,
            )

        return AdjustmentResult(
            adjustment=adjustment,
            recalculated_months=len(calculations),
            calculations=calculations,
        )

    async def deactivate(
        self,
        adjustment_id: str,
        reason: str,
        author: Optional[str] = None,
    ) -> AdjustmentResult:
        """Soft-deactivate an adjustment and re-run the cascade from its month."""
        author = author or self._settings.system_author
        adjustment = await self.get(adjustment_id)
        validate_deactivation(reason, self._settings.min_note_length, company_id=adjustment.company_id)

        async with self.lock_for(adjustment.company_id):
            # re-read under the lock
            adjustment = await self.get(adjustment_id)
            if not adjustment.active:
                raise ValidationError(
                    f"Adjustment {adjustment_id} is already inactive",
                    operation="deactivate_adjustment",
                    company_id=adjustment.company_id,
                    month=adjustment.month,
                    year=adjustment.year,
                )

            adjustment.active = False
            adjustment.deactivated_at = datetime.now(timezone.utc)
            adjustment.deactivated_by = author
            adjustment.deactivation_reason = reason.strip()
            await self._adjustments.save(adjustment)
            logger.info("Adjustment %s deactivated by %s", adjustment_id, author)

            calculations = await self._cascade(
                adjustment.company_id, adjustment.month, adjustment.year, author,
                reason=f"Adjustment deactivated: {adjustment.deactivation_reason}",
                first_kind=ChangeKind.ADJUSTMENT,
            )

        return AdjustmentResult(
            adjustment=adjustment,
            recalculated_months=len(calculations),
            calculations=calculations,
        )

    async def recalculate(
        self,
        company_id: str,
        month: int,
        year: int,
        author: Optional[str] = None,
        reason: str = "Forced recalculation",
    ) -> list[MonthlyCalculation]:
        """Re-run the cascade from (month, year) without a new adjustment."""
        author = author or self._settings.system_author
        async with self.lock_for(company_id):
            return await self._cascade(
                company_id, month, year, author, reason=reason, first_kind=ChangeKind.CORRECTION
            )

    async def list(
        self,
        company_id: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
        include_inactive: bool = False,
    ) -> list[Adjustment]:
        return await self._adjustments.list(company_id, month, year, include_inactive)

    async def get(self, adjustment_id: str) -> Adjustment:
        adjustment = await self._adjustments.get(adjustment_id)
        if adjustment is None:
            raise NotFoundError(f"Adjustment {adjustment_id} not found", operation="get_adjustment")
        return adjustment

    async def _cascade(
        self,
        company_id: str,
        month: int,
        year: int,
        author: str,
        reason: str,
        first_kind: ChangeKind,
    ) -> list[MonthlyCalculation]:
        params = await self._parameters.resolve(company_id)
        months = months_through_period_end(month, year, params.contract_start, params.cycle_length_months)
        logger.info(
            "Cascade for %s: %d month(s) from %02d/%d",
            company_id, len(months), month, year,
        )

        results: list[MonthlyCalculation] = []
        for index, (m, y) in enumerate(months):
            first = index == 0
            results.append(
                await self._calculator.compute_unlocked(
                    company_id,
                    m,
                    y,
                    author=author,
                    reason=reason if first else f"Cascade from {month:02d}/{year}: {reason}",
                    change_kind=first_kind if first else ChangeKind.RECOMPUTE,
                )
            )
        return results
