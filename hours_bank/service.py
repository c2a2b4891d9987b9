"""HoursBank — wires the resolver, engine, valuator, ledger and stores together."""

from __future__ import annotations

import logging
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional, Union

from hours_bank.adjustments import AdjustmentManager
from hours_bank.audit import generate_audit_dict
from hours_bank.config import Settings, get_settings
from hours_bank.engine.calculator import MonthlyCalculator
from hours_bank.engine.overage import OverageValuator
from hours_bank.engine import segmenter
from hours_bank.ledger import VersionLedger
from hours_bank.models import (
    AdjustmentDirection,
    AdjustmentResult,
    CalculationNotFoundError,
    ContractParameters,
    Duration,
    MonthlyCalculation,
    SegmentedCalculation,
    VersionDiff,
    VersionRecord,
)
from hours_bank.parameters import ParameterResolver
from hours_bank.parsers.fixture_parser import PendingAdjustment, load_fixture
from hours_bank.stores import (
    AdjustmentStore,
    AllocationStore,
    CalculationStore,
    ConsumptionProvider,
    InMemoryAdjustmentStore,
    InMemoryAllocationStore,
    InMemoryCalculationStore,
    InMemoryConsumptionProvider,
    InMemoryParameterStore,
    InMemoryRateCatalog,
    InMemoryVersionStore,
    ParameterStore,
    RateCatalog,
    VersionStore,
)

logger = logging.getLogger(__name__)


class HoursBank:
    def __init__(
        self,
        parameter_store: ParameterStore,
        consumption: ConsumptionProvider,
        rates: RateCatalog,
        calculations: Optional[CalculationStore] = None,
        adjustments: Optional[AdjustmentStore] = None,
        versions: Optional[VersionStore] = None,
        allocations: Optional[AllocationStore] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.parameter_store = parameter_store
        self.consumption = consumption
        self.rates = rates
        self.calculations = calculations or InMemoryCalculationStore()
        self.adjustment_store = adjustments or InMemoryAdjustmentStore()
        self.versions = versions or InMemoryVersionStore()
        self.allocations = allocations or InMemoryAllocationStore()
        self.pending_adjustments: list[PendingAdjustment] = []

        self.resolver = ParameterResolver(parameter_store, self.settings)
        self.valuator = OverageValuator(rates, self.settings)
        self.ledger = VersionLedger(self.versions)
        self.calculator = MonthlyCalculator(
            self.resolver,
            consumption,
            self.adjustment_store,
            self.calculations,
            self.valuator,
            self.ledger,
            self.settings,
        )
        self.adjustments = AdjustmentManager(
            self.calculator,
            self.resolver,
            self.calculations,
            self.adjustment_store,
            self.settings,
        )

    @classmethod
    def in_memory(cls, settings: Optional[Settings] = None) -> HoursBank:
        return cls(
            InMemoryParameterStore(),
            InMemoryConsumptionProvider(),
            InMemoryRateCatalog(),
            settings=settings,
        )

    @classmethod
    def from_fixture(cls, path: Union[str, Path], settings: Optional[Settings] = None) -> HoursBank:
        fixture = load_fixture(path)
        bank = cls(
            fixture.parameters,
            fixture.consumption,
            fixture.rates,
            allocations=fixture.allocations,
            settings=settings,
        )
        bank.pending_adjustments = list(fixture.adjustments)
        return bank

    # ── Calculations ─────────────────────────────────────────────

    async def compute(self, company_id: str, month: int, year: int, author: Optional[str] = None) -> MonthlyCalculation:
        return await self.calculator.compute(company_id, month, year, author=author)

    async def get_or_compute(self, company_id: str, month: int, year: int) -> MonthlyCalculation:
        return await self.calculator.get_or_compute(company_id, month, year)

    async def compute_months(self, company_id: str, first_month: int, year: int, count: int) -> list[MonthlyCalculation]:
        return await self.calculator.compute_months(company_id, first_month, year, count)

    async def latest(self, company_id: str, month: int, year: int) -> MonthlyCalculation:
        calculation = await self.calculations.latest(company_id, month, year)
        if calculation is None:
            raise CalculationNotFoundError(
                "No calculation for this month",
                operation="get_calculation", company_id=company_id, month=month, year=year,
            )
        return calculation

    async def close_cycle(self, company_id: str, month: int, year: int) -> ContractParameters:
        return await self.resolver.close_cycle(company_id, month, year)

    # ── Adjustments ──────────────────────────────────────────────

    async def create_adjustment(
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
        return await self.adjustments.create(
            company_id, month, year, direction, note,
            author=author, hours_delta=hours_delta, tickets_delta=tickets_delta,
        )

    async def deactivate_adjustment(self, adjustment_id: str, reason: str, author: Optional[str] = None) -> AdjustmentResult:
        return await self.adjustments.deactivate(adjustment_id, reason, author=author)

    async def apply_pending_adjustments(self) -> list[AdjustmentResult]:
        """Apply fixture adjustments in order; their months must already be computed."""
        results = []
        for pending in self.pending_adjustments:
            results.append(await self.create_adjustment(
                pending.company_id,
                pending.month,
                pending.year,
                pending.direction,
                pending.note,
                author=pending.author,
                hours_delta=pending.hours_delta,
                tickets_delta=pending.tickets_delta,
            ))
        self.pending_adjustments = []
        return results

    # ── Segmentation ─────────────────────────────────────────────

    async def segment(self, company_id: str, month: int, year: int) -> list[SegmentedCalculation]:
        calculation = await self.latest(company_id, month, year)
        allocations = await self.allocations.list_active(company_id)
        segments = segmenter.segment(calculation, allocations)
        if not segmenter.verify_segmented_sum(
            calculation,
            segments,
            self.settings.duration_tolerance_minutes,
            self.settings.amount_tolerance,
        ):
            logger.warning(
                "Segments for %s %s do not reconcile with the consolidated month",
                company_id, calculation.period_label,
            )
        return segments

    # ── History ──────────────────────────────────────────────────

    async def history(self, company_id: str, month: int, year: int) -> list[VersionRecord]:
        return await self.ledger.history(company_id, month, year)

    async def diff(self, first_id: str, second_id: str) -> VersionDiff:
        first = await self.ledger.get(first_id)
        second = await self.ledger.get(second_id)
        return self.ledger.diff(first, second)

    async def audit(self, company_id: str, month: int, year: int, with_segments: bool = True) -> dict[str, Any]:
        calculation = await self.latest(company_id, month, year)
        segments: list[SegmentedCalculation] = []
        if with_segments and await self.allocations.list_active(company_id):
            segments = await self.segment(company_id, month, year)
        history = await self.history(company_id, month, year)
        return generate_audit_dict(calculation, segments, history)
