"""Layer 4 — Monthly Calculation Engine.

Builds one month's ledger per tracked unit:

    available   = baseline + rollover_from_previous
    total       = consumption + billed_requests - adjustments
    balance     = available - total
    rollover    = monthly rollover (ordinary month) or closure outcome (period end)

Every call persists a new immutable version and a matching version record.
Version writes for one company are serialized by `lock_for`; different
companies proceed in parallel.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from hours_bank.config import Settings, get_settings
from hours_bank.engine.overage import OverageValuator
from hours_bank.engine.rollover import (
    apply_closure,
    is_period_end,
    monthly_rollover,
    next_month,
    previous_month,
)
from hours_bank.ledger import VersionLedger, calculation_snapshot
from hours_bank.models import (
    Amount,
    ChangeKind,
    ConfigurationError,
    ContractParameters,
    HoursLedger,
    IntegrationError,
    Ledger,
    MonthlyCalculation,
    SourceCheck,
    TicketsLedger,
    Unit,
    ValidationError,
    zero_of,
)
from hours_bank.stores import AdjustmentStore, CalculationStore, ConsumptionProvider

if TYPE_CHECKING:
    from hours_bank.parameters import ParameterResolver

logger = logging.getLogger(__name__)

_LEDGER_TYPES = {Unit.HOURS: HoursLedger, Unit.TICKETS: TicketsLedger}


def _check_month(month: int, year: int, operation: str, company_id: str) -> None:
    if not 1 <= month <= 12:
        raise ValidationError(
            f"Month must be 1-12, got {month}",
            operation=operation, company_id=company_id, month=month, year=year, field="month",
        )


class MonthlyCalculator:
    """Computes, versions and records monthly balances for one company at a time."""

    def __init__(
        self,
        parameters: ParameterResolver,
        consumption: ConsumptionProvider,
        adjustments: AdjustmentStore,
        calculations: CalculationStore,
        valuator: OverageValuator,
        ledger: VersionLedger,
        settings: Optional[Settings] = None,
    ) -> None:
        self._parameters = parameters
        self._consumption = consumption
        self._adjustments = adjustments
        self._calculations = calculations
        self._valuator = valuator
        self._ledger = ledger
        self._settings = settings or get_settings()
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def lock_for(self, company_id: str) -> asyncio.Lock:
        """Lock serializing every version write for one company."""
        return self._locks[company_id]

    async def compute(
        self,
        company_id: str,
        month: int,
        year: int,
        author: Optional[str] = None,
        reason: str = "Monthly calculation",
        change_kind: ChangeKind = ChangeKind.RECOMPUTE,
    ) -> MonthlyCalculation:
        """Compute (company, month, year) and persist it as a new version."""
        async with self.lock_for(company_id):
            return await self.compute_unlocked(company_id, month, year, author, reason, change_kind)

    async def compute_unlocked(
        self,
        company_id: str,
        month: int,
        year: int,
        author: Optional[str] = None,
        reason: str = "Monthly calculation",
        change_kind: ChangeKind = ChangeKind.RECOMPUTE,
    ) -> MonthlyCalculation:
        """Same as `compute`; the caller must already hold `lock_for(company_id)`."""
        _check_month(month, year, "compute", company_id)
        author = author or self._settings.system_author

        params = await self._parameters.resolve(company_id)

        prev_month, prev_year = previous_month(month, year)
        previous = await self._calculations.latest(company_id, prev_month, prev_year)
        existing = await self._calculations.latest(company_id, month, year)

        consumption = await self._consumption.get_consumption(company_id, month, year)
        billed = await self._consumption.get_billed_requests(company_id, month, year)
        adjusted_hours, adjusted_tickets = await self._adjustments.active_total(company_id, month, year)
        adjusted = {Unit.HOURS: adjusted_hours, Unit.TICKETS: adjusted_tickets}

        period_end = is_period_end(month, year, params.contract_start, params.cycle_length_months)
        # a recompute keeps the cycle index the month was first closed under
        cycle_index = existing.cycle_index if existing is not None else params.current_cycle_index

        ledgers: dict[Unit, Ledger] = {}
        notes: list[str] = []
        warnings: list[str] = []

        for unit in params.contract_kind.units:
            carried = zero_of(unit)
            if previous is not None and previous.ledger(unit) is not None:
                carried = previous.ledger(unit).rollover_to_next

            ledger, note, warning = await self._compute_ledger(
                params,
                unit,
                month,
                year,
                carried=carried,
                consumption=consumption.for_unit(unit),
                billed=billed.for_unit(unit),
                adjustments=adjusted[unit],
                period_end=period_end,
                cycle_index=cycle_index,
            )
            ledgers[unit] = ledger
            if note:
                notes.append(note)
            if warning:
                warnings.append(warning)

        amount_to_bill = sum((lg.overage_value for lg in ledgers.values()), Decimal("0"))

        calculation = MonthlyCalculation(
            company_id=company_id,
            month=month,
            year=year,
            version=existing.version + 1 if existing is not None else 1,
            contract_kind=params.contract_kind,
            is_period_end=period_end,
            cycle_index=cycle_index,
            hours=ledgers.get(Unit.HOURS),
            tickets=ledgers.get(Unit.TICKETS),
            amount_to_bill=amount_to_bill,
            public_note="\n\n".join(notes),
            warnings=tuple(warnings),
            created_by=author,
        )

        await self._calculations.add(calculation)
        await self._ledger.record(
            calculation,
            author=author,
            reason=reason,
            change_kind=change_kind,
            before=calculation_snapshot(existing),
            after=calculation_snapshot(calculation),
        )
        logger.info(
            "Computed %s %s v%d (period end: %s, to bill: %s)",
            company_id, calculation.period_label, calculation.version, period_end, amount_to_bill,
        )
        return calculation

    async def _compute_ledger(
        self,
        params: ContractParameters,
        unit: Unit,
        month: int,
        year: int,
        *,
        carried: Amount,
        consumption: Amount,
        billed: Amount,
        adjustments: Amount,
        period_end: bool,
        cycle_index: int,
    ) -> tuple[Ledger, str, Optional[str]]:
        baseline = params.baseline(unit)
        available = baseline + carried
        total = consumption + billed - adjustments
        balance = available - total
        logger.debug(
            "%s %02d/%d %s: available=%s total=%s balance=%s",
            params.company_id, month, year, unit.value, available, total, balance,
        )

        overage_amount = zero_of(unit)
        overage_value = Decimal("0")
        rate_used = None
        note = ""
        warning = None

        if not period_end:
            rollover = monthly_rollover(balance, params.monthly_rollover_percent)
        else:
            closure = apply_closure(
                balance,
                params.has_special_rollover,
                cycle_index,
                params.cycles_until_zeroing,
            )
            rollover = closure.rollover_out
            if closure.force_overage:
                result = await self._valuator.valuate(params.company_id, balance, month, year, unit)
                overage_amount = result.overage_amount
                overage_value = result.monetary_value
                rate_used = result.rate
                note = self._valuator.describe(
                    params.company_name or params.company_id,
                    overage_amount,
                    month,
                    year,
                    overage_value,
                    unit,
                )
                if result.warning:
                    warning = result.warning
                    note = f"{note}\n{result.warning}"

        ledger = _LEDGER_TYPES[unit](
            baseline=baseline,
            rollover_from_previous=carried,
            available_balance=available,
            consumption=consumption,
            billed_requests=billed,
            adjustments=adjustments,
            total_consumption=total,
            balance=balance,
            rollover_to_next=rollover,
            overage_amount=overage_amount,
            overage_value=overage_value,
            rate_used=rate_used,
        )
        self._reconcile(ledger, params.company_id, month, year)
        return ledger, note, warning

    @staticmethod
    def _reconcile(ledger: Ledger, company_id: str, month: int, year: int) -> None:
        """Re-check the ledger identities before anything is persisted."""
        errors: list[str] = []
        if ledger.available_balance != ledger.baseline + ledger.rollover_from_previous:
            errors.append(
                f"Available mismatch: {ledger.available_balance} vs "
                f"{ledger.baseline} + {ledger.rollover_from_previous}"
            )
        expected_total = ledger.consumption + ledger.billed_requests - ledger.adjustments
        if ledger.total_consumption != expected_total:
            errors.append(f"Total consumption mismatch: {ledger.total_consumption} vs {expected_total}")
        if ledger.balance != ledger.available_balance - ledger.total_consumption:
            errors.append(
                f"Balance mismatch: {ledger.balance} vs "
                f"{ledger.available_balance} - {ledger.total_consumption}"
            )
        if errors:
            raise ValidationError(errors, operation="compute", company_id=company_id, month=month, year=year)

    async def get_or_compute(
        self,
        company_id: str,
        month: int,
        year: int,
        author: Optional[str] = None,
    ) -> MonthlyCalculation:
        """Latest stored version, computing the first one when none exists."""
        async with self.lock_for(company_id):
            existing = await self._calculations.latest(company_id, month, year)
            if existing is not None:
                return existing
            return await self.compute_unlocked(company_id, month, year, author=author, reason="Initial calculation")

    async def compute_months(
        self,
        company_id: str,
        first_month: int,
        year: int,
        count: int,
        author: Optional[str] = None,
    ) -> list[MonthlyCalculation]:
        """Compute `count` consecutive months in order, crossing year ends."""
        _check_month(first_month, year, "compute_months", company_id)
        if count < 1:
            raise ValidationError(
                f"Month count must be >= 1, got {count}", operation="compute_months", company_id=company_id
            )

        results = []
        month = (first_month, year)
        for _ in range(count):
            results.append(await self.compute(company_id, month[0], month[1], author=author))
            month = next_month(*month)
        return results

    async def check_sources(self, company_id: str, month: int, year: int) -> SourceCheck:
        """Pre-flight check of every input a compute would read."""
        errors: list[str] = []
        warnings: list[str] = []

        if not company_id or not company_id.strip():
            errors.append("Company id is required")
        if not 1 <= month <= 12:
            errors.append(f"Month must be 1-12, got {month}")
        if errors:
            return SourceCheck(valid=False, errors=errors, warnings=warnings)

        try:
            await self._parameters.resolve(company_id)
        except ConfigurationError as exc:
            errors.append(f"Contract parameters unusable: {exc.message}")

        sources = (
            ("Consumption", self._consumption.get_consumption),
            ("Billed requests", self._consumption.get_billed_requests),
        )
        for label, fetch in sources:
            try:
                await fetch(company_id, month, year)
            except IntegrationError as exc:
                if exc.retryable:
                    warnings.append(f"{label} temporarily unavailable: {exc.message}")
                else:
                    errors.append(f"{label} unavailable: {exc.message}")

        return SourceCheck(valid=not errors, errors=errors, warnings=warnings)
