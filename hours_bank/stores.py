"""Collaborator interfaces consumed by the core, plus in-memory implementations.

Production deployments plug database- or API-backed objects satisfying the
protocols below; the in-memory classes back the CLI, the HTTP app and tests.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Any, Mapping, Optional, Protocol

from hours_bank.models import (
    Adjustment,
    Allocation,
    Duration,
    MonthlyCalculation,
    NotFoundError,
    Rate,
    StaleVersionError,
    Unit,
    Usage,
    VersionRecord,
)


MonthKey = tuple[str, int, int]


class ParameterStore(Protocol):
    async def get(self, company_id: str) -> Optional[Mapping[str, Any]]: ...

    async def update(self, company_id: str, **fields: Any) -> None: ...


class ConsumptionProvider(Protocol):
    async def get_consumption(self, company_id: str, month: int, year: int) -> Usage: ...

    async def get_billed_requests(self, company_id: str, month: int, year: int) -> Usage: ...


class RateCatalog(Protocol):
    async def get_latest_rate(self, company_id: str, month: int, year: int, unit: Unit) -> Optional[Rate]: ...


class CalculationStore(Protocol):
    async def add(self, calculation: MonthlyCalculation) -> MonthlyCalculation: ...

    async def get(self, calculation_id: str) -> Optional[MonthlyCalculation]: ...

    async def latest(self, company_id: str, month: int, year: int) -> Optional[MonthlyCalculation]: ...

    async def versions(self, company_id: str, month: int, year: int) -> list[MonthlyCalculation]: ...


class AdjustmentStore(Protocol):
    async def add(self, adjustment: Adjustment) -> Adjustment: ...

    async def get(self, adjustment_id: str) -> Optional[Adjustment]: ...

    async def save(self, adjustment: Adjustment) -> Adjustment: ...

    async def list(
        self,
        company_id: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
        include_inactive: bool = False,
    ) -> list[Adjustment]: ...

    async def active_total(self, company_id: str, month: int, year: int) -> tuple[Duration, Decimal]: ...


class VersionStore(Protocol):
    async def add(self, record: VersionRecord) -> VersionRecord: ...

    async def get(self, version_id: str) -> Optional[VersionRecord]: ...

    async def list(self, company_id: str, month: int, year: int) -> list[VersionRecord]: ...

    async def for_calculation(self, calculation_id: str) -> list[VersionRecord]: ...


class AllocationStore(Protocol):
    async def list_active(self, company_id: str) -> list[Allocation]: ...


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------


class InMemoryParameterStore:
    def __init__(self, rows: Optional[Mapping[str, Mapping[str, Any]]] = None) -> None:
        self._rows: dict[str, dict[str, Any]] = {k: dict(v) for k, v in (rows or {}).items()}

    def put(self, company_id: str, row: Mapping[str, Any]) -> None:
        self._rows[company_id] = dict(row)

    def company_ids(self) -> list[str]:
        return list(self._rows)

    async def get(self, company_id: str) -> Optional[Mapping[str, Any]]:
        row = self._rows.get(company_id)
        return dict(row) if row is not None else None

    async def update(self, company_id: str, **fields: Any) -> None:
        if company_id not in self._rows:
            raise NotFoundError("Company parameters not found", operation="update_parameters", company_id=company_id)
        self._rows[company_id].update(fields)


class InMemoryConsumptionProvider:
    def __init__(self) -> None:
        self._consumption: dict[MonthKey, Usage] = {}
        self._billed: dict[MonthKey, Usage] = {}

    def set_consumption(self, company_id: str, month: int, year: int, usage: Usage) -> None:
        self._consumption[(company_id, month, year)] = usage

    def set_billed_requests(self, company_id: str, month: int, year: int, usage: Usage) -> None:
        self._billed[(company_id, month, year)] = usage

    async def get_consumption(self, company_id: str, month: int, year: int) -> Usage:
        return self._consumption.get((company_id, month, year), Usage())

    async def get_billed_requests(self, company_id: str, month: int, year: int) -> Usage:
        return self._billed.get((company_id, month, year), Usage())


class InMemoryRateCatalog:
    """Selects the rate with the latest effective start on or before the month's first day."""

    def __init__(self, rates: Optional[list[Rate]] = None) -> None:
        self._rates: list[Rate] = list(rates or [])

    def add(self, rate: Rate) -> None:
        self._rates.append(rate)

    async def get_latest_rate(self, company_id: str, month: int, year: int, unit: Unit) -> Optional[Rate]:
        reference = date(year, month, 1)
        candidates = [
            r for r in self._rates
            if r.company_id == company_id
            and r.effective_start <= reference
            and r.for_unit(unit) is not None
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda r: r.effective_start)


class InMemoryCalculationStore:
    def __init__(self) -> None:
        self._by_id: dict[str, MonthlyCalculation] = {}
        self._by_month: dict[MonthKey, list[MonthlyCalculation]] = defaultdict(list)

    async def add(self, calculation: MonthlyCalculation) -> MonthlyCalculation:
        key = (calculation.company_id, calculation.month, calculation.year)
        existing = self._by_month[key]
        if existing and existing[-1].version >= calculation.version:
            raise StaleVersionError(
                f"Version {calculation.version} for {calculation.period_label} "
                f"is not newer than stored version {existing[-1].version}",
                operation="store_calculation",
                company_id=calculation.company_id,
                month=calculation.month,
                year=calculation.year,
            )
        self._by_id[calculation.id] = calculation
        existing.append(calculation)
        return calculation

    async def get(self, calculation_id: str) -> Optional[MonthlyCalculation]:
        return self._by_id.get(calculation_id)

    async def latest(self, company_id: str, month: int, year: int) -> Optional[MonthlyCalculation]:
        versions = self._by_month.get((company_id, month, year))
        return versions[-1] if versions else None

    async def versions(self, company_id: str, month: int, year: int) -> list[MonthlyCalculation]:
        return list(self._by_month.get((company_id, month, year), []))


class InMemoryAdjustmentStore:
    def __init__(self) -> None:
        self._rows: dict[str, Adjustment] = {}

    async def add(self, adjustment: Adjustment) -> Adjustment:
        self._rows[adjustment.id] = replace(adjustment)
        return adjustment

    async def get(self, adjustment_id: str) -> Optional[Adjustment]:
        row = self._rows.get(adjustment_id)
        return replace(row) if row is not None else None

    async def save(self, adjustment: Adjustment) -> Adjustment:
        if adjustment.id not in self._rows:
            raise NotFoundError("Adjustment not found", operation="save_adjustment", company_id=adjustment.company_id)
        self._rows[adjustment.id] = replace(adjustment)
        return adjustment

    async def list(
        self,
        company_id: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
        include_inactive: bool = False,
    ) -> list[Adjustment]:
        rows = [
            replace(a) for a in self._rows.values()
            if a.company_id == company_id
            and (month is None or a.month == month)
            and (year is None or a.year == year)
            and (include_inactive or a.active)
        ]
        return sorted(rows, key=lambda a: a.created_at, reverse=True)

    async def active_total(self, company_id: str, month: int, year: int) -> tuple[Duration, Decimal]:
        hours = Duration()
        tickets = Decimal("0")
        for adj in await self.list(company_id, month, year):
            hours = hours + adj.signed_hours
            tickets += adj.signed_tickets
        return hours, tickets


class InMemoryVersionStore:
    def __init__(self) -> None:
        self._rows: list[VersionRecord] = []

    async def add(self, record: VersionRecord) -> VersionRecord:
        self._rows.append(record)
        return record

    async def get(self, version_id: str) -> Optional[VersionRecord]:
        return next((r for r in self._rows if r.id == version_id), None)

    async def list(self, company_id: str, month: int, year: int) -> list[VersionRecord]:
        return [
            r for r in self._rows
            if r.company_id == company_id and r.month == month and r.year == year
        ]

    async def for_calculation(self, calculation_id: str) -> list[VersionRecord]:
        return [r for r in self._rows if r.calculation_id == calculation_id]


class InMemoryAllocationStore:
    def __init__(self, allocations: Optional[list[Allocation]] = None) -> None:
        self._rows: list[Allocation] = list(allocations or [])

    def add(self, allocation: Allocation) -> None:
        self._rows.append(allocation)

    async def list_active(self, company_id: str) -> list[Allocation]:
        return [a for a in self._rows if a.company_id == company_id and a.active]
