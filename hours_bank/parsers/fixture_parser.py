"""Fixture parser — builds in-memory stores from a JSON document.

Expected layout:

    {
      "companies":       {"<id>": {<contract parameter row>}},
      "consumption":     [{"company_id", "period": "MM/YYYY", "hours", "tickets"}],
      "billed_requests": [{"company_id", "period", "hours", "tickets"}],
      "rates":           [{"company_id", "effective_start", "effective_end",
                           "hourly_rate", "ticket_rate"}],
      "allocations":     [{"company_id", "name", "percent", "active"}],
      "adjustments":     [{"company_id", "period", "direction", "hours",
                           "tickets", "note", "author"}]
    }

Adjustments are returned as pending requests: they can only be applied once
the month they target has been computed.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from hours_bank.models import (
    AdjustmentDirection,
    Allocation,
    Duration,
    Rate,
    Usage,
    ValidationError,
)
from hours_bank.parsers.hours_parser import parse_hours, parse_period, parse_quantity
from hours_bank.stores import (
    InMemoryAllocationStore,
    InMemoryConsumptionProvider,
    InMemoryParameterStore,
    InMemoryRateCatalog,
)


@dataclass(frozen=True)
class PendingAdjustment:
    company_id: str
    month: int
    year: int
    direction: AdjustmentDirection
    note: str
    author: str
    hours_delta: Optional[Duration] = None
    tickets_delta: Optional[Decimal] = None


@dataclass
class Fixture:
    parameters: InMemoryParameterStore
    consumption: InMemoryConsumptionProvider
    rates: InMemoryRateCatalog
    allocations: InMemoryAllocationStore
    adjustments: list[PendingAdjustment] = field(default_factory=list)

    @property
    def company_ids(self) -> list[str]:
        return sorted(self.parameters.company_ids())


def _optional_money(value: Any, name: str) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return parse_quantity(value, field=name)


def _optional_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    return date.fromisoformat(str(value))


def _usage(row: dict[str, Any]) -> Usage:
    return Usage(hours=parse_hours(row.get("hours")), tickets=parse_quantity(row.get("tickets")))


def parse_fixture(data: dict[str, Any]) -> Fixture:
    """Build stores from an already decoded fixture document."""
    errors: list[str] = []

    parameters = InMemoryParameterStore()
    for company_id, row in (data.get("companies") or {}).items():
        parameters.put(company_id, row)

    consumption = InMemoryConsumptionProvider()
    for key, setter in (
        ("consumption", consumption.set_consumption),
        ("billed_requests", consumption.set_billed_requests),
    ):
        for i, row in enumerate(data.get(key) or []):
            try:
                month, year = parse_period(row["period"])
                setter(row["company_id"], month, year, _usage(row))
            except KeyError as e:
                errors.append(f"{key}[{i}]: missing field {e}")
            except ValidationError as e:
                errors.extend(f"{key}[{i}]: {msg}" for msg in e.errors)

    rates = InMemoryRateCatalog()
    for i, row in enumerate(data.get("rates") or []):
        try:
            rates.add(Rate(
                company_id=row["company_id"],
                effective_start=date.fromisoformat(str(row["effective_start"])),
                effective_end=_optional_date(row.get("effective_end")),
                hourly_rate=_optional_money(row.get("hourly_rate"), "hourly_rate"),
                ticket_rate=_optional_money(row.get("ticket_rate"), "ticket_rate"),
            ))
        except KeyError as e:
            errors.append(f"rates[{i}]: missing field {e}")
        except ValueError as e:
            errors.append(f"rates[{i}]: {e}")
        except ValidationError as e:
            errors.extend(f"rates[{i}]: {msg}" for msg in e.errors)

    allocations = InMemoryAllocationStore()
    for i, row in enumerate(data.get("allocations") or []):
        try:
            allocations.add(Allocation(
                company_id=row["company_id"],
                name=row["name"],
                baseline_share_percent=parse_quantity(row["percent"], field="percent"),
                active=bool(row.get("active", True)),
            ))
        except KeyError as e:
            errors.append(f"allocations[{i}]: missing field {e}")
        except ValidationError as e:
            errors.extend(f"allocations[{i}]: {msg}" for msg in e.errors)

    pending: list[PendingAdjustment] = []
    for i, row in enumerate(data.get("adjustments") or []):
        try:
            month, year = parse_period(row["period"])
            pending.append(PendingAdjustment(
                company_id=row["company_id"],
                month=month,
                year=year,
                direction=AdjustmentDirection(row["direction"]),
                note=row["note"],
                author=row.get("author") or "fixture",
                hours_delta=parse_hours(row["hours"]) if row.get("hours") not in (None, "") else None,
                tickets_delta=_optional_money(row.get("tickets"), "tickets"),
            ))
        except KeyError as e:
            errors.append(f"adjustments[{i}]: missing field {e}")
        except ValueError as e:
            errors.append(f"adjustments[{i}]: {e}")
        except ValidationError as e:
            errors.extend(f"adjustments[{i}]: {msg}" for msg in e.errors)

    if errors:
        raise ValidationError(errors, operation="load_fixture")

    return Fixture(
        parameters=parameters,
        consumption=consumption,
        rates=rates,
        allocations=allocations,
        adjustments=pending,
    )


def load_fixture(path: str | Path) -> Fixture:
    """Read a JSON fixture file and build in-memory stores from it."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Fixture not found: {path}")
    data = json.loads(path.read_text(encoding='utf-8'))
    return parse_fixture(data)
