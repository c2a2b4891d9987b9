"""Contract parameter resolution and the explicit cycle transition."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime
from typing import Any, Mapping, Optional

from hours_bank.config import Settings, get_settings
from hours_bank.engine.rollover import is_period_end, next_cycle_index
from hours_bank.models import (
    ConfigurationError,
    ContractKind,
    ContractParameters,
    Unit,
    ValidationError,
)
from hours_bank.parsers.hours_parser import parse_hours, parse_quantity
from hours_bank.stores import ParameterStore

logger = logging.getLogger(__name__)

_REQUIRED = {
    "contract_kind": "Contract kind is not configured",
    "cycle_length_months": "Cycle length is not configured",
    "contract_start": "Contract start date is not configured",
}


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _as_period(value: Any) -> Optional[tuple[int, int]]:
    if value is None:
        return None
    month, year = value
    return int(month), int(year)


_TRUE = {"true", "1", "yes", "y"}
_FALSE = {"false", "0", "no", "n", ""}


def _as_flag(value: Any, company_id: str, field: str) -> bool:
    """Booleans, 0/1 and true/false/yes/no strings; anything else is unusable."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
    raise ConfigurationError(
        f"{field} must be true or false, got {value!r}",
        operation="resolve_parameters",
        company_id=company_id,
        field=field,
    )


class ParameterResolver:
    """Loads a company's contract parameters. Never defaults kind, cycle or start."""

    def __init__(self, store: ParameterStore, settings: Optional[Settings] = None) -> None:
        self._store = store
        self._settings = settings or get_settings()

    async def resolve(self, company_id: str) -> ContractParameters:
        row = await self._store.get(company_id)
        if row is None:
            raise ConfigurationError(
                "Company has no contract parameters",
                operation="resolve_parameters",
                company_id=company_id,
            )
        return self.build(company_id, row)

    def build(self, company_id: str, row: Mapping[str, Any]) -> ContractParameters:
        for key, message in _REQUIRED.items():
            if row.get(key) in (None, ""):
                raise ConfigurationError(
                    message, operation="resolve_parameters", company_id=company_id, field=key
                )

        try:
            kind = ContractKind(row["contract_kind"])
            start = _as_date(row["contract_start"])
            cycle_length = int(row["cycle_length_months"])
        except (ValueError, TypeError) as exc:
            raise ConfigurationError(
                f"Unusable contract parameters: {exc}",
                operation="resolve_parameters",
                company_id=company_id,
            ) from exc

        try:
            return self._construct(company_id, kind, cycle_length, start, row)
        except ValidationError as exc:
            raise ConfigurationError(
                "; ".join(exc.errors), operation="resolve_parameters", company_id=company_id
            ) from exc

    def _construct(
        self,
        company_id: str,
        kind: ContractKind,
        cycle_length: int,
        start: date,
        row: Mapping[str, Any],
    ) -> ContractParameters:
        hours_baseline = None
        tickets_baseline = None
        if kind.tracks(Unit.HOURS):
            if row.get("monthly_baseline_hours") in (None, ""):
                logger.warning("Company %s has no hours baseline; using 0:00", company_id)
            hours_baseline = parse_hours(row.get("monthly_baseline_hours"))
        if kind.tracks(Unit.TICKETS):
            if row.get("monthly_baseline_tickets") in (None, ""):
                logger.warning("Company %s has no tickets baseline; using 0", company_id)
            tickets_baseline = parse_quantity(row.get("monthly_baseline_tickets"))

        percent = row.get("monthly_rollover_percent")
        return ContractParameters(
            company_id=company_id,
            contract_kind=kind,
            cycle_length_months=cycle_length,
            contract_start=start,
            monthly_baseline_hours=hours_baseline,
            monthly_baseline_tickets=tickets_baseline,
            has_special_rollover=_as_flag(row.get("has_special_rollover"), company_id, "has_special_rollover"),
            cycles_until_zeroing=int(row.get("cycles_until_zeroing") or 1),
            monthly_rollover_percent=(
                parse_quantity(percent, field="monthly_rollover_percent") if percent is not None
                else self._settings.default_rollover_percent
            ),
            current_cycle_index=int(row.get("current_cycle_index") or 1),
            last_closed_period=_as_period(row.get("last_closed_period")),
            company_name=str(row.get("company_name") or ""),
        )

    async def close_cycle(self, company_id: str, month: int, year: int) -> ContractParameters:
        """Advance the cycle index once for the period ending at (month, year)."""
        params = await self.resolve(company_id)
        if not is_period_end(month, year, params.contract_start, params.cycle_length_months):
            raise ValidationError(
                f"{month:02d}/{year} is not a period end",
                operation="close_cycle",
                company_id=company_id,
                month=month,
                year=year,
            )

        closed = params.last_closed_period
        if closed is not None and (closed[1], closed[0]) >= (year, month):
            logger.info("Cycle for %s already closed through %02d/%d", company_id, closed[0], closed[1])
            return params

        new_index = next_cycle_index(params.current_cycle_index, params.cycles_until_zeroing)
        await self._store.update(
            company_id,
            current_cycle_index=new_index,
            last_closed_period=(month, year),
        )
        logger.info(
            "Closed cycle %d for %s at %02d/%d; next cycle index %d",
            params.current_cycle_index, company_id, month, year, new_index,
        )
        return replace(params, current_cycle_index=new_index, last_closed_period=(month, year))
