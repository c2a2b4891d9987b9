"""Version ledger — append-only before/after history of monthly calculations."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Mapping, Optional, Union

from hours_bank.models import (
    LEDGER_AMOUNT_FIELDS,
    LEDGER_MONEY_FIELDS,
    ChangeKind,
    Duration,
    FieldChange,
    MonthlyCalculation,
    NotFoundError,
    VersionDiff,
    VersionRecord,
)
from hours_bank.stores import VersionStore

logger = logging.getLogger(__name__)

NUMERIC_TOLERANCE = Decimal("0.01")

Snapshot = dict[str, Any]


def _plain(value: Any) -> Any:
    if isinstance(value, Duration):
        return str(value)
    if isinstance(value, Decimal):
        return float(value)
    return value


def calculation_snapshot(calculation: Optional[MonthlyCalculation]) -> Snapshot:
    """Flat JSON-ready image of a calculation: hours as H:MM, tickets and money as numbers."""
    if calculation is None:
        return {}
    snapshot: Snapshot = {
        "version": calculation.version,
        "contract_kind": calculation.contract_kind.value,
        "is_period_end": calculation.is_period_end,
        "cycle_index": calculation.cycle_index,
        "amount_to_bill": float(calculation.amount_to_bill),
        "public_note": calculation.public_note,
    }
    for ledger in calculation.ledgers:
        prefix = ledger.unit.value
        for name in LEDGER_AMOUNT_FIELDS + LEDGER_MONEY_FIELDS:
            snapshot[f"{prefix}_{name}"] = _plain(getattr(ledger, name))
        snapshot[f"{prefix}_rate_used"] = _plain(ledger.rate_used)
    return snapshot


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def values_equal(a: Any, b: Any) -> bool:
    """None and "" are the same; numbers match within 0.01."""
    if _is_empty(a) and _is_empty(b):
        return True
    if _is_number(a) and _is_number(b):
        return abs(Decimal(str(a)) - Decimal(str(b))) <= NUMERIC_TOLERANCE
    return a == b


def _as_snapshot(value: Union[VersionRecord, Mapping[str, Any], None]) -> Mapping[str, Any]:
    if value is None:
        return {}
    if isinstance(value, VersionRecord):
        return value.after
    return value


def diff(
    a: Union[VersionRecord, Mapping[str, Any], None],
    b: Union[VersionRecord, Mapping[str, Any], None],
) -> VersionDiff:
    """Compare two snapshots (or the `after` images of two records)."""
    old = _as_snapshot(a)
    new = _as_snapshot(b)

    added = sorted(k for k in new if k not in old and not _is_empty(new[k]))
    removed = sorted(k for k in old if k not in new and not _is_empty(old[k]))
    changed = [
        FieldChange(field=k, before=old[k], after=new[k])
        for k in sorted(old.keys() & new.keys())
        if not values_equal(old[k], new[k])
    ]
    return VersionDiff(added=added, removed=removed, changed=changed)


class VersionLedger:
    def __init__(self, store: VersionStore) -> None:
        self._store = store

    async def record(
        self,
        calculation: MonthlyCalculation,
        author: str,
        reason: str,
        change_kind: ChangeKind,
        before: Mapping[str, Any],
        after: Mapping[str, Any],
    ) -> VersionRecord:
        """Append the transition that produced `calculation`."""
        record = VersionRecord(
            calculation_id=calculation.id,
            company_id=calculation.company_id,
            month=calculation.month,
            year=calculation.year,
            from_version=calculation.version - 1,
            to_version=calculation.version,
            before=dict(before),
            after=dict(after),
            reason=reason,
            change_kind=change_kind,
            author=author,
        )
        await self._store.add(record)
        logger.info(
            "Recorded %s v%d->v%d for %s %s by %s",
            change_kind.value, record.from_version, record.to_version,
            calculation.company_id, calculation.period_label, author,
        )
        return record

    async def history(self, company_id: str, month: int, year: int) -> list[VersionRecord]:
        """All records for a month, newest first."""
        records = await self._store.list(company_id, month, year)
        return sorted(records, key=lambda r: (r.to_version, r.created_at), reverse=True)

    async def get(self, version_id: str) -> VersionRecord:
        record = await self._store.get(version_id)
        if record is None:
            raise NotFoundError(f"Version record {version_id} not found", operation="get_version")
        return record

    async def for_calculation(self, calculation_id: str) -> list[VersionRecord]:
        records = await self._store.for_calculation(calculation_id)
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    @staticmethod
    def diff(
        a: Union[VersionRecord, Mapping[str, Any], None],
        b: Union[VersionRecord, Mapping[str, Any], None],
    ) -> VersionDiff:
        return diff(a, b)
