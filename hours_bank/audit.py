"""Layer 6 — Audit Engine.

Generates full traceability JSON output for a monthly calculation.
"""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Iterable

from hours_bank.ledger import calculation_snapshot
from hours_bank.models import (
    LEDGER_AMOUNT_FIELDS,
    LEDGER_MONEY_FIELDS,
    Duration,
    Ledger,
    MonthlyCalculation,
    SegmentedCalculation,
    VersionRecord,
)


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal, Duration and datetime values."""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, Duration):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)


def _ledger_dict(ledger: Ledger) -> dict:
    data = {name: getattr(ledger, name) for name in LEDGER_AMOUNT_FIELDS + LEDGER_MONEY_FIELDS}
    data["rate_used"] = ledger.rate_used
    return data


def generate_audit_dict(
    calculation: MonthlyCalculation,
    segments: Iterable[SegmentedCalculation] = (),
    history: Iterable[VersionRecord] = (),
) -> dict:
    """Build audit dictionary from a computed calculation (no file I/O)."""
    return {
        "company_id": calculation.company_id,
        "period": calculation.period_label,
        "calculation_id": calculation.id,
        "version": calculation.version,
        "contract_kind": calculation.contract_kind.value,
        "is_period_end": calculation.is_period_end,
        "cycle_index": calculation.cycle_index,
        "created_at": calculation.created_at,
        "created_by": calculation.created_by,
        "ledgers": {lg.unit.value: _ledger_dict(lg) for lg in calculation.ledgers},
        "amount_to_bill": calculation.amount_to_bill,
        "public_note": calculation.public_note,
        "warnings": list(calculation.warnings),
        "snapshot": calculation_snapshot(calculation),
        "segments": [
            {
                "allocation_id": s.allocation_id,
                "allocation_name": s.allocation_name,
                "percent": s.percent,
                "ledgers": {
                    lg.unit.value: _ledger_dict(lg)
                    for lg in (s.hours, s.tickets) if lg is not None
                },
                "amount_to_bill": s.amount_to_bill,
            }
            for s in segments
        ],
        "history": [
            {
                "id": r.id,
                "from_version": r.from_version,
                "to_version": r.to_version,
                "change_kind": r.change_kind.value,
                "reason": r.reason,
                "author": r.author,
                "created_at": r.created_at,
            }
            for r in history
        ],
    }


def generate_audit(
    calculation: MonthlyCalculation,
    output_path: str | Path,
    segments: Iterable[SegmentedCalculation] = (),
    history: Iterable[VersionRecord] = (),
) -> Path:
    """Generate audit JSON file for a computed calculation."""
    output_path = Path(output_path)
    audit = generate_audit_dict(calculation, segments, history)
    output_path.write_text(json.dumps(audit, indent=2, cls=DecimalEncoder), encoding='utf-8')
    return output_path
