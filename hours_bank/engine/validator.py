"""Layer 3 — Input Validation.

Checks adjustment and deactivation input before anything is written.
Every problem found is collected and reported together.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from hours_bank.models import (
    ContractKind,
    Duration,
    Unit,
    ValidationError,
)


def validate_note(text: Optional[str], min_length: int, label: str = "Note") -> list[str]:
    """Return the problems with a free-text justification, if any."""
    stripped = (text or "").strip()
    if not stripped:
        return [f"{label} is required"]
    if len(stripped) < min_length:
        return [f"{label} must have at least {min_length} characters, got {len(stripped)}"]
    return []


def validate_adjustment(
    contract_kind: ContractKind,
    hours_delta: Optional[Duration],
    tickets_delta: Optional[Decimal],
    note: str,
    min_note_length: int,
    *,
    company_id: Optional[str] = None,
    month: Optional[int] = None,
    year: Optional[int] = None,
) -> None:
    """Validate a new adjustment against its contract kind.

    At least one non-zero delta is required, and only for units the contract
    actually tracks.
    """
    errors: list[str] = validate_note(note, min_note_length)

    has_hours = hours_delta is not None and hours_delta.minutes != 0
    has_tickets = tickets_delta is not None and tickets_delta != 0

    if not has_hours and not has_tickets:
        errors.append("At least one non-zero hours or tickets delta is required")

    if has_hours and not contract_kind.tracks(Unit.HOURS):
        errors.append(f"Hours delta given for a {contract_kind.value} contract")
    if has_tickets and not contract_kind.tracks(Unit.TICKETS):
        errors.append(f"Tickets delta given for a {contract_kind.value} contract")

    if tickets_delta is not None and not tickets_delta.is_finite():
        errors.append(f"Tickets delta is not finite: {tickets_delta}")

    if month is not None and not 1 <= month <= 12:
        errors.append(f"Month must be 1-12, got {month}")

    if errors:
        raise ValidationError(
            errors,
            operation="create_adjustment",
            company_id=company_id,
            month=month,
            year=year,
        )


def validate_deactivation(reason: str, min_length: int, *, company_id: Optional[str] = None) -> None:
    errors = validate_note(reason, min_length, label="Deactivation reason")
    if errors:
        raise ValidationError(
            errors, operation="deactivate_adjustment", company_id=company_id, field="reason"
        )
