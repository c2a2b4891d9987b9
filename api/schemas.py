"""Pydantic request/response models for the Hours Bank API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class LedgerSummary(BaseModel):
    unit: str
    baseline: str
    rollover_from_previous: str
    available_balance: str
    consumption: str
    billed_requests: str
    adjustments: str
    total_consumption: str
    balance: str
    rollover_to_next: str
    overage_amount: str
    overage_value: float
    rate_used: float | None = None


class CalculationResponse(BaseModel):
    id: str
    company_id: str
    month: int
    year: int
    version: int
    contract_kind: str
    is_period_end: bool
    cycle_index: int
    hours: LedgerSummary | None = None
    tickets: LedgerSummary | None = None
    amount_to_bill: float
    public_note: str = ""
    warnings: list[str] = []
    created_by: str
    created_at: str


class SegmentResponse(BaseModel):
    allocation_id: str
    allocation_name: str
    percent: float
    hours: LedgerSummary | None = None
    tickets: LedgerSummary | None = None
    amount_to_bill: float


class AdjustmentRequest(BaseModel):
    month: int = Field(..., ge=1, le=12)
    year: int
    direction: str = Field(..., description="'entry' gives hours back, 'exit' removes them")
    note: str
    author: str | None = None
    hours: str | None = Field(None, description="H:MM magnitude")
    tickets: float | None = None


class DeactivationRequest(BaseModel):
    reason: str
    author: str | None = None


class RecalculationRequest(BaseModel):
    author: str | None = None
    reason: str = "Forced recalculation"


class AdjustmentSummary(BaseModel):
    id: str
    company_id: str
    month: int
    year: int
    direction: str
    hours: str | None = None
    tickets: float | None = None
    note: str
    author: str
    active: bool
    created_at: str
    deactivated_at: str | None = None
    deactivated_by: str | None = None
    deactivation_reason: str | None = None


class AdjustmentResponse(BaseModel):
    adjustment: AdjustmentSummary
    recalculated_months: int
    calculations: list[CalculationResponse]


class VersionRecordResponse(BaseModel):
    id: str
    calculation_id: str
    from_version: int
    to_version: int
    change_kind: str
    reason: str
    author: str
    created_at: str
    before: dict[str, Any]
    after: dict[str, Any]


class FieldChangeResponse(BaseModel):
    field: str
    before: Any = None
    after: Any = None


class DiffResponse(BaseModel):
    added: list[str]
    removed: list[str]
    changed: list[FieldChangeResponse]


class CycleResponse(BaseModel):
    company_id: str
    current_cycle_index: int
    last_closed_period: str | None = None


class ErrorResponse(BaseModel):
    error_type: str
    errors: list[str]
    context: dict[str, Any] = {}
