"""Layer 2 — Canonical Data Model for the hours bank."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_FLOOR
from enum import Enum
from typing import Any, ClassVar, Optional, Union


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContractKind(Enum):
    HOURS = "hours"
    TICKETS = "tickets"
    BOTH = "both"

    @property
    def units(self) -> tuple[Unit, ...]:
        if self is ContractKind.HOURS:
            return (Unit.HOURS,)
        if self is ContractKind.TICKETS:
            return (Unit.TICKETS,)
        return (Unit.HOURS, Unit.TICKETS)

    def tracks(self, unit: Unit) -> bool:
        return unit in self.units


class Unit(Enum):
    HOURS = "hours"
    TICKETS = "tickets"


class AdjustmentDirection(Enum):
    ENTRY = "entry"
    EXIT = "exit"

    @property
    def sign(self) -> int:
        return 1 if self is AdjustmentDirection.ENTRY else -1


class ChangeKind(Enum):
    ADJUSTMENT = "adjustment"
    RECOMPUTE = "recompute"
    CORRECTION = "correction"


@dataclass(frozen=True, order=True)
class Duration:
    """Signed span of whole minutes, rendered as H:MM."""
    minutes: int = 0

    @classmethod
    def from_hours(cls, hours: int, minutes: int = 0) -> Duration:
        return cls(hours * 60 + minutes)

    @property
    def is_negative(self) -> bool:
        return self.minutes < 0

    @property
    def hours(self) -> Decimal:
        """Decimal hours, used when pricing."""
        return Decimal(self.minutes) / Decimal(60)

    def scale_floor(self, factor: Decimal) -> Duration:
        """Multiply by factor, flooring the magnitude to whole minutes."""
        magnitude = (Decimal(abs(self.minutes)) * factor).to_integral_value(rounding=ROUND_FLOOR)
        return Duration(-int(magnitude) if self.is_negative else int(magnitude))

    def __add__(self, other: object) -> Duration:
        if not isinstance(other, Duration):
            return NotImplemented
        return Duration(self.minutes + other.minutes)

    def __sub__(self, other: object) -> Duration:
        if not isinstance(other, Duration):
            return NotImplemented
        return Duration(self.minutes - other.minutes)

    def __neg__(self) -> Duration:
        return Duration(-self.minutes)

    def __abs__(self) -> Duration:
        return Duration(abs(self.minutes))

    def __str__(self) -> str:
        sign = "-" if self.is_negative else ""
        total = abs(self.minutes)
        return f"{sign}{total // 60}:{total % 60:02d}"


Amount = Union[Duration, Decimal]


def zero_of(unit: Unit) -> Amount:
    return Duration() if unit is Unit.HOURS else Decimal("0")


def is_negative(value: Amount) -> bool:
    if isinstance(value, Duration):
        return value.is_negative
    return value < 0


@dataclass(frozen=True)
class ContractParameters:
    """Contract configuration for one company. Read-only to the calculation core."""
    company_id: str
    contract_kind: ContractKind
    cycle_length_months: int
    contract_start: date
    monthly_baseline_hours: Optional[Duration] = None
    monthly_baseline_tickets: Optional[Decimal] = None
    has_special_rollover: bool = False
    cycles_until_zeroing: int = 1
    monthly_rollover_percent: Decimal = Decimal("100")
    current_cycle_index: int = 1
    last_closed_period: Optional[tuple[int, int]] = None
    company_name: str = ""

    def __post_init__(self) -> None:
        errors: list[str] = []
        if not 1 <= self.cycle_length_months <= 12:
            errors.append(f"cycle_length_months must be 1-12, got {self.cycle_length_months}")
        if self.cycles_until_zeroing < 1:
            errors.append(f"cycles_until_zeroing must be >= 1, got {self.cycles_until_zeroing}")
        if self.current_cycle_index < 1:
            errors.append(f"current_cycle_index must be >= 1, got {self.current_cycle_index}")
        if not Decimal("0") <= self.monthly_rollover_percent <= Decimal("100"):
            errors.append(
                f"monthly_rollover_percent must be 0-100, got {self.monthly_rollover_percent}"
            )
        if errors:
            raise ValidationError(errors, operation="contract_parameters", company_id=self.company_id)

    def baseline(self, unit: Unit) -> Amount:
        if unit is Unit.HOURS:
            return self.monthly_baseline_hours or Duration()
        return self.monthly_baseline_tickets if self.monthly_baseline_tickets is not None else Decimal("0")


@dataclass(frozen=True)
class HoursLedger:
    """One month of the bank measured in hours."""
    baseline: Duration
    rollover_from_previous: Duration
    available_balance: Duration
    consumption: Duration
    billed_requests: Duration
    adjustments: Duration
    total_consumption: Duration
    balance: Duration
    rollover_to_next: Duration
    overage_amount: Duration = Duration()
    overage_value: Decimal = Decimal("0")
    rate_used: Optional[Decimal] = None

    unit: ClassVar[Unit] = Unit.HOURS


@dataclass(frozen=True)
class TicketsLedger:
    """One month of the bank measured in tickets."""
    baseline: Decimal
    rollover_from_previous: Decimal
    available_balance: Decimal
    consumption: Decimal
    billed_requests: Decimal
    adjustments: Decimal
    total_consumption: Decimal
    balance: Decimal
    rollover_to_next: Decimal
    overage_amount: Decimal = Decimal("0")
    overage_value: Decimal = Decimal("0")
    rate_used: Optional[Decimal] = None

    unit: ClassVar[Unit] = Unit.TICKETS


Ledger = Union[HoursLedger, TicketsLedger]

# Unit-denominated ledger fields, in display order.
LEDGER_AMOUNT_FIELDS = (
    "baseline",
    "rollover_from_previous",
    "available_balance",
    "consumption",
    "billed_requests",
    "adjustments",
    "total_consumption",
    "balance",
    "rollover_to_next",
    "overage_amount",
)
LEDGER_MONEY_FIELDS = ("overage_value",)


@dataclass(frozen=True)
class MonthlyCalculation:
    """One immutable version of a company's monthly balance."""
    company_id: str
    month: int
    year: int
    version: int
    contract_kind: ContractKind
    is_period_end: bool
    cycle_index: int
    hours: Optional[HoursLedger] = None
    tickets: Optional[TicketsLedger] = None
    amount_to_bill: Decimal = Decimal("0")
    public_note: str = ""
    warnings: tuple[str, ...] = ()
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utcnow)
    created_by: str = "system"

    @property
    def period_label(self) -> str:
        return f"{self.month:02d}/{self.year}"

    def ledger(self, unit: Unit) -> Optional[Ledger]:
        return self.hours if unit is Unit.HOURS else self.tickets

    @property
    def ledgers(self) -> list[Ledger]:
        return [lg for lg in (self.hours, self.tickets) if lg is not None]


@dataclass(frozen=True)
class Allocation:
    """Named share of a company's baseline (cost centre, project, ...)."""
    company_id: str
    name: str
    baseline_share_percent: Decimal
    active: bool = True
    id: str = field(default_factory=_new_id)


@dataclass(frozen=True)
class SegmentedCalculation:
    """Proportional, derived view of a MonthlyCalculation for one allocation."""
    calculation_id: str
    allocation_id: str
    allocation_name: str
    percent: Decimal
    hours: Optional[HoursLedger] = None
    tickets: Optional[TicketsLedger] = None
    amount_to_bill: Decimal = Decimal("0")

    def ledger(self, unit: Unit) -> Optional[Ledger]:
        return self.hours if unit is Unit.HOURS else self.tickets


@dataclass
class Adjustment:
    """Manual correction to one month's consumption. Soft-deactivated, never deleted."""
    company_id: str
    month: int
    year: int
    direction: AdjustmentDirection
    note: str
    author: str
    hours_delta: Optional[Duration] = None
    tickets_delta: Optional[Decimal] = None
    active: bool = True
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utcnow)
    deactivated_at: Optional[datetime] = None
    deactivated_by: Optional[str] = None
    deactivation_reason: Optional[str] = None

    @property
    def signed_hours(self) -> Duration:
        if self.hours_delta is None:
            return Duration()
        return Duration(abs(self.hours_delta.minutes) * self.direction.sign)

    @property
    def signed_tickets(self) -> Decimal:
        if self.tickets_delta is None:
            return Decimal("0")
        return abs(self.tickets_delta) * self.direction.sign


@dataclass(frozen=True)
class VersionRecord:
    """Write-once audit entry describing one version transition."""
    calculation_id: str
    company_id: str
    month: int
    year: int
    from_version: int
    to_version: int
    before: dict[str, Any]
    after: dict[str, Any]
    reason: str
    change_kind: ChangeKind
    author: str
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class FieldChange:
    field: str
    before: Any
    after: Any


@dataclass(frozen=True)
class VersionDiff:
    added: list[str]
    removed: list[str]
    changed: list[FieldChange]

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.changed)


@dataclass(frozen=True)
class Rate:
    """Billing rate with an effective window; end may be open."""
    company_id: str
    effective_start: date
    effective_end: Optional[date] = None
    hourly_rate: Optional[Decimal] = None
    ticket_rate: Optional[Decimal] = None

    def for_unit(self, unit: Unit) -> Optional[Decimal]:
        return self.hourly_rate if unit is Unit.HOURS else self.ticket_rate


@dataclass(frozen=True)
class Usage:
    """Consumption figures reported by the usage provider for one month."""
    hours: Duration = Duration()
    tickets: Decimal = Decimal("0")

    def for_unit(self, unit: Unit) -> Amount:
        return self.hours if unit is Unit.HOURS else self.tickets


@dataclass(frozen=True)
class ClosureResult:
    final_balance: Amount
    force_overage: bool
    rollover_out: Amount


@dataclass(frozen=True)
class OverageResult:
    overage_amount: Amount
    monetary_value: Decimal
    rate: Optional[Decimal]
    rate_found: bool
    warning: Optional[str] = None


@dataclass(frozen=True)
class AdjustmentResult:
    adjustment: Adjustment
    recalculated_months: int
    calculations: list[MonthlyCalculation] = field(default_factory=list)


@dataclass(frozen=True)
class SourceCheck:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class AllocationCheck:
    valid: bool
    errors: list[str] = field(default_factory=list)
    percent_sum: Decimal = Decimal("0")


class HoursBankError(Exception):
    """Base error; carries operation/company/month/year/field context."""

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        company_id: Optional[str] = None,
        month: Optional[int] = None,
        year: Optional[int] = None,
        field: Optional[str] = None,
    ):
        self.message = message
        self.operation = operation
        self.company_id = company_id
        self.month = month
        self.year = year
        self.field = field
        super().__init__(self._render())

    @property
    def context(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "company_id": self.company_id,
            "month": self.month,
            "year": self.year,
            "field": self.field,
        }

    def _render(self) -> str:
        parts = [f"{k}={v}" for k, v in self.context.items() if v is not None]
        return f"{self.message} [{', '.join(parts)}]" if parts else self.message


class ConfigurationError(HoursBankError):
    """Contract parameters missing or unusable; blocks computation."""


class ValidationError(HoursBankError):
    """Raised when input validation fails. Collects every problem found."""

    def __init__(self, errors: list[str] | str, **context: Any):
        self.errors = [errors] if isinstance(errors, str) else list(errors)
        super().__init__(
            f"Validation failed with {len(self.errors)} error(s):\n"
            + "\n".join(f"  - {e}" for e in self.errors),
            **context,
        )


class PercentSumInvalidError(ValidationError):
    def __init__(self, percent_sum: Decimal, **context: Any):
        self.percent_sum = percent_sum
        super().__init__(
            [f"Allocation percentages must sum to 100, got {percent_sum}"],
            **context,
        )


class NotFoundError(HoursBankError):
    """Referenced calculation, adjustment or version does not exist."""


class CalculationNotFoundError(NotFoundError):
    pass


class IntegrationError(HoursBankError):
    """Usage or rate provider failure."""

    def __init__(self, message: str, *, retryable: bool = True, source: Optional[str] = None, **context: Any):
        self.retryable = retryable
        self.source = source
        super().__init__(message, **context)


class StaleVersionError(HoursBankError):
    """A calculation version was written that is not newer than the stored one."""
