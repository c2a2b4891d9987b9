"""Shared fixtures for hours bank tests."""

from datetime import date
from decimal import Decimal

import pytest

from hours_bank.config import Settings
from hours_bank.models import Rate, Usage
from hours_bank.parsers.hours_parser import parse_hours
from hours_bank.service import HoursBank


def make_params(**overrides) -> dict:
    row = dict(
        company_name="Acme",
        contract_kind="hours",
        cycle_length_months=3,
        contract_start="2024-01-01",
        monthly_baseline_hours="160:00",
        monthly_rollover_percent=100,
    )
    row.update(overrides)
    return row


def set_usage(bank: HoursBank, month: int, year: int, used: str = "0:00", billed: str = "0:00",
              tickets: str = "0", company_id: str = "acme") -> None:
    bank.consumption.set_consumption(company_id, month, year, Usage(hours=parse_hours(used), tickets=Decimal(tickets)))
    bank.consumption.set_billed_requests(company_id, month, year, Usage(hours=parse_hours(billed)))


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def bank(settings) -> HoursBank:
    b = HoursBank.in_memory(settings)
    b.parameter_store.put("acme", make_params())
    b.rates.add(Rate(company_id="acme", effective_start=date(2023, 1, 1), hourly_rate=Decimal("100")))
    return b
