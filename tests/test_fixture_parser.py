"""Tests for the JSON fixture loader."""

import json
from decimal import Decimal

import pytest

from hours_bank.models import AdjustmentDirection, Duration, Unit, ValidationError
from hours_bank.parsers.fixture_parser import load_fixture, parse_fixture
from hours_bank.service import HoursBank


def _fixture_data() -> dict:
    return {
        "companies": {
            "acme": {
                "company_name": "Acme",
                "contract_kind": "hours",
                "cycle_length_months": 3,
                "contract_start": "2024-01-01",
                "monthly_baseline_hours": "160:00",
                "monthly_rollover_percent": 100,
            },
            "globex": {
                "contract_kind": "tickets",
                "cycle_length_months": 1,
                "contract_start": "2024-01-01",
                "monthly_baseline_tickets": 20,
            },
        },
        "consumption": [
            {"company_id": "acme", "period": "01/2024", "hours": "150:00"},
            {"company_id": "globex", "period": "2024-01", "tickets": 25},
        ],
        "billed_requests": [
            {"company_id": "acme", "period": "01/2024", "hours": "2:30"},
        ],
        "rates": [
            {"company_id": "globex", "effective_start": "2023-06-01", "ticket_rate": "80.00"},
        ],
        "allocations": [
            {"company_id": "acme", "name": "Ops", "percent": 70},
            {"company_id": "acme", "name": "Dev", "percent": 30},
            {"company_id": "acme", "name": "Legacy", "percent": 10, "active": False},
        ],
        "adjustments": [
            {
                "company_id": "acme",
                "period": "01/2024",
                "direction": "entry",
                "hours": "2:00",
                "note": "Credit for outage window",
                "author": "ana",
            },
        ],
    }


class TestParseFixture:
    @pytest.mark.asyncio
    async def test_builds_stores(self):
        fixture = parse_fixture(_fixture_data())
        assert fixture.company_ids == ["acme", "globex"]

        usage = await fixture.consumption.get_consumption("acme", 1, 2024)
        assert usage.hours == Duration(9000)
        billed = await fixture.consumption.get_billed_requests("acme", 1, 2024)
        assert billed.hours == Duration(150)
        tickets = await fixture.consumption.get_consumption("globex", 1, 2024)
        assert tickets.tickets == Decimal("25")

        rate = await fixture.rates.get_latest_rate("globex", 1, 2024, Unit.TICKETS)
        assert rate.ticket_rate == Decimal("80.00")
        assert rate.hourly_rate is None

        active = await fixture.allocations.list_active("acme")
        assert [a.name for a in active] == ["Ops", "Dev"]

    def test_pending_adjustments(self):
        fixture = parse_fixture(_fixture_data())
        [pending] = fixture.adjustments
        assert pending.direction is AdjustmentDirection.ENTRY
        assert pending.hours_delta == Duration(120)
        assert pending.tickets_delta is None
        assert pending.author == "ana"

    def test_empty_document(self):
        fixture = parse_fixture({})
        assert fixture.company_ids == []
        assert fixture.adjustments == []

    def test_collects_every_error(self):
        data = _fixture_data()
        data["consumption"].append({"company_id": "acme", "period": "13/2024", "hours": "1:00"})
        data["rates"].append({"company_id": "acme"})
        data["adjustments"][0]["direction"] = "sideways"
        with pytest.raises(ValidationError) as exc_info:
            parse_fixture(data)
        errors = exc_info.value.errors
        assert len(errors) == 3
        assert errors[0].startswith("consumption[2]")
        assert errors[1] == "rates[1]: missing field 'effective_start'"
        assert errors[2].startswith("adjustments[0]")

    def test_bad_hours(self):
        data = _fixture_data()
        data["consumption"][0]["hours"] = "10:75"
        with pytest.raises(ValidationError, match="Minutes must be below 60"):
            parse_fixture(data)


class TestLoadFixture:
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_fixture(tmp_path / "nope.json")

    def test_reads_file(self, tmp_path):
        path = tmp_path / "bank.json"
        path.write_text(json.dumps(_fixture_data()), encoding="utf-8")
        assert load_fixture(path).company_ids == ["acme", "globex"]


class TestBankFromFixture:
    @pytest.mark.asyncio
    async def test_compute_and_apply_adjustments(self, tmp_path, settings):
        path = tmp_path / "bank.json"
        path.write_text(json.dumps(_fixture_data()), encoding="utf-8")
        bank = HoursBank.from_fixture(path, settings)
        assert len(bank.pending_adjustments) == 1

        january = await bank.compute("acme", 1, 2024)
        assert january.hours.total_consumption == Duration(9150)
        assert january.hours.balance == Duration(450)

        [result] = await bank.apply_pending_adjustments()
        assert bank.pending_adjustments == []
        assert result.adjustment.author == "ana"
        assert result.calculations[0].hours.balance == Duration(570)

    @pytest.mark.asyncio
    async def test_tickets_company_bills_at_period_end(self, tmp_path, settings):
        path = tmp_path / "bank.json"
        path.write_text(json.dumps(_fixture_data()), encoding="utf-8")
        bank = HoursBank.from_fixture(path, settings)

        calc = await bank.compute("globex", 1, 2024)
        assert calc.is_period_end
        assert calc.tickets.overage_amount == Decimal("5")
        assert calc.amount_to_bill == Decimal("400.00")
        assert calc.hours is None

    @pytest.mark.asyncio
    async def test_segments_use_active_allocations(self, tmp_path, settings):
        path = tmp_path / "bank.json"
        path.write_text(json.dumps(_fixture_data()), encoding="utf-8")
        bank = HoursBank.from_fixture(path, settings)
        await bank.compute("acme", 1, 2024)

        segments = await bank.segment("acme", 1, 2024)
        assert [s.allocation_name for s in segments] == ["Ops", "Dev"]
        assert segments[0].hours.baseline == Duration(6720)
        assert segments[1].hours.baseline == Duration(2880)
