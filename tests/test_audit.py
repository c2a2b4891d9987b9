"""Tests for audit JSON generation."""

import json
from decimal import Decimal

import pytest

from conftest import set_usage
from hours_bank.audit import DecimalEncoder, generate_audit, generate_audit_dict
from hours_bank.models import AdjustmentDirection, Allocation, Duration


class TestDecimalEncoder:
    def test_encodes_domain_values(self):
        text = json.dumps({"money": Decimal("12.50"), "hours": Duration(-90)}, cls=DecimalEncoder)
        assert json.loads(text) == {"money": 12.5, "hours": "-1:30"}

    def test_rejects_unknown_types(self):
        with pytest.raises(TypeError):
            json.dumps({"x": object()}, cls=DecimalEncoder)


class TestGenerateAudit:
    @pytest.mark.asyncio
    async def test_dict_contents(self, bank):
        set_usage(bank, 1, 2024, used="150:00")
        calc = await bank.compute("acme", 1, 2024)
        audit = generate_audit_dict(calc)

        assert audit["company_id"] == "acme"
        assert audit["period"] == "01/2024"
        assert audit["version"] == 1
        assert audit["contract_kind"] == "hours"
        assert audit["ledgers"]["hours"]["balance"] == Duration(600)
        assert "tickets" not in audit["ledgers"]
        assert audit["snapshot"]["hours_balance"] == "10:00"
        assert audit["segments"] == []
        assert audit["history"] == []

    @pytest.mark.asyncio
    async def test_bank_audit_includes_history_and_segments(self, bank):
        bank.allocations.add(Allocation(company_id="acme", name="Ops", baseline_share_percent=Decimal("60")))
        bank.allocations.add(Allocation(company_id="acme", name="Dev", baseline_share_percent=Decimal("40")))
        set_usage(bank, 1, 2024, used="150:00")
        await bank.compute("acme", 1, 2024)
        await bank.create_adjustment(
            "acme", 1, 2024, AdjustmentDirection.ENTRY, "Client approved credit", hours_delta=Duration(60),
        )

        audit = await bank.audit("acme", 1, 2024)
        assert audit["version"] == 2
        assert [h["to_version"] for h in audit["history"]] == [2, 1]
        assert audit["history"][0]["change_kind"] == "adjustment"
        assert [s["allocation_name"] for s in audit["segments"]] == ["Ops", "Dev"]
        assert audit["segments"][0]["ledgers"]["hours"]["baseline"] == Duration(5760)

    @pytest.mark.asyncio
    async def test_writes_json_file(self, bank, tmp_path):
        set_usage(bank, 1, 2024, used="170:00")
        bank.parameter_store.put("acme", {**(await bank.parameter_store.get("acme")), "cycle_length_months": 1})
        calc = await bank.compute("acme", 1, 2024)

        path = generate_audit(calc, tmp_path / "audit.json")
        data = json.loads(path.read_text(encoding="utf-8"))

        assert data["amount_to_bill"] == 1000.0
        assert data["is_period_end"] is True
        assert data["ledgers"]["hours"]["overage_amount"] == "10:00"
        assert data["ledgers"]["hours"]["rate_used"] == 100.0
        assert "R$ 1.000,00" in data["public_note"]
        assert data["created_at"] == calc.created_at.isoformat()
