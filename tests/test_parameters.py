"""Tests for contract parameter resolution and cycle transitions."""

import logging

import pytest
from decimal import Decimal
from datetime import date

from conftest import make_params
from hours_bank.config import Settings
from hours_bank.models import ConfigurationError, ContractKind, Duration, ValidationError
from hours_bank.parameters import ParameterResolver
from hours_bank.stores import InMemoryParameterStore


def _make_resolver(**overrides) -> ParameterResolver:
    store = InMemoryParameterStore({"acme": make_params(**overrides)})
    return ParameterResolver(store, Settings(_env_file=None))


class TestResolve:
    @pytest.mark.asyncio
    async def test_resolves_row(self):
        params = await _make_resolver().resolve("acme")
        assert params.contract_kind is ContractKind.HOURS
        assert params.cycle_length_months == 3
        assert params.contract_start == date(2024, 1, 1)
        assert params.monthly_baseline_hours == Duration(9600)
        assert params.company_name == "Acme"

    @pytest.mark.asyncio
    async def test_defaults(self):
        row = make_params()
        del row["monthly_rollover_percent"]
        resolver = ParameterResolver(InMemoryParameterStore({"acme": row}), Settings(_env_file=None))
        params = await resolver.resolve("acme")
        assert params.has_special_rollover is False
        assert params.cycles_until_zeroing == 1
        assert params.current_cycle_index == 1
        assert params.monthly_rollover_percent == Decimal("100")
        assert params.last_closed_period is None

    @pytest.mark.asyncio
    async def test_unknown_company(self):
        with pytest.raises(ConfigurationError):
            await _make_resolver().resolve("globex")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing", ["contract_kind", "cycle_length_months", "contract_start"])
    async def test_required_fields_never_defaulted(self, missing):
        with pytest.raises(ConfigurationError) as exc_info:
            await _make_resolver(**{missing: None}).resolve("acme")
        assert exc_info.value.field == missing

    @pytest.mark.asyncio
    async def test_unknown_kind(self):
        with pytest.raises(ConfigurationError):
            await _make_resolver(contract_kind="minutes").resolve("acme")

    @pytest.mark.asyncio
    async def test_cycle_out_of_range(self):
        with pytest.raises(ConfigurationError):
            await _make_resolver(cycle_length_months=13).resolve("acme")

    @pytest.mark.asyncio
    async def test_bad_baseline(self):
        with pytest.raises(ConfigurationError):
            await _make_resolver(monthly_baseline_hours="lots").resolve("acme")

    @pytest.mark.asyncio
    async def test_missing_baseline_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="hours_bank.parameters"):
            params = await _make_resolver(monthly_baseline_hours=None).resolve("acme")
        assert params.monthly_baseline_hours == Duration()
        assert "no hours baseline" in caplog.text

    @pytest.mark.asyncio
    async def test_tickets_contract(self):
        params = await _make_resolver(contract_kind="tickets", monthly_baseline_tickets="25").resolve("acme")
        assert params.monthly_baseline_tickets == Decimal("25")
        assert params.monthly_baseline_hours is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw, expected",
        [(True, True), (False, False), ("false", False), ("False", False), ("0", False),
         ("", False), ("true", True), ("YES", True), (1, True), (0, False)],
    )
    async def test_special_rollover_flag(self, raw, expected):
        params = await _make_resolver(has_special_rollover=raw).resolve("acme")
        assert params.has_special_rollover is expected

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["maybe", 2, 1.5])
    async def test_unusable_flag(self, raw):
        with pytest.raises(ConfigurationError) as exc_info:
            await _make_resolver(has_special_rollover=raw).resolve("acme")
        assert exc_info.value.field == "has_special_rollover"


class TestCloseCycle:
    @pytest.mark.asyncio
    async def test_rejects_mid_period(self):
        with pytest.raises(ValidationError):
            await _make_resolver().close_cycle("acme", 2, 2024)

    @pytest.mark.asyncio
    async def test_advances_index(self):
        resolver = _make_resolver(has_special_rollover=True, cycles_until_zeroing=3)
        params = await resolver.close_cycle("acme", 3, 2024)
        assert params.current_cycle_index == 2
        assert params.last_closed_period == (3, 2024)
        assert (await resolver.resolve("acme")).current_cycle_index == 2

    @pytest.mark.asyncio
    async def test_idempotent(self):
        resolver = _make_resolver(has_special_rollover=True, cycles_until_zeroing=3)
        await resolver.close_cycle("acme", 3, 2024)
        params = await resolver.close_cycle("acme", 3, 2024)
        assert params.current_cycle_index == 2

    @pytest.mark.asyncio
    async def test_wraps_after_zeroing(self):
        resolver = _make_resolver(has_special_rollover=True, cycles_until_zeroing=3, current_cycle_index=3)
        params = await resolver.close_cycle("acme", 6, 2024)
        assert params.current_cycle_index == 1
