"""Overage valuation — prices a negative closing balance.

The rate used is the catalog's latest rate whose effective start falls on or
before the first day of the reference month. A rate whose window has already
ended is still used when it is the most recent one; this is logged.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from hours_bank.config import Settings, get_settings
from hours_bank.models import (
    Amount,
    Duration,
    OverageResult,
    Unit,
    is_negative,
    zero_of,
)
from hours_bank.stores import RateCatalog

logger = logging.getLogger(__name__)

RATE_NOT_FOUND = "Billing rate not found for the period. Overage value pending manual pricing."


def format_money(value: Decimal, symbol: str = "R$") -> str:
    """Format as '<symbol> 1.234,56' (dot thousands, comma decimals)."""
    quantized = value.quantize(Decimal("0.01"), ROUND_HALF_UP)
    text = f"{abs(quantized):,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    sign = "-" if quantized < 0 else ""
    return f"{sign}{symbol} {text}"


class OverageValuator:
    def __init__(self, rate_catalog: RateCatalog, settings: Optional[Settings] = None) -> None:
        self._rates = rate_catalog
        self._settings = settings or get_settings()

    async def valuate(
        self,
        company_id: str,
        balance: Amount,
        month: int,
        year: int,
        unit: Unit,
    ) -> OverageResult:
        """Price |balance| at the month's rate. Non-negative balances price to zero."""
        if not is_negative(balance):
            return OverageResult(
                overage_amount=zero_of(unit),
                monetary_value=Decimal("0"),
                rate=None,
                rate_found=False,
            )

        overage = abs(balance)
        rate = await self._rates.get_latest_rate(company_id, month, year, unit)
        rate_value = rate.for_unit(unit) if rate is not None else None

        if rate is None or rate_value is None:
            logger.warning(
                "No %s rate for company %s in %02d/%d; overage %s left unpriced",
                unit.value, company_id, month, year, overage,
            )
            return OverageResult(
                overage_amount=overage,
                monetary_value=Decimal("0"),
                rate=None,
                rate_found=False,
                warning=RATE_NOT_FOUND,
            )

        reference = date(year, month, 1)
        if rate.effective_end is not None and rate.effective_end < reference:
            logger.warning(
                "Using expired %s rate for company %s in %02d/%d (ended %s)",
                unit.value, company_id, month, year, rate.effective_end.isoformat(),
            )

        magnitude = overage.hours if isinstance(overage, Duration) else overage
        value = (magnitude * rate_value).quantize(Decimal("0.01"), ROUND_HALF_UP)
        logger.debug("Overage %s x %s = %s for %s", overage, rate_value, value, company_id)

        return OverageResult(
            overage_amount=overage,
            monetary_value=value,
            rate=rate_value,
            rate_found=True,
        )

    def describe(
        self,
        company_name: str,
        amount: Amount,
        month: int,
        year: int,
        value: Decimal,
        unit: Optional[Unit] = None,
    ) -> str:
        """Canonical billing line for an overage."""
        if unit is None:
            unit = Unit.HOURS if isinstance(amount, Duration) else Unit.TICKETS
        period = f"{month:02d}/{year}"
        money = format_money(value, self._settings.currency_symbol)
        return f"Overage of {amount} {unit.value} for period {period} - Value: {money}"
