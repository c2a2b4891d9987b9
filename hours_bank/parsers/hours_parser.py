"""Layer 1 — Hours and quantity parsing.

Accepted hour formats:
    "160:00", "7:05", "-10:30"   -> H:MM, optional leading minus
    "40", "-8"                   -> whole hours
Minutes must be below 60. Empty input is zero.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Union

from hours_bank.models import Duration, ValidationError

_HHMM = re.compile(r'^(-)?(\d{1,5}):([0-5]?\d)$')
_WHOLE = re.compile(r'^(-)?(\d{1,5})$')
_GROUPED = re.compile(r'^-?\d{1,3}(,\d{3})+(\.\d+)?$')
_PERIOD = re.compile(r'^(?:(\d{1,2})/(\d{4})|(\d{4})-(\d{1,2}))$')


def parse_hours(value: Union[str, int, Duration, None]) -> Duration:
    """Parse an hours value into a Duration."""
    if value is None:
        return Duration()
    if isinstance(value, Duration):
        return value
    if isinstance(value, int):
        return Duration.from_hours(value)

    text = str(value).strip()
    if not text:
        return Duration()

    match = _HHMM.match(text)
    if match:
        sign, hours, minutes = match.groups()
        total = int(hours) * 60 + int(minutes)
        return Duration(-total if sign else total)

    # "10:75" style input is a typo, not an overflow to carry
    if re.match(r'^-?\d+:\d+$', text):
        raise ValidationError(f"Minutes must be below 60 in '{text}'", field="hours")

    match = _WHOLE.match(text)
    if match:
        sign, hours = match.groups()
        total = int(hours) * 60
        return Duration(-total if sign else total)

    raise ValidationError(f"Cannot parse hours: '{text}'", field="hours")


def format_hours(duration: Duration) -> str:
    return str(duration)


def parse_quantity(value: Union[str, int, float, Decimal, None], field: str = "tickets") -> Decimal:
    """Parse a ticket count or money amount into a Decimal."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # go through str to avoid binary float noise
        value = repr(value)
    text = str(value).strip()
    if "," in text:
        # commas only as thousands grouping
        if not _GROUPED.match(text):
            raise ValidationError(f"Ambiguous separator in {field}: '{value}'", field=field)
        text = text.replace(",", "")
    try:
        result = Decimal(text)
    except InvalidOperation:
        raise ValidationError(f"Cannot parse {field}: '{value}'", field=field)
    if not result.is_finite():
        raise ValidationError(f"{field} is not finite: '{value}'", field=field)
    return result


def parse_period(text: str) -> tuple[int, int]:
    """Parse 'MM/YYYY' or 'YYYY-MM' into (month, year)."""
    match = _PERIOD.match(text.strip())
    if not match:
        raise ValidationError(f"Cannot parse period: '{text}'", field="period")
    if match.group(1):
        month, year = int(match.group(1)), int(match.group(2))
    else:
        year, month = int(match.group(3)), int(match.group(4))
    if not 1 <= month <= 12:
        raise ValidationError(f"Month must be 1-12 in period '{text}'", field="month")
    return month, year
