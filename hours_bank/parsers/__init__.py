"""Hours, period and fixture parsing layer."""
from hours_bank.parsers.hours_parser import format_hours, parse_hours, parse_period, parse_quantity

__all__ = ["format_hours", "parse_hours", "parse_period", "parse_quantity"]
