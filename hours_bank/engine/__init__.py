"""Rollover, overage, calculation and segmentation engines."""
from hours_bank.engine.calculator import MonthlyCalculator
from hours_bank.engine.overage import OverageValuator
from hours_bank.engine.rollover import apply_closure, is_period_end, monthly_rollover
from hours_bank.engine.segmenter import segment, validate_sum, verify_segmented_sum
from hours_bank.engine.validator import validate_adjustment

__all__ = [
    "MonthlyCalculator",
    "OverageValuator",
    "apply_closure",
    "is_period_end",
    "monthly_rollover",
    "segment",
    "validate_sum",
    "verify_segmented_sum",
    "validate_adjustment",
]
