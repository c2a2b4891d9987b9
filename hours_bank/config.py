"""Runtime configuration using Pydantic Settings v2.

Values come from HOURS_BANK_* environment variables, with .env file support.
"""

from __future__ import annotations

import functools
from decimal import Decimal
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="HOURS_BANK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Hours Bank"
    log_level: str = "INFO"

    # ── Business rules ───────────────────────────────────────────
    min_note_length: int = 10
    default_rollover_percent: Decimal = Decimal("100")
    system_author: str = "system"

    # ── Reconciliation ───────────────────────────────────────────
    duration_tolerance_minutes: int = 1
    amount_tolerance: Decimal = Decimal("0.01")

    # ── Presentation ─────────────────────────────────────────────
    currency_symbol: str = "R$"

    # ── HTTP surface ─────────────────────────────────────────────
    allowed_origins: list[str] = ["http://localhost:3000", "http://localhost:8080"]
    fixture_path: Optional[str] = None

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    @field_validator("default_rollover_percent")
    @classmethod
    def _percent_in_range(cls, value: Decimal) -> Decimal:
        if not Decimal("0") <= value <= Decimal("100"):
            raise ValueError(f"default_rollover_percent must be 0-100, got {value}")
        return value


@functools.lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
