"""CLI entry point.

Usage:
    python -m hours_bank \
        --fixture "bank.json" \
        --start 01/2024 \
        --months 6 \
        --company acme \
        --audit-out "Audit.json"
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer

from hours_bank.config import get_settings
from hours_bank.models import HoursBankError, MonthlyCalculation, ValidationError


def run(
    fixture: str = typer.Option(..., "--fixture", help="Path to JSON fixture with contracts and usage"),
    start: str = typer.Option(..., "--start", help="First month to compute (MM/YYYY)"),
    months: int = typer.Option(1, "--months", help="Number of consecutive months to compute"),
    company: Optional[list[str]] = typer.Option(None, "--company", help="Company id (repeatable; default: all)"),
    audit_out: Optional[str] = typer.Option(None, "--audit-out", help="Output audit JSON file path"),
    close_cycles: bool = typer.Option(True, "--close-cycles/--no-close-cycles", help="Advance the cycle index at each period end"),
    apply_adjustments: bool = typer.Option(True, "--adjustments/--no-adjustments", help="Apply fixture adjustments after computing"),
) -> None:
    """Compute monthly hours bank balances from a JSON fixture."""
    from hours_bank.audit import DecimalEncoder
    from hours_bank.parsers.hours_parser import parse_period
    from hours_bank.service import HoursBank

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    fixture_path = Path(fixture)
    if not fixture_path.exists():
        typer.echo(f"ERROR: Fixture not found: {fixture_path}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Fixture: {fixture_path}")

    try:
        first_month, year = parse_period(start)
        bank = HoursBank.from_fixture(fixture_path, settings)
        companies = company or sorted(bank.parameter_store.company_ids())
        typer.echo(f"Companies ({len(companies)}): {', '.join(companies)}")
        typer.echo("")

        audits = asyncio.run(
            _run(bank, companies, first_month, year, months, close_cycles, apply_adjustments)
        )

        if audit_out:
            audit_path = Path(audit_out)
            typer.echo(f"\nGenerating audit file: {audit_path}...")
            audit_path.write_text(json.dumps(audits, indent=2, cls=DecimalEncoder), encoding='utf-8')
            typer.echo(f"  Audit file saved to: {audit_path}")

        typer.echo("\nSUCCESS: Hours bank computed.")

    except ValidationError as e:
        typer.echo("\nVALIDATION FAILED:", err=True)
        for error in e.errors:
            typer.echo(f"  ERROR: {error}", err=True)
        raise typer.Exit(1)

    except HoursBankError as e:
        typer.echo(f"\nFATAL ERROR: {e}", err=True)
        raise typer.Exit(1)


async def _run(bank, companies, first_month, year, months, close_cycles, apply_adjustments) -> dict:
    from hours_bank.engine.rollover import next_month

    audits: dict[str, list] = {}
    for company_id in companies:
        typer.echo(f"Company {company_id}:")
        period = (first_month, year)
        for _ in range(months):
            calculation = await bank.compute(company_id, *period)
            _echo_calculation(calculation)
            if close_cycles and calculation.is_period_end:
                params = await bank.close_cycle(company_id, *period)
                typer.echo(f"    Cycle closed; next cycle index {params.current_cycle_index}")
            period = next_month(*period)

    if apply_adjustments and bank.pending_adjustments:
        typer.echo(f"\nApplying {len(bank.pending_adjustments)} adjustment(s)...")
        for result in await bank.apply_pending_adjustments():
            adj = result.adjustment
            typer.echo(
                f"  {adj.company_id} {adj.month:02d}/{adj.year} {adj.direction.value}: "
                f"{result.recalculated_months} month(s) recalculated"
            )
            for calculation in result.calculations:
                _echo_calculation(calculation)

    for company_id in companies:
        period = (first_month, year)
        audits[company_id] = []
        for _ in range(months):
            audits[company_id].append(await bank.audit(company_id, *period))
            period = next_month(*period)
    return audits


def _echo_calculation(calculation: MonthlyCalculation) -> None:
    marker = " [period end]" if calculation.is_period_end else ""
    typer.echo(f"  {calculation.period_label} v{calculation.version}{marker}")
    for ledger in calculation.ledgers:
        typer.echo(
            f"    {ledger.unit.value}: available {ledger.available_balance}, "
            f"used {ledger.total_consumption}, balance {ledger.balance}, "
            f"rollover {ledger.rollover_to_next}"
        )
    if calculation.amount_to_bill:
        typer.echo(f"    To bill: {calculation.amount_to_bill}")
    for warning in calculation.warnings:
        typer.echo(f"    WARNING: {warning}")


def main() -> None:
    typer.run(run)


if __name__ == "__main__":
    main()
