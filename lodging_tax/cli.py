"""
Command-line interface for the lodging tax engine.

Provides subcommands for calculating a single booking's taxes, running a
CSV batch of requests, and inspecting a property's rule set.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from lodging_tax.applicability import explain
from lodging_tax.config import EngineConfig
from lodging_tax.engine import TaxEngine
from lodging_tax.errors import InvalidContext, InvalidRuleDefinition, TaxEngineError
from lodging_tax.models import CalculationResult, TaxRule
from lodging_tax.rules import parse_context, parse_rule, rule_id_of
from lodging_tax.serialize import (
    export_csv,
    export_json,
    read_requests_csv,
    to_error_payload,
)
from lodging_tax.store import RuleStore

console = Console()


def _configure_logging(level: int) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _load_store(path: str) -> RuleStore:
    rules_path = Path(path)
    if not rules_path.exists():
        console.print(f"[red]Rules file not found: {path}[/red]")
        sys.exit(1)
    try:
        return RuleStore.from_json(rules_path)
    except ValueError as e:
        console.print(f"[red]Cannot load rules: {e}[/red]")
        sys.exit(1)


def _money(value: Optional[Decimal], places: int = 2) -> str:
    """Format an amount with at least the currency's minor-unit places."""
    if value is None:
        return "-"
    places = max(places, -value.as_tuple().exponent)
    return f"{value:,.{places}f}"


def _request_from_args(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "baseAmount": args.amount,
        "roomTypeId": args.room_type,
        "roomCount": args.rooms,
        "guestCount": args.guests,
        "stayNights": args.nights,
        "channel": args.channel,
        "guestType": args.guest_type,
        "guestCountry": args.country,
        "checkInDate": args.check_in or date.today().isoformat(),
    }


def _print_error(exc: TaxEngineError) -> None:
    payload = to_error_payload(exc)
    lines = [f"[bold]{payload['error']}[/bold]"]
    for name, message in payload.get("fields", {}).items():
        lines.append(f"  {name}: {message}")
    console.print(Panel("\n".join(lines), title="Error", border_style="red"))


def _print_result(result: CalculationResult, config: EngineConfig) -> None:
    currency, places = config.currency, config.minor_unit_exponent
    table = Table(title="Tax Breakdown", box=box.ROUNDED, show_lines=True)
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Charge", justify="right")
    table.add_column("Base", justify="right")
    table.add_column("Amount", justify="right", style="bold")
    table.add_column("Compound", justify="center")

    for item in result.tax_breakdown:
        if item.is_percentage:
            charge = f"{item.rate}%"
        else:
            charge = f"{_money(item.fixed_amount, places)} {item.calculation_method.value}"
        table.add_row(
            item.rule_id[:12],
            item.rule_name,
            item.category.value,
            charge,
            _money(item.base_amount_used, places),
            _money(item.tax_amount, places),
            str(item.compound_order) if item.is_compound else "",
        )
    console.print(table)

    if result.category_breakdown:
        cat_table = Table(title="By Category", box=box.SIMPLE)
        cat_table.add_column("Category")
        cat_table.add_column("Taxes", justify="right")
        cat_table.add_column("Total", justify="right")
        for category, group in result.category_breakdown.items():
            cat_table.add_row(
                category.value, str(len(group.items)), _money(group.total_amount, places)
            )
        console.print(cat_table)

    console.print(
        Panel(
            f"[bold]Base Amount:[/bold] {currency} {_money(result.base_amount, places)}\n"
            f"[bold]Total Tax:[/bold] {currency} {_money(result.total_tax_amount, places)}\n"
            f"[bold]Effective Rate:[/bold] {float(result.effective_rate):.2%}\n"
            f"[bold]Total Amount:[/bold] {currency} {_money(result.total_amount, places)}",
            title="Calculation",
            border_style="blue",
        )
    )
    if result.rejected_rules:
        console.print(
            f"[yellow]{len(result.rejected_rules)} rule(s) excluded as invalid; see log[/yellow]"
        )


# -----------------------------------------------------------------------
# Subcommand: calculate
# -----------------------------------------------------------------------


def cmd_calculate(args: argparse.Namespace, config: EngineConfig) -> int:
    """Calculate taxes for one booking."""
    store = _load_store(args.rules)
    engine = TaxEngine(config)
    request = _request_from_args(args)

    try:
        ctx = parse_context(request)
        result = engine.calculate_for_property(store, args.property, ctx)
    except TaxEngineError as e:
        _print_error(e)
        return 2 if isinstance(e, InvalidContext) else 1

    _print_result(result, config)

    if args.export_json:
        export_json(result, ctx, args.export_json)
        console.print(f"[green]JSON exported to {args.export_json}[/green]")
    if args.export_csv:
        export_csv(result, args.export_csv)
        console.print(f"[green]CSV exported to {args.export_csv}[/green]")
    return 0


# -----------------------------------------------------------------------
# Subcommand: batch
# -----------------------------------------------------------------------


def cmd_batch(args: argparse.Namespace, config: EngineConfig) -> int:
    """Evaluate a CSV of requests against one rule snapshot."""
    store = _load_store(args.rules)
    csv_path = Path(args.file)
    if not csv_path.exists():
        console.print(f"[red]File not found: {args.file}[/red]")
        return 1

    requests = read_requests_csv(csv_path)
    engine = TaxEngine(config)
    batch = engine.calculate_batch(store.current_rules(args.property), requests)
    places = config.minor_unit_exponent

    table = Table(title="Batch Results", box=box.ROUNDED, show_lines=True)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Base", justify="right")
    table.add_column("Tax", justify="right", style="bold")
    table.add_column("Total", justify="right")
    table.add_column("Status")

    for item in batch.items:
        if item.result is not None:
            table.add_row(
                str(item.index + 1),
                _money(item.result.base_amount, places),
                _money(item.result.total_tax_amount, places),
                _money(item.result.total_amount, places),
                "[green]ok[/green]",
            )
        else:
            payload = to_error_payload(item.error)
            detail = ", ".join(payload.get("fields", {})) or payload["error"]
            table.add_row(str(item.index + 1), "-", "-", "-", f"[red]{detail}[/red]")
    console.print(table)

    summary = "\n".join(
        [
            f"[bold]Requests:[/bold] {len(batch.items)} "
            f"({batch.succeeded} ok, {batch.failed} failed)",
            f"[bold]Snapshot Version:[/bold] {batch.snapshot_version}",
            f"[bold]Total Base:[/bold] {config.currency} {_money(batch.total_base, places)}",
            f"[bold]Total Tax:[/bold] {config.currency} {_money(batch.total_tax, places)}",
        ]
        + [
            f"  {category}: {_money(amount, places)}"
            for category, amount in batch.category_totals.items()
        ]
    )
    console.print(Panel(summary, title="Batch Summary", border_style="green"))
    return 0 if batch.failed == 0 else 1


# -----------------------------------------------------------------------
# Subcommand: rules
# -----------------------------------------------------------------------


def cmd_rules(args: argparse.Namespace, config: EngineConfig) -> int:
    """List a property's rules, with applicability for an optional context."""
    store = _load_store(args.rules)
    places = config.minor_unit_exponent
    snapshot = store.current_rules(args.property)
    if not snapshot.rules:
        console.print(f"[yellow]No rules for property {args.property}[/yellow]")
        return 0

    ctx = None
    if args.amount:
        try:
            ctx = parse_context(_request_from_args(args))
        except InvalidContext as e:
            _print_error(e)
            return 2

    table = Table(
        title=f"Rules for {args.property} (v{snapshot.version})",
        box=box.ROUNDED,
    )
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Charge", justify="right")
    table.add_column("Compound", justify="center")
    table.add_column("Status")

    for record in snapshot.rules:
        try:
            rule = record if isinstance(record, TaxRule) else parse_rule(record)
        except InvalidRuleDefinition as e:
            table.add_row(
                rule_id_of(record) or "?", "-", "-", "-", "-",
                f"[red]invalid: {e.reason}[/red]",
            )
            continue

        if rule.is_percentage:
            charge = f"{rule.rate}%"
        else:
            charge = f"{_money(rule.fixed_amount, places)} {rule.calculation_method.value}"
        status = "[green]valid[/green]"
        if ctx is not None:
            failures = explain(rule, ctx)
            status = (
                "[green]applies[/green]"
                if not failures
                else f"[dim]skipped: {', '.join(failures)}[/dim]"
            )
        table.add_row(
            rule.rule_id,
            rule.name,
            rule.category.value,
            charge,
            str(rule.compound_order) if rule.is_compound else "",
            status,
        )
    console.print(table)
    return 0


# -----------------------------------------------------------------------
# Argument parser
# -----------------------------------------------------------------------


def _add_context_args(p: argparse.ArgumentParser, amount_required: bool) -> None:
    p.add_argument("--amount", required=amount_required, help="Base amount")
    p.add_argument("--room-type", help="Room type id")
    p.add_argument("--rooms", default="1", help="Number of rooms (default: 1)")
    p.add_argument("--guests", default="1", help="Number of guests (default: 1)")
    p.add_argument("--nights", default="1", help="Stay nights (default: 1)")
    p.add_argument("--channel", default="direct", help="Booking channel (default: direct)")
    p.add_argument("--guest-type", help="Guest type, e.g. corporate, VIP")
    p.add_argument("--country", help="Guest country code")
    p.add_argument("--check-in", help="Check-in date YYYY-MM-DD (default: today)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lodging-tax",
        description="Lodging Tax Engine - Rule-based tax and fee calculation for property bookings",
    )
    parser.add_argument("--log-level", help="Logging level (default from LODGING_TAX_LOG_LEVEL)")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # calculate
    calc_p = subparsers.add_parser("calculate", help="Calculate taxes for a booking")
    calc_p.add_argument("--rules", "-r", required=True, help="Rules JSON file")
    calc_p.add_argument("--property", "-p", required=True, help="Property id")
    _add_context_args(calc_p, amount_required=True)
    calc_p.add_argument("--export-json", help="Export calculation to JSON file")
    calc_p.add_argument("--export-csv", help="Export breakdown to CSV file")
    calc_p.set_defaults(func=cmd_calculate)

    # batch
    batch_p = subparsers.add_parser("batch", help="Calculate a CSV of requests")
    batch_p.add_argument("--rules", "-r", required=True, help="Rules JSON file")
    batch_p.add_argument("--property", "-p", required=True, help="Property id")
    batch_p.add_argument("--file", "-f", required=True, help="CSV file with requests")
    batch_p.set_defaults(func=cmd_batch)

    # rules
    rules_p = subparsers.add_parser("rules", help="Inspect a property's rules")
    rules_p.add_argument("--rules", "-r", required=True, help="Rules JSON file")
    rules_p.add_argument("--property", "-p", required=True, help="Property id")
    _add_context_args(rules_p, amount_required=False)
    rules_p.set_defaults(func=cmd_rules)

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    try:
        config = EngineConfig.from_env()
        if args.log_level:
            config = replace(config, log_level=args.log_level)
    except ValueError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(1)

    _configure_logging(config.log_level_value)
    sys.exit(args.func(args, config))
