"""Command-line entry points for the bar ledger.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into the form objects consumed by the mutation
coordinator, and printing analytics. Every command runs inside one
:class:`~bar_ledger.core_logic.LedgerSession` that is started before dispatch
and closed afterwards.
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, log, set_console_level
from .analytics import PeriodComparison
from .constants import Period
from .mutations import SaleForm, SaleValidationError
from .records import TargetConfiguration, parse_decimal


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.LedgerSession, argparse.Namespace], int]


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="bar-ledger",
        description="Daily sales ledger and analytics for the bar.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to an upward search from ./).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show debug log messages on stderr.",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands."""
    specs = {
        "add": register_add_command(subparsers),
        "update": register_update_command(subparsers),
        "delete": register_delete_command(subparsers),
        "set-targets": register_set_targets_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports."""
    specs = {
        "sync": register_sync_command(subparsers),
        "summary": register_summary_command(subparsers),
        "weekdays": register_weekdays_command(subparsers),
        "compare": register_compare_command(subparsers),
        "export": register_export_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _add_sale_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--date", default="", help="Business day (YYYY-MM-DD); defaults to today.")
    parser.add_argument("--groups", required=True, help="Number of customer groups.")
    parser.add_argument("--total-sales", required=True)
    parser.add_argument("--card", default="", help="Card payments.")
    parser.add_argument("--paypay", default="", help="PayPay payments.")
    parser.add_argument("--expenses", default="")
    parser.add_argument("--event", default="")
    parser.add_argument("--notes", default="")
    parser.add_argument("--updated-by", default="")


def register_add_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add``."""
    name = "add"
    help_text = "Record a business day."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_sale_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add)


def register_update_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``update``."""
    name = "update"
    help_text = "Replace an existing business day record."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--id", dest="sale_id", required=True)
        _add_sale_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_update)


def register_delete_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete``."""
    name = "delete"
    help_text = "Delete a business day record."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--id", dest="sale_id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete)


def register_set_targets_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``set-targets``."""
    name = "set-targets"
    help_text = "Store daily, weekly and monthly sales targets."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--daily", default=None)
        parser.add_argument("--weekly", default=None)
        parser.add_argument("--monthly", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_set_targets)


def register_sync_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sync``."""
    name = "sync"
    help_text = "Reload from the remote ledger and report connectivity."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sync)


def register_summary_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``summary``."""
    name = "summary"
    help_text = "Display totals, averages and target achievement."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_summary_report)


def register_weekdays_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``weekdays``."""
    name = "weekdays"
    help_text = "Display averages per day of the week."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_weekdays_report)


def register_compare_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``compare``."""
    name = "compare"
    help_text = "Compare this week or month with the previous one."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument(
            "--period",
            choices=[Period.WEEKLY.value, Period.MONTHLY.value],
            default=Period.WEEKLY.value,
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_compare_report)


def register_export_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``export``."""
    name = "export"
    help_text = "Write all records to bar_sales_data_<date>.csv."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--output-dir", type=Path, default=Path.cwd())
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_export)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.LedgerSession:
    """Resolve the ledger session for CLI operations."""
    return core_logic.load_runtime_context(Path(config_path) if config_path is not None else None)


def dispatch_command(
    session: core_logic.LedgerSession,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(session, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def translate_sale_form(args: argparse.Namespace) -> SaleForm:
    """Translate CLI args into the raw sale form."""
    return SaleForm(
        date=args.date,
        group_count=args.groups,
        total_sales=args.total_sales,
        card_sales=args.card,
        paypay_sales=args.paypay,
        expenses=args.expenses,
        event=args.event,
        notes=args.notes,
        updated_by=args.updated_by,
    )


def translate_targets(args: argparse.Namespace, current: TargetConfiguration) -> TargetConfiguration:
    """Merge the supplied target options over the current targets."""
    values = {}
    for name in ("daily", "weekly", "monthly"):
        raw = getattr(args, name)
        if raw is None:
            values[name] = getattr(current, name)
            continue
        parsed = parse_decimal(raw)
        if parsed is None or parsed < 0:
            raise SaleValidationError({name: "must be a non-negative number"})
        values[name] = parsed
    return TargetConfiguration(**values)


def _money(value: Decimal) -> str:
    return f"¥{value.quantize(Decimal('1')):,}"


def _pct(value: Decimal) -> str:
    return f"{value.quantize(Decimal('0.1'))}%"


def run_add(session: core_logic.LedgerSession, args: argparse.Namespace) -> int:
    """Execute the create workflow via the mutation coordinator."""
    sale = session.mutations.submit_create(translate_sale_form(args))
    print(f"Recorded {sale.date} as '{sale.id}' ({session.connectivity.value})")
    return 0


def run_update(session: core_logic.LedgerSession, args: argparse.Namespace) -> int:
    """Execute the update workflow via the mutation coordinator."""
    sale = session.mutations.submit_update(args.sale_id, translate_sale_form(args))
    print(f"Updated '{sale.id}' ({session.connectivity.value})")
    return 0


def run_delete(session: core_logic.LedgerSession, args: argparse.Namespace) -> int:
    """Execute the delete workflow via the mutation coordinator."""
    session.mutations.submit_delete(args.sale_id)
    print(f"Deleted '{args.sale_id}' ({session.connectivity.value})")
    return 0


def run_set_targets(session: core_logic.LedgerSession, args: argparse.Namespace) -> int:
    """Persist new targets through the session."""
    session.set_targets(translate_targets(args, session.targets))
    return 0


def run_sync(session: core_logic.LedgerSession, args: argparse.Namespace) -> int:
    """Report the connectivity reached by the session start."""
    last = session.sync.last_synced.isoformat() if session.sync.last_synced else "never"
    print(f"{session.connectivity.value}: {len(session.store)} sales (last synced: {last})")
    return 0


def run_summary_report(session: core_logic.LedgerSession, args: argparse.Namespace) -> int:
    """Print the aggregate summary."""
    summary = session.dashboard().summary
    print(f"Days recorded     {summary.day_count}")
    print(f"Total sales       {_money(summary.total_sales)}")
    print(f"Total profit      {_money(summary.total_profit)} ({_pct(summary.overall_profit_rate)})")
    print(f"Average spend     {_money(summary.average_spend)}")
    print(
        f"Payment mix       card {_pct(summary.card_ratio)} / PayPay {_pct(summary.paypay_ratio)}"
        f" / cash {_pct(summary.cash_ratio)}"
    )
    print(f"Daily average     {_money(summary.daily_average)} ({_pct(summary.daily_achievement)} of target)")
    print(f"Weekly average    {_money(summary.weekly_average)} ({_pct(summary.weekly_achievement)} of target)")
    print(f"Monthly average   {_money(summary.monthly_average)} ({_pct(summary.monthly_achievement)} of target)")
    return 0


def run_weekdays_report(session: core_logic.LedgerSession, args: argparse.Namespace) -> int:
    """Print the day-of-week breakdown."""
    for stats in session.dashboard().weekdays:
        print(
            f"{stats.label or '-'}\t{stats.record_count} days\t{_money(stats.average_sales)}/day"
            f"\t{stats.average_groups.quantize(Decimal('0.1'))} groups\t{_money(stats.average_spend)}/group"
        )
    return 0


def _print_comparison(comparison: PeriodComparison) -> None:
    print(
        f"{comparison.current_start}..{comparison.current_end}: {_money(comparison.current_sales)}"
        f" (profit rate {_pct(comparison.current_profit_rate)})"
    )
    print(
        f"{comparison.previous_start}..{comparison.previous_end}: {_money(comparison.previous_sales)}"
        f" (profit rate {_pct(comparison.previous_profit_rate)})"
    )
    print(f"Change: {_pct(comparison.sales_change)}")


def run_compare_report(session: core_logic.LedgerSession, args: argparse.Namespace) -> int:
    """Print the week-over-week or month-over-month comparison."""
    dashboard = session.dashboard()
    _print_comparison(dashboard.monthly if args.period == Period.MONTHLY.value else dashboard.weekly)
    return 0


def run_export(session: core_logic.LedgerSession, args: argparse.Namespace) -> int:
    """Write the CSV export."""
    path = session.export_csv(args.output_dir)
    print(f"Exported {len(session.store)} sales to {path}")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, SaleValidationError):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    if getattr(args, "verbose", False):
        set_console_level(logging.DEBUG)
    try:
        session = load_runtime_context(getattr(args, "config", None))
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
    try:
        session.start()
        return dispatch_command(session, args, command_table)
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
    finally:
        session.close()
