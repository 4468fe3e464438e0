"""Performance subcommand - Display profit made within a period."""

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..performance import PERIOD_PRESETS, calculate_period_performance, resolve_period_start, top_performers
from ..portfolio import sort_chronologically
from ..store import RecordStoreError
from .common import add_store_arguments, format_percent, format_signed_money, open_store
from .report import render_summary


def register_subcommand(subparsers):
    """Register the performance subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "performance",
        help="Display performance over a period",
        description="Display profit made within a trailing period, excluding gains from before it.",
    )
    add_store_arguments(parser)
    parser.add_argument(
        "--period",
        "-p",
        default="ALL",
        type=str.upper,
        choices=PERIOD_PRESETS,
        help="Trailing period (default: ALL)",
    )
    parser.add_argument(
        "--top",
        "-t",
        type=int,
        default=10,
        help="Number of best performing holdings to rank (default: 10)",
    )
    parser.set_defaults(func=run)


def run(args):
    """Display period performance.

    Args:
        args: Parsed argparse namespace.

    Returns:
        int: Exit code (0 for success, 1 for errors).
    """
    try:
        store = open_store(args)
    except (FileNotFoundError, ValueError, RecordStoreError) as e:
        print(f"Error: {e}")
        return 1

    start_date = resolve_period_start(args.period)
    summary = calculate_period_performance(
        sort_chronologically(store.fetch_all_transactions()),
        store.fetch_all_market_prices(),
        start_date,
    )

    if start_date is None:
        title = "Performance (all time)"
    else:
        title = f"Performance since {start_date.isoformat()} ({args.period})"

    console = Console()
    render_summary(console, summary, title)

    ranked = top_performers(summary, args.top)
    if ranked:
        top_table = Table(title="Top Performers")
        top_table.add_column("#", justify="right")
        top_table.add_column("Symbol", style="cyan", justify="left")
        top_table.add_column("P/L", justify="right")
        top_table.add_column("P/L %", justify="right")

        for rank, item in enumerate(ranked, start=1):
            top_table.add_row(
                str(rank),
                escape(item.symbol),
                format_signed_money(item.profit_loss),
                format_percent(item.profit_loss_percent),
            )

        console.print(top_table)

    return 0
