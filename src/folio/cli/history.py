"""History subcommand - Display month-end portfolio value."""

from rich.console import Console
from rich.table import Table

from ..portfolio import calculate_portfolio_history
from ..store import RecordStoreError
from .common import add_store_arguments, format_money, open_store


def register_subcommand(subparsers):
    """Register the history subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "history",
        help="Display month-end portfolio value",
        description="Display the value of holdings at the end of each of the last N months.",
    )
    add_store_arguments(parser)
    parser.add_argument(
        "--months",
        "-m",
        type=int,
        default=12,
        help="Number of months to show (default: 12)",
    )
    parser.set_defaults(func=run)


def run(args):
    """Display the month-end value series.

    Args:
        args: Parsed argparse namespace.

    Returns:
        int: Exit code (0 for success, 1 for errors).
    """
    if args.months < 1:
        print("Error: --months must be at least 1")
        return 1

    try:
        store = open_store(args)
    except (FileNotFoundError, ValueError, RecordStoreError) as e:
        print(f"Error: {e}")
        return 1

    history = calculate_portfolio_history(
        store.fetch_all_transactions(),
        store.fetch_all_market_prices(),
        args.months,
    )

    table = Table(title=f"Portfolio Value, Last {args.months} Months")
    table.add_column("Month", style="cyan")
    table.add_column("As Of", justify="right")
    table.add_column("Value", style="green", justify="right")

    for point in history:
        table.add_row(point.date, point.boundary.isoformat(), format_money(point.value))

    Console().print(table)
    return 0
