"""Symbol subcommand - Display the position detail of one symbol."""

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..portfolio import calculate_symbol_detail
from ..store import RecordStoreError
from .common import add_store_arguments, format_money, format_percent, format_signed_money, open_store


def register_subcommand(subparsers):
    """Register the symbol subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "symbol",
        help="Display position detail for one symbol",
        description="Display cost basis, P&L, holding period and transactions for one symbol.",
    )
    parser.add_argument("symbol", help="Symbol to report on")
    add_store_arguments(parser)
    parser.add_argument(
        "--year",
        "-y",
        type=int,
        default=None,
        help="Only count transactions from this year",
    )
    parser.set_defaults(func=run)


def run(args):
    """Display the detail of one symbol.

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

    symbol = args.symbol.strip().upper()
    detail = calculate_symbol_detail(
        symbol,
        store.fetch_transactions_by_symbol(symbol),
        store.fetch_market_prices_by_symbol(symbol),
        args.year,
    )

    if not detail.transactions:
        print(f"Error: No transactions found for {symbol}")
        return 1

    console = Console()

    latest = format_money(detail.latest_price)
    if detail.latest_price_date is not None:
        latest += f" ({detail.latest_price_date.isoformat()})"

    console.print(
        Panel(
            f"Category: {escape(detail.category or '')}\n"
            f"Quantity: {detail.quantity:,.2f}\n"
            f"Average Cost: {format_money(detail.average_cost)}\n"
            f"Latest Price: {latest}\n"
            f"Invested: {format_money(detail.invested)}\n"
            f"Market Value: {format_money(detail.current_value)}\n"
            f"Unrealized P/L: {format_signed_money(detail.unrealized_pl)}\n"
            f"Realized P/L: {format_signed_money(detail.realized)}\n"
            f"[bold]Total P/L: {format_signed_money(detail.total_pl)} ({format_percent(detail.pl_percent)})[/bold]\n"
            f"First Buy: {detail.first_buy_date.isoformat() if detail.first_buy_date else 'N/A'}\n"
            f"Holding Days: {detail.holding_days}",
            title=escape(symbol),
        )
    )

    txn_table = Table(title="Transactions (newest first)")
    txn_table.add_column("Date", style="cyan")
    txn_table.add_column("Type")
    txn_table.add_column("Quantity", style="magenta", justify="right")
    txn_table.add_column("Price", justify="right")
    txn_table.add_column("Fee", justify="right")
    txn_table.add_column("Total", style="yellow", justify="right")
    txn_table.add_column("Notes")

    for txn in detail.transactions:
        txn_table.add_row(
            txn.date.isoformat(),
            txn.transaction_type.value,
            f"{txn.quantity:,.2f}",
            format_money(txn.price),
            format_money(txn.fee),
            format_money(txn.total_money),
            escape(txn.notes or ""),
        )

    console.print(txn_table)
    return 0
