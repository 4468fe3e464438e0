"""Report subcommand - Display portfolio holdings and allocation."""

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..portfolio import PortfolioSummary, available_years, calculate_portfolio, sort_chronologically
from ..store import RecordStoreError
from .common import add_store_arguments, format_money, format_percent, format_signed_money, open_store


def register_subcommand(subparsers):
    """Register the report subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "report",
        help="Display portfolio holdings report",
        description="Display holdings, P&L and category allocation from a portfolio file.",
    )
    add_store_arguments(parser)
    parser.add_argument(
        "--year",
        "-y",
        type=int,
        default=None,
        help="Only count transactions from this year (valuation still uses the latest prices)",
    )
    parser.set_defaults(func=run)


def render_summary(console: Console, summary: PortfolioSummary, title: str) -> None:
    """Print the holdings table, category table and totals panel.

    Args:
        console: The rich console to print to.
        summary: The portfolio summary to render.
        title: Title for the holdings table.
    """
    holdings_table = Table(title=title)
    holdings_table.add_column("Symbol", style="cyan", justify="left")
    holdings_table.add_column("Category", justify="left")
    holdings_table.add_column("Quantity", style="magenta", justify="right")
    holdings_table.add_column("Price", justify="right")
    holdings_table.add_column("Invested", style="yellow", justify="right")
    holdings_table.add_column("Market Value", style="green", justify="right")
    holdings_table.add_column("P/L", justify="right")
    holdings_table.add_column("P/L %", justify="right")

    for item in summary.items:
        holdings_table.add_row(
            escape(item.symbol),
            escape(item.category),
            f"{item.quantity:,.2f}",
            format_money(item.current_price),
            format_money(item.invested),
            format_money(item.current_value),
            format_signed_money(item.profit_loss),
            format_percent(item.profit_loss_percent),
        )

    console.print(holdings_table)

    category_table = Table(title="Allocation by Category")
    category_table.add_column("Category", style="cyan", justify="left")
    category_table.add_column("Invested", style="yellow", justify="right")
    category_table.add_column("Sold", justify="right")
    category_table.add_column("Market Value", style="green", justify="right")
    category_table.add_column("P/L", justify="right")
    category_table.add_column("P/L %", justify="right")
    category_table.add_column("Weight", style="magenta", justify="right")

    for stats in summary.categories:
        category_table.add_row(
            escape(stats.category),
            format_money(stats.invested),
            format_money(stats.sold),
            format_money(stats.current_value),
            format_signed_money(stats.profit_loss),
            format_percent(stats.profit_loss_percent),
            f"{stats.weight:.1f}%",
        )

    console.print(category_table)

    console.print(
        Panel(
            f"Invested: {format_money(summary.total_invested)}\n"
            f"Sold: {format_money(summary.total_sold)}\n"
            f"[bold green]Market Value: {format_money(summary.total_current_value)}[/bold green]\n"
            f"P/L: {format_signed_money(summary.total_profit_loss)} "
            f"({format_percent(summary.total_profit_loss_percent)})",
            title="Summary",
        )
    )


def run(args):
    """Display the portfolio report.

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

    transactions = sort_chronologically(store.fetch_all_transactions())
    market_prices = store.fetch_all_market_prices()

    summary = calculate_portfolio(transactions, market_prices, args.year)

    console = Console()
    years = available_years(transactions)
    if years:
        console.print(f"Years with activity: {', '.join(str(y) for y in years)}")

    title = f"Holdings ({args.year})" if args.year is not None else "Holdings (all time)"
    render_summary(console, summary, title)
    return 0
