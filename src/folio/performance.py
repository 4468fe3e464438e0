"""Period-scoped performance.

Isolates the profit made inside a date window from everything that happened
before it:

    profit = end value - start value + selling - buying

where the start value is the holdings at the window start priced as of that
day, and buying/selling are the cash flows inside the window.
"""

from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from decimal import Decimal

import pandas as pd

from .portfolio import (
    HUNDRED,
    ZERO,
    Holding,
    PortfolioItem,
    PortfolioSummary,
    apply_transaction,
    calculate_portfolio,
    group_prices_by_symbol,
    price_as_of,
    sort_chronologically,
)
from .records import MarketPrice, Transaction, TransactionType

PERIOD_PRESETS = ("30D", "3M", "6M", "1Y", "ALL")


@dataclass
class CashFlows:
    buying: Decimal = ZERO
    selling: Decimal = ZERO

    def add(self, txn: Transaction) -> None:
        if txn.transaction_type == TransactionType.BUY:
            self.buying += txn.total_money
        else:
            self.selling += txn.total_money


def resolve_period_start(period: str, as_of: date | datetime | None = None) -> date | None:
    """
    Translate a period preset into a window start date.

    Args:
        period: One of PERIOD_PRESETS ("30D", "3M", "6M", "1Y", "ALL"),
            case-insensitive.
        as_of: The date the window ends at. Defaults to today.

    Returns:
        The start date, or None for "ALL" (whole history).

    Raises:
        ValueError: If the preset is unknown.
    """
    preset = period.strip().upper()
    if preset not in PERIOD_PRESETS:
        raise ValueError(f"Unknown period '{period}'. Expected one of: {', '.join(PERIOD_PRESETS)}")

    if as_of is None:
        today = date.today()
    elif isinstance(as_of, datetime):
        today = as_of.date()
    else:
        today = as_of

    if preset == "ALL":
        return None
    if preset == "30D":
        return today - timedelta(days=30)

    months = {"3M": 3, "6M": 6, "1Y": 12}[preset]
    return (pd.Timestamp(today) - pd.DateOffset(months=months)).date()


def _start_value(
    symbol: str,
    quantity: Decimal,
    historical: list[Transaction],
    prices_newest_first: list[MarketPrice],
    start: date,
) -> Decimal:
    if quantity <= 0:
        return ZERO

    price = price_as_of(prices_newest_first, start)
    if price != 0:
        return quantity * price

    # No quote yet (e.g. savings): fall back to the remaining cost basis
    holding = Holding(category="")
    for txn in historical:
        if txn.symbol == symbol:
            apply_transaction(holding, txn, realize_unmatched_sells=False)

    return holding.invested if holding.quantity > 0 else ZERO


def calculate_period_performance(
    transactions: list[Transaction],
    market_prices: list[MarketPrice],
    start_date: date | datetime | None,
) -> PortfolioSummary:
    """
    Calculate portfolio performance within the window starting at ``start_date``.

    Args:
        transactions: All transactions. The window split is order-free; the
            current snapshot folds them in the order given, as calculate_portfolio.
        market_prices: All price observations, in any order.
        start_date: First day of the window. None means the whole history, in
            which case the result is exactly calculate_portfolio's.

    Returns:
        A PortfolioSummary whose ``invested`` figures are the capital deployed
        in the window (start value + buying), ``sold`` figures are in-window
        selling, and ``profit_loss`` figures are period profit. Current values
        and ordering of items come from the full current snapshot.
    """
    if start_date is None:
        return calculate_portfolio(transactions, market_prices)

    start = start_date.date() if isinstance(start_date, datetime) else start_date

    # 1. Holdings and their value at the window start
    historical = sort_chronologically([txn for txn in transactions if txn.date < start])
    start_quantities: dict[str, Decimal] = {}
    for txn in historical:
        quantity = start_quantities.get(txn.symbol, ZERO)
        if txn.transaction_type == TransactionType.BUY:
            start_quantities[txn.symbol] = quantity + txn.quantity
        else:
            start_quantities[txn.symbol] = quantity - txn.quantity

    prices_by_symbol = group_prices_by_symbol(market_prices)
    start_values: dict[str, Decimal] = {
        symbol: _start_value(symbol, quantity, historical, prices_by_symbol.get(symbol, []), start)
        for symbol, quantity in start_quantities.items()
    }
    total_start_value = sum(start_values.values(), ZERO)

    # 2. Cash flows inside the window
    total_flows = CashFlows()
    symbol_flows: dict[str, CashFlows] = defaultdict(CashFlows)
    category_flows: dict[str, CashFlows] = defaultdict(CashFlows)
    for txn in transactions:
        if txn.date >= start:
            total_flows.add(txn)
            symbol_flows[txn.symbol].add(txn)
            category_flows[txn.category].add(txn)

    # 3. Current snapshot
    current = calculate_portfolio(transactions, market_prices)

    # 4. Merge
    items = []
    for item in current.items:
        start_value = start_values.get(item.symbol, ZERO)
        flows = symbol_flows.get(item.symbol, CashFlows())
        profit = item.current_value - start_value + flows.selling - flows.buying
        capital = start_value + flows.buying
        items.append(replace(
            item,
            invested=capital,
            profit_loss=profit,
            profit_loss_percent=profit / capital * HUNDRED if capital > 0 else ZERO,
        ))

    # A symbol's category is taken from its first transaction in input order
    symbol_categories: dict[str, str] = {}
    for txn in transactions:
        symbol_categories.setdefault(txn.symbol, txn.category)

    categories = []
    for stats in current.categories:
        category_start_value = sum(
            (value for symbol, value in start_values.items()
             if symbol_categories.get(symbol) == stats.category),
            ZERO,
        )
        flows = category_flows.get(stats.category, CashFlows())
        profit = stats.current_value - category_start_value + flows.selling - flows.buying
        capital = category_start_value + flows.buying
        categories.append(replace(
            stats,
            invested=capital,
            sold=flows.selling,
            profit_loss=profit,
            profit_loss_percent=profit / capital * HUNDRED if capital > 0 else ZERO,
        ))

    categories.sort(key=lambda c: c.current_value, reverse=True)

    period_profit = current.total_current_value - total_start_value + total_flows.selling - total_flows.buying
    total_capital = total_start_value + total_flows.buying

    return PortfolioSummary(
        total_invested=total_capital,
        total_sold=total_flows.selling,
        total_current_value=current.total_current_value,
        total_profit_loss=period_profit,
        total_profit_loss_percent=period_profit / total_capital * HUNDRED if total_capital > 0 else ZERO,
        items=items,
        categories=categories,
    )


def top_performers(summary: PortfolioSummary, limit: int = 10) -> list[PortfolioItem]:
    """Return the open items with the highest profit percentage, best first."""
    open_items = [item for item in summary.items if item.current_value > 0]
    return sorted(open_items, key=lambda i: i.profit_loss_percent, reverse=True)[:limit]
