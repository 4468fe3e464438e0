import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal

import pandas as pd

from .records import MarketPrice, Transaction, TransactionType

ZERO = Decimal("0")
HUNDRED = Decimal("100")

# Number of trailing prices kept on each item for sparklines.
SPARKLINE_LENGTH = 7

# Number of price points returned with a symbol detail.
PRICE_HISTORY_LENGTH = 30


@dataclass
class Holding:
    """Running per-symbol state while transactions are replayed.

    ``category`` is fixed by the first transaction seen for the symbol.
    ``quantity`` is signed and never clamped.
    """

    category: str
    quantity: Decimal = ZERO
    invested: Decimal = ZERO
    realized: Decimal = ZERO


@dataclass
class PortfolioItem:
    """Current state and lifetime P&L of one symbol."""

    symbol: str
    category: str
    quantity: Decimal
    invested: Decimal
    current_value: Decimal
    current_price: Decimal
    realized: Decimal
    profit_loss: Decimal
    profit_loss_percent: Decimal
    last_prices: list[Decimal] = field(default_factory=list)


@dataclass
class CategoryStats:
    """Aggregated cash flow and value of one asset category."""

    category: str
    invested: Decimal = ZERO
    sold: Decimal = ZERO
    current_value: Decimal = ZERO
    profit_loss: Decimal = ZERO
    profit_loss_percent: Decimal = ZERO
    weight: Decimal = ZERO


@dataclass
class PortfolioSummary:
    """Totals plus per-item and per-category breakdowns of a portfolio."""

    total_invested: Decimal
    total_sold: Decimal
    total_current_value: Decimal
    total_profit_loss: Decimal
    total_profit_loss_percent: Decimal
    items: list[PortfolioItem]
    categories: list[CategoryStats]


@dataclass
class PricePoint:
    date: date
    price: Decimal


@dataclass
class SymbolDetail:
    """Position detail for a single symbol."""

    symbol: str
    category: str | None
    quantity: Decimal
    invested: Decimal
    realized: Decimal
    current_value: Decimal
    latest_price: Decimal
    latest_price_date: date | None
    unrealized_pl: Decimal
    total_pl: Decimal
    pl_percent: Decimal
    holding_days: int
    first_buy_date: date | None
    price_history: list[PricePoint]
    transactions: list[Transaction]

    @property
    def average_cost(self) -> Decimal:
        """Return the weighted-average cost per held unit (0 when flat)."""
        if self.quantity <= 0:
            return ZERO
        return self.invested / self.quantity


@dataclass
class HistoryPoint:
    """Total holdings value at a month boundary."""

    date: str
    value: Decimal
    boundary: date


def apply_transaction(holding: Holding, txn: Transaction, realize_unmatched_sells: bool = True) -> None:
    """
    Fold one transaction into a holding using weighted-average cost.

    A sell removes ``quantity × average cost`` from ``invested`` and books the
    difference between the proceeds and that cost as realized P&L.

    Args:
        holding: The running holding to update in place.
        txn: The transaction to apply.
        realize_unmatched_sells: What to do with a sell when the held quantity
            is not positive. If True the whole proceeds are booked as realized
            gain and the quantity goes negative; if False the sell is ignored.
    """
    value = txn.total_money

    if txn.transaction_type == TransactionType.BUY:
        holding.quantity += txn.quantity
        holding.invested += value

    elif txn.transaction_type.is_sell:
        if holding.quantity > 0:
            average_cost = holding.invested / holding.quantity
            cost_basis = txn.quantity * average_cost
            holding.realized += value - cost_basis
            holding.invested -= cost_basis
            holding.quantity -= txn.quantity
        elif realize_unmatched_sells:
            holding.realized += value
            holding.quantity -= txn.quantity


def group_prices_by_symbol(market_prices: list[MarketPrice]) -> dict[str, list[MarketPrice]]:
    """Group price observations by symbol, newest first.

    Observations sharing a date keep their input order, so the first one in
    the input wins a tie for "latest".
    """
    grouped: dict[str, list[MarketPrice]] = defaultdict(list)
    for price in market_prices:
        grouped[price.symbol].append(price)

    return {
        symbol: sorted(prices, key=lambda p: p.date, reverse=True)
        for symbol, prices in grouped.items()
    }


def price_as_of(prices_newest_first: list[MarketPrice], as_of: date) -> Decimal:
    """Return the latest price dated on or before ``as_of``, or 0 if none."""
    for price in prices_newest_first:
        if price.date <= as_of:
            return price.price
    return ZERO


def sort_chronologically(transactions: list[Transaction]) -> list[Transaction]:
    """Return the transactions oldest first.

    Record stores return newest first; the cost-basis fold needs the
    opposite. Same-day transactions keep their relative order.
    """
    return sorted(transactions, key=lambda t: t.date)


def filter_by_year(transactions: list[Transaction], year: int | None) -> list[Transaction]:
    """Keep the transactions dated within a calendar year (all if year is None)."""
    if year is None:
        return list(transactions)
    return [txn for txn in transactions if txn.date.year == year]


def _percent(numerator: Decimal, denominator: Decimal) -> Decimal:
    if denominator > 0:
        return numerator / denominator * HUNDRED
    return ZERO


def calculate_portfolio(
    transactions: list[Transaction],
    market_prices: list[MarketPrice],
    filter_year: int | None = None,
) -> PortfolioSummary:
    """
    Calculate holdings, P&L and category allocation from transactions.

    Transactions are folded in input order using weighted-average cost and
    joined with the latest market price per symbol. A year filter restricts
    which transactions count; prices are never year-filtered, so valuation
    always uses the most recent observation.

    Args:
        transactions: All transactions, folded in the order given. Pass them
            oldest first (see sort_chronologically).
        market_prices: All price observations, in any order.
        filter_year: If given, only transactions dated in this year are used.

    Returns:
        A PortfolioSummary with items and categories sorted by current value,
        largest first. Malformed data never raises; degenerate denominators
        produce 0%.
    """
    scoped = filter_by_year(transactions, filter_year)

    holdings: dict[str, Holding] = {}
    total_invested = ZERO
    total_sold = ZERO

    for txn in scoped:
        if txn.symbol not in holdings:
            holdings[txn.symbol] = Holding(category=txn.category)

        if txn.transaction_type == TransactionType.BUY:
            total_invested += txn.total_money
        elif txn.transaction_type.is_sell:
            total_sold += txn.total_money

        apply_transaction(holdings[txn.symbol], txn)

    prices_by_symbol = group_prices_by_symbol(market_prices)

    items: list[PortfolioItem] = []
    total_current_value = ZERO

    for symbol, holding in holdings.items():
        symbol_prices = prices_by_symbol.get(symbol, [])
        current_price = symbol_prices[0].price if symbol_prices else ZERO
        current_value = holding.quantity * current_price

        last_prices = [p.price for p in reversed(symbol_prices[:SPARKLINE_LENGTH])]
        last_prices = [current_price] * (SPARKLINE_LENGTH - len(last_prices)) + last_prices

        profit_loss = (current_value - holding.invested) + holding.realized
        if holding.invested > 0:
            profit_loss_percent = profit_loss / holding.invested * HUNDRED
        elif holding.realized != 0:
            # Fully closed position: no cost basis left to measure against
            profit_loss_percent = HUNDRED
        else:
            profit_loss_percent = ZERO

        if holding.quantity > 0:
            total_current_value += current_value

        items.append(PortfolioItem(
            symbol=symbol,
            category=holding.category,
            quantity=holding.quantity,
            invested=holding.invested,
            current_value=current_value,
            current_price=current_price,
            realized=holding.realized,
            profit_loss=profit_loss,
            profit_loss_percent=profit_loss_percent,
            last_prices=last_prices,
        ))

    # Category cash flow is gross, by each transaction's own category
    categories_by_name: dict[str, CategoryStats] = {}
    for txn in scoped:
        if txn.category not in categories_by_name:
            categories_by_name[txn.category] = CategoryStats(category=txn.category)
        stats = categories_by_name[txn.category]

        if txn.transaction_type == TransactionType.BUY:
            stats.invested += txn.total_money
        elif txn.transaction_type.is_sell:
            stats.sold += txn.total_money

    for item in items:
        if item.quantity > 0 and item.category in categories_by_name:
            categories_by_name[item.category].current_value += item.current_value

    categories: list[CategoryStats] = []
    for stats in categories_by_name.values():
        stats.profit_loss = stats.current_value + stats.sold - stats.invested
        stats.profit_loss_percent = _percent(stats.profit_loss, stats.invested)
        stats.weight = _percent(stats.current_value, total_current_value)
        categories.append(stats)

    categories.sort(key=lambda c: c.current_value, reverse=True)
    items.sort(key=lambda i: i.current_value, reverse=True)

    total_profit_loss = total_current_value + total_sold - total_invested

    return PortfolioSummary(
        total_invested=total_invested,
        total_sold=total_sold,
        total_current_value=total_current_value,
        total_profit_loss=total_profit_loss,
        total_profit_loss_percent=_percent(total_profit_loss, total_invested),
        items=items,
        categories=categories,
    )


def _as_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    return datetime.combine(value, time.min)


def calculate_symbol_detail(
    symbol: str,
    transactions: list[Transaction],
    market_prices: list[MarketPrice],
    filter_year: int | None = None,
    as_of: date | datetime | None = None,
) -> SymbolDetail:
    """
    Calculate the position detail for a single symbol.

    Transactions for the symbol are replayed chronologically. Unlike
    calculate_portfolio, a sell while nothing is held is ignored.

    Args:
        symbol: The symbol to report on (exact match).
        transactions: All transactions, in any order.
        market_prices: All price observations, in any order.
        filter_year: If given, only transactions dated in this year are used.
        as_of: End of the holding period for an open position when no year
            filter is set. Defaults to the current time.

    Returns:
        A SymbolDetail. ``transactions`` is newest first and
        ``price_history`` holds up to 30 points, oldest first.
    """
    symbol_transactions = filter_by_year(
        [txn for txn in transactions if txn.symbol == symbol],
        filter_year,
    )
    symbol_transactions.sort(key=lambda t: t.date)

    category = symbol_transactions[0].category if symbol_transactions else None
    holding = Holding(category=category or "")
    first_buy_date: date | None = None
    last_txn_date: date | None = None
    peak_invested = ZERO  # denominator fallback once the position is closed

    for txn in symbol_transactions:
        if last_txn_date is None or txn.date > last_txn_date:
            last_txn_date = txn.date

        apply_transaction(holding, txn, realize_unmatched_sells=False)

        if txn.transaction_type == TransactionType.BUY:
            if first_buy_date is None:
                first_buy_date = txn.date
            if holding.invested > peak_invested:
                peak_invested = holding.invested

    symbol_prices = group_prices_by_symbol(market_prices).get(symbol, [])
    latest_price = symbol_prices[0].price if symbol_prices else ZERO
    latest_price_date = symbol_prices[0].date if symbol_prices else None
    current_value = holding.quantity * latest_price

    unrealized_pl = current_value - holding.invested
    total_pl = unrealized_pl + holding.realized
    denominator = holding.invested if holding.invested > 0 else peak_invested

    holding_days = 0
    if first_buy_date is not None:
        if holding.quantity > 0:
            if filter_year is not None:
                end = datetime(filter_year, 12, 31)
            else:
                end = _as_datetime(as_of if as_of is not None else datetime.now())
        else:
            assert last_txn_date is not None
            end = _as_datetime(last_txn_date)
        elapsed = end - _as_datetime(first_buy_date)
        holding_days = math.ceil(elapsed.total_seconds() / 86400)

    price_history = [
        PricePoint(date=p.date, price=p.price)
        for p in reversed(symbol_prices[:PRICE_HISTORY_LENGTH])
    ]

    return SymbolDetail(
        symbol=symbol,
        category=category,
        quantity=holding.quantity,
        invested=holding.invested,
        realized=holding.realized,
        current_value=current_value,
        latest_price=latest_price,
        latest_price_date=latest_price_date,
        unrealized_pl=unrealized_pl,
        total_pl=total_pl,
        pl_percent=_percent(total_pl, denominator),
        holding_days=holding_days,
        first_buy_date=first_buy_date,
        price_history=price_history,
        transactions=list(reversed(symbol_transactions)),
    )


def calculate_portfolio_history(
    transactions: list[Transaction],
    market_prices: list[MarketPrice],
    months: int = 12,
    as_of: date | datetime | None = None,
) -> list[HistoryPoint]:
    """
    Calculate the month-end value of the portfolio's holdings.

    For each of the trailing ``months`` months, all transactions dated on or
    before the month's last day are replayed into quantities (sells floor at
    zero), and each holding is valued at its latest price on or before that
    day. The current month's boundary is clamped to ``as_of``.

    Args:
        transactions: All transactions, in any order.
        market_prices: All price observations, in any order.
        months: Number of points to produce.
        as_of: The "today" the series ends at. Defaults to the current date.

    Returns:
        Exactly ``months`` HistoryPoints, oldest first, labelled "MM/YYYY".
        A holding with no price yet on a boundary contributes 0.
    """
    today = _as_datetime(as_of if as_of is not None else datetime.now()).date()
    current_month = pd.Period(year=today.year, month=today.month, freq="M")
    prices_by_symbol = group_prices_by_symbol(market_prices)
    # Quantities floor at zero, so replay oldest first
    ordered = sort_chronologically(transactions)

    history: list[HistoryPoint] = []

    for offset in range(months - 1, -1, -1):
        month_end = (current_month - offset).end_time.date()
        boundary = min(month_end, today)

        quantities: dict[str, Decimal] = defaultdict(Decimal)
        for txn in ordered:
            if txn.date > boundary:
                continue

            if txn.transaction_type == TransactionType.BUY:
                quantities[txn.symbol] += txn.quantity
            elif txn.transaction_type.is_sell:
                quantities[txn.symbol] = max(ZERO, quantities[txn.symbol] - txn.quantity)

        total_value = ZERO
        for symbol, quantity in quantities.items():
            if quantity > 0:
                price = price_as_of(prices_by_symbol.get(symbol, []), boundary)
                total_value += quantity * price

        history.append(HistoryPoint(
            date=boundary.strftime("%m/%Y"),
            value=total_value,
            boundary=boundary,
        ))

    return history


def available_years(transactions: list[Transaction]) -> list[int]:
    """Return the distinct years that have transactions, newest first."""
    return sorted({txn.date.year for txn in transactions}, reverse=True)
