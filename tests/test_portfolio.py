"""Tests for portfolio holdings, weighted-average cost basis and category allocation."""

from datetime import date
from decimal import Decimal

from folio.portfolio import available_years, calculate_portfolio, sort_chronologically
from folio.store import InMemoryRecordStore
from folio.records import MarketPrice, Transaction, TransactionType


def _buy(symbol: str, txn_date: date, quantity: str, total: str, category: str = "Stock") -> Transaction:
    """Create a BUY transaction with the per-unit price derived from the total."""
    return Transaction(
        date=txn_date,
        transaction_type=TransactionType.BUY,
        category=category,
        symbol=symbol,
        quantity=Decimal(quantity),
        price=Decimal(total) / Decimal(quantity),
        total_money=Decimal(total),
    )


def _sell(symbol: str, txn_date: date, quantity: str, total: str, category: str = "Stock",
          transaction_type: TransactionType = TransactionType.SELL) -> Transaction:
    """Create a SELL (or CLOSE) transaction."""
    return Transaction(
        date=txn_date,
        transaction_type=transaction_type,
        category=category,
        symbol=symbol,
        quantity=Decimal(quantity),
        price=Decimal(total) / Decimal(quantity),
        total_money=Decimal(total),
    )


def _price(symbol: str, price_date: date, price: str, category: str = "Stock") -> MarketPrice:
    return MarketPrice(date=price_date, symbol=symbol, category=category, price=Decimal(price))


def test_single_buy_valued_at_latest_price():
    """Buy VNM 100 for 1,000,000 and value it at 12,000 per unit."""
    txns = [_buy("VNM", date(2024, 1, 1), "100", "1000000")]
    prices = [_price("VNM", date(2024, 6, 1), "12000")]

    summary = calculate_portfolio(txns, prices)

    assert len(summary.items) == 1
    item = summary.items[0]
    assert item.current_value == Decimal("1200000")
    assert item.invested == Decimal("1000000")
    assert item.profit_loss == Decimal("200000")
    assert item.profit_loss_percent == Decimal("20")
    assert item.realized == Decimal("0")


def test_partial_sell_books_realized_gain_at_average_cost():
    """
    Buy VNM 100 for 1,000,000 then sell 50 for 700,000.

    Average cost is 10,000 per unit, so 500,000 of cost basis leaves with the
    sale and 200,000 is realized. The remaining 50 units at 12,000 are worth
    600,000 against 500,000 invested.
    """
    txns = [
        _buy("VNM", date(2024, 1, 1), "100", "1000000"),
        _sell("VNM", date(2024, 7, 1), "50", "700000"),
    ]
    prices = [_price("VNM", date(2024, 6, 1), "12000")]

    summary = calculate_portfolio(txns, prices)
    item = summary.items[0]

    assert item.realized == Decimal("200000")
    assert item.invested == Decimal("500000")
    assert item.quantity == Decimal("50")
    assert item.current_value == Decimal("600000")
    assert item.profit_loss == Decimal("300000")

    assert summary.total_invested == Decimal("1000000")
    assert summary.total_sold == Decimal("700000")
    assert summary.total_current_value == Decimal("600000")
    assert summary.total_profit_loss == Decimal("300000")
    assert summary.total_profit_loss_percent == Decimal("30")


def test_partial_sell_preserves_weighted_average_cost():
    """Buy 10 for 1000, buy 10 for 2000 (avg 150), sell 5 for 1000."""
    txns = [
        _buy("AAA", date(2024, 1, 1), "10", "1000"),
        _buy("AAA", date(2024, 2, 1), "10", "2000"),
        _sell("AAA", date(2024, 3, 1), "5", "1000", transaction_type=TransactionType.CLOSE),
    ]

    item = calculate_portfolio(txns, []).items[0]

    assert item.realized == Decimal("250")
    assert item.invested == Decimal("2250")
    assert item.quantity == Decimal("15")


def test_close_and_sell_are_accounted_identically():
    """CLOSE and SELL produce the same holdings and totals."""
    buy = _buy("AAA", date(2024, 1, 1), "10", "1000")
    with_sell = calculate_portfolio([buy, _sell("AAA", date(2024, 2, 1), "4", "600")], [])
    with_close = calculate_portfolio(
        [buy, _sell("AAA", date(2024, 2, 1), "4", "600", transaction_type=TransactionType.CLOSE)], []
    )

    assert with_sell == with_close


def test_selling_full_quantity_clears_cost_basis():
    """Selling everything leaves zero quantity and invested, with realized = proceeds - cost."""
    txns = [
        _buy("AAA", date(2024, 1, 1), "10", "1000"),
        _sell("AAA", date(2024, 2, 1), "10", "1500"),
    ]
    prices = [_price("AAA", date(2024, 2, 1), "150")]

    summary = calculate_portfolio(txns, prices)
    item = summary.items[0]

    assert item.quantity == Decimal("0")
    assert item.invested == Decimal("0")
    assert item.realized == Decimal("500")
    assert item.current_value == Decimal("0")
    # No cost basis left: a realized position reports a flat 100%
    assert item.profit_loss_percent == Decimal("100")
    assert summary.total_current_value == Decimal("0")


def test_all_buys_have_no_realized_gain():
    """Without sells, invested is the sum of buy cash flow and P/L is purely unrealized."""
    txns = [
        _buy("AAA", date(2024, 1, 1), "10", "1000"),
        _buy("AAA", date(2024, 2, 1), "5", "700"),
        _buy("BBB", date(2024, 3, 1), "3", "300", category="Fund"),
    ]
    prices = [
        _price("AAA", date(2024, 4, 1), "90"),
        _price("BBB", date(2024, 4, 1), "120", category="Fund"),
    ]

    summary = calculate_portfolio(txns, prices)
    items = {item.symbol: item for item in summary.items}

    assert items["AAA"].invested == Decimal("1700")
    assert items["BBB"].invested == Decimal("300")
    for item in summary.items:
        assert item.realized == Decimal("0")
        assert item.profit_loss == item.current_value - item.invested


def test_empty_inputs_return_zeroed_summary():
    """No transactions and no prices give zero totals and empty lists."""
    summary = calculate_portfolio([], [])

    assert summary.total_invested == Decimal("0")
    assert summary.total_sold == Decimal("0")
    assert summary.total_current_value == Decimal("0")
    assert summary.total_profit_loss == Decimal("0")
    assert summary.total_profit_loss_percent == Decimal("0")
    assert summary.items == []
    assert summary.categories == []


def test_sell_without_holdings_is_tolerated():
    """
    A sell with nothing held books the whole proceeds as realized gain and
    drives the quantity negative instead of raising.
    """
    txns = [_sell("XYZ", date(2024, 1, 1), "5", "500")]
    prices = [_price("XYZ", date(2024, 1, 1), "10")]

    summary = calculate_portfolio(txns, prices)
    item = summary.items[0]

    assert item.quantity == Decimal("-5")
    assert item.realized == Decimal("500")
    assert item.invested == Decimal("0")
    assert item.current_value == Decimal("-50")
    assert item.profit_loss == Decimal("450")
    assert item.profit_loss_percent == Decimal("100")

    # Negative holdings are excluded from the portfolio's current value
    assert summary.total_current_value == Decimal("0")
    assert summary.total_profit_loss == Decimal("500")
    assert summary.total_profit_loss_percent == Decimal("0")
    assert summary.categories[0].weight == Decimal("0")


def test_first_seen_category_wins_for_symbol():
    """A later transaction with another category does not move the symbol."""
    txns = [
        _buy("AAA", date(2024, 1, 1), "10", "1000", category="Stock"),
        _buy("AAA", date(2024, 2, 1), "10", "1000", category="Fund"),
    ]
    prices = [_price("AAA", date(2024, 3, 1), "100")]

    summary = calculate_portfolio(txns, prices)
    categories = {c.category: c for c in summary.categories}

    assert summary.items[0].category == "Stock"
    # Cash flow is still attributed by each transaction's own category
    assert categories["Stock"].invested == Decimal("1000")
    assert categories["Fund"].invested == Decimal("1000")
    assert categories["Stock"].current_value == Decimal("2000")
    assert categories["Fund"].current_value == Decimal("0")


def test_category_stats_use_gross_cash_flow():
    """
    Stock: buy AAA 10 for 1000, sell 5 for 900, price 150 -> value 750.
    Gold: buy SJC 1 for 400, price 500 -> value 500.

    Category P/L = value + sold - invested, weights are shares of 1250.
    """
    txns = [
        _buy("AAA", date(2024, 1, 1), "10", "1000"),
        _sell("AAA", date(2024, 2, 1), "5", "900"),
        _buy("SJC", date(2024, 1, 5), "1", "400", category="Gold"),
    ]
    prices = [
        _price("AAA", date(2024, 3, 1), "150"),
        _price("SJC", date(2024, 3, 1), "500", category="Gold"),
    ]

    summary = calculate_portfolio(txns, prices)
    stock, gold = summary.categories

    assert stock.category == "Stock"
    assert stock.invested == Decimal("1000")
    assert stock.sold == Decimal("900")
    assert stock.current_value == Decimal("750")
    assert stock.profit_loss == Decimal("650")
    assert stock.profit_loss_percent == Decimal("65")
    assert stock.weight == Decimal("60")

    assert gold.category == "Gold"
    assert gold.invested == Decimal("400")
    assert gold.sold == Decimal("0")
    assert gold.current_value == Decimal("500")
    assert gold.profit_loss == Decimal("100")
    assert gold.profit_loss_percent == Decimal("25")
    assert gold.weight == Decimal("40")


def test_category_weights_sum_to_one_hundred():
    """Weights add up to 100 whenever something is held at a price."""
    txns = [
        _buy("AAA", date(2024, 1, 1), "3", "100"),
        _buy("BBB", date(2024, 1, 1), "7", "100", category="Fund"),
        _buy("CCC", date(2024, 1, 1), "11", "100", category="Gold"),
    ]
    prices = [
        _price("AAA", date(2024, 2, 1), "13"),
        _price("BBB", date(2024, 2, 1), "17", category="Fund"),
        _price("CCC", date(2024, 2, 1), "19", category="Gold"),
    ]

    summary = calculate_portfolio(txns, prices)
    total_weight = sum(c.weight for c in summary.categories)

    assert abs(total_weight - Decimal("100")) < Decimal("0.000001")


def test_category_weights_are_zero_without_prices():
    """With no current value anywhere every weight is 0."""
    txns = [
        _buy("AAA", date(2024, 1, 1), "10", "1000"),
        _buy("BBB", date(2024, 1, 1), "10", "1000", category="Fund"),
    ]

    summary = calculate_portfolio(txns, [])

    assert summary.total_current_value == Decimal("0")
    assert [c.weight for c in summary.categories] == [Decimal("0"), Decimal("0")]


def test_year_filter_scopes_transactions_but_not_prices():
    """Only 2023 activity counts, yet valuation uses the 2025 price."""
    txns = [
        _buy("AAA", date(2023, 1, 2), "10", "1000"),
        _buy("AAA", date(2023, 12, 31), "10", "1000"),
        _buy("BBB", date(2024, 1, 1), "5", "500"),
    ]
    prices = [
        _price("AAA", date(2023, 6, 1), "100"),
        _price("AAA", date(2025, 1, 1), "200"),
    ]

    summary = calculate_portfolio(txns, prices, filter_year=2023)

    assert [item.symbol for item in summary.items] == ["AAA"]
    assert summary.items[0].quantity == Decimal("20")
    assert summary.items[0].current_price == Decimal("200")
    assert summary.total_invested == Decimal("2000")
    assert summary.total_current_value == Decimal("4000")


def test_last_prices_are_oldest_first_and_padded():
    """Fewer than seven observations are front-padded with the current price."""
    txns = [_buy("AAA", date(2024, 1, 1), "1", "100")]
    prices = [
        _price("AAA", date(2024, 3, 1), "120"),
        _price("AAA", date(2024, 1, 1), "100"),
        _price("AAA", date(2024, 2, 1), "110"),
    ]

    item = calculate_portfolio(txns, prices).items[0]

    assert item.current_price == Decimal("120")
    assert item.last_prices == [Decimal(p) for p in ["120", "120", "120", "120", "100", "110", "120"]]


def test_last_prices_keep_the_seven_most_recent():
    txns = [_buy("AAA", date(2024, 1, 1), "1", "100")]
    prices = [_price("AAA", date(2024, 1, day), str(day)) for day in range(1, 10)]

    item = calculate_portfolio(txns, prices).items[0]

    assert item.last_prices == [Decimal(str(day)) for day in range(3, 10)]


def test_latest_price_tie_uses_first_observation():
    """Two observations on the same date: the first one in the input wins."""
    txns = [_buy("AAA", date(2024, 1, 1), "1", "100")]
    prices = [
        _price("AAA", date(2024, 6, 1), "100"),
        _price("AAA", date(2024, 6, 1), "105"),
        _price("AAA", date(2024, 5, 1), "90"),
    ]

    assert calculate_portfolio(txns, prices).items[0].current_price == Decimal("100")


def test_missing_price_values_holding_at_zero():
    txns = [_buy("SAV", date(2024, 1, 1), "1", "5000000", category="Savings")]

    item = calculate_portfolio(txns, []).items[0]

    assert item.current_price == Decimal("0")
    assert item.current_value == Decimal("0")
    assert item.profit_loss == Decimal("-5000000")
    assert item.profit_loss_percent == Decimal("-100")


def test_items_and_categories_sorted_by_current_value():
    txns = [
        _buy("SMALL", date(2024, 1, 1), "1", "10"),
        _buy("BIG", date(2024, 1, 1), "1", "10", category="Gold"),
        _buy("MID", date(2024, 1, 1), "1", "10", category="Fund"),
    ]
    prices = [
        _price("SMALL", date(2024, 2, 1), "5"),
        _price("BIG", date(2024, 2, 1), "500", category="Gold"),
        _price("MID", date(2024, 2, 1), "50", category="Fund"),
    ]

    summary = calculate_portfolio(txns, prices)

    assert [item.symbol for item in summary.items] == ["BIG", "MID", "SMALL"]
    assert [c.category for c in summary.categories] == ["Gold", "Fund", "Stock"]


def test_calculate_portfolio_is_idempotent():
    txns = [
        _buy("AAA", date(2024, 1, 1), "10", "1000"),
        _sell("AAA", date(2024, 2, 1), "3", "450"),
        _buy("BBB", date(2024, 1, 1), "4", "400", category="Fund"),
    ]
    prices = [_price("AAA", date(2024, 3, 1), "120")]

    assert calculate_portfolio(txns, prices) == calculate_portfolio(txns, prices)
    assert calculate_portfolio(txns, prices, 2024) == calculate_portfolio(txns, prices, 2024)


def test_inputs_are_not_mutated():
    txns = [
        _sell("AAA", date(2024, 2, 1), "3", "450"),
        _buy("AAA", date(2024, 1, 1), "10", "1000"),
    ]
    prices = [_price("AAA", date(2024, 3, 1), "120"), _price("AAA", date(2024, 1, 1), "100")]
    txns_before = list(txns)
    prices_before = list(prices)

    calculate_portfolio(txns, prices)

    assert txns == txns_before
    assert prices == prices_before


def test_available_years_newest_first():
    txns = [
        _buy("AAA", date(2022, 5, 1), "1", "10"),
        _buy("AAA", date(2024, 5, 1), "1", "10"),
        _buy("BBB", date(2022, 7, 1), "1", "10"),
        _buy("BBB", date(2023, 1, 1), "1", "10"),
    ]

    assert available_years(txns) == [2024, 2023, 2022]
    assert available_years([]) == []


def test_sort_chronologically_keeps_same_day_order():
    first = _buy("AAA", date(2024, 1, 1), "1", "10")
    second = _sell("AAA", date(2024, 1, 1), "1", "12")
    later = _buy("BBB", date(2024, 2, 1), "1", "10")

    assert sort_chronologically([later, first, second]) == [first, second, later]


def test_store_records_give_the_same_figures_once_sorted():
    """The store reads newest first; sorting restores the VNM buy-then-sell figures."""
    store = InMemoryRecordStore(user_id="alice")
    store.insert_transaction("2024-01-01", "Buy", "Stock", "VNM", Decimal("100"), Decimal("10000"), Decimal("1000000"))
    store.insert_transaction("2024-07-01", "Sell", "Stock", "VNM", Decimal("50"), Decimal("14000"), Decimal("700000"))
    store.upsert_market_price("2024-06-01", "Stock", "VNM", Decimal("12000"))

    summary = calculate_portfolio(
        sort_chronologically(store.fetch_all_transactions()),
        store.fetch_all_market_prices(),
    )
    item = summary.items[0]

    assert item.invested == Decimal("500000")
    assert item.realized == Decimal("200000")
    assert item.quantity == Decimal("50")
