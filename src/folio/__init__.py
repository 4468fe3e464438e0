"""Personal investment portfolio accounting.

Turns recorded transactions and market price observations into holdings,
weighted-average cost basis, realized/unrealized P&L, category allocation,
month-end value history and period-scoped performance. All calculations are
pure functions of their inputs; storage lives in ``folio.store``.
"""

from .performance import (
    PERIOD_PRESETS,
    calculate_period_performance,
    resolve_period_start,
    top_performers,
)
from .portfolio import (
    CategoryStats,
    HistoryPoint,
    PortfolioItem,
    PortfolioSummary,
    PricePoint,
    SymbolDetail,
    available_years,
    calculate_portfolio,
    calculate_portfolio_history,
    calculate_symbol_detail,
    sort_chronologically,
)
from .records import MarketPrice, Transaction, TransactionType
from .store import (
    ExcelRecordStore,
    InMemoryRecordStore,
    JsonRecordStore,
    NotAuthenticatedError,
    RecordNotFoundError,
    RecordStore,
    RecordStoreError,
)

__all__ = [
    # Records
    "MarketPrice",
    "Transaction",
    "TransactionType",
    # Engines
    "CategoryStats",
    "HistoryPoint",
    "PortfolioItem",
    "PortfolioSummary",
    "PricePoint",
    "SymbolDetail",
    "available_years",
    "calculate_portfolio",
    "calculate_portfolio_history",
    "calculate_symbol_detail",
    "sort_chronologically",
    # Period performance
    "PERIOD_PRESETS",
    "calculate_period_performance",
    "resolve_period_start",
    "top_performers",
    # Storage
    "ExcelRecordStore",
    "InMemoryRecordStore",
    "JsonRecordStore",
    "NotAuthenticatedError",
    "RecordNotFoundError",
    "RecordStore",
    "RecordStoreError",
]
