"""Record stores for transactions and market prices.

A store is constructed explicitly and passed to whatever needs it; nothing in
this module keeps process-wide state. Every store is scoped to one user:
reads only return that user's records and writes require a user.
"""

import json
import os
import uuid
import warnings
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any

import pandas as pd
from openpyxl import Workbook

from .records import MarketPrice, Transaction, TransactionType, to_date, to_decimal

TRANSACTIONS_SHEET = "TRANSACTIONS"
MARKET_PRICES_SHEET = "MARKET PRICES"

TRANSACTION_COLUMNS = ["ID", "USER ID", "DATE", "TYPE", "CATEGORY", "SYMBOL", "QUANTITY", "PRICE", "FEE", "TOTAL MONEY", "NOTES"]
MARKET_PRICE_COLUMNS = ["ID", "USER ID", "DATE", "CATEGORY", "SYMBOL", "PRICE"]

REQUIRED_TRANSACTION_COLUMNS = {"DATE", "TYPE", "CATEGORY", "SYMBOL", "QUANTITY", "TOTAL MONEY"}
REQUIRED_MARKET_PRICE_COLUMNS = {"DATE", "SYMBOL", "PRICE"}


class RecordStoreError(Exception):
    """Base class for record store failures."""


class NotAuthenticatedError(RecordStoreError):
    """Raised when a write is attempted without a user."""


class RecordNotFoundError(RecordStoreError):
    """Raised when a record id does not exist for the current user."""


def _newest_first(records: list[Any]) -> list[Any]:
    return sorted(records, key=lambda r: r.date, reverse=True)


class RecordStore(ABC):
    """Abstract base class for transaction and market price storage."""

    def __init__(self, user_id: str | None = None):
        """Initialize the store.

        Args:
            user_id: The authenticated user. Reads return only this user's
                records; None gives read-only access to records without an
                owner.
        """
        self.user_id = user_id

    def _require_user(self) -> str:
        if self.user_id is None:
            raise NotAuthenticatedError("User not authenticated")
        return self.user_id

    @abstractmethod
    def fetch_all_transactions(self) -> list[Transaction]:
        raise NotImplementedError("This method should be overridden by subclasses.")

    def fetch_transactions_by_symbol(self, symbol: str) -> list[Transaction]:
        """Return the user's transactions for one symbol, newest first."""
        return [txn for txn in self.fetch_all_transactions() if txn.symbol == symbol]

    def fetch_transactions_by_year(self, year: int) -> list[Transaction]:
        """Return the user's transactions dated in ``year``, newest first."""
        return [txn for txn in self.fetch_all_transactions() if txn.date.year == year]

    @abstractmethod
    def insert_transaction(
        self,
        date: date | datetime | str,
        transaction_type: TransactionType | str,
        category: str,
        symbol: str,
        quantity: Decimal,
        price: Decimal,
        total_money: Decimal,
        fee: Decimal | None = None,
        notes: str | None = None,
    ) -> Transaction:
        raise NotImplementedError("This method should be overridden by subclasses.")

    @abstractmethod
    def update_transaction(self, transaction_id: str, **changes: Any) -> Transaction:
        raise NotImplementedError("This method should be overridden by subclasses.")

    @abstractmethod
    def delete_transaction(self, transaction_id: str) -> None:
        raise NotImplementedError("This method should be overridden by subclasses.")

    @abstractmethod
    def fetch_all_market_prices(self) -> list[MarketPrice]:
        raise NotImplementedError("This method should be overridden by subclasses.")

    def fetch_market_prices_by_symbol(self, symbol: str) -> list[MarketPrice]:
        """Return the user's price observations for one symbol, newest first."""
        return [p for p in self.fetch_all_market_prices() if p.symbol == symbol]

    def get_latest_price(self, symbol: str) -> Decimal | None:
        """Return the most recent observed price for a symbol, or None."""
        prices = self.fetch_market_prices_by_symbol(symbol)
        return prices[0].price if prices else None

    @abstractmethod
    def upsert_market_price(
        self,
        date: date | datetime | str,
        category: str,
        symbol: str,
        price: Decimal,
    ) -> MarketPrice:
        raise NotImplementedError("This method should be overridden by subclasses.")

    @abstractmethod
    def delete_market_price(self, price_id: str) -> None:
        raise NotImplementedError("This method should be overridden by subclasses.")


class InMemoryRecordStore(RecordStore):
    """Record store backed by plain lists.

    Holds records for any number of users; the configured user only sees and
    modifies their own. Subclasses persist by overriding ``_save``.
    """

    def __init__(
        self,
        user_id: str | None = None,
        transactions: list[Transaction] | None = None,
        market_prices: list[MarketPrice] | None = None,
    ):
        super().__init__(user_id)
        self.transactions: list[Transaction] = list(transactions or [])
        self.market_prices: list[MarketPrice] = list(market_prices or [])

    def _save(self) -> None:
        pass

    def fetch_all_transactions(self) -> list[Transaction]:
        return _newest_first([txn for txn in self.transactions if txn.user_id == self.user_id])

    def insert_transaction(
        self,
        date: date | datetime | str,
        transaction_type: TransactionType | str,
        category: str,
        symbol: str,
        quantity: Decimal,
        price: Decimal,
        total_money: Decimal,
        fee: Decimal | None = None,
        notes: str | None = None,
    ) -> Transaction:
        """Record a new transaction for the current user.

        The symbol is uppercased and a missing fee is stored as 0.

        Raises:
            NotAuthenticatedError: If the store has no user.
            ValueError: If quantity, total_money or fee is negative.
        """
        user_id = self._require_user()

        transaction = Transaction(
            date=to_date(date),
            transaction_type=TransactionType.parse(transaction_type),
            category=category,
            symbol=symbol.strip().upper(),
            quantity=to_decimal(quantity),
            price=to_decimal(price),
            total_money=to_decimal(total_money),
            fee=to_decimal(fee) if fee is not None else Decimal("0"),
            notes=notes or None,
            id=uuid.uuid4().hex,
            user_id=user_id,
        )
        _validate_transaction(transaction)

        self.transactions.append(transaction)
        self._save()
        return transaction

    def _find_transaction(self, transaction_id: str) -> int:
        user_id = self._require_user()
        for index, txn in enumerate(self.transactions):
            if txn.id == transaction_id and txn.user_id == user_id:
                return index
        raise RecordNotFoundError(f"Transaction not found: {transaction_id}")

    def update_transaction(self, transaction_id: str, **changes: Any) -> Transaction:
        """Replace fields of an existing transaction.

        Raises:
            NotAuthenticatedError: If the store has no user.
            RecordNotFoundError: If the id does not belong to the user.
            ValueError: If a field is unknown or a value is invalid.
        """
        index = self._find_transaction(transaction_id)

        if {"id", "user_id"} & changes.keys():
            raise ValueError("Transaction id and owner cannot be changed")
        if "date" in changes:
            changes["date"] = to_date(changes["date"])
        if "transaction_type" in changes:
            changes["transaction_type"] = TransactionType.parse(changes["transaction_type"])
        if "symbol" in changes:
            changes["symbol"] = str(changes["symbol"]).strip().upper()
        for name in ("quantity", "price", "fee", "total_money"):
            if name in changes:
                changes[name] = to_decimal(changes[name])

        try:
            updated = replace(self.transactions[index], **changes)
        except TypeError as e:
            raise ValueError(f"Invalid transaction update: {e}") from e
        _validate_transaction(updated)

        self.transactions[index] = updated
        self._save()
        return updated

    def delete_transaction(self, transaction_id: str) -> None:
        index = self._find_transaction(transaction_id)
        del self.transactions[index]
        self._save()

    def fetch_all_market_prices(self) -> list[MarketPrice]:
        return _newest_first([p for p in self.market_prices if p.user_id == self.user_id])

    def upsert_market_price(
        self,
        date: date | datetime | str,
        category: str,
        symbol: str,
        price: Decimal,
    ) -> MarketPrice:
        """Insert a price, or replace the user's existing one for that symbol and date.

        Raises:
            NotAuthenticatedError: If the store has no user.
            ValueError: If the price is negative.
        """
        user_id = self._require_user()

        market_price = MarketPrice(
            date=to_date(date),
            symbol=symbol.strip().upper(),
            category=category,
            price=to_decimal(price),
            user_id=user_id,
        )
        if market_price.price < 0:
            raise ValueError(f"Market price cannot be negative: {market_price.price}")

        for index, existing in enumerate(self.market_prices):
            if (existing.user_id, existing.symbol, existing.date) == (user_id, market_price.symbol, market_price.date):
                market_price = replace(market_price, id=existing.id)
                self.market_prices[index] = market_price
                break
        else:
            market_price = replace(market_price, id=uuid.uuid4().hex)
            self.market_prices.append(market_price)

        self._save()
        return market_price

    def delete_market_price(self, price_id: str) -> None:
        user_id = self._require_user()
        for index, existing in enumerate(self.market_prices):
            if existing.id == price_id and existing.user_id == user_id:
                del self.market_prices[index]
                self._save()
                return
        raise RecordNotFoundError(f"Market price not found: {price_id}")


def _validate_transaction(transaction: Transaction) -> None:
    for name in ("quantity", "total_money", "fee"):
        value = getattr(transaction, name)
        if value < 0:
            raise ValueError(f"Transaction {name} cannot be negative: {value}")


def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return bool(pd.notna(value))


def _text(value: Any) -> str | None:
    return str(value).strip() if _is_present(value) else None


def _require_keys(row: dict[str, Any], keys: tuple[str, ...]) -> None:
    missing = [key for key in keys if not _is_present(row.get(key))]
    if missing:
        raise ValueError(f"Row is missing required values {missing}: {row}")


def transaction_from_row(row: dict[str, Any]) -> Transaction:
    """
    Build a Transaction from a loosely-typed row.

    Keys are snake_case field names ("date", "type", "total_money", ...).
    Missing ids are generated; missing fees default to 0.

    Raises:
        ValueError: If a required key is missing, the transaction type is
            unknown or a value is malformed.
    """
    _require_keys(row, ("date", "type", "category", "symbol", "quantity", "total_money"))
    return Transaction(
        date=to_date(row["date"]),
        transaction_type=TransactionType.parse(row["type"]),
        category=str(row["category"]).strip(),
        symbol=str(row["symbol"]).strip().upper(),
        quantity=to_decimal(row["quantity"]),
        price=to_decimal(row["price"]) if _is_present(row.get("price")) else Decimal("0"),
        total_money=to_decimal(row["total_money"]),
        fee=to_decimal(row["fee"]) if _is_present(row.get("fee")) else Decimal("0"),
        notes=_text(row.get("notes")),
        id=_text(row.get("id")) or uuid.uuid4().hex,
        user_id=_text(row.get("user_id")),
    )


def market_price_from_row(row: dict[str, Any]) -> MarketPrice:
    """Build a MarketPrice from a loosely-typed row with snake_case keys."""
    _require_keys(row, ("date", "symbol", "price"))
    return MarketPrice(
        date=to_date(row["date"]),
        symbol=str(row["symbol"]).strip().upper(),
        category=_text(row.get("category")) or "",
        price=to_decimal(row["price"]),
        id=_text(row.get("id")) or uuid.uuid4().hex,
        user_id=_text(row.get("user_id")),
    )


def _warn_duplicate_prices(market_prices: list[MarketPrice], source: str) -> None:
    seen: set[tuple[str | None, str, date]] = set()
    duplicates = 0
    for price in market_prices:
        key = (price.user_id, price.symbol, price.date)
        if key in seen:
            duplicates += 1
        seen.add(key)

    if duplicates:
        warnings.warn(
            f"{duplicates} market price(s) in '{source}' share a symbol and date with an earlier row. "
            f"The first row for each symbol and date is used as the latest price.",
            UserWarning
        )


def _column_key(column: Any) -> str:
    return str(column).strip().lower().replace(" ", "_")


class ExcelRecordStore(InMemoryRecordStore):
    """Record store persisted to an Excel workbook.

    The workbook has a TRANSACTIONS sheet and a MARKET PRICES sheet with a
    header row. Columns are matched by name and order does not matter.
    """

    def __init__(self, file_path: str, user_id: str | None = None, create_if_missing: bool = False):
        """Load the workbook.

        Args:
            file_path: Path to the .xlsx file.
            user_id: The authenticated user.
            create_if_missing: If True and the file does not exist, create an
                empty workbook with headers.

        Raises:
            FileNotFoundError: If the file is missing and create_if_missing is False.
            ValueError: If a sheet or a required column is missing.
        """
        super().__init__(user_id)
        self.file_path = file_path

        if not os.path.exists(file_path):
            if not create_if_missing:
                raise FileNotFoundError(f"Portfolio file not found: {file_path}")
            self._save()
            return

        sheets = pd.read_excel(file_path, sheet_name=None)
        for sheet_name in (TRANSACTIONS_SHEET, MARKET_PRICES_SHEET):
            if sheet_name not in sheets:
                raise ValueError(f"Missing required sheet: {sheet_name}")

        self.transactions = [
            transaction_from_row(row)
            for row in _sheet_rows(sheets[TRANSACTIONS_SHEET], REQUIRED_TRANSACTION_COLUMNS, TRANSACTIONS_SHEET)
        ]
        self.market_prices = [
            market_price_from_row(row)
            for row in _sheet_rows(sheets[MARKET_PRICES_SHEET], REQUIRED_MARKET_PRICE_COLUMNS, MARKET_PRICES_SHEET)
        ]
        _warn_duplicate_prices(self.market_prices, file_path)

    def _save(self) -> None:
        wb = Workbook()
        ws = wb.active
        assert ws is not None
        ws.title = TRANSACTIONS_SHEET

        ws.append(TRANSACTION_COLUMNS)
        for txn in self.transactions:
            ws.append([
                txn.id,
                txn.user_id,
                txn.date.isoformat(),
                txn.transaction_type.value,
                txn.category,
                txn.symbol,
                float(txn.quantity),
                float(txn.price),
                float(txn.fee),
                float(txn.total_money),
                txn.notes,
            ])

        prices_ws = wb.create_sheet(MARKET_PRICES_SHEET)
        prices_ws.append(MARKET_PRICE_COLUMNS)
        for price in self.market_prices:
            prices_ws.append([
                price.id,
                price.user_id,
                price.date.isoformat(),
                price.category,
                price.symbol,
                float(price.price),
            ])

        wb.save(self.file_path)


def _sheet_rows(df: pd.DataFrame, required_columns: set[str], sheet_name: str) -> list[dict[str, Any]]:
    columns = {str(c).strip().upper() for c in df.columns}
    missing_columns = required_columns - columns
    if missing_columns:
        raise ValueError(f"Missing required columns in {sheet_name}: {sorted(missing_columns)}")

    rows = []
    for _, row in df.dropna(how="all").iterrows():
        rows.append({_column_key(column): value for column, value in row.items()})
    return rows


class JsonRecordStore(InMemoryRecordStore):
    """Record store persisted to a JSON file.

    Expected JSON structure:
        {
            "transactions": [
                {
                    "id": "...",
                    "user_id": "...",
                    "date": "2024-01-15",
                    "type": "Buy",
                    "category": "Stock",
                    "symbol": "VNM",
                    "quantity": 100,
                    "price": 10000,
                    "fee": 0,
                    "total_money": 1000000,
                    "notes": null
                },
                ...
            ],
            "market_prices": [
                {"id": "...", "user_id": "...", "date": "2024-06-01",
                 "category": "Stock", "symbol": "VNM", "price": 12000},
                ...
            ]
        }
    """

    def __init__(self, file_path: str, user_id: str | None = None, create_if_missing: bool = False):
        super().__init__(user_id)
        self.file_path = file_path

        if not os.path.exists(file_path):
            if not create_if_missing:
                raise FileNotFoundError(f"Portfolio file not found: {file_path}")
            self._save()
            return

        with open(file_path, "r") as f:
            data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError("JSON file must contain an object with 'transactions' and 'market_prices'")

        self.transactions = [transaction_from_row(item) for item in data.get("transactions", [])]
        self.market_prices = [market_price_from_row(item) for item in data.get("market_prices", [])]
        _warn_duplicate_prices(self.market_prices, file_path)

    def _save(self) -> None:
        data = {
            "transactions": [
                {
                    "id": txn.id,
                    "user_id": txn.user_id,
                    "date": txn.date.isoformat(),
                    "type": txn.transaction_type.value,
                    "category": txn.category,
                    "symbol": txn.symbol,
                    "quantity": float(txn.quantity),
                    "price": float(txn.price),
                    "fee": float(txn.fee),
                    "total_money": float(txn.total_money),
                    "notes": txn.notes,
                }
                for txn in self.transactions
            ],
            "market_prices": [
                {
                    "id": price.id,
                    "user_id": price.user_id,
                    "date": price.date.isoformat(),
                    "category": price.category,
                    "symbol": price.symbol,
                    "price": float(price.price),
                }
                for price in self.market_prices
            ],
        }

        with open(self.file_path, "w") as f:
            json.dump(data, f, indent=2)
