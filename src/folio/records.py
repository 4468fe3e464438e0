from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum


class TransactionType(Enum):
    """Enumeration of supported portfolio transaction types.

    CLOSE realizes a position at market; SELL is accounted for identically.
    """

    BUY = "Buy"
    CLOSE = "Close"
    SELL = "Sell"

    @property
    def is_sell(self) -> bool:
        return self is not TransactionType.BUY

    @classmethod
    def parse(cls, value: "str | TransactionType") -> "TransactionType":
        """Parse a transaction type label.

        Accepts the English labels in any case and the labels used in
        Vietnamese-language spreadsheets ("Mua", "Chốt", "Bán").

        Raises:
            ValueError: If the label is not recognized.
        """
        if isinstance(value, TransactionType):
            return value
        label = str(value).strip()
        if label in _LOCAL_LABELS:
            return _LOCAL_LABELS[label]
        for member in cls:
            if member.value.lower() == label.lower() or member.name == label.upper():
                return member
        raise ValueError(f"Unknown transaction type: {value!r}")


_LOCAL_LABELS = {
    "Mua": TransactionType.BUY,
    "Chốt": TransactionType.CLOSE,
    "Bán": TransactionType.SELL,
}


@dataclass(frozen=True)
class Transaction:
    """A single recorded trade.

    ``total_money`` is the authoritative cash amount moved and is always
    non-negative; the direction comes from ``transaction_type``. ``price`` is
    informative only and is never used for P&L.
    """

    date: date
    transaction_type: TransactionType
    category: str
    symbol: str
    quantity: Decimal
    price: Decimal
    total_money: Decimal
    fee: Decimal = Decimal("0")
    notes: str | None = None
    id: str | None = None
    user_id: str | None = None


@dataclass(frozen=True)
class MarketPrice:
    """An observation of one symbol's price on one date."""

    date: date
    symbol: str
    category: str
    price: Decimal
    id: str | None = None
    user_id: str | None = None


def to_date(value: date | datetime | str) -> date:
    """Coerce a date, datetime or ISO string to a calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value).strip()).date()


def to_decimal(value: object) -> Decimal:
    """Convert a numeric value to Decimal via its string form.

    Raises:
        ValueError: If the value is not a finite number.
    """
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValueError(f"Not a number: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Not a number: {value!r}")
    return result
