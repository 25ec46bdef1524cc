"""
Stock arithmetic -- pure functions over Decimal.

Responsibility:
    The one definition of how a stock transaction moves a material's stock.
    The stock ledger uses it to post, the stock selector uses it to replay,
    and property tests use it to check that the two agree.

Architecture position:
    Kernel > Domain.  ZERO I/O.

Invariants enforced:
    - IN and RETURN add, OUT subtracts, ADJUSTMENT sets the absolute value.
    - An OUT that would leave negative stock is rejected (the caller raises
      InsufficientStockError; nothing is applied).
"""

from collections.abc import Iterable
from decimal import Decimal
from enum import Enum


class StockTransactionType(str, Enum):
    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"
    RETURN = "RETURN"


class NegativeStockError(ValueError):
    """Raised by apply_stock_transaction when OUT exceeds the stock on hand."""

    def __init__(self, before: Decimal, quantity: Decimal):
        self.before = before
        self.quantity = quantity
        super().__init__(f"OUT of {quantity} exceeds stock {before}")


def apply_stock_transaction(
    before: Decimal,
    transaction_type: StockTransactionType,
    quantity: Decimal,
) -> Decimal:
    """Stock after applying one transaction to ``before``."""
    transaction_type = StockTransactionType(transaction_type)
    if transaction_type in (StockTransactionType.IN, StockTransactionType.RETURN):
        return before + quantity
    if transaction_type is StockTransactionType.OUT:
        after = before - quantity
        if after < 0:
            raise NegativeStockError(before, quantity)
        return after
    return quantity


def fold_ledger(
    entries: Iterable[tuple[StockTransactionType, Decimal]],
    opening: Decimal = Decimal("0"),
) -> Decimal:
    """Replay (type, quantity) pairs in ledger order from ``opening``."""
    stock = opening
    for transaction_type, quantity in entries:
        stock = apply_stock_transaction(stock, transaction_type, quantity)
    return stock


def is_low_stock(current: Decimal, minimum: Decimal) -> bool:
    """At or below the minimum but not empty."""
    return Decimal("0") < current <= minimum


def is_out_of_stock(current: Decimal) -> bool:
    return current == 0
