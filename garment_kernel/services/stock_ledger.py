"""
StockLedger -- the only writer of material stock.

Responsibility:
    Records one stock transaction and moves the material's current stock in
    the same flush.  IN and RETURN add, OUT subtracts, ADJUSTMENT sets the
    absolute value (a stock-count correction, exempt from the sufficiency
    check).

Architecture position:
    Kernel > Services.  Flush-only.  Called by MaterialAllocationManager
    (batch OUT entries) and InventoryService (warehouse postings).

Invariants enforced:
    - Every stock change is explained by exactly one StockTransaction with
      stock_before/stock_after and the next dense per-material seq.
    - Stock never goes negative: an OUT larger than the stock on hand raises
      InsufficientStockError and nothing is written.
    - The material row is locked and re-read before the check, so two
      concurrent postings cannot both pass against the same stale value.

Failure modes:
    - ValidationError: quantity missing, non-numeric, float, > 9 decimal
      places, <= 0 (or < 0 for ADJUSTMENT); unknown transaction type.
    - MaterialNotFoundError / MaterialInactiveError.
    - InsufficientStockError: OUT exceeds current stock.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from garment_kernel.db.types import normalize_quantity
from garment_kernel.domain.clock import Clock, SystemClock
from garment_kernel.domain.stock import (
    NegativeStockError,
    StockTransactionType,
    apply_stock_transaction,
)
from garment_kernel.exceptions import (
    InsufficientStockError,
    MaterialInactiveError,
    MaterialNotFoundError,
    ValidationError,
)
from garment_kernel.logging_config import LogContext, get_logger
from garment_kernel.models.material import Material, StockTransaction
from garment_kernel.services.base import BaseService

logger = get_logger("services.stock_ledger")


def parse_quantity(value, field: str = "quantity", allow_zero: bool = False) -> Decimal:
    """Validated Decimal quantity, or ValidationError naming ``field``."""
    if value is None:
        raise ValidationError(f"{field} is required", field=field)
    try:
        quantity = normalize_quantity(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid {field}: {exc}", field=field) from exc
    if quantity < 0 or (quantity == 0 and not allow_zero):
        bound = "non-negative" if allow_zero else "positive"
        raise ValidationError(f"{field} must be {bound}, got {quantity}", field=field)
    return quantity


def parse_transaction_type(value) -> StockTransactionType:
    try:
        return StockTransactionType(value)
    except ValueError as exc:
        raise ValidationError(
            f"Unknown stock transaction type: {value!r}", field="transaction_type"
        ) from exc


class StockLedger(BaseService[StockTransaction]):
    """Append-only stock ledger writer."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def record_transaction(
        self,
        material_id: UUID,
        transaction_type: StockTransactionType | str,
        quantity,
        actor_id: UUID,
        batch_id: UUID | None = None,
        notes: str | None = None,
    ) -> StockTransaction:
        """
        Post one transaction and apply it to the material.

        Preconditions:
            - Caller holds an open transaction; this method only flushes.
        Postconditions:
            - A new StockTransaction exists with seq = previous seq + 1.
            - material.current_stock == entry.stock_after.
        """
        transaction_type = parse_transaction_type(transaction_type)
        quantity = parse_quantity(
            quantity,
            allow_zero=transaction_type is StockTransactionType.ADJUSTMENT,
        )

        material = self._lock(Material, material_id)
        if material is None:
            raise MaterialNotFoundError(str(material_id))
        if not material.is_active:
            raise MaterialInactiveError(str(material.id), material.code)

        before = material.current_stock
        try:
            after = apply_stock_transaction(before, transaction_type, quantity)
        except NegativeStockError:
            logger.warning(
                "stock_out_rejected",
                extra={
                    "material_id": str(material.id),
                    "material_code": material.code,
                    "requested": str(quantity),
                    "available": str(before),
                },
            )
            raise InsufficientStockError(
                material_id=str(material.id),
                material_code=material.code,
                requested=str(quantity),
                available=str(before),
            ) from None

        seq = material.ledger_seq + 1
        entry = StockTransaction(
            material_id=material.id,
            seq=seq,
            transaction_type=transaction_type.value,
            quantity=quantity,
            unit=material.unit,
            stock_before=before,
            stock_after=after,
            batch_id=batch_id,
            actor_id=actor_id,
            notes=notes,
            occurred_at=self._clock.now(),
        )
        # Ledger row first: the flush guard pairs the stock change with it
        self.session.add(entry)
        material.current_stock = after
        material.ledger_seq = seq
        material.updated_by_id = actor_id
        self.session.flush()

        with LogContext.bind(material_id=material.id, batch_id=batch_id):
            logger.info(
                "stock_transaction_recorded",
                extra={
                    "material_code": material.code,
                    "transaction_type": transaction_type.value,
                    "quantity": str(quantity),
                    "stock_before": str(before),
                    "stock_after": str(after),
                    "seq": seq,
                },
            )
        return entry
