"""
Module: garment_kernel.selectors.stock_selector
Responsibility: Read-side stock queries: warehouse statistics, a material's
    ledger history, and ledger replay verification.
Architecture position: Kernel > Selectors.  Reads Material and
    StockTransaction rows; uses the pure stock arithmetic in domain/stock.py
    so replay applies exactly the rules the ledger posted with.

Invariants enforced:
    - Statistics are derived at query time over active materials only:
      low = 0 < stock <= minimum, out = stock == 0, value = sum(stock * price).
    - Replay starts from zero and applies entries in seq order.  A material
      is consistent when replay reproduces current_stock and seq runs
      1..n without gaps.

Failure modes:
    - MaterialNotFoundError for an unknown material id.
    - LedgerIntegrityError from ``require_consistent`` when replay and the
      recorded stock disagree, or when replay would drive stock negative.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from garment_kernel.domain.dtos import (
    LedgerVerification,
    StockStatistics,
    StockTransactionRecord,
)
from garment_kernel.domain.stock import (
    NegativeStockError,
    StockTransactionType,
    apply_stock_transaction,
    is_low_stock,
    is_out_of_stock,
)
from garment_kernel.exceptions import LedgerIntegrityError, MaterialNotFoundError
from garment_kernel.models.material import Material, StockTransaction
from garment_kernel.selectors.base import BaseSelector


class StockSelector(BaseSelector[Material]):
    """Statistics, history and replay over the stock ledger."""

    def statistics(self) -> StockStatistics:
        materials = self.session.execute(
            select(Material).where(Material.is_active.is_(True))
        ).scalars().all()
        return StockStatistics(
            total_materials=len(materials),
            low_stock=sum(
                1 for m in materials if is_low_stock(m.current_stock, m.minimum_stock)
            ),
            out_of_stock=sum(1 for m in materials if is_out_of_stock(m.current_stock)),
            total_value=sum(
                (m.current_stock * m.price for m in materials), Decimal("0")
            ),
        )

    def get_material(self, material_id: UUID):
        material = self.session.get(Material, material_id)
        if material is None:
            raise MaterialNotFoundError(str(material_id))
        return material.to_dto()

    def list_transactions(
        self,
        material_id: UUID,
        batch_id: UUID | None = None,
    ) -> tuple[StockTransactionRecord, ...]:
        """Ledger entries of one material in seq order, optionally for one batch."""
        stmt = (
            select(StockTransaction)
            .where(StockTransaction.material_id == material_id)
            .order_by(StockTransaction.seq)
        )
        if batch_id is not None:
            stmt = stmt.where(StockTransaction.batch_id == batch_id)
        return tuple(row.to_dto() for row in self.session.execute(stmt).scalars())

    def verify_material(self, material_id: UUID) -> LedgerVerification:
        """
        Replay the ledger of one material and compare with its stored stock.

        Raises LedgerIntegrityError only when replay itself is impossible
        (an OUT that would take the replayed stock below zero).
        """
        material = self.session.get(Material, material_id)
        if material is None:
            raise MaterialNotFoundError(str(material_id))

        entries = self.session.execute(
            select(StockTransaction.seq, StockTransaction.transaction_type, StockTransaction.quantity)
            .where(StockTransaction.material_id == material_id)
            .order_by(StockTransaction.seq)
        ).all()

        replayed = Decimal("0")
        gaps: list[int] = []
        expected_seq = 1
        for seq, transaction_type, quantity in entries:
            gaps.extend(range(expected_seq, seq))
            expected_seq = seq + 1
            try:
                replayed = apply_stock_transaction(
                    replayed, StockTransactionType(transaction_type), quantity
                )
            except NegativeStockError as exc:
                raise LedgerIntegrityError(
                    material_id=str(material_id),
                    recorded=str(material.current_stock),
                    replayed=f"negative at seq {seq}",
                ) from exc

        return LedgerVerification(
            material_id=material.id,
            recorded_stock=material.current_stock,
            replayed_stock=replayed,
            entry_count=len(entries),
            gaps=tuple(gaps),
        )

    def require_consistent(self, material_id: UUID) -> LedgerVerification:
        verification = self.verify_material(material_id)
        if not verification.is_consistent:
            raise LedgerIntegrityError(
                material_id=str(material_id),
                recorded=str(verification.recorded_stock),
                replayed=str(verification.replayed_stock),
            )
        return verification
