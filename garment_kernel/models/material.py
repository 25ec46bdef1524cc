"""
Module: garment_kernel.models.material
Responsibility: ORM models for raw materials and their append-only stock
    ledger.
Architecture position: Kernel > Models.  Inherits from db/base.  Written only
    by services/stock_ledger.py (stock) and services/inventory_service.py
    (activation, guarded delete).

Invariants enforced:
    - current_stock >= 0 (check constraint; the ledger rejects a negative OUT
      before it gets this far).
    - (material_id, seq) is unique and seq is dense per material, so the
      ledger has one total order to replay.
    - StockTransaction rows are never updated or deleted (db/immutability.py).
    - current_stock changes only in the same flush as a new StockTransaction
      whose stock_after equals it (db/immutability.py).

Failure modes:
    - IntegrityError on duplicate material code or duplicate (material, seq).

Audit relevance:
    The ledger is the sole explanation of how current_stock reached its
    value.  stock_before/stock_after are stored per row so a reader can audit
    a single entry without replaying the whole history.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from garment_kernel.db.base import Base, TrackedBase


class Material(TrackedBase):
    """
    A raw material held in the warehouse.

    ``ledger_seq`` is the seq of the last applied StockTransaction (0 when the
    ledger is empty).
    """

    __tablename__ = "materials"

    __table_args__ = (
        UniqueConstraint("code", name="uq_material_code"),
        CheckConstraint("CAST(current_stock AS NUMERIC) >= 0", name="ck_material_stock_non_negative"),
        CheckConstraint("CAST(minimum_stock AS NUMERIC) >= 0", name="ck_material_minimum_non_negative"),
        Index("idx_material_active", "is_active"),
    )

    code: Mapped[str] = mapped_column(String(50))
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    unit: Mapped[str] = mapped_column(String(50))

    current_stock: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    minimum_stock: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    price: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    is_active: Mapped[bool] = mapped_column(default=True)
    ledger_seq: Mapped[int] = mapped_column(default=0)

    def to_dto(self):
        from garment_kernel.domain.dtos import MaterialSnapshot

        return MaterialSnapshot(
            id=self.id,
            code=self.code,
            name=self.name,
            unit=self.unit,
            current_stock=self.current_stock,
            minimum_stock=self.minimum_stock,
            price=self.price,
            is_active=self.is_active,
        )

    def __repr__(self) -> str:
        return f"<Material {self.code} stock={self.current_stock}>"


class StockTransaction(Base):
    """
    One immutable stock movement.

    ``batch_id`` is a plain reference (no foreign key) so ledger history
    outlives a hard-deleted batch.
    """

    __tablename__ = "stock_transactions"

    __table_args__ = (
        UniqueConstraint("material_id", "seq", name="uq_stock_txn_material_seq"),
        CheckConstraint("CAST(quantity AS NUMERIC) >= 0", name="ck_stock_txn_quantity_non_negative"),
        Index("idx_stock_txn_batch", "batch_id"),
        Index("idx_stock_txn_occurred", "occurred_at"),
    )

    material_id: Mapped[UUID] = mapped_column(ForeignKey("materials.id"))
    seq: Mapped[int] = mapped_column()

    transaction_type: Mapped[str] = mapped_column(String(20))
    quantity: Mapped[Decimal] = mapped_column()
    unit: Mapped[str] = mapped_column(String(50))
    stock_before: Mapped[Decimal] = mapped_column()
    stock_after: Mapped[Decimal] = mapped_column()

    batch_id: Mapped[UUID | None] = mapped_column(nullable=True)
    actor_id: Mapped[UUID] = mapped_column()
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column()

    def to_dto(self):
        from garment_kernel.domain.dtos import StockTransactionRecord
        from garment_kernel.domain.stock import StockTransactionType

        return StockTransactionRecord(
            id=self.id,
            material_id=self.material_id,
            seq=self.seq,
            transaction_type=StockTransactionType(self.transaction_type),
            quantity=self.quantity,
            unit=self.unit,
            stock_before=self.stock_before,
            stock_after=self.stock_after,
            actor_id=self.actor_id,
            occurred_at=self.occurred_at,
            batch_id=self.batch_id,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return (
            f"<StockTransaction {self.transaction_type} {self.quantity} "
            f"material={self.material_id} seq={self.seq}>"
        )
