"""
Module: garment_kernel.models.finished_good
Responsibility: Warehouse intake of completed batches.  Verifying finishing
    books the batch's sellable pieces (FINISHED) and, when there are any,
    its rejects (REJECT) into a storage location.
Architecture position: Kernel > Models.  Written by FinishedGoodsRecorder
    inside the verify-finishing transition; read by BatchSelector.

Invariants enforced:
    - At most one row per (batch, goods_type).
    - quantity > 0; a batch with no rejects gets no REJECT row.
    - Rows exist only for COMPLETED batches, which can no longer be deleted.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from garment_kernel.db.base import Base
from garment_kernel.models.batch import ProductionBatch


class FinishedGood(Base):
    __tablename__ = "finished_goods"

    __table_args__ = (
        UniqueConstraint("batch_id", "goods_type", name="uq_finished_good_batch_type"),
        CheckConstraint("quantity > 0", name="ck_finished_good_quantity_positive"),
        Index("idx_finished_good_type", "goods_type"),
    )

    batch_id: Mapped[UUID] = mapped_column(ForeignKey("production_batches.id"))
    goods_type: Mapped[str] = mapped_column(String(20))
    quantity: Mapped[int] = mapped_column()
    location: Mapped[str] = mapped_column(String(200))
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    verified_by_id: Mapped[UUID] = mapped_column()
    verified_at: Mapped[datetime] = mapped_column()

    batch: Mapped[ProductionBatch] = relationship(lazy="joined")

    def to_dto(self):
        from garment_kernel.domain.dtos import FinishedGoodRecord
        from garment_kernel.domain.lifecycle import FinishedGoodType

        return FinishedGoodRecord(
            id=self.id,
            batch_id=self.batch_id,
            batch_sku=self.batch.batch_sku,
            product_id=self.batch.product_id,
            goods_type=FinishedGoodType(self.goods_type),
            quantity=self.quantity,
            location=self.location,
            verified_by_id=self.verified_by_id,
            verified_at=self.verified_at,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return f"<FinishedGood {self.goods_type} x{self.quantity} @ {self.location}>"
