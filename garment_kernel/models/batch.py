"""
Module: garment_kernel.models.batch
Responsibility: ORM models for production batches and everything a batch
    owns: material allocations, stage tasks and the timeline.
Architecture position: Kernel > Models.  Written by the batch state machine
    and the flush-only components it drives.

Invariants enforced:
    - batch_sku is unique (PROD-YYYYMMDD-NNN, allocated by the sequence
      service).
    - One allocation row per (batch, material); one stage task per
      (batch, stage).  Re-assignment updates the task in place.
    - Timeline seq is dense per batch; rows are append-only and leave only
      with their batch (db/immutability.py).
    - ``version`` is the mapper's version counter: a flush against a stale
      batch row fails with StaleDataError instead of overwriting.
    - The batch owns its children (delete-orphan cascade).

Failure modes:
    - IntegrityError on duplicate SKU, duplicate (batch, material) or
      duplicate (batch, stage).
    - StaleDataError when another transaction changed the batch first.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from garment_kernel.db.base import Base, TrackedBase


class ProductionBatch(TrackedBase):
    """One production run of a single product through cutting, sewing, finishing."""

    __tablename__ = "production_batches"

    __table_args__ = (
        UniqueConstraint("batch_sku", name="uq_batch_sku"),
        CheckConstraint("target_quantity > 0", name="ck_batch_target_positive"),
        Index("idx_batch_status", "status"),
        Index("idx_batch_product", "product_id"),
    )

    batch_sku: Mapped[str] = mapped_column(String(50))
    product_id: Mapped[UUID] = mapped_column(ForeignKey("products.id"))

    target_quantity: Mapped[int] = mapped_column()
    actual_quantity: Mapped[int] = mapped_column(default=0)
    reject_quantity: Mapped[int] = mapped_column(default=0)

    status: Mapped[str] = mapped_column(String(50))
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    completed_date: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(nullable=False)

    allocations: Mapped[list["BatchMaterialAllocation"]] = relationship(
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="BatchMaterialAllocation.line_no",
        lazy="selectin",
    )

    tasks: Mapped[list["StageTask"]] = relationship(
        back_populates="batch",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    timeline: Mapped[list["BatchTimelineEntry"]] = relationship(
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="BatchTimelineEntry.seq",
        lazy="select",
    )

    __mapper_args__ = {"version_id_col": version}

    def task_for(self, stage) -> "StageTask | None":
        stage_value = getattr(stage, "value", stage)
        for task in self.tasks:
            if task.stage == stage_value:
                return task
        return None

    def to_dto(self):
        from garment_kernel.domain.dtos import BatchSnapshot
        from garment_kernel.domain.lifecycle import BatchStatus

        return BatchSnapshot(
            id=self.id,
            batch_sku=self.batch_sku,
            product_id=self.product_id,
            status=BatchStatus(self.status),
            target_quantity=self.target_quantity,
            actual_quantity=self.actual_quantity,
            reject_quantity=self.reject_quantity,
            created_by_id=self.created_by_id,
            notes=self.notes,
            completed_date=self.completed_date,
            version=self.version,
            allocations=tuple(a.to_dto() for a in self.allocations),
            tasks=tuple(
                t.to_dto() for t in sorted(self.tasks, key=lambda t: _STAGE_ORDER[t.stage])
            ),
        )

    def __repr__(self) -> str:
        return f"<ProductionBatch {self.batch_sku} {self.status}>"


_STAGE_ORDER = {"CUTTING": 0, "SEWING": 1, "FINISHING": 2}


class BatchMaterialAllocation(Base):
    """A batch's demand for (then reservation of) one material."""

    __tablename__ = "batch_material_allocations"

    __table_args__ = (
        UniqueConstraint("batch_id", "material_id", name="uq_allocation_batch_material"),
        CheckConstraint("CAST(requested_qty AS NUMERIC) > 0", name="ck_allocation_qty_positive"),
        Index("idx_allocation_material", "material_id"),
        Index("idx_allocation_status", "status"),
    )

    batch_id: Mapped[UUID] = mapped_column(ForeignKey("production_batches.id"))
    material_id: Mapped[UUID] = mapped_column(ForeignKey("materials.id"))
    line_no: Mapped[int] = mapped_column()
    requested_qty: Mapped[Decimal] = mapped_column()
    status: Mapped[str] = mapped_column(String(20))
    allocated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    # The OUT ledger entry that reserved this line (no FK: ledger is independent)
    stock_transaction_id: Mapped[UUID | None] = mapped_column(nullable=True)

    batch: Mapped[ProductionBatch] = relationship(back_populates="allocations")

    def to_dto(self):
        from garment_kernel.domain.dtos import AllocationView

        return AllocationView(
            id=self.id,
            material_id=self.material_id,
            line_no=self.line_no,
            requested_qty=self.requested_qty,
            status=self.status,
            allocated_at=self.allocated_at,
            stock_transaction_id=self.stock_transaction_id,
        )


class StageTask(Base):
    """
    Work unit for one stage of one batch, keyed by ``stage``.

    ``material_received`` is recorded for cutting only; sewing and finishing
    are seeded with ``pieces_received`` from the previous stage.
    """

    __tablename__ = "stage_tasks"

    __table_args__ = (
        UniqueConstraint("batch_id", "stage", name="uq_stage_task_batch_stage"),
        CheckConstraint("pieces_completed >= 0", name="ck_task_completed_non_negative"),
        CheckConstraint("reject_pieces >= 0", name="ck_task_reject_non_negative"),
        Index("idx_stage_task_assignee", "assigned_to_id"),
        Index("idx_stage_task_status", "status"),
    )

    batch_id: Mapped[UUID] = mapped_column(ForeignKey("production_batches.id"))
    stage: Mapped[str] = mapped_column(String(20))
    assigned_to_id: Mapped[UUID] = mapped_column(ForeignKey("staff_members.id"))

    material_received: Mapped[Decimal | None] = mapped_column(nullable=True)
    pieces_received: Mapped[int] = mapped_column(default=0)
    pieces_completed: Mapped[int] = mapped_column(default=0)
    reject_pieces: Mapped[int] = mapped_column(default=0)

    status: Mapped[str] = mapped_column(String(20))
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    assigned_at: Mapped[datetime] = mapped_column()
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    verified_by_id: Mapped[UUID | None] = mapped_column(nullable=True)

    batch: Mapped[ProductionBatch] = relationship(back_populates="tasks")

    def to_dto(self):
        from garment_kernel.domain.dtos import StageTaskView
        from garment_kernel.domain.lifecycle import Stage, TaskStatus

        return StageTaskView(
            id=self.id,
            batch_id=self.batch_id,
            stage=Stage(self.stage),
            assigned_to_id=self.assigned_to_id,
            status=TaskStatus(self.status),
            material_received=self.material_received,
            pieces_received=self.pieces_received,
            pieces_completed=self.pieces_completed,
            reject_pieces=self.reject_pieces,
            notes=self.notes,
            started_at=self.started_at,
            completed_at=self.completed_at,
            verified_at=self.verified_at,
            verified_by_id=self.verified_by_id,
        )


class BatchTimelineEntry(Base):
    """Append-only audit record of one batch lifecycle event."""

    __tablename__ = "batch_timeline"

    __table_args__ = (
        UniqueConstraint("batch_id", "seq", name="uq_timeline_batch_seq"),
    )

    batch_id: Mapped[UUID] = mapped_column(ForeignKey("production_batches.id"))
    seq: Mapped[int] = mapped_column()
    event: Mapped[str] = mapped_column(String(50))
    details: Mapped[str] = mapped_column(String(4000))
    actor_id: Mapped[UUID | None] = mapped_column(nullable=True)
    occurred_at: Mapped[datetime] = mapped_column()

    batch: Mapped[ProductionBatch] = relationship(back_populates="timeline")

    def to_dto(self):
        from garment_kernel.domain.dtos import TimelineEntry

        return TimelineEntry(
            event=self.event,
            details=self.details,
            timestamp=self.occurred_at,
            actor_id=self.actor_id,
            seq=self.seq,
        )
