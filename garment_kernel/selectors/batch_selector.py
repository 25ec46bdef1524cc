"""
BatchSelector -- read models for production batches.

Snapshots, the newest-first timeline, batch listings, finished goods and
label resolution.
Every method returns frozen DTOs; ORM rows never leave this module.
"""

from uuid import UUID

from sqlalchemy import select

from garment_kernel.domain.dtos import (
    BatchSnapshot,
    FinishedGoodRecord,
    StageTaskView,
    TimelineEntry,
)
from garment_kernel.domain.labels import LABEL_KIND, BatchLabel
from garment_kernel.domain.lifecycle import BatchStatus, FinishedGoodType
from garment_kernel.exceptions import (
    BatchNotFoundError,
    InvalidLabelError,
    TaskNotFoundError,
    ValidationError,
)
from garment_kernel.models.batch import BatchTimelineEntry, ProductionBatch, StageTask
from garment_kernel.models.finished_good import FinishedGood
from garment_kernel.selectors.base import BaseSelector


class BatchSelector(BaseSelector[ProductionBatch]):
    def get_snapshot(self, batch_id: UUID) -> BatchSnapshot:
        batch = self.session.get(ProductionBatch, batch_id)
        if batch is None:
            raise BatchNotFoundError(str(batch_id))
        return batch.to_dto()

    def get_by_sku(self, batch_sku: str) -> BatchSnapshot | None:
        batch = self.session.execute(
            select(ProductionBatch).where(ProductionBatch.batch_sku == batch_sku)
        ).scalar_one_or_none()
        return batch.to_dto() if batch is not None else None

    def get_timeline(self, batch_id: UUID) -> tuple[TimelineEntry, ...]:
        """Timeline entries newest first."""
        if self.session.get(ProductionBatch, batch_id) is None:
            raise BatchNotFoundError(str(batch_id))
        rows = self.session.execute(
            select(BatchTimelineEntry)
            .where(BatchTimelineEntry.batch_id == batch_id)
            .order_by(BatchTimelineEntry.seq.desc())
        ).scalars()
        return tuple(row.to_dto() for row in rows)

    def list_batches(self, status: BatchStatus | str | None = None) -> tuple[BatchSnapshot, ...]:
        """All batches, newest SKU first, optionally filtered by status."""
        stmt = select(ProductionBatch).order_by(ProductionBatch.batch_sku.desc())
        if status is not None:
            stmt = stmt.where(ProductionBatch.status == BatchStatus(status).value)
        return tuple(batch.to_dto() for batch in self.session.execute(stmt).scalars())

    def get_task(self, task_id: UUID) -> StageTaskView:
        task = self.session.get(StageTask, task_id)
        if task is None:
            raise TaskNotFoundError(str(task_id))
        return task.to_dto()

    def tasks_for_assignee(self, staff_id: UUID) -> tuple[StageTaskView, ...]:
        """Open and finished tasks of one worker, most recently assigned first."""
        rows = self.session.execute(
            select(StageTask)
            .where(StageTask.assigned_to_id == staff_id)
            .order_by(StageTask.assigned_at.desc())
        ).scalars()
        return tuple(task.to_dto() for task in rows)

    def list_finished_goods(
        self,
        goods_type: FinishedGoodType | str | None = None,
        batch_id: UUID | None = None,
    ) -> tuple[FinishedGoodRecord, ...]:
        """Warehouse intake rows, most recently verified first."""
        stmt = select(FinishedGood).order_by(
            FinishedGood.verified_at.desc(), FinishedGood.goods_type
        )
        if goods_type is not None:
            try:
                goods_type = FinishedGoodType(goods_type)
            except ValueError as exc:
                raise ValidationError(
                    f"Unknown goods type: {goods_type!r}", field="goods_type"
                ) from exc
            stmt = stmt.where(FinishedGood.goods_type == goods_type.value)
        if batch_id is not None:
            stmt = stmt.where(FinishedGood.batch_id == batch_id)
        return tuple(row.to_dto() for row in self.session.execute(stmt).scalars())

    def resolve_label(self, payload: str) -> BatchSnapshot:
        """
        Map a scanned label payload back to its batch.

        The payload must parse, carry the production-batch kind, and name a
        batch whose SKU still matches the one printed on the label.
        """
        label = BatchLabel.from_payload(payload)
        if label.kind != LABEL_KIND:
            raise InvalidLabelError(f"unexpected label type {label.kind!r}")
        batch = self.session.get(ProductionBatch, label.batch_id)
        if batch is None:
            raise BatchNotFoundError(str(label.batch_id))
        if batch.batch_sku != label.batch_sku:
            raise InvalidLabelError(
                f"label SKU {label.batch_sku} does not match batch {batch.batch_sku}"
            )
        return batch.to_dto()
