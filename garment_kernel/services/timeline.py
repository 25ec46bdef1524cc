"""
TimelineRecorder -- appends batch lifecycle events.

Flush-only.  The caller holds the batch row lock, so ``max(seq) + 1`` read
inside the same transaction cannot race another appender for that batch.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from garment_kernel.domain.clock import Clock, SystemClock
from garment_kernel.logging_config import get_logger
from garment_kernel.models.batch import BatchTimelineEntry, ProductionBatch
from garment_kernel.services.base import BaseService

logger = get_logger("services.timeline")


class TimelineRecorder(BaseService[BatchTimelineEntry]):
    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def append(
        self,
        batch: ProductionBatch,
        event: str,
        details: str,
        actor_id: UUID | None,
    ) -> BatchTimelineEntry:
        last_seq = self.session.execute(
            select(func.max(BatchTimelineEntry.seq)).where(
                BatchTimelineEntry.batch_id == batch.id
            )
        ).scalar()
        entry = BatchTimelineEntry(
            batch_id=batch.id,
            seq=(last_seq or 0) + 1,
            event=event,
            details=details,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
        )
        self.session.add(entry)
        self.session.flush()
        logger.debug(
            "timeline_entry_appended",
            extra={"batch_id": str(batch.id), "event": event, "seq": entry.seq},
        )
        return entry
