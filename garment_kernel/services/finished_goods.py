"""
FinishedGoodsRecorder -- books a completed batch into the warehouse.

Flush-only.  Called from the verify-finishing transition after the batch
totals are final, so the FINISHED row carries ``actual_quantity`` and the
REJECT row ``reject_quantity``.  A batch without rejects gets no REJECT row.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from garment_kernel.domain.clock import Clock, SystemClock
from garment_kernel.domain.lifecycle import FinishedGoodType
from garment_kernel.exceptions import ValidationError
from garment_kernel.logging_config import get_logger
from garment_kernel.models.batch import ProductionBatch
from garment_kernel.models.finished_good import FinishedGood
from garment_kernel.services.base import BaseService

logger = get_logger("services.finished_goods")

MAX_LOCATION_LENGTH = 200


def parse_goods_location(location) -> str:
    if not isinstance(location, str) or not location.strip():
        raise ValidationError("goods_location is required", field="goods_location")
    location = location.strip()
    if len(location) > MAX_LOCATION_LENGTH:
        raise ValidationError(
            f"goods_location exceeds {MAX_LOCATION_LENGTH} characters",
            field="goods_location",
        )
    return location


class FinishedGoodsRecorder(BaseService[FinishedGood]):
    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def receive(
        self,
        batch: ProductionBatch,
        location: str,
        verifier_id: UUID,
        notes: str | None = None,
    ) -> list[FinishedGood]:
        quantities = (
            (FinishedGoodType.FINISHED, batch.actual_quantity),
            (FinishedGoodType.REJECT, batch.reject_quantity),
        )
        now = self._clock.now()
        rows = [
            FinishedGood(
                batch_id=batch.id,
                goods_type=goods_type.value,
                quantity=quantity,
                location=location,
                notes=notes,
                verified_by_id=verifier_id,
                verified_at=now,
            )
            for goods_type, quantity in quantities
            if quantity > 0
        ]
        self.session.add_all(rows)
        self.session.flush()
        logger.info(
            "finished_goods_received",
            extra={
                "batch_sku": batch.batch_sku,
                "location": location,
                "finished": batch.actual_quantity,
                "rejects": batch.reject_quantity,
            },
        )
        return rows
