"""
BatchSequenceService -- daily dense batch SKU numbers via locked counter rows.

Responsibility:
    Issues ``PROD-YYYYMMDD-NNN``: NNN restarts at 1 every (UTC) day and has
    no gaps among committed batches.  One counter row per day
    (``batch_sku:YYYYMMDD``) is incremented under a row lock.

Architecture position:
    Kernel > Services.  Called by BatchStateMachine.create_batch inside the
    creation transaction.

Invariants enforced:
    - Dense per day: the counter row is the sole source of the next value.
      Counting existing batches plus one is FORBIDDEN (two creators would
      read the same count).
    - Transactional: the increment becomes visible only when the caller
      commits.  A rolled-back creation returns its number.

Failure modes:
    - IntegrityError on a concurrent first-use insert of the day's counter;
      handled with a savepoint rollback and a locked re-read.
"""

from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from garment_kernel.logging_config import get_logger
from garment_kernel.models.sequence import SequenceCounter
from garment_kernel.services.base import BaseService

logger = get_logger("services.sequence")


def format_batch_sku(prefix: str, day: date, number: int, width: int) -> str:
    return f"{prefix}-{day:%Y%m%d}-{number:0{width}d}"


class BatchSequenceService(BaseService[SequenceCounter]):
    """Counter-row sequence allocation for batch SKUs."""

    def __init__(self, session: Session, prefix: str = "PROD", width: int = 3):
        super().__init__(session)
        self._prefix = prefix
        self._width = width

    @staticmethod
    def counter_name(day: date) -> str:
        return f"batch_sku:{day:%Y%m%d}"

    def next_value(self, sequence_name: str) -> int:
        """Lock (or create) the named counter, increment it and return the value."""
        counter = self._locked_counter(sequence_name)

        if counter is None:
            savepoint = self.session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self.session.add(counter)
                self.session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self.session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def next_batch_sku(self, day: date) -> str:
        number = self.next_value(self.counter_name(day))
        return format_batch_sku(self._prefix, day, number, self._width)

    def current_value(self, sequence_name: str) -> int | None:
        return self.session.execute(
            select(SequenceCounter.current_value).where(
                SequenceCounter.name == sequence_name
            )
        ).scalar_one_or_none()

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self.session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
