"""
BaseService and TransactionalService -- shared contracts of the write side.

Responsibility:
    BaseService holds the caller's Session and the row-locking read every
    check-then-write in the kernel starts from.  TransactionalService is the
    commit/rollback boundary the orchestrators run their work inside.

Architecture position:
    Kernel > Services.  StockLedger, MaterialAllocationManager,
    TaskAssignmentService, TimelineRecorder and BatchSequenceService extend
    it.  The orchestrators (BatchStateMachine, InventoryService) own
    commit/rollback; these components only ever flush.

Invariants enforced:
    - Components never call ``session.commit()`` or ``session.rollback()``.
      The orchestrator that created the transaction decides its fate, so a
      multi-step transition is all-or-nothing.
    - Locked reads bypass the identity map (populate_existing), so a check
      sees the value committed by the previous lock holder, never a cached
      copy.
"""

from abc import ABC
from collections.abc import Callable
from typing import Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from garment_kernel.db.base import Base
from garment_kernel.exceptions import (
    ConcurrentModificationError,
    GarmentKernelError,
    InternalError,
)
from garment_kernel.logging_config import get_logger

logger = get_logger("services.base")

ModelType = TypeVar("ModelType", bound=Base)
T = TypeVar("T")


class BaseService(ABC, Generic[ModelType]):
    """Flush-only component bound to one caller-owned Session."""

    def __init__(self, session: Session):
        self.session = session

    def _lock(self, model: type[ModelType], entity_id) -> ModelType | None:
        """
        ``SELECT ... FOR UPDATE`` one row and refresh it from the database.

        Returns None when the row does not exist.  On SQLite the FOR UPDATE
        clause is omitted; the BEGIN IMMEDIATE transaction already holds the
        write lock.
        """
        return self.session.execute(
            select(model)
            .where(model.id == entity_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()


# Deadlock and serialization failures; the caller may retry
_RETRYABLE_PGCODES = frozenset({"40001", "40P01"})


def is_retryable_store_error(exc: DBAPIError) -> bool:
    return getattr(exc.orig, "pgcode", None) in _RETRYABLE_PGCODES


class TransactionalService:
    """
    Orchestrator that owns the transaction boundary of every public method.

    ``_atomic`` commits on success and rolls back on any exception.  Kernel
    errors pass through unchanged; store failures are translated so callers
    only ever see the kernel taxonomy.
    """

    entity_type = "Entity"

    def __init__(self, session: Session):
        self.session = session

    def _atomic(self, operation: str, entity_id, work: Callable[[], T]) -> T:
        # Each call starts from committed state; nothing is pending between calls
        self.session.expire_all()
        try:
            result = work()
            self.session.commit()
            return result
        except GarmentKernelError as exc:
            self.session.rollback()
            logger.info(
                "operation_rejected",
                extra={
                    "operation": operation,
                    "error_code": exc.code,
                    "error_kind": exc.kind.value,
                },
            )
            raise
        except (IntegrityError, StaleDataError) as exc:
            self.session.rollback()
            logger.warning(
                "operation_conflict",
                exc_info=True,
                extra={"operation": operation},
            )
            raise ConcurrentModificationError(
                self.entity_type, str(entity_id) if entity_id is not None else None
            ) from exc
        except DBAPIError as exc:
            self.session.rollback()
            if is_retryable_store_error(exc):
                logger.warning(
                    "operation_conflict",
                    exc_info=True,
                    extra={"operation": operation},
                )
                raise ConcurrentModificationError(
                    self.entity_type, str(entity_id) if entity_id is not None else None
                ) from exc
            logger.error(
                "operation_store_failure",
                exc_info=True,
                extra={"operation": operation},
            )
            raise InternalError(f"Store failure during {operation}") from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(
                "operation_store_failure",
                exc_info=True,
                extra={"operation": operation},
            )
            raise InternalError(f"Store failure during {operation}") from exc
        except Exception:
            self.session.rollback()
            raise

    def _read(self, work: Callable[[], T]) -> T:
        """Run a read and end its transaction so no lock outlives the call."""
        try:
            return work()
        finally:
            self.session.rollback()
