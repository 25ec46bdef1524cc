"""
ORM-Level Append-Only Enforcement for the stock ledger and batch timeline.

===============================================================================
WHY THIS EXISTS
===============================================================================

The stock ledger is the sole explanation of how a material's current stock
reached its value, and the batch timeline is the audit trail of a batch's
lifecycle.  Both are append-only.  Application code that tries to edit
either, or to move a material's stock without a matching ledger entry, is a
bug; these listeners turn that bug into an ImmutabilityViolationError before
any SQL is sent.

    session.flush()
         |
         v
    [before_flush]  --> _check_flush_plan() ------------+
         |                                               |
         v                                               v
    [before_update / before_delete] --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if every check passes)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity               | Rule
---------------------|-----------------------------------------------------
StockTransaction     | Never updated, never deleted
BatchTimelineEntry   | Never updated; deleted only together with its batch
Material             | current_stock changes only when the same flush
                     | inserts a StockTransaction for that material whose
                     | stock_after equals the new value

Inline imports avoid a db <-> models import cycle.

===============================================================================
USAGE
===============================================================================

    from garment_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that must write a forbidden row call unregister_immutability_listeners()
and re-register afterwards.

===============================================================================
"""

from decimal import Decimal

from sqlalchemy import event
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import get_history

from garment_kernel.exceptions import ImmutabilityViolationError
from garment_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(entity_type: str, entity_id, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


# =============================================================================
# Stock ledger
# =============================================================================


def _check_stock_transaction_update(mapper, connection, target):
    raise _blocked(
        "StockTransaction", target.id, "UPDATE",
        "Stock transactions are immutable; post a correcting entry instead",
    )


def _check_stock_transaction_delete(mapper, connection, target):
    raise _blocked(
        "StockTransaction", target.id, "DELETE",
        "Stock transactions cannot be deleted",
    )


# =============================================================================
# Batch timeline
# =============================================================================


def _check_timeline_update(mapper, connection, target):
    raise _blocked(
        "BatchTimelineEntry", target.id, "UPDATE",
        "Timeline entries are append-only",
    )


# =============================================================================
# Flush plan checks
# =============================================================================


def _pending_ledger_stock(session: Session) -> dict:
    """Map material_id -> stock_after values of ledger rows about to insert."""
    from garment_kernel.models.material import StockTransaction

    pending: dict = {}
    for obj in session.new:
        if isinstance(obj, StockTransaction):
            pending.setdefault(obj.material_id, []).append(obj.stock_after)
    return pending


def _check_flush_plan(session, flush_context, instances):
    """
    Session-level checks that need to see the whole flush at once.

    Timeline deletes are legal only as part of deleting their batch, and
    material stock moves only with a ledger entry in the same flush.
    """
    from garment_kernel.models.batch import BatchTimelineEntry, ProductionBatch
    from garment_kernel.models.material import Material

    deleted = list(session.deleted)
    deleted_batch_ids = {
        obj.id for obj in deleted if isinstance(obj, ProductionBatch)
    }
    for obj in deleted:
        if isinstance(obj, BatchTimelineEntry) and obj.batch_id not in deleted_batch_ids:
            raise _blocked(
                "BatchTimelineEntry", obj.id, "DELETE",
                "Timeline entries are removed only with their batch",
            )

    pending = None
    for obj in list(session.new) + list(session.dirty):
        if not isinstance(obj, Material):
            continue
        history = get_history(obj, "current_stock")
        if obj in session.new:
            changed = obj.current_stock not in (None, Decimal("0"))
        else:
            changed = bool(history.added) and history.added != history.deleted
        if not changed:
            continue
        if pending is None:
            pending = _pending_ledger_stock(session)
        if obj.current_stock not in pending.get(obj.id, []):
            raise _blocked(
                "Material", obj.id, "UPDATE",
                "current_stock changes only through a stock transaction",
            )


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    from garment_kernel.models.batch import BatchTimelineEntry
    from garment_kernel.models.material import StockTransaction

    return (
        (Session, "before_flush", _check_flush_plan),
        (StockTransaction, "before_update", _check_stock_transaction_update),
        (StockTransaction, "before_delete", _check_stock_transaction_delete),
        (BatchTimelineEntry, "before_update", _check_timeline_update),
    )


def register_immutability_listeners() -> None:
    """Register every append-only listener.  Safe to call more than once."""
    for target, name, fn in _listeners():
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)
    logger.debug("immutability_listeners_registered")


def unregister_immutability_listeners() -> None:
    """Remove the listeners. FOR TESTING ONLY."""
    for target, name, fn in _listeners():
        if event.contains(target, name, fn):
            event.remove(target, name, fn)
