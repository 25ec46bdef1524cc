"""
DTOs -- immutable data structures that cross the kernel boundary.

Responsibility:
    Inputs accepted by the write side (MaterialRequestLine, ProgressDelta),
    the TransitionEffect every batch transition produces, and the read
    models returned to callers (BatchSnapshot, TimelineEntry, stock records,
    statistics).  ORM rows never leave the kernel; models convert themselves
    with ``to_dto()``.

Architecture position:
    Kernel > Domain -- pure, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from garment_kernel.domain.lifecycle import BatchStatus, FinishedGoodType, Stage, TaskStatus
from garment_kernel.domain.stock import StockTransactionType
from garment_kernel.exceptions import ValidationError

# =============================================================================
# Write-side inputs
# =============================================================================


@dataclass(frozen=True)
class MaterialRequestLine:
    """One requested material for a batch.  Validated by the allocation manager."""

    material_id: UUID
    requested_qty: Decimal


@dataclass(frozen=True)
class ProgressDelta:
    """
    Increment to add to a stage task's running totals.

    Progress is additive: two deltas of 5 yield +10.  Callers that retry
    must deduplicate themselves.
    """

    pieces_completed: int = 0
    reject_pieces: int = 0

    def __post_init__(self) -> None:
        for name in ("pieces_completed", "reject_pieces"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"{name} must be an integer", field=name)
            if value < 0:
                raise ValidationError(f"{name} must be non-negative", field=name)
        if self.pieces_completed == 0 and self.reject_pieces == 0:
            raise ValidationError("Progress update carries no change", field="delta")


# =============================================================================
# Transition effects
# =============================================================================


@dataclass(frozen=True)
class NotificationMessage:
    """Fire-and-forget message for the notification collaborator."""

    recipient_id: UUID
    type: str
    title: str
    message: str


@dataclass(frozen=True)
class TransitionEffect:
    """What a transition's side effect did: timeline details plus messages."""

    details: str
    notifications: tuple[NotificationMessage, ...] = ()


# =============================================================================
# Read models
# =============================================================================


@dataclass(frozen=True)
class TimelineEntry:
    event: str
    details: str
    timestamp: datetime
    actor_id: UUID | None = None
    seq: int = 0


@dataclass(frozen=True)
class AllocationView:
    id: UUID
    material_id: UUID
    line_no: int
    requested_qty: Decimal
    status: str
    allocated_at: datetime | None = None
    stock_transaction_id: UUID | None = None


@dataclass(frozen=True)
class StageTaskView:
    id: UUID
    batch_id: UUID
    stage: Stage
    assigned_to_id: UUID
    status: TaskStatus
    material_received: Decimal | None
    pieces_received: int
    pieces_completed: int
    reject_pieces: int
    notes: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    verified_at: datetime | None = None
    verified_by_id: UUID | None = None


@dataclass(frozen=True)
class BatchSnapshot:
    """State of one batch right after a committed transition (or on read)."""

    id: UUID
    batch_sku: str
    product_id: UUID
    status: BatchStatus
    target_quantity: int
    actual_quantity: int
    reject_quantity: int
    created_by_id: UUID
    notes: str | None = None
    completed_date: datetime | None = None
    version: int = 1
    allocations: tuple[AllocationView, ...] = ()
    tasks: tuple[StageTaskView, ...] = ()

    def task(self, stage: Stage) -> StageTaskView | None:
        for task in self.tasks:
            if task.stage is stage:
                return task
        return None


@dataclass(frozen=True)
class FinishedGoodRecord:
    """One warehouse intake row of a completed batch."""

    id: UUID
    batch_id: UUID
    batch_sku: str
    product_id: UUID
    goods_type: FinishedGoodType
    quantity: int
    location: str
    verified_by_id: UUID
    verified_at: datetime
    notes: str | None = None


@dataclass(frozen=True)
class MaterialSnapshot:
    id: UUID
    code: str
    name: str
    unit: str
    current_stock: Decimal
    minimum_stock: Decimal
    price: Decimal
    is_active: bool


@dataclass(frozen=True)
class StockTransactionRecord:
    id: UUID
    material_id: UUID
    seq: int
    transaction_type: StockTransactionType
    quantity: Decimal
    unit: str
    stock_before: Decimal
    stock_after: Decimal
    actor_id: UUID
    occurred_at: datetime
    batch_id: UUID | None = None
    notes: str | None = None


@dataclass(frozen=True)
class StockStatistics:
    """Derived read-side aggregates over active materials."""

    total_materials: int
    low_stock: int
    out_of_stock: int
    total_value: Decimal


@dataclass(frozen=True)
class LedgerVerification:
    material_id: UUID
    recorded_stock: Decimal
    replayed_stock: Decimal
    entry_count: int
    gaps: tuple[int, ...] = field(default_factory=tuple)

    @property
    def is_consistent(self) -> bool:
        return self.recorded_stock == self.replayed_stock and not self.gaps
