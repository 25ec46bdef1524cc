"""Pure domain layer: roles, batch lifecycle, stock arithmetic, DTOs, clock, labels."""

from garment_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from garment_kernel.domain.dtos import (
    AllocationView,
    BatchSnapshot,
    LedgerVerification,
    MaterialRequestLine,
    MaterialSnapshot,
    NotificationMessage,
    ProgressDelta,
    StageTaskView,
    StockStatistics,
    StockTransactionRecord,
    TimelineEntry,
    TransitionEffect,
)
from garment_kernel.domain.labels import BatchLabel
from garment_kernel.domain.lifecycle import (
    BATCH_WORKFLOW,
    AllocationStatus,
    STAGES,
    Action,
    BatchStatus,
    Stage,
    StageSpec,
    TaskStatus,
    Transition,
    Workflow,
)
from garment_kernel.domain.roles import AccessPolicy, Actor, Role
from garment_kernel.domain.stock import (
    StockTransactionType,
    apply_stock_transaction,
    fold_ledger,
)

__all__ = [
    "AccessPolicy",
    "Action",
    "Actor",
    "AllocationStatus",
    "AllocationView",
    "BATCH_WORKFLOW",
    "BatchLabel",
    "BatchSnapshot",
    "BatchStatus",
    "Clock",
    "DeterministicClock",
    "LedgerVerification",
    "MaterialRequestLine",
    "MaterialSnapshot",
    "NotificationMessage",
    "ProgressDelta",
    "Role",
    "STAGES",
    "Stage",
    "StageSpec",
    "StageTaskView",
    "StockStatistics",
    "StockTransactionRecord",
    "StockTransactionType",
    "SystemClock",
    "TaskStatus",
    "TimelineEntry",
    "Transition",
    "TransitionEffect",
    "Workflow",
    "apply_stock_transaction",
    "fold_ledger",
]
