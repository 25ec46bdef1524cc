"""Services for the garment kernel (write side)."""

from garment_kernel.services.allocation_service import MaterialAllocationManager
from garment_kernel.services.batch_state_machine import BatchStateMachine
from garment_kernel.services.inventory_service import InventoryService
from garment_kernel.services.notifications import (
    DatabaseNotifier,
    InMemoryNotifier,
    LoggingNotifier,
    Notifier,
    dispatch_notifications,
)
from garment_kernel.services.sequence_service import BatchSequenceService
from garment_kernel.services.stock_ledger import StockLedger
from garment_kernel.services.task_assignment import TaskAssignmentService
from garment_kernel.services.timeline import TimelineRecorder

__all__ = [
    "BatchSequenceService",
    "BatchStateMachine",
    "DatabaseNotifier",
    "InMemoryNotifier",
    "InventoryService",
    "LoggingNotifier",
    "MaterialAllocationManager",
    "Notifier",
    "StockLedger",
    "TaskAssignmentService",
    "TimelineRecorder",
    "dispatch_notifications",
]
