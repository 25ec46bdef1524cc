"""
MaterialAllocationManager -- reserves ledger stock against a batch.

Responsibility:
    Turns a batch's material request into REQUESTED allocation rows, and
    later reserves every requested line in one step: verify all lines, post
    one OUT ledger entry per line tagged with the batch, flip the rows to
    ALLOCATED.  Also guards hard deletion of materials that have history.

Architecture position:
    Kernel > Services.  Flush-only.  Driven by BatchStateMachine (create,
    request, allocate, cancel) and InventoryService (delete guard).

Invariants enforced:
    - A request is a demand signal: no stock moves until ``allocate``.
    - All-or-nothing: every line is checked against freshly locked stock
      before the first OUT entry is written.  The first deficient line (in
      line order) is reported.  Partial allocation is never a valid end state;
      the orchestrator rolls back on any exception.
    - Materials are locked in ascending id order so two batches allocating
      overlapping materials cannot deadlock.
    - One allocation row per (batch, material).

Failure modes:
    - ValidationError: empty request, malformed quantity, nothing to allocate.
    - MaterialNotFoundError / MaterialInactiveError.
    - DuplicateAllocationError: material already on the batch.
    - InsufficientStockError: a line exceeds current stock.
    - MaterialReferencedError: delete of a material with history.
"""

from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from garment_kernel.domain.clock import Clock, SystemClock
from garment_kernel.domain.dtos import MaterialRequestLine
from garment_kernel.domain.lifecycle import AllocationStatus
from garment_kernel.domain.stock import StockTransactionType
from garment_kernel.exceptions import (
    DuplicateAllocationError,
    InsufficientStockError,
    MaterialInactiveError,
    MaterialNotFoundError,
    MaterialReferencedError,
    ValidationError,
)
from garment_kernel.logging_config import LogContext, get_logger
from garment_kernel.models.batch import BatchMaterialAllocation, ProductionBatch
from garment_kernel.models.catalog import ProductMaterial
from garment_kernel.models.material import Material, StockTransaction
from garment_kernel.services.base import BaseService
from garment_kernel.services.stock_ledger import StockLedger, parse_quantity

logger = get_logger("services.allocation")


class MaterialAllocationManager(BaseService[BatchMaterialAllocation]):
    """Request, reserve and reject material for batches."""

    def __init__(
        self,
        session: Session,
        ledger: StockLedger | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._ledger = ledger or StockLedger(session, self._clock)

    # -------------------------------------------------------------------------
    # Request
    # -------------------------------------------------------------------------

    def request_allocation(
        self,
        batch: ProductionBatch,
        lines: Iterable[MaterialRequestLine],
    ) -> list[BatchMaterialAllocation]:
        """Create REQUESTED rows for ``lines``.  Stock is untouched."""
        lines = list(lines)
        if not lines:
            raise ValidationError("At least one material line is required", field="materials")

        taken = {a.material_id for a in batch.allocations}
        validated: list[tuple[UUID, Decimal]] = []
        for line in lines:
            material_id = line.material_id
            if material_id is None:
                raise ValidationError("material_id is required", field="material_id")
            quantity = parse_quantity(line.requested_qty, field="requested_qty")
            if material_id in taken:
                raise DuplicateAllocationError(str(batch.id), str(material_id))
            material = self.session.get(Material, material_id)
            if material is None:
                raise MaterialNotFoundError(str(material_id))
            if not material.is_active:
                raise MaterialInactiveError(str(material.id), material.code)
            taken.add(material_id)
            validated.append((material_id, quantity))

        next_line = max((a.line_no for a in batch.allocations), default=0) + 1
        rows = []
        for offset, (material_id, quantity) in enumerate(validated):
            row = BatchMaterialAllocation(
                material_id=material_id,
                line_no=next_line + offset,
                requested_qty=quantity,
                status=AllocationStatus.REQUESTED.value,
            )
            batch.allocations.append(row)
            rows.append(row)
        self.session.flush()

        logger.info(
            "materials_requested",
            extra={
                "batch_id": str(batch.id),
                "line_count": len(rows),
            },
        )
        return rows

    # -------------------------------------------------------------------------
    # Allocate
    # -------------------------------------------------------------------------

    def allocate(self, batch: ProductionBatch, actor_id: UUID) -> list[BatchMaterialAllocation]:
        """
        Reserve every REQUESTED line on the batch.

        Postconditions:
            - Each line has one OUT StockTransaction tagged with the batch.
            - Each line is ALLOCATED and points at its ledger entry.
        """
        requested = sorted(
            (a for a in batch.allocations if a.status == AllocationStatus.REQUESTED.value),
            key=lambda a: a.line_no,
        )
        if not requested:
            raise ValidationError(
                f"Batch {batch.batch_sku} has no requested materials to allocate",
                field="materials",
            )

        # Lock phase: deterministic order across all callers
        locked: dict[UUID, Material] = {}
        for row in sorted(requested, key=lambda a: str(a.material_id)):
            material = self._lock(Material, row.material_id)
            if material is None:
                raise MaterialNotFoundError(str(row.material_id))
            locked[row.material_id] = material

        # Check phase: nothing is written unless every line fits
        for row in requested:
            material = locked[row.material_id]
            if not material.is_active:
                raise MaterialInactiveError(str(material.id), material.code)
            if material.current_stock < row.requested_qty:
                logger.warning(
                    "allocation_rejected_insufficient_stock",
                    extra={
                        "batch_id": str(batch.id),
                        "material_id": str(material.id),
                        "material_code": material.code,
                        "requested": str(row.requested_qty),
                        "available": str(material.current_stock),
                    },
                )
                raise InsufficientStockError(
                    material_id=str(material.id),
                    material_code=material.code,
                    requested=str(row.requested_qty),
                    available=str(material.current_stock),
                )

        # Post phase
        now = self._clock.now()
        for row in requested:
            entry = self._ledger.record_transaction(
                material_id=row.material_id,
                transaction_type=StockTransactionType.OUT,
                quantity=row.requested_qty,
                actor_id=actor_id,
                batch_id=batch.id,
                notes=f"Allocated to batch {batch.batch_sku}",
            )
            row.status = AllocationStatus.ALLOCATED.value
            row.allocated_at = now
            row.stock_transaction_id = entry.id
        self.session.flush()

        with LogContext.bind(batch_id=batch.id):
            logger.info(
                "materials_allocated",
                extra={
                    "line_count": len(requested),
                    "total_quantity": str(sum(r.requested_qty for r in requested)),
                },
            )
        return requested

    def reject_requested(self, batch: ProductionBatch) -> int:
        """Flip REQUESTED rows to REJECTED (batch cancelled).  Returns the count."""
        count = 0
        for row in batch.allocations:
            if row.status == AllocationStatus.REQUESTED.value:
                row.status = AllocationStatus.REJECTED.value
                count += 1
        if count:
            self.session.flush()
        return count

    def total_allocated(self, batch: ProductionBatch) -> Decimal:
        return sum(
            (a.requested_qty for a in batch.allocations
             if a.status == AllocationStatus.ALLOCATED.value),
            Decimal("0"),
        )

    # -------------------------------------------------------------------------
    # Deletion guard
    # -------------------------------------------------------------------------

    def material_references(self, material_id: UUID) -> tuple[str, ...]:
        """Names of the record kinds that still reference the material."""
        checks = (
            ("allocations", BatchMaterialAllocation.material_id),
            ("bill_of_materials", ProductMaterial.material_id),
            ("stock_ledger", StockTransaction.material_id),
        )
        return tuple(
            name
            for name, column in checks
            if self.session.execute(select(exists().where(column == material_id))).scalar()
        )

    def ensure_material_deletable(self, material_id: UUID) -> None:
        references = self.material_references(material_id)
        if references:
            raise MaterialReferencedError(str(material_id), references)
