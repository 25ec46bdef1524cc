"""
InventoryService -- warehouse-facing stock operations.

Responsibility:
    Manual stock postings (goods in, issues, returns, stock-take
    adjustments), material activation and guarded deletion, and the read
    side of the ledger: statistics, history and replay verification.

Architecture position:
    Kernel > Services.  Orchestrator: each public method is one transaction
    (TransactionalService._atomic).  Postings go through StockLedger, the
    deletion guard through MaterialAllocationManager, reads through
    StockSelector.

Invariants enforced:
    - Every stock change is a ledger entry; there is no direct stock setter.
    - A material with allocation, bill-of-materials or ledger history is
      never hard-deleted; deactivate it instead.
    - Role checks precede any read or write.

Failure modes:
    - RoleNotPermittedError, MaterialNotFoundError, MaterialInactiveError.
    - ValidationError for malformed type or quantity.
    - InsufficientStockError when an OUT exceeds stock (nothing posted).
    - MaterialReferencedError on delete of a referenced material.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from garment_kernel.domain.clock import Clock, SystemClock
from garment_kernel.domain.dtos import (
    LedgerVerification,
    MaterialSnapshot,
    StockStatistics,
    StockTransactionRecord,
)
from garment_kernel.domain.lifecycle import Action
from garment_kernel.domain.roles import AccessPolicy, Actor
from garment_kernel.domain.stock import StockTransactionType
from garment_kernel.exceptions import MaterialNotFoundError
from garment_kernel.logging_config import LogContext, get_logger
from garment_kernel.models.material import Material
from garment_kernel.selectors.stock_selector import StockSelector
from garment_kernel.services.allocation_service import MaterialAllocationManager
from garment_kernel.services.base import BaseService, TransactionalService
from garment_kernel.services.stock_ledger import StockLedger

logger = get_logger("services.inventory")


class _MaterialWriter(BaseService[Material]):
    """Locked material reads for the activation and delete paths."""

    def locked(self, material_id: UUID) -> Material:
        material = self._lock(Material, material_id)
        if material is None:
            raise MaterialNotFoundError(str(material_id))
        return material


class InventoryService(TransactionalService):
    entity_type = "Material"

    def __init__(
        self,
        session: Session,
        access_policy: AccessPolicy,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._policy = access_policy
        self._clock = clock or SystemClock()
        self._ledger = StockLedger(session, self._clock)
        self._allocations = MaterialAllocationManager(session, self._ledger, self._clock)
        self._materials = _MaterialWriter(session)
        self._selector = StockSelector(session)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def record_transaction(
        self,
        actor: Actor,
        material_id: UUID,
        transaction_type: StockTransactionType | str,
        quantity,
        notes: str | None = None,
        batch_id: UUID | None = None,
    ) -> StockTransactionRecord:
        """
        Post one stock movement.

        IN and RETURN add, OUT subtracts (never below zero), ADJUSTMENT sets
        the counted stock.  ``batch_id`` tags returns of batch material.
        """
        with LogContext.bind(actor_id=actor.actor_id, material_id=material_id):
            self._policy.authorize(actor, Action.RECORD_STOCK_TRANSACTION)
            return self._atomic(
                Action.RECORD_STOCK_TRANSACTION.value,
                material_id,
                lambda: self._ledger.record_transaction(
                    material_id=material_id,
                    transaction_type=transaction_type,
                    quantity=quantity,
                    actor_id=actor.actor_id,
                    batch_id=batch_id,
                    notes=notes,
                ).to_dto(),
            )

    def deactivate_material(self, actor: Actor, material_id: UUID) -> MaterialSnapshot:
        """Retire a material: it stays in history but accepts no new postings."""
        return self._set_active(actor, material_id, False)

    def reactivate_material(self, actor: Actor, material_id: UUID) -> MaterialSnapshot:
        return self._set_active(actor, material_id, True)

    def delete_material(self, actor: Actor, material_id: UUID) -> None:
        """Hard-delete a material that nothing references."""
        with LogContext.bind(actor_id=actor.actor_id, material_id=material_id):
            self._policy.authorize(actor, Action.MANAGE_MATERIALS)

            def work() -> str:
                material = self._materials.locked(material_id)
                self._allocations.ensure_material_deletable(material.id)
                code = material.code
                self.session.delete(material)
                self.session.flush()
                return code

            code = self._atomic("delete_material", material_id, work)
            logger.info("material_deleted", extra={"material_code": code})

    def _set_active(self, actor: Actor, material_id: UUID, active: bool) -> MaterialSnapshot:
        with LogContext.bind(actor_id=actor.actor_id, material_id=material_id):
            self._policy.authorize(actor, Action.MANAGE_MATERIALS)

            def work() -> MaterialSnapshot:
                material = self._materials.locked(material_id)
                if material.is_active != active:
                    material.is_active = active
                    material.updated_by_id = actor.actor_id
                    self.session.flush()
                return material.to_dto()

            snapshot = self._atomic("manage_materials", material_id, work)
            logger.info(
                "material_activation_changed",
                extra={"material_code": snapshot.code, "is_active": active},
            )
            return snapshot

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_material(self, material_id: UUID) -> MaterialSnapshot:
        return self._read(lambda: self._selector.get_material(material_id))

    def get_statistics(self) -> StockStatistics:
        return self._read(self._selector.statistics)

    def list_transactions(
        self,
        material_id: UUID,
        batch_id: UUID | None = None,
    ) -> tuple[StockTransactionRecord, ...]:
        return self._read(lambda: self._selector.list_transactions(material_id, batch_id))

    def verify_material(self, material_id: UUID) -> LedgerVerification:
        """Replay the material's ledger; an inconsistency is logged, not raised."""
        verification = self._read(lambda: self._selector.verify_material(material_id))
        if not verification.is_consistent:
            with LogContext.bind(material_id=material_id):
                logger.error(
                    "ledger_inconsistency_detected",
                    extra={
                        "recorded_stock": str(verification.recorded_stock),
                        "replayed_stock": str(verification.replayed_stock),
                        "gaps": list(verification.gaps),
                    },
                )
        return verification
