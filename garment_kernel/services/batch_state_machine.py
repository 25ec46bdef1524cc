"""
BatchStateMachine -- the production batch lifecycle engine.

Responsibility:
    The single public write surface for batches.  Each operation authorizes
    the actor, locks the batch, validates the move against BATCH_WORKFLOW,
    runs the side effect through the flush-only components (allocation
    manager, stock ledger, task assignment, timeline, sequence), commits,
    and then hands the effect's notifications to the Notifier.

Architecture position:
    Kernel > Services.  Orchestrator: owns commit/rollback through
    TransactionalService._atomic.  Receives its AccessPolicy from the caller
    (built by garment_config); never reads configuration itself.

Invariants enforced:
    - Authorization happens before any read or write.
    - The transition is resolved against the status read under the batch row
      lock, never against a caller-supplied or cached status.
    - Status change, side effect and timeline entry commit together or not
      at all.  Every committed transition appends exactly one timeline entry;
      a hard delete removes the batch with its timeline and is recorded in
      the log instead.
    - Notifications go out only after commit and never undo it.
    - Progress updates change no batch status and write no timeline entry.

Failure modes:
    - ForbiddenError (role, assignee role, not the assignee).
    - NotFoundError (batch, product, material, staff, task).
    - StatusConflictError / TaskStatusConflictError.
    - DuplicateAllocationError (a ValidationError): material listed twice.
    - InsufficientStockError (allocation; nothing reserved).
    - ConcurrentModificationError: integrity or stale-row failure at flush.
    - InternalError: any other store failure.

Usage::

    machine = BatchStateMachine(session, config.access_policy, clock)
    batch = machine.create_batch(actor, product_id, 100, materials=[...])
    batch = machine.allocate_materials(warehouse_head, batch.id)
    batch = machine.assign_cutter(production_head, batch.id, cutter_id)
"""

from collections.abc import Callable, Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from garment_kernel.domain.clock import Clock, SystemClock
from garment_kernel.domain.dtos import (
    BatchSnapshot,
    FinishedGoodRecord,
    MaterialRequestLine,
    ProgressDelta,
    StageTaskView,
    TimelineEntry,
    TransitionEffect,
)
from garment_kernel.domain.labels import BatchLabel
from garment_kernel.domain.lifecycle import (
    BATCH_CREATED_EVENT,
    BATCH_WORKFLOW,
    STAGES,
    Action,
    BatchStatus,
    FinishedGoodType,
    Stage,
    StageSpec,
)
from garment_kernel.domain.roles import AccessPolicy, Actor
from garment_kernel.exceptions import (
    BatchNotFoundError,
    ProductNotFoundError,
    TaskNotFoundError,
    ValidationError,
)
from garment_kernel.logging_config import LogContext, get_logger
from garment_kernel.models.batch import ProductionBatch, StageTask
from garment_kernel.models.catalog import Product
from garment_kernel.models.material import Material
from garment_kernel.selectors.batch_selector import BatchSelector
from garment_kernel.services.allocation_service import MaterialAllocationManager
from garment_kernel.services.base import TransactionalService
from garment_kernel.services.finished_goods import FinishedGoodsRecorder, parse_goods_location
from garment_kernel.services.notifications import (
    LoggingNotifier,
    Notifier,
    dispatch_notifications,
)
from garment_kernel.services.sequence_service import BatchSequenceService
from garment_kernel.services.stock_ledger import StockLedger
from garment_kernel.services.task_assignment import TaskAssignmentService
from garment_kernel.services.timeline import TimelineRecorder

logger = get_logger("services.batch_state_machine")


def _stage_spec(stage: Stage | str) -> StageSpec:
    try:
        return STAGES[Stage(stage)]
    except ValueError as exc:
        raise ValidationError(f"Unknown stage: {stage!r}", field="stage") from exc


def _material_summary(session: Session, rows) -> str:
    parts = []
    for row in rows:
        material = session.get(Material, row.material_id)
        parts.append(f"{material.code} {row.requested_qty} {material.unit}")
    return ", ".join(parts)


class BatchStateMachine(TransactionalService):
    """Role-gated, atomic transitions over production batches."""

    entity_type = "ProductionBatch"

    def __init__(
        self,
        session: Session,
        access_policy: AccessPolicy,
        clock: Clock | None = None,
        notifier: Notifier | None = None,
        sku_prefix: str = "PROD",
        sku_width: int = 3,
    ):
        super().__init__(session)
        self._policy = access_policy
        self._clock = clock or SystemClock()
        self._notifier = notifier or LoggingNotifier()
        self._ledger = StockLedger(session, self._clock)
        self._allocations = MaterialAllocationManager(session, self._ledger, self._clock)
        self._tasks = TaskAssignmentService(session, self._clock)
        self._timeline = TimelineRecorder(session, self._clock)
        self._finished_goods = FinishedGoodsRecorder(session, self._clock)
        self._sequence = BatchSequenceService(session, prefix=sku_prefix, width=sku_width)
        self._selector = BatchSelector(session)

    # -------------------------------------------------------------------------
    # Transition engine
    # -------------------------------------------------------------------------

    def _transition(
        self,
        actor: Actor,
        action: Action,
        batch_id: UUID,
        effect: Callable[[ProductionBatch], TransitionEffect],
    ) -> BatchSnapshot:
        with LogContext.bind(actor_id=actor.actor_id, batch_id=batch_id):
            self._policy.authorize(actor, action)

            def work() -> tuple[BatchSnapshot, TransitionEffect, str]:
                batch = self._load_locked(batch_id)
                current = BatchStatus(batch.status)
                transition = BATCH_WORKFLOW.resolve(batch.id, current, action)
                result = effect(batch)
                batch.status = transition.to_state.value
                batch.updated_by_id = actor.actor_id
                self._timeline.append(batch, transition.event, result.details, actor.actor_id)
                self.session.flush()
                return batch.to_dto(), result, current.value

            snapshot, result, previous = self._atomic(action.value, batch_id, work)
            logger.info(
                "batch_transition_committed",
                extra={
                    "action": action.value,
                    "from_status": previous,
                    "to_status": snapshot.status.value,
                    "version": snapshot.version,
                },
            )
            dispatch_notifications(self._notifier, result.notifications)
            return snapshot

    def _load_locked(self, batch_id: UUID) -> ProductionBatch:
        batch = self.session.execute(
            select(ProductionBatch)
            .where(ProductionBatch.id == batch_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if batch is None:
            raise BatchNotFoundError(str(batch_id))
        return batch

    # -------------------------------------------------------------------------
    # Creation and materials
    # -------------------------------------------------------------------------

    def create_batch(
        self,
        actor: Actor,
        product_id: UUID,
        target_quantity: int,
        materials: Iterable[MaterialRequestLine] | None = None,
        notes: str | None = None,
    ) -> BatchSnapshot:
        """
        Open a new batch with the next SKU of the day.

        With material lines the batch starts in MATERIAL_REQUESTED and the
        lines are recorded as REQUESTED allocations; without, it starts in
        PENDING.  Stock is not touched either way.
        """
        lines = list(materials or ())
        with LogContext.bind(actor_id=actor.actor_id):
            self._policy.authorize(actor, Action.CREATE_BATCH)
            if (
                isinstance(target_quantity, bool)
                or not isinstance(target_quantity, int)
                or target_quantity <= 0
            ):
                raise ValidationError(
                    "target_quantity must be a positive integer", field="target_quantity"
                )

            def work() -> BatchSnapshot:
                product = self.session.get(Product, product_id)
                if product is None:
                    raise ProductNotFoundError(str(product_id))
                if not product.is_active:
                    raise ValidationError(
                        f"Product {product.sku} is inactive", field="product_id"
                    )

                batch = ProductionBatch(
                    batch_sku=self._sequence.next_batch_sku(self._clock.today_utc()),
                    product_id=product.id,
                    target_quantity=target_quantity,
                    actual_quantity=0,
                    reject_quantity=0,
                    status=BatchStatus.PENDING.value,
                    notes=notes,
                    created_by_id=actor.actor_id,
                )
                self.session.add(batch)
                self.session.flush()

                details = (
                    f"Batch {batch.batch_sku} created for {product.name}: "
                    f"target {target_quantity} pieces"
                )
                if lines:
                    rows = self._allocations.request_allocation(batch, lines)
                    batch.status = BatchStatus.MATERIAL_REQUESTED.value
                    details += f"; {len(rows)} material line(s) requested"
                self._timeline.append(batch, BATCH_CREATED_EVENT, details, actor.actor_id)
                self.session.flush()
                return batch.to_dto()

            snapshot = self._atomic(Action.CREATE_BATCH.value, None, work)
            with LogContext.bind(batch_id=snapshot.id):
                logger.info(
                    "batch_created",
                    extra={
                        "batch_sku": snapshot.batch_sku,
                        "to_status": snapshot.status.value,
                        "target_quantity": target_quantity,
                    },
                )
            return snapshot

    def request_materials(
        self,
        actor: Actor,
        batch_id: UUID,
        materials: Iterable[MaterialRequestLine],
    ) -> BatchSnapshot:
        lines = list(materials)

        def effect(batch: ProductionBatch) -> TransitionEffect:
            rows = self._allocations.request_allocation(batch, lines)
            return TransitionEffect(
                details=(
                    f"{len(rows)} material line(s) requested for batch "
                    f"{batch.batch_sku}: {_material_summary(self.session, rows)}"
                )
            )

        return self._transition(actor, Action.REQUEST_MATERIALS, batch_id, effect)

    def allocate_materials(self, actor: Actor, batch_id: UUID) -> BatchSnapshot:
        """Reserve every requested line, or nothing (InsufficientStockError)."""

        def effect(batch: ProductionBatch) -> TransitionEffect:
            rows = self._allocations.allocate(batch, actor.actor_id)
            return TransitionEffect(
                details=(
                    f"Materials allocated to batch {batch.batch_sku}: "
                    f"{_material_summary(self.session, rows)}"
                )
            )

        return self._transition(actor, Action.ALLOCATE_MATERIALS, batch_id, effect)

    # -------------------------------------------------------------------------
    # Stage work
    # -------------------------------------------------------------------------

    def assign_stage(
        self,
        actor: Actor,
        batch_id: UUID,
        stage: Stage | str,
        assignee_id: UUID,
        seed_quantity=None,
        notes: str | None = None,
    ) -> BatchSnapshot:
        """
        Create the stage task and move the batch to the stage's assigned status.

        ``seed_quantity`` overrides the material received (cutting) or the
        pieces received from the previous stage (sewing, finishing).
        """
        spec = _stage_spec(stage)

        def effect(batch: ProductionBatch) -> TransitionEffect:
            return self._tasks.assign(
                batch,
                spec,
                assignee_id,
                seed_quantity=seed_quantity,
                notes=notes,
                material_total=self._allocations.total_allocated(batch),
            )

        return self._transition(actor, spec.assign_action, batch_id, effect)

    def assign_cutter(self, actor: Actor, batch_id: UUID, assignee_id: UUID,
                      material_received=None, notes: str | None = None) -> BatchSnapshot:
        return self.assign_stage(actor, batch_id, Stage.CUTTING, assignee_id, material_received, notes)

    def assign_sewer(self, actor: Actor, batch_id: UUID, assignee_id: UUID,
                     pieces_received: int | None = None, notes: str | None = None) -> BatchSnapshot:
        return self.assign_stage(actor, batch_id, Stage.SEWING, assignee_id, pieces_received, notes)

    def assign_finisher(self, actor: Actor, batch_id: UUID, assignee_id: UUID,
                        pieces_received: int | None = None, notes: str | None = None) -> BatchSnapshot:
        return self.assign_stage(actor, batch_id, Stage.FINISHING, assignee_id, pieces_received, notes)

    def reassign_stage(
        self,
        actor: Actor,
        batch_id: UUID,
        stage: Stage | str,
        assignee_id: UUID,
        notes: str | None = None,
    ) -> BatchSnapshot:
        spec = _stage_spec(stage)
        return self._transition(
            actor,
            spec.reassign_action,
            batch_id,
            lambda batch: self._tasks.reassign(batch, spec, assignee_id, notes),
        )

    def start_task(self, actor: Actor, batch_id: UUID, stage: Stage | str) -> BatchSnapshot:
        spec = _stage_spec(stage)
        return self._transition(
            actor,
            spec.start_action,
            batch_id,
            lambda batch: self._tasks.start(batch, spec, actor.actor_id),
        )

    def update_progress(
        self,
        actor: Actor,
        task_id: UUID,
        delta: ProgressDelta,
        notes: str | None = None,
    ) -> StageTaskView:
        """
        Add ``delta`` to a running task.

        Not a batch transition: the batch status is unchanged and no timeline
        entry is written.  Deltas are additive, so a retried call counts twice.
        """
        with LogContext.bind(actor_id=actor.actor_id, task_id=task_id):

            def work() -> StageTaskView:
                # The stage, and so the gating action, is known only from the task
                task = self.session.get(StageTask, task_id)
                if task is None:
                    raise TaskNotFoundError(str(task_id))
                self._policy.authorize(actor, _stage_spec(task.stage).progress_action)
                return self._tasks.update_progress(task_id, actor.actor_id, delta, notes).to_dto()

            return self._atomic("update_progress", task_id, work)

    def complete_task(
        self,
        actor: Actor,
        batch_id: UUID,
        stage: Stage | str,
        notes: str | None = None,
    ) -> BatchSnapshot:
        spec = _stage_spec(stage)
        return self._transition(
            actor,
            spec.complete_action,
            batch_id,
            lambda batch: self._tasks.complete(batch, spec, actor.actor_id, notes),
        )

    def verify_stage(
        self,
        actor: Actor,
        batch_id: UUID,
        stage: Stage | str,
        notes: str | None = None,
        goods_location: str | None = None,
    ) -> BatchSnapshot:
        """
        Quality-check a completed stage.

        Verifying finishing is the warehouse intake and completes the batch:
        completed_date is stamped, actual_quantity becomes the finishing
        output, reject_quantity the rejects summed over every stage, and both
        are booked as finished goods at ``goods_location`` (required there,
        rejected for the other stages).  ``notes`` become the warehouse notes.
        """
        spec = _stage_spec(stage)
        completes_batch = spec.verified_status is BatchStatus.COMPLETED

        def effect(batch: ProductionBatch) -> TransitionEffect:
            if not completes_batch:
                if goods_location is not None:
                    raise ValidationError(
                        f"goods_location applies to finishing only, not {spec.stage.value}",
                        field="goods_location",
                    )
                return self._tasks.verify(batch, spec, actor.actor_id, notes)
            location = parse_goods_location(goods_location)
            result = self._tasks.verify(batch, spec, actor.actor_id, notes)
            finishing = batch.task_for(spec.stage)
            batch.actual_quantity = finishing.pieces_completed
            batch.reject_quantity = sum(task.reject_pieces for task in batch.tasks)
            batch.completed_date = self._clock.now()
            self._finished_goods.receive(batch, location, actor.actor_id, notes)
            return TransitionEffect(
                details=(
                    f"{result.details}; batch completed with "
                    f"{batch.actual_quantity} of {batch.target_quantity} pieces, "
                    f"{batch.reject_quantity} rejects, stored at {location}"
                ),
                notifications=result.notifications,
            )

        return self._transition(actor, spec.verify_action, batch_id, effect)

    def verify_finishing(
        self,
        actor: Actor,
        batch_id: UUID,
        goods_location: str,
        notes: str | None = None,
    ) -> BatchSnapshot:
        return self.verify_stage(actor, batch_id, Stage.FINISHING, notes, goods_location)

    # -------------------------------------------------------------------------
    # Cancellation and deletion
    # -------------------------------------------------------------------------

    def cancel_batch(self, actor: Actor, batch_id: UUID, reason: str | None = None) -> BatchSnapshot:
        """Cancel a batch before any stock moved.  Requested lines are rejected."""

        def effect(batch: ProductionBatch) -> TransitionEffect:
            rejected = self._allocations.reject_requested(batch)
            details = f"Batch {batch.batch_sku} cancelled"
            if rejected:
                details += f"; {rejected} material request(s) rejected"
            if reason:
                details += f": {reason}"
            return TransitionEffect(details=details)

        return self._transition(actor, Action.CANCEL_BATCH, batch_id, effect)

    def delete_batch(self, actor: Actor, batch_id: UUID) -> None:
        """
        Hard-delete a PENDING or CANCELLED batch with its allocations, tasks
        and timeline.  Ledger entries tagged with the batch are untouched.
        """
        with LogContext.bind(actor_id=actor.actor_id, batch_id=batch_id):
            self._policy.authorize(actor, Action.DELETE_BATCH)

            def work() -> tuple[str, str]:
                batch = self._load_locked(batch_id)
                status = BatchStatus(batch.status)
                BATCH_WORKFLOW.resolve(batch.id, status, Action.DELETE_BATCH)
                sku = batch.batch_sku
                self.session.delete(batch)
                self.session.flush()
                return sku, status.value

            sku, previous = self._atomic(Action.DELETE_BATCH.value, batch_id, work)
            logger.info(
                "batch_deleted",
                extra={"batch_sku": sku, "from_status": previous},
            )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_batch(self, batch_id: UUID) -> BatchSnapshot:
        return self._read(lambda: self._selector.get_snapshot(batch_id))

    def get_timeline(self, batch_id: UUID) -> tuple[TimelineEntry, ...]:
        """Timeline newest first."""
        return self._read(lambda: self._selector.get_timeline(batch_id))

    def list_batches(self, status: BatchStatus | str | None = None) -> tuple[BatchSnapshot, ...]:
        return self._read(lambda: self._selector.list_batches(status))

    def list_finished_goods(
        self,
        goods_type: FinishedGoodType | str | None = None,
        batch_id: UUID | None = None,
    ) -> tuple[FinishedGoodRecord, ...]:
        """Finished and reject goods booked in by verify_finishing, newest first."""
        return self._read(lambda: self._selector.list_finished_goods(goods_type, batch_id))

    def issue_label(self, batch_id: UUID) -> BatchLabel:
        """Label record for the batch's QR code."""
        snapshot = self.get_batch(batch_id)
        return BatchLabel(
            batch_id=snapshot.id,
            batch_sku=snapshot.batch_sku,
            issued_at=self._clock.now(),
        )

    def resolve_label(self, payload: str) -> BatchSnapshot:
        return self._read(lambda: self._selector.resolve_label(payload))
