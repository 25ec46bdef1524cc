"""
TaskAssignmentService -- one implementation for every production stage.

Responsibility:
    Creates, re-assigns, starts, progresses, completes and verifies the stage
    task of a batch.  Cutting, sewing and finishing differ only in their
    StageSpec (worker role, statuses, actions, event names); the logic here
    is written once and parameterized by it.

Architecture position:
    Kernel > Services.  Flush-only.  BatchStateMachine calls the transition
    methods inside its atomic unit and turns the returned TransitionEffect
    into a timeline entry plus notifications.

Invariants enforced:
    - A task is created exactly once per stage entry; re-assignment updates
      the PENDING task in place.
    - The assignee holds the stage's worker role and is active, verified
      against the staff record at assignment time.
    - Only the assignee may start, progress or complete the task.
    - Progress is additive and legal only while the task is IN_PROGRESS; it
      changes no batch status and writes no timeline entry.
    - Sewing and finishing are seeded with the previous stage's
      pieces_completed; a seed may lower that figure, never raise it.

Failure modes:
    - StatusConflictError: batch not in the stage's ready status.
    - StaffNotFoundError, StaffInactiveError, AssigneeRoleError.
    - TaskNotFoundError, NotAssigneeError, TaskStatusConflictError.
    - ValidationError: malformed seed or progress delta.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from garment_kernel.domain.clock import Clock, SystemClock
from garment_kernel.domain.dtos import (
    NotificationMessage,
    ProgressDelta,
    TransitionEffect,
)
from garment_kernel.domain.lifecycle import STAGES, Stage, StageSpec, TaskStatus
from garment_kernel.domain.roles import Role
from garment_kernel.exceptions import (
    AssigneeRoleError,
    ConflictError,
    NotAssigneeError,
    StaffInactiveError,
    StaffNotFoundError,
    StatusConflictError,
    TaskNotFoundError,
    TaskStatusConflictError,
    ValidationError,
)
from garment_kernel.logging_config import LogContext, get_logger
from garment_kernel.models.batch import ProductionBatch, StageTask
from garment_kernel.models.catalog import StaffMember
from garment_kernel.services.base import BaseService
from garment_kernel.services.notifications import BATCH_ASSIGNMENT, TASK_VERIFIED
from garment_kernel.services.stock_ledger import parse_quantity

logger = get_logger("services.task_assignment")


def _stage_label(stage: Stage) -> str:
    return stage.value.lower()


class TaskAssignmentService(BaseService[StageTask]):
    """Stage task lifecycle, parameterized by StageSpec."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Assignment
    # -------------------------------------------------------------------------

    def assign(
        self,
        batch: ProductionBatch,
        spec: StageSpec,
        assignee_id: UUID,
        seed_quantity=None,
        notes: str | None = None,
        material_total: Decimal | None = None,
    ) -> TransitionEffect:
        """
        Create the stage task for ``batch``.

        ``seed_quantity`` is material received for cutting (defaults to
        ``material_total``, the allocated amount) and pieces received for
        sewing and finishing (defaults to the previous stage's output).
        """
        if batch.status != spec.ready_status.value:
            raise StatusConflictError(
                batch_id=str(batch.id),
                action=spec.assign_action.value,
                required=(spec.ready_status.value,),
                actual=batch.status,
            )
        if batch.task_for(spec.stage) is not None:
            raise ConflictError(
                f"Batch {batch.batch_sku} already has a {_stage_label(spec.stage)} task"
            )
        assignee = self._resolve_assignee(assignee_id, spec.worker_role)

        material_received = None
        pieces_received = 0
        if spec.predecessor is None:
            if seed_quantity is not None:
                material_received = parse_quantity(seed_quantity, field="material_received")
            else:
                material_received = material_total or Decimal("0")
            amount = f"material received: {material_received}"
        else:
            pieces_received = self._seed_pieces(batch, spec, seed_quantity)
            amount = f"pieces received: {pieces_received}"

        task = StageTask(
            stage=spec.stage.value,
            assigned_to_id=assignee.id,
            material_received=material_received,
            pieces_received=pieces_received,
            pieces_completed=0,
            reject_pieces=0,
            status=TaskStatus.PENDING.value,
            notes=notes,
            assigned_at=self._clock.now(),
        )
        batch.tasks.append(task)
        self.session.flush()

        with LogContext.bind(batch_id=batch.id, task_id=task.id):
            logger.info(
                "stage_task_assigned",
                extra={
                    "stage": spec.stage.value,
                    "assignee_id": str(assignee.id),
                    "pieces_received": pieces_received,
                },
            )

        label = _stage_label(spec.stage)
        return TransitionEffect(
            details=(
                f"Batch {batch.batch_sku} assigned to {assignee.name} "
                f"for {label}; {amount}"
            ),
            notifications=(
                NotificationMessage(
                    recipient_id=assignee.id,
                    type=BATCH_ASSIGNMENT,
                    title=f"New {label} task",
                    message=(
                        f"Batch {batch.batch_sku} has been assigned to you "
                        f"for {label} ({amount})"
                    ),
                ),
            ),
        )

    def reassign(
        self,
        batch: ProductionBatch,
        spec: StageSpec,
        assignee_id: UUID,
        notes: str | None = None,
    ) -> TransitionEffect:
        """Replace the assignee of a task that has not started."""
        task = self._task(batch, spec)
        self._require_status(task, TaskStatus.PENDING)
        if task.assigned_to_id == assignee_id:
            raise ValidationError(
                f"Task {task.id} is already assigned to {assignee_id}",
                field="assignee_id",
            )
        assignee = self._resolve_assignee(assignee_id, spec.worker_role)
        previous_id = task.assigned_to_id
        task.assigned_to_id = assignee.id
        task.assigned_at = self._clock.now()
        if notes is not None:
            task.notes = notes
        self.session.flush()

        label = _stage_label(spec.stage)
        return TransitionEffect(
            details=(
                f"{label.capitalize()} task of batch {batch.batch_sku} reassigned "
                f"from {previous_id} to {assignee.name}"
            ),
            notifications=(
                NotificationMessage(
                    recipient_id=assignee.id,
                    type=BATCH_ASSIGNMENT,
                    title=f"New {label} task",
                    message=f"Batch {batch.batch_sku} has been assigned to you for {label}",
                ),
            ),
        )

    # -------------------------------------------------------------------------
    # Work
    # -------------------------------------------------------------------------

    def start(self, batch: ProductionBatch, spec: StageSpec, actor_id: UUID) -> TransitionEffect:
        task = self._task(batch, spec)
        self._require_assignee(task, actor_id)
        self._require_status(task, TaskStatus.PENDING)
        task.status = TaskStatus.IN_PROGRESS.value
        task.started_at = self._clock.now()
        self.session.flush()
        return TransitionEffect(
            details=f"{_stage_label(spec.stage).capitalize()} of batch {batch.batch_sku} started"
        )

    def update_progress(
        self,
        task_id: UUID,
        actor_id: UUID,
        delta: ProgressDelta,
        notes: str | None = None,
    ) -> StageTask:
        """
        Add ``delta`` to the task's running totals.

        Not idempotent: the same delta applied twice counts twice.
        """
        task = self._lock(StageTask, task_id)
        if task is None:
            raise TaskNotFoundError(str(task_id))
        self._require_assignee(task, actor_id)
        self._require_status(task, TaskStatus.IN_PROGRESS)

        task.pieces_completed += delta.pieces_completed
        task.reject_pieces += delta.reject_pieces
        if notes:
            task.notes = notes
        self.session.flush()

        with LogContext.bind(batch_id=task.batch_id, task_id=task.id):
            logger.info(
                "stage_task_progress_recorded",
                extra={
                    "stage": task.stage,
                    "pieces_delta": delta.pieces_completed,
                    "reject_delta": delta.reject_pieces,
                    "pieces_completed": task.pieces_completed,
                    "reject_pieces": task.reject_pieces,
                },
            )
        return task

    def complete(
        self,
        batch: ProductionBatch,
        spec: StageSpec,
        actor_id: UUID,
        notes: str | None = None,
    ) -> TransitionEffect:
        task = self._task(batch, spec)
        self._require_assignee(task, actor_id)
        self._require_status(task, TaskStatus.IN_PROGRESS)
        task.status = TaskStatus.COMPLETED.value
        task.completed_at = self._clock.now()
        if notes:
            task.notes = notes
        self.session.flush()
        return TransitionEffect(
            details=(
                f"{_stage_label(spec.stage).capitalize()} of batch {batch.batch_sku} "
                f"completed: {task.pieces_completed} pieces, {task.reject_pieces} rejects"
            )
        )

    def verify(
        self,
        batch: ProductionBatch,
        spec: StageSpec,
        verifier_id: UUID,
        notes: str | None = None,
    ) -> TransitionEffect:
        task = self._task(batch, spec)
        self._require_status(task, TaskStatus.COMPLETED)
        task.status = TaskStatus.VERIFIED.value
        task.verified_at = self._clock.now()
        task.verified_by_id = verifier_id
        if notes:
            task.notes = notes
        self.session.flush()

        label = _stage_label(spec.stage)
        return TransitionEffect(
            details=(
                f"{label.capitalize()} of batch {batch.batch_sku} verified: "
                f"{task.pieces_completed} pieces accepted"
            ),
            notifications=(
                NotificationMessage(
                    recipient_id=task.assigned_to_id,
                    type=TASK_VERIFIED,
                    title=f"{label.capitalize()} verified",
                    message=f"Your {label} work on batch {batch.batch_sku} was verified",
                ),
            ),
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _resolve_assignee(self, assignee_id: UUID, required_role: Role) -> StaffMember:
        if assignee_id is None:
            raise ValidationError("assignee_id is required", field="assignee_id")
        assignee = self.session.get(StaffMember, assignee_id)
        if assignee is None:
            raise StaffNotFoundError(str(assignee_id))
        if not assignee.is_active:
            raise StaffInactiveError(str(assignee_id))
        if assignee.role != required_role.value:
            raise AssigneeRoleError(
                assignee_id=str(assignee_id),
                required_role=required_role.value,
                actual_role=assignee.role,
            )
        return assignee

    def _seed_pieces(self, batch: ProductionBatch, spec: StageSpec, seed_quantity) -> int:
        previous = batch.task_for(spec.predecessor)
        if previous is None:
            raise TaskNotFoundError(f"{spec.predecessor.value} task of batch {batch.id}")
        available = previous.pieces_completed
        if seed_quantity is None:
            return available
        if isinstance(seed_quantity, bool) or not isinstance(seed_quantity, int):
            raise ValidationError("pieces_received must be an integer", field="pieces_received")
        if seed_quantity < 0 or seed_quantity > available:
            raise ValidationError(
                f"pieces_received must be between 0 and {available} "
                f"({STAGES[spec.predecessor].stage.value.lower()} output)",
                field="pieces_received",
            )
        return seed_quantity

    def _task(self, batch: ProductionBatch, spec: StageSpec) -> StageTask:
        task = batch.task_for(spec.stage)
        if task is None:
            raise TaskNotFoundError(f"{spec.stage.value} task of batch {batch.id}")
        return task

    @staticmethod
    def _require_assignee(task: StageTask, actor_id: UUID) -> None:
        if task.assigned_to_id != actor_id:
            raise NotAssigneeError(str(task.id), str(actor_id))

    @staticmethod
    def _require_status(task: StageTask, required: TaskStatus) -> None:
        if task.status != required.value:
            raise TaskStatusConflictError(str(task.id), required.value, task.status)
