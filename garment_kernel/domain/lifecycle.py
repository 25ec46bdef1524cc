"""
Batch lifecycle (``garment_kernel.domain.lifecycle``).

Responsibility
--------------
The explicit state machine of a production batch: the status and action
enums, the transition table, and per-stage metadata that lets one task
assignment implementation drive cutting, sewing and finishing alike.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Every transition references only declared statuses.
* Each (from_status, action) pair appears at most once, so resolution is
  deterministic.
* Only ``delete_batch`` removes a batch (``to_state is None``).
* A (status, action) pair not in the table is rejected with
  ``StatusConflictError`` naming the statuses the action requires.

The table is checked when this module is imported; a malformed table fails
the import rather than misbehaving at runtime.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from garment_kernel.domain.roles import Role
from garment_kernel.exceptions import StatusConflictError


class BatchStatus(str, Enum):
    PENDING = "PENDING"
    MATERIAL_REQUESTED = "MATERIAL_REQUESTED"
    MATERIAL_ALLOCATED = "MATERIAL_ALLOCATED"
    ASSIGNED_TO_CUTTER = "ASSIGNED_TO_CUTTER"
    CUTTING_IN_PROGRESS = "CUTTING_IN_PROGRESS"
    CUTTING_COMPLETED = "CUTTING_COMPLETED"
    CUTTING_VERIFIED = "CUTTING_VERIFIED"
    ASSIGNED_TO_SEWER = "ASSIGNED_TO_SEWER"
    IN_SEWING = "IN_SEWING"
    SEWING_COMPLETED = "SEWING_COMPLETED"
    SEWING_VERIFIED = "SEWING_VERIFIED"
    IN_FINISHING = "IN_FINISHING"
    FINISHING_COMPLETED = "FINISHING_COMPLETED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Action(str, Enum):
    """Every role-gated operation.  Transition actions plus the rest."""

    CREATE_BATCH = "create_batch"
    REQUEST_MATERIALS = "request_materials"
    ALLOCATE_MATERIALS = "allocate_materials"

    ASSIGN_CUTTER = "assign_cutter"
    REASSIGN_CUTTER = "reassign_cutter"
    START_CUTTING = "start_cutting"
    UPDATE_CUTTING_PROGRESS = "update_cutting_progress"
    COMPLETE_CUTTING = "complete_cutting"
    VERIFY_CUTTING = "verify_cutting"

    ASSIGN_SEWER = "assign_sewer"
    REASSIGN_SEWER = "reassign_sewer"
    START_SEWING = "start_sewing"
    UPDATE_SEWING_PROGRESS = "update_sewing_progress"
    COMPLETE_SEWING = "complete_sewing"
    VERIFY_SEWING = "verify_sewing"

    ASSIGN_FINISHER = "assign_finisher"
    REASSIGN_FINISHER = "reassign_finisher"
    START_FINISHING = "start_finishing"
    UPDATE_FINISHING_PROGRESS = "update_finishing_progress"
    COMPLETE_FINISHING = "complete_finishing"
    VERIFY_FINISHING = "verify_finishing"

    CANCEL_BATCH = "cancel_batch"
    DELETE_BATCH = "delete_batch"

    RECORD_STOCK_TRANSACTION = "record_stock_transaction"
    MANAGE_MATERIALS = "manage_materials"


class Stage(str, Enum):
    CUTTING = "CUTTING"
    SEWING = "SEWING"
    FINISHING = "FINISHING"


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    VERIFIED = "VERIFIED"


class AllocationStatus(str, Enum):
    REQUESTED = "REQUESTED"
    ALLOCATED = "ALLOCATED"
    REJECTED = "REJECTED"


class FinishedGoodType(str, Enum):
    """Warehouse intake of a completed batch: sellable pieces and rejects."""

    FINISHED = "FINISHED"
    REJECT = "REJECT"


# =============================================================================
# Workflow value objects
# =============================================================================


@dataclass(frozen=True)
class Transition:
    """One legal move.  ``to_state`` is None only for hard deletion."""

    from_state: BatchStatus
    to_state: BatchStatus | None
    action: Action
    event: str


@dataclass(frozen=True)
class Workflow:
    """A validated transition table."""

    name: str
    description: str
    initial_states: tuple[BatchStatus, ...]
    states: tuple[BatchStatus, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[BatchStatus, ...] = ()

    def __post_init__(self) -> None:
        known = set(self.states)
        seen: set[tuple[BatchStatus, Action]] = set()
        for state in self.initial_states + self.terminal_states:
            if state not in known:
                raise ValueError(f"{self.name}: undeclared state {state}")
        for t in self.transitions:
            if t.from_state not in known:
                raise ValueError(f"{self.name}: undeclared state {t.from_state}")
            if t.to_state is None:
                if t.action is not Action.DELETE_BATCH:
                    raise ValueError(f"{self.name}: only delete_batch may remove a batch")
            elif t.to_state not in known:
                raise ValueError(f"{self.name}: undeclared state {t.to_state}")
            if t.from_state in self.terminal_states and t.action is not Action.DELETE_BATCH:
                raise ValueError(f"{self.name}: {t.from_state} is terminal")
            key = (t.from_state, t.action)
            if key in seen:
                raise ValueError(f"{self.name}: duplicate transition {key}")
            seen.add(key)

    def required_states(self, action: Action) -> tuple[BatchStatus, ...]:
        return tuple(t.from_state for t in self.transitions if t.action is action)

    def find(self, current: BatchStatus, action: Action) -> Transition | None:
        for t in self.transitions:
            if t.from_state is current and t.action is action:
                return t
        return None

    def resolve(self, batch_id, current: BatchStatus, action: Action) -> Transition:
        """The transition for ``action`` from ``current``, or StatusConflictError."""
        transition = self.find(BatchStatus(current), action)
        if transition is None:
            raise StatusConflictError(
                batch_id=str(batch_id),
                action=action.value,
                required=tuple(s.value for s in self.required_states(action)),
                actual=BatchStatus(current).value,
            )
        return transition


# =============================================================================
# Stage metadata
# =============================================================================


@dataclass(frozen=True)
class StageSpec:
    """
    Everything that differs between cutting, sewing and finishing.

    ``assigned_status`` is where the batch sits once the task exists;
    finishing has no separate "assigned" status, so its start is a
    self-loop on IN_FINISHING.
    """

    stage: Stage
    worker_role: Role
    predecessor: Stage | None
    ready_status: BatchStatus
    assigned_status: BatchStatus
    in_progress_status: BatchStatus
    completed_status: BatchStatus
    verified_status: BatchStatus
    assign_action: Action
    reassign_action: Action
    start_action: Action
    progress_action: Action
    complete_action: Action
    verify_action: Action
    assigned_event: str
    reassigned_event: str
    started_event: str
    completed_event: str
    verified_event: str


CUTTING = StageSpec(
    stage=Stage.CUTTING,
    worker_role=Role.CUTTER,
    predecessor=None,
    ready_status=BatchStatus.MATERIAL_ALLOCATED,
    assigned_status=BatchStatus.ASSIGNED_TO_CUTTER,
    in_progress_status=BatchStatus.CUTTING_IN_PROGRESS,
    completed_status=BatchStatus.CUTTING_COMPLETED,
    verified_status=BatchStatus.CUTTING_VERIFIED,
    assign_action=Action.ASSIGN_CUTTER,
    reassign_action=Action.REASSIGN_CUTTER,
    start_action=Action.START_CUTTING,
    progress_action=Action.UPDATE_CUTTING_PROGRESS,
    complete_action=Action.COMPLETE_CUTTING,
    verify_action=Action.VERIFY_CUTTING,
    assigned_event="ASSIGNED_TO_CUTTER",
    reassigned_event="CUTTER_REASSIGNED",
    started_event="CUTTING_STARTED",
    completed_event="CUTTING_COMPLETED",
    verified_event="CUTTING_VERIFIED",
)

SEWING = StageSpec(
    stage=Stage.SEWING,
    worker_role=Role.SEWER,
    predecessor=Stage.CUTTING,
    ready_status=BatchStatus.CUTTING_VERIFIED,
    assigned_status=BatchStatus.ASSIGNED_TO_SEWER,
    in_progress_status=BatchStatus.IN_SEWING,
    completed_status=BatchStatus.SEWING_COMPLETED,
    verified_status=BatchStatus.SEWING_VERIFIED,
    assign_action=Action.ASSIGN_SEWER,
    reassign_action=Action.REASSIGN_SEWER,
    start_action=Action.START_SEWING,
    progress_action=Action.UPDATE_SEWING_PROGRESS,
    complete_action=Action.COMPLETE_SEWING,
    verify_action=Action.VERIFY_SEWING,
    assigned_event="ASSIGNED_TO_SEWER",
    reassigned_event="SEWER_REASSIGNED",
    started_event="SEWING_STARTED",
    completed_event="SEWING_COMPLETED",
    verified_event="SEWING_VERIFIED",
)

FINISHING = StageSpec(
    stage=Stage.FINISHING,
    worker_role=Role.FINISHER,
    predecessor=Stage.SEWING,
    ready_status=BatchStatus.SEWING_VERIFIED,
    assigned_status=BatchStatus.IN_FINISHING,
    in_progress_status=BatchStatus.IN_FINISHING,
    completed_status=BatchStatus.FINISHING_COMPLETED,
    verified_status=BatchStatus.COMPLETED,
    assign_action=Action.ASSIGN_FINISHER,
    reassign_action=Action.REASSIGN_FINISHER,
    start_action=Action.START_FINISHING,
    progress_action=Action.UPDATE_FINISHING_PROGRESS,
    complete_action=Action.COMPLETE_FINISHING,
    verify_action=Action.VERIFY_FINISHING,
    assigned_event="ASSIGNED_TO_FINISHER",
    reassigned_event="FINISHER_REASSIGNED",
    started_event="FINISHING_STARTED",
    completed_event="FINISHING_COMPLETED",
    verified_event="BATCH_COMPLETED",
)

STAGES: dict[Stage, StageSpec] = {
    Stage.CUTTING: CUTTING,
    Stage.SEWING: SEWING,
    Stage.FINISHING: FINISHING,
}


def _stage_transitions(spec: StageSpec) -> tuple[Transition, ...]:
    return (
        Transition(spec.ready_status, spec.assigned_status, spec.assign_action, spec.assigned_event),
        Transition(spec.assigned_status, spec.assigned_status, spec.reassign_action, spec.reassigned_event),
        Transition(spec.assigned_status, spec.in_progress_status, spec.start_action, spec.started_event),
        Transition(spec.in_progress_status, spec.completed_status, spec.complete_action, spec.completed_event),
        Transition(spec.completed_status, spec.verified_status, spec.verify_action, spec.verified_event),
    )


# =============================================================================
# The batch workflow
# =============================================================================

BATCH_CREATED_EVENT = "BATCH_CREATED"

BATCH_WORKFLOW = Workflow(
    name="production_batch",
    description="Garment production batch: materials, cutting, sewing, finishing",
    initial_states=(BatchStatus.PENDING, BatchStatus.MATERIAL_REQUESTED),
    states=tuple(BatchStatus),
    transitions=(
        Transition(BatchStatus.PENDING, BatchStatus.MATERIAL_REQUESTED,
                   Action.REQUEST_MATERIALS, "MATERIAL_REQUESTED"),
        Transition(BatchStatus.MATERIAL_REQUESTED, BatchStatus.MATERIAL_ALLOCATED,
                   Action.ALLOCATE_MATERIALS, "MATERIAL_ALLOCATED"),
        *_stage_transitions(CUTTING),
        *_stage_transitions(SEWING),
        *_stage_transitions(FINISHING),
        Transition(BatchStatus.PENDING, BatchStatus.CANCELLED,
                   Action.CANCEL_BATCH, "BATCH_CANCELLED"),
        Transition(BatchStatus.MATERIAL_REQUESTED, BatchStatus.CANCELLED,
                   Action.CANCEL_BATCH, "BATCH_CANCELLED"),
        Transition(BatchStatus.PENDING, None, Action.DELETE_BATCH, "BATCH_DELETED"),
        Transition(BatchStatus.CANCELLED, None, Action.DELETE_BATCH, "BATCH_DELETED"),
    ),
    terminal_states=(BatchStatus.COMPLETED, BatchStatus.CANCELLED),
)

# Forward order of the happy path; CANCELLED sits outside it
STATUS_ORDER: dict[BatchStatus, int] = {
    status: index
    for index, status in enumerate(s for s in BatchStatus if s is not BatchStatus.CANCELLED)
}


def stage_for_action(action: Action) -> StageSpec | None:
    for spec in STAGES.values():
        if action in (
            spec.assign_action,
            spec.reassign_action,
            spec.start_action,
            spec.progress_action,
            spec.complete_action,
            spec.verify_action,
        ):
            return spec
    return None
