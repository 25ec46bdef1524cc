"""
BatchStateMachine: creation, stage transitions, cancellation and deletion.

Every transition is role-gated, checked against the workflow table, applied
atomically with its timeline entry, and rejected without side effects when
any precondition fails.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from garment_kernel.domain.dtos import MaterialRequestLine, ProgressDelta
from garment_kernel.domain.lifecycle import AllocationStatus, BatchStatus, Stage, TaskStatus
from garment_kernel.exceptions import (
    AssigneeRoleError,
    BatchNotFoundError,
    ConflictError,
    ForbiddenError,
    MaterialNotFoundError,
    NotAssigneeError,
    ProductNotFoundError,
    RoleNotPermittedError,
    StaffInactiveError,
    StaffNotFoundError,
    StatusConflictError,
    ValidationError,
)
from garment_kernel.models.batch import BatchTimelineEntry, ProductionBatch
from garment_kernel.models.catalog import Product


def _timeline_events(machine, batch_id):
    return [entry.event for entry in machine.get_timeline(batch_id)]


class TestCreateBatch:
    def test_create_without_materials_is_pending(self, machine, actors, product):
        batch = machine.create_batch(actors["production"], product, 50, notes="Summer run")
        assert batch.status is BatchStatus.PENDING
        assert batch.batch_sku == "PROD-20240101-001"
        assert batch.target_quantity == 50
        assert batch.actual_quantity == 0
        assert batch.reject_quantity == 0
        assert batch.notes == "Summer run"
        assert batch.created_by_id == actors["production"].actor_id
        assert batch.allocations == ()
        assert _timeline_events(machine, batch.id) == ["BATCH_CREATED"]

    def test_create_with_materials_requests_them(self, requested_batch, fabric, thread):
        assert requested_batch.status is BatchStatus.MATERIAL_REQUESTED
        lines = {a.material_id: a for a in requested_batch.allocations}
        assert lines[fabric].requested_qty == Decimal("150")
        assert lines[thread].requested_qty == Decimal("10")
        assert {a.status for a in requested_batch.allocations} == {AllocationStatus.REQUESTED.value}
        assert [a.line_no for a in requested_batch.allocations] == [1, 2]

    def test_create_does_not_touch_stock(self, requested_batch, inventory, fabric):
        assert inventory.get_material(fabric).current_stock == Decimal("500")

    def test_sku_counts_up_within_a_day(self, machine, actors, product):
        first = machine.create_batch(actors["production"], product, 10)
        second = machine.create_batch(actors["owner"], product, 10)
        assert first.batch_sku == "PROD-20240101-001"
        assert second.batch_sku == "PROD-20240101-002"

    def test_sku_sequence_restarts_each_day(self, machine, actors, product, clock):
        machine.create_batch(actors["production"], product, 10)
        clock.set_time(datetime(2024, 1, 2, 8, 0, 0, tzinfo=timezone.utc))
        batch = machine.create_batch(actors["production"], product, 10)
        assert batch.batch_sku == "PROD-20240102-001"

    def test_unknown_product(self, machine, actors):
        with pytest.raises(ProductNotFoundError):
            machine.create_batch(actors["production"], uuid4(), 10)

    def test_rejected_create_does_not_consume_a_sku(self, machine, actors, product):
        with pytest.raises(MaterialNotFoundError):
            machine.create_batch(
                actors["production"], product, 10,
                materials=[MaterialRequestLine(uuid4(), Decimal("1"))],
            )
        batch = machine.create_batch(actors["production"], product, 10)
        assert batch.batch_sku == "PROD-20240101-001"

    @pytest.mark.parametrize("target", [0, -5, True, 2.5, "10"])
    def test_target_must_be_positive_integer(self, machine, actors, product, target):
        with pytest.raises(ValidationError) as exc_info:
            machine.create_batch(actors["production"], product, target)
        assert exc_info.value.field == "target_quantity"

    def test_inactive_product_rejected(self, machine, actors, product, store):
        with store.session_scope() as session:
            session.get(Product, product).is_active = False
        with pytest.raises(ValidationError):
            machine.create_batch(actors["production"], product, 10)

    def test_worker_role_cannot_create(self, machine, actors, product):
        with pytest.raises(RoleNotPermittedError):
            machine.create_batch(actors["cutter"], product, 10)
        assert machine.list_batches() == ()

    def test_creation_is_logged(self, machine, actors, product, captured_logs):
        batch = machine.create_batch(actors["production"], product, 10)
        created = [r for r in captured_logs() if r["message"] == "batch_created"]
        assert created[-1]["batch_sku"] == batch.batch_sku
        assert created[-1]["batch_id"] == str(batch.id)


class TestTransitionGuards:
    """A rejected transition leaves no task, timeline entry or status change."""

    def test_assign_cutter_on_pending_batch(self, machine, actors, staff, product):
        batch = machine.create_batch(actors["production"], product, 10)
        with pytest.raises(StatusConflictError) as exc_info:
            machine.assign_cutter(actors["production"], batch.id, staff["cutter"])
        assert exc_info.value.required == ("MATERIAL_ALLOCATED",)
        assert exc_info.value.actual == "PENDING"

        after = machine.get_batch(batch.id)
        assert after.status is BatchStatus.PENDING
        assert after.tasks == ()
        assert _timeline_events(machine, batch.id) == ["BATCH_CREATED"]

    def test_assignee_with_wrong_role(self, machine, actors, staff, requested_batch, advance):
        advance(requested_batch.id, BatchStatus.MATERIAL_ALLOCATED)
        with pytest.raises(AssigneeRoleError) as exc_info:
            machine.assign_cutter(actors["production"], requested_batch.id, staff["sewer"])
        assert isinstance(exc_info.value, ForbiddenError)
        assert exc_info.value.required_role == "CUTTER"
        assert exc_info.value.actual_role == "SEWER"

        after = machine.get_batch(requested_batch.id)
        assert after.status is BatchStatus.MATERIAL_ALLOCATED
        assert after.tasks == ()

    def test_sewing_assignee_with_wrong_role(self, machine, actors, staff, requested_batch, advance):
        advance(requested_batch.id, BatchStatus.CUTTING_VERIFIED)
        with pytest.raises(ForbiddenError) as exc_info:
            machine.assign_sewer(actors["production"], requested_batch.id, staff["cutter"])
        assert isinstance(exc_info.value, AssigneeRoleError)
        assert exc_info.value.required_role == "SEWER"
        assert exc_info.value.actual_role == "CUTTER"

        after = machine.get_batch(requested_batch.id)
        assert after.status is BatchStatus.CUTTING_VERIFIED
        assert after.task(Stage.SEWING) is None
        assert _timeline_events(machine, requested_batch.id)[0] == "CUTTING_VERIFIED"

    def test_inactive_assignee(self, machine, actors, staff, requested_batch, advance):
        advance(requested_batch.id, BatchStatus.MATERIAL_ALLOCATED)
        with pytest.raises(StaffInactiveError):
            machine.assign_cutter(actors["production"], requested_batch.id, staff["inactive_cutter"])

    def test_unknown_assignee(self, machine, actors, requested_batch, advance):
        advance(requested_batch.id, BatchStatus.MATERIAL_ALLOCATED)
        with pytest.raises(StaffNotFoundError):
            machine.assign_cutter(actors["production"], requested_batch.id, uuid4())

    def test_role_checked_before_status(self, machine, actors, staff, product):
        batch = machine.create_batch(actors["production"], product, 10)
        with pytest.raises(RoleNotPermittedError):
            machine.assign_cutter(actors["cutter"], batch.id, staff["cutter"])

    def test_unknown_batch(self, machine, actors, staff):
        with pytest.raises(BatchNotFoundError):
            machine.assign_cutter(actors["production"], uuid4(), staff["cutter"])

    def test_unknown_stage(self, machine, actors, requested_batch):
        with pytest.raises(ValidationError):
            machine.start_task(actors["cutter"], requested_batch.id, "PRESSING")

    def test_only_assignee_may_start(self, machine, actors, requested_batch, advance):
        advance(requested_batch.id, BatchStatus.ASSIGNED_TO_CUTTER)
        with pytest.raises(NotAssigneeError):
            machine.start_task(actors["cutter2"], requested_batch.id, Stage.CUTTING)
        assert machine.get_batch(requested_batch.id).status is BatchStatus.ASSIGNED_TO_CUTTER

    def test_rejection_is_logged(self, machine, actors, staff, product, captured_logs):
        batch = machine.create_batch(actors["production"], product, 10)
        with pytest.raises(StatusConflictError):
            machine.assign_cutter(actors["production"], batch.id, staff["cutter"])
        rejected = [r for r in captured_logs() if r["message"] == "operation_rejected"]
        assert rejected[-1]["error_code"] == "BATCH_STATUS_CONFLICT"
        assert rejected[-1]["operation"] == "assign_cutter"


class TestStageAssignment:
    def test_cutting_task_seeded_with_allocated_material(self, machine, actors, staff,
                                                        requested_batch, advance):
        batch = advance(requested_batch.id, BatchStatus.ASSIGNED_TO_CUTTER)
        task = batch.task(Stage.CUTTING)
        assert task.assigned_to_id == staff["cutter"]
        assert task.status is TaskStatus.PENDING
        assert task.material_received == Decimal("160")
        assert task.pieces_received == 0

    def test_explicit_material_received(self, machine, actors, staff, requested_batch, advance):
        advance(requested_batch.id, BatchStatus.MATERIAL_ALLOCATED)
        batch = machine.assign_cutter(
            actors["production"], requested_batch.id, staff["cutter"],
            material_received=Decimal("148.5"),
        )
        assert batch.task(Stage.CUTTING).material_received == Decimal("148.5")

    def test_sewing_seeded_with_cutting_output(self, requested_batch, advance):
        batch = advance(requested_batch.id, BatchStatus.ASSIGNED_TO_SEWER)
        assert batch.task(Stage.SEWING).pieces_received == 100

    def test_sewing_seed_cannot_exceed_cutting_output(self, machine, actors, staff,
                                                      requested_batch, advance):
        advance(requested_batch.id, BatchStatus.CUTTING_VERIFIED)
        with pytest.raises(ValidationError):
            machine.assign_sewer(actors["production"], requested_batch.id, staff["sewer"],
                                 pieces_received=101)
        batch = machine.assign_sewer(actors["production"], requested_batch.id, staff["sewer"],
                                     pieces_received=98)
        assert batch.task(Stage.SEWING).pieces_received == 98

    def test_assignment_notifies_assignee(self, notifier, staff, requested_batch, advance):
        advance(requested_batch.id, BatchStatus.ASSIGNED_TO_CUTTER)
        messages = notifier.for_recipient(staff["cutter"])
        assert len(messages) == 1
        assert messages[0].type == "BATCH_ASSIGNMENT"
        assert requested_batch.batch_sku in messages[0].message

    def test_finisher_assignment_enters_finishing(self, machine, actors, staff,
                                                  requested_batch, advance):
        advance(requested_batch.id, BatchStatus.SEWING_VERIFIED)
        batch = machine.assign_finisher(actors["production"], requested_batch.id, staff["finisher"])
        assert batch.status is BatchStatus.IN_FINISHING
        assert batch.task(Stage.FINISHING).pieces_received == 97

    def test_owner_cannot_assign_finisher(self, machine, actors, staff, requested_batch, advance):
        advance(requested_batch.id, BatchStatus.SEWING_VERIFIED)
        with pytest.raises(RoleNotPermittedError):
            machine.assign_finisher(actors["owner"], requested_batch.id, staff["finisher"])


class TestReassignment:
    def test_reassign_pending_task(self, machine, actors, staff, notifier,
                                   requested_batch, advance):
        advance(requested_batch.id, BatchStatus.ASSIGNED_TO_CUTTER)
        batch = machine.reassign_stage(
            actors["production"], requested_batch.id, Stage.CUTTING, staff["cutter2"]
        )
        assert batch.status is BatchStatus.ASSIGNED_TO_CUTTER
        assert batch.task(Stage.CUTTING).assigned_to_id == staff["cutter2"]
        assert _timeline_events(machine, batch.id)[0] == "CUTTER_REASSIGNED"
        assert len(notifier.for_recipient(staff["cutter2"])) == 1

    def test_reassign_to_same_assignee(self, machine, actors, staff, requested_batch, advance):
        advance(requested_batch.id, BatchStatus.ASSIGNED_TO_CUTTER)
        with pytest.raises(ValidationError):
            machine.reassign_stage(actors["production"], requested_batch.id, Stage.CUTTING,
                                   staff["cutter"])

    def test_reassign_after_start(self, machine, actors, staff, requested_batch, advance):
        advance(requested_batch.id, BatchStatus.CUTTING_IN_PROGRESS)
        with pytest.raises(StatusConflictError):
            machine.reassign_stage(actors["production"], requested_batch.id, Stage.CUTTING,
                                   staff["cutter2"])

    def test_new_assignee_takes_over(self, machine, actors, staff, requested_batch, advance):
        advance(requested_batch.id, BatchStatus.ASSIGNED_TO_CUTTER)
        machine.reassign_stage(actors["production"], requested_batch.id, Stage.CUTTING,
                               staff["cutter2"])
        with pytest.raises(NotAssigneeError):
            machine.start_task(actors["cutter"], requested_batch.id, Stage.CUTTING)
        batch = machine.start_task(actors["cutter2"], requested_batch.id, Stage.CUTTING)
        assert batch.status is BatchStatus.CUTTING_IN_PROGRESS


class TestHappyPath:
    def test_full_lifecycle(self, machine, requested_batch, advance, clock):
        batch = advance(requested_batch.id, BatchStatus.COMPLETED)

        assert batch.status is BatchStatus.COMPLETED
        assert batch.actual_quantity == 95
        assert batch.reject_quantity == 7
        assert batch.completed_date == clock.now()
        assert {t.status for t in batch.tasks} == {TaskStatus.VERIFIED}
        assert [t.stage for t in batch.tasks] == [Stage.CUTTING, Stage.SEWING, Stage.FINISHING]

    def test_timeline_is_newest_first(self, machine, requested_batch, advance):
        advance(requested_batch.id, BatchStatus.COMPLETED)
        timeline = machine.get_timeline(requested_batch.id)
        assert [e.event for e in timeline] == [
            "BATCH_COMPLETED",
            "FINISHING_COMPLETED",
            "FINISHING_STARTED",
            "ASSIGNED_TO_FINISHER",
            "SEWING_VERIFIED",
            "SEWING_COMPLETED",
            "SEWING_STARTED",
            "ASSIGNED_TO_SEWER",
            "CUTTING_VERIFIED",
            "CUTTING_COMPLETED",
            "CUTTING_STARTED",
            "ASSIGNED_TO_CUTTER",
            "MATERIAL_ALLOCATED",
            "BATCH_CREATED",
        ]
        assert [e.seq for e in timeline] == list(range(14, 0, -1))

    def test_each_transition_bumps_version(self, machine, actors, requested_batch):
        allocated = machine.allocate_materials(actors["warehouse"], requested_batch.id)
        assert allocated.version > requested_batch.version

    def test_completed_batch_is_terminal(self, machine, actors, requested_batch, advance):
        advance(requested_batch.id, BatchStatus.COMPLETED)
        with pytest.raises(StatusConflictError):
            machine.cancel_batch(actors["owner"], requested_batch.id)
        with pytest.raises(StatusConflictError):
            machine.delete_batch(actors["owner"], requested_batch.id)

    def test_stage_cannot_be_verified_twice(self, machine, actors, requested_batch, advance):
        advance(requested_batch.id, BatchStatus.CUTTING_VERIFIED)
        with pytest.raises(ConflictError):
            machine.verify_stage(actors["production"], requested_batch.id, Stage.CUTTING)

    def test_verification_notifies_worker(self, notifier, staff, requested_batch, advance):
        advance(requested_batch.id, BatchStatus.CUTTING_VERIFIED)
        types = [m.type for m in notifier.for_recipient(staff["cutter"])]
        assert types == ["BATCH_ASSIGNMENT", "TASK_VERIFIED"]

    def test_transition_is_logged(self, machine, actors, requested_batch, captured_logs):
        machine.allocate_materials(actors["warehouse"], requested_batch.id)
        committed = [r for r in captured_logs() if r["message"] == "batch_transition_committed"]
        assert committed[-1]["action"] == "allocate_materials"
        assert committed[-1]["from_status"] == "MATERIAL_REQUESTED"
        assert committed[-1]["to_status"] == "MATERIAL_ALLOCATED"
        assert committed[-1]["actor_id"] == str(actors["warehouse"].actor_id)


class TestCancelAndDelete:
    def test_cancel_requested_batch(self, machine, actors, requested_batch, inventory, fabric):
        batch = machine.cancel_batch(actors["production"], requested_batch.id, reason="Order withdrawn")
        assert batch.status is BatchStatus.CANCELLED
        assert {a.status for a in batch.allocations} == {AllocationStatus.REJECTED.value}
        assert inventory.get_material(fabric).current_stock == Decimal("500")
        latest = machine.get_timeline(batch.id)[0]
        assert latest.event == "BATCH_CANCELLED"
        assert "Order withdrawn" in latest.details

    def test_cannot_cancel_after_allocation(self, machine, actors, requested_batch):
        machine.allocate_materials(actors["warehouse"], requested_batch.id)
        with pytest.raises(StatusConflictError):
            machine.cancel_batch(actors["production"], requested_batch.id)

    def test_delete_pending_batch(self, machine, actors, product, store):
        batch = machine.create_batch(actors["production"], product, 10)
        machine.delete_batch(actors["owner"], batch.id)
        with pytest.raises(BatchNotFoundError):
            machine.get_batch(batch.id)
        with store.session_scope() as session:
            remaining = session.execute(
                select(func.count()).select_from(BatchTimelineEntry)
                .where(BatchTimelineEntry.batch_id == batch.id)
            ).scalar()
        assert remaining == 0

    def test_delete_cancelled_batch(self, machine, actors, requested_batch, store):
        machine.cancel_batch(actors["production"], requested_batch.id)
        machine.delete_batch(actors["owner"], requested_batch.id)
        with store.session_scope() as session:
            assert session.get(ProductionBatch, requested_batch.id) is None

    def test_delete_requires_owner(self, machine, actors, product):
        batch = machine.create_batch(actors["production"], product, 10)
        with pytest.raises(RoleNotPermittedError):
            machine.delete_batch(actors["production"], batch.id)
        assert machine.get_batch(batch.id).status is BatchStatus.PENDING

    def test_delete_requested_batch_rejected(self, machine, actors, requested_batch):
        with pytest.raises(StatusConflictError) as exc_info:
            machine.delete_batch(actors["owner"], requested_batch.id)
        assert set(exc_info.value.required) == {"PENDING", "CANCELLED"}


class TestReads:
    def test_list_batches_by_status(self, machine, actors, product, requested_batch):
        pending = machine.create_batch(actors["production"], product, 5)
        assert [b.id for b in machine.list_batches(BatchStatus.PENDING)] == [pending.id]
        assert [b.id for b in machine.list_batches("MATERIAL_REQUESTED")] == [requested_batch.id]
        assert [b.batch_sku for b in machine.list_batches()] == [
            "PROD-20240101-002",
            "PROD-20240101-001",
        ]

    def test_get_unknown_batch(self, machine):
        with pytest.raises(BatchNotFoundError):
            machine.get_batch(uuid4())

    def test_timeline_of_unknown_batch(self, machine):
        with pytest.raises(BatchNotFoundError):
            machine.get_timeline(uuid4())

    def test_timeline_records_actor(self, machine, actors, requested_batch):
        entry = machine.get_timeline(requested_batch.id)[0]
        assert entry.actor_id == actors["production"].actor_id
        assert entry.event == "BATCH_CREATED"


class TestProgressDoesNotTransition:
    def test_progress_leaves_status_and_timeline(self, machine, actors, requested_batch, advance):
        batch = advance(requested_batch.id, BatchStatus.CUTTING_IN_PROGRESS)
        before = machine.get_timeline(batch.id)
        machine.update_progress(actors["cutter"], batch.task(Stage.CUTTING).id, ProgressDelta(10))
        assert machine.get_batch(batch.id).status is BatchStatus.CUTTING_IN_PROGRESS
        assert machine.get_timeline(batch.id) == before
