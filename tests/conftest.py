"""
Pytest fixtures for the garment kernel test suite.

Provides:
- A fresh database per test (SQLite file in tmp_path, or PostgreSQL)
- Actors for every role and active staff members to assign work to
- A product with materials stocked through the ledger
- Wired BatchStateMachine / InventoryService factories

Environment Variables:
- GARMENT_TEST_DATABASE_URL: PostgreSQL URL.  When unset every test runs
  against its own SQLite file, so no server is needed.
"""

import json
import logging
import os
from collections.abc import Callable, Generator
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from garment_config import get_active_config
from garment_config.bridges import build_access_policy
from garment_kernel.db.engine import Store, create_store
from garment_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from garment_kernel.domain.clock import DeterministicClock
from garment_kernel.domain.dtos import MaterialRequestLine
from garment_kernel.domain.roles import AccessPolicy, Actor, Role
from garment_kernel.domain.stock import StockTransactionType
from garment_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from garment_kernel.models.catalog import Product, ProductMaterial, StaffMember
from garment_kernel.models.material import Material
from garment_kernel.services.batch_state_machine import BatchStateMachine
from garment_kernel.services.inventory_service import InventoryService
from garment_kernel.services.notifications import InMemoryNotifier
from garment_kernel.services.stock_ledger import StockLedger

# Seeds catalog rows and the opening IN entries
SEED_ACTOR_ID = UUID("00000000-0000-0000-0000-0000000000aa")


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "postgres: mark test as requiring PostgreSQL")
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture garment_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, machine):
            ...
            logs = captured_logs()
            assert any(r["message"] == "batch_transition_committed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("garment_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Store
# =============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    return os.environ.get(
        "GARMENT_TEST_DATABASE_URL",
        f"sqlite:///{tmp_path / 'garment_test.db'}",
    )


@pytest.fixture
def store(database_url) -> Generator[Store, None, None]:
    """Fresh schema per test, immutability listeners active."""
    store = create_store(database_url, pool_size=10, max_overflow=10, sqlite_busy_timeout=30)
    if store.is_postgres:
        store.drop_tables()
    store.create_tables()
    register_immutability_listeners()
    yield store
    unregister_immutability_listeners()
    if store.is_postgres:
        store.drop_tables()
    store.dispose()


@pytest.fixture
def session(store) -> Generator[Session, None, None]:
    session = store.session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def config():
    return get_active_config()


@pytest.fixture
def access_policy(config) -> AccessPolicy:
    return build_access_policy(config)


@pytest.fixture
def notifier() -> InMemoryNotifier:
    return InMemoryNotifier()


# =============================================================================
# Actors and staff
# =============================================================================


def _add_staff(store: Store, name: str, role: Role, active: bool = True) -> UUID:
    with store.session_scope() as session:
        member = StaffMember(name=name, role=role.value, is_active=active)
        session.add(member)
        session.flush()
        return member.id


@pytest.fixture
def staff(store) -> dict[str, UUID]:
    """Active staff ids keyed by a short name."""
    return {
        "owner": _add_staff(store, "Olivia Owner", Role.OWNER),
        "warehouse": _add_staff(store, "Wim Warehouse", Role.WAREHOUSE_HEAD),
        "production": _add_staff(store, "Petra Production", Role.PRODUCTION_HEAD),
        "cutter": _add_staff(store, "Cara Cutter", Role.CUTTER),
        "cutter2": _add_staff(store, "Carl Cutter", Role.CUTTER),
        "sewer": _add_staff(store, "Sam Sewer", Role.SEWER),
        "sewer2": _add_staff(store, "Sia Sewer", Role.SEWER),
        "finisher": _add_staff(store, "Fay Finisher", Role.FINISHER),
        "inactive_cutter": _add_staff(store, "Ivy Idle", Role.CUTTER, active=False),
    }


@pytest.fixture
def actors(staff) -> dict[str, Actor]:
    """Actor per role; worker actors are the staff members themselves."""
    return {
        "owner": Actor(staff["owner"], Role.OWNER),
        "warehouse": Actor(staff["warehouse"], Role.WAREHOUSE_HEAD),
        "production": Actor(staff["production"], Role.PRODUCTION_HEAD),
        "cutter": Actor(staff["cutter"], Role.CUTTER),
        "cutter2": Actor(staff["cutter2"], Role.CUTTER),
        "sewer": Actor(staff["sewer"], Role.SEWER),
        "sewer2": Actor(staff["sewer2"], Role.SEWER),
        "finisher": Actor(staff["finisher"], Role.FINISHER),
    }


# =============================================================================
# Catalog and stock
# =============================================================================


@pytest.fixture
def create_material(store, clock) -> Callable[..., UUID]:
    """
    Factory: add a material and stock it through one IN ledger entry.

    Usage::

        fabric_id = create_material("FAB-01", stock=Decimal("500"))
    """

    def _create(
        code: str | None = None,
        stock: Decimal = Decimal("0"),
        minimum: Decimal = Decimal("0"),
        price: Decimal = Decimal("0"),
        unit: str = "m",
        active: bool = True,
    ) -> UUID:
        code = code or f"MAT-{uuid4().hex[:6].upper()}"
        with store.session_scope() as session:
            material = Material(
                code=code,
                name=f"Material {code}",
                unit=unit,
                minimum_stock=minimum,
                price=price,
                is_active=True,
                created_by_id=SEED_ACTOR_ID,
            )
            session.add(material)
            session.flush()
            if stock > 0:
                StockLedger(session, clock).record_transaction(
                    material.id, StockTransactionType.IN, stock, SEED_ACTOR_ID,
                    notes="Opening stock",
                )
            if not active:
                material.is_active = False
            return material.id

    return _create


@pytest.fixture
def fabric(create_material) -> UUID:
    return create_material("FAB-COTTON", stock=Decimal("500"), minimum=Decimal("50"),
                           price=Decimal("4.50"))


@pytest.fixture
def thread(create_material) -> UUID:
    return create_material("THR-BLACK", stock=Decimal("100"), unit="spool",
                           price=Decimal("1.25"))


@pytest.fixture
def product(store, fabric, thread) -> UUID:
    """A T-shirt with a two-line bill of materials."""
    with store.session_scope() as session:
        product = Product(sku="TSHIRT-BASIC", name="Basic T-Shirt", is_active=True)
        product.materials.append(
            ProductMaterial(material_id=fabric, quantity_per_unit=Decimal("1.5"), unit="m")
        )
        product.materials.append(
            ProductMaterial(material_id=thread, quantity_per_unit=Decimal("0.1"), unit="spool")
        )
        session.add(product)
        session.flush()
        return product.id


@pytest.fixture
def material_lines(fabric, thread) -> list[MaterialRequestLine]:
    return [
        MaterialRequestLine(fabric, Decimal("150")),
        MaterialRequestLine(thread, Decimal("10")),
    ]


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def make_machine(store, access_policy, clock, notifier) -> Generator[Callable[..., BatchStateMachine], None, None]:
    """Factory: a BatchStateMachine on its own session (one per thread)."""
    sessions: list[Session] = []

    def _make(notifier_override=None) -> BatchStateMachine:
        session = store.session()
        sessions.append(session)
        return BatchStateMachine(
            session,
            access_policy,
            clock=clock,
            notifier=notifier_override or notifier,
        )

    yield _make
    for s in sessions:
        s.close()


@pytest.fixture
def machine(make_machine) -> BatchStateMachine:
    return make_machine()


@pytest.fixture
def inventory(store, access_policy, clock) -> Generator[InventoryService, None, None]:
    session = store.session()
    yield InventoryService(session, access_policy, clock=clock)
    session.close()


@pytest.fixture
def advance(machine, actors, staff):
    """
    Drive a batch forward through the happy path up to ``target`` status.

    Usage::

        batch = advance(batch.id, "CUTTING_VERIFIED")
    """
    from garment_kernel.domain.dtos import ProgressDelta
    from garment_kernel.domain.lifecycle import STATUS_ORDER, BatchStatus, Stage

    def step(batch_id, status):
        snapshot = machine.get_batch(batch_id)
        if status is BatchStatus.MATERIAL_REQUESTED:
            raise AssertionError("create the batch with material lines instead")
        if status is BatchStatus.MATERIAL_ALLOCATED:
            return machine.allocate_materials(actors["warehouse"], batch_id)
        if status is BatchStatus.ASSIGNED_TO_CUTTER:
            return machine.assign_cutter(actors["production"], batch_id, staff["cutter"])
        if status is BatchStatus.CUTTING_IN_PROGRESS:
            return machine.start_task(actors["cutter"], batch_id, Stage.CUTTING)
        if status is BatchStatus.CUTTING_COMPLETED:
            task = snapshot.task(Stage.CUTTING)
            machine.update_progress(actors["cutter"], task.id, ProgressDelta(100, 2))
            return machine.complete_task(actors["cutter"], batch_id, Stage.CUTTING)
        if status is BatchStatus.CUTTING_VERIFIED:
            return machine.verify_stage(actors["production"], batch_id, Stage.CUTTING)
        if status is BatchStatus.ASSIGNED_TO_SEWER:
            return machine.assign_sewer(actors["production"], batch_id, staff["sewer"])
        if status is BatchStatus.IN_SEWING:
            return machine.start_task(actors["sewer"], batch_id, Stage.SEWING)
        if status is BatchStatus.SEWING_COMPLETED:
            task = snapshot.task(Stage.SEWING)
            machine.update_progress(actors["sewer"], task.id, ProgressDelta(97, 3))
            return machine.complete_task(actors["sewer"], batch_id, Stage.SEWING)
        if status is BatchStatus.SEWING_VERIFIED:
            return machine.verify_stage(actors["production"], batch_id, Stage.SEWING)
        if status is BatchStatus.IN_FINISHING:
            machine.assign_finisher(actors["production"], batch_id, staff["finisher"])
            return machine.start_task(actors["finisher"], batch_id, Stage.FINISHING)
        if status is BatchStatus.FINISHING_COMPLETED:
            task = snapshot.task(Stage.FINISHING)
            machine.update_progress(actors["finisher"], task.id, ProgressDelta(95, 2))
            return machine.complete_task(actors["finisher"], batch_id, Stage.FINISHING)
        if status is BatchStatus.COMPLETED:
            return machine.verify_finishing(actors["warehouse"], batch_id, "RACK-A1")
        raise AssertionError(f"no happy-path step reaches {status}")

    def _advance(batch_id, target):
        target = BatchStatus(target)
        snapshot = machine.get_batch(batch_id)
        while STATUS_ORDER[snapshot.status] < STATUS_ORDER[target]:
            next_status = next(
                s for s, i in STATUS_ORDER.items() if i == STATUS_ORDER[snapshot.status] + 1
            )
            snapshot = step(batch_id, next_status)
        return snapshot

    return _advance


@pytest.fixture
def requested_batch(machine, actors, product, material_lines):
    """A batch created with material lines (MATERIAL_REQUESTED)."""
    return machine.create_batch(actors["production"], product, 100, materials=material_lines)
