"""
Typed Exception Hierarchy for the Garment Production Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (HTTP adapters, workers, scripts) must react to failures by TYPE,
never by parsing message strings.  Every exception therefore carries:

  1. A CODE class attribute (machine-readable, stable across releases)
  2. A KIND class attribute -- one of six stable error kinds that transport
     layers map to responses
  3. Structured DATA as instance attributes (not just a message)

Example - RIGHT way to handle errors:
    try:
        machine.assign_cutter(batch_id, cutter_id, actor)
    except ConflictError as e:          # retryable after re-reading state
        reload_and_retry()
    except ForbiddenError as e:
        return deny(code=e.code)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    GarmentKernelError (base)
    |
    +-- ValidationError                      kind=VALIDATION
    |   +-- MaterialInactiveError
    |   +-- StaffInactiveError
    |   +-- InvalidLabelError
    |   +-- DuplicateAllocationError
    |
    +-- ForbiddenError                       kind=FORBIDDEN
    |   +-- RoleNotPermittedError
    |   +-- AssigneeRoleError
    |   +-- NotAssigneeError
    |
    +-- NotFoundError                        kind=NOT_FOUND
    |   +-- BatchNotFoundError
    |   +-- MaterialNotFoundError
    |   +-- ProductNotFoundError
    |   +-- StaffNotFoundError
    |   +-- TaskNotFoundError
    |
    +-- ConflictError                        kind=CONFLICT (retryable)
    |   +-- StatusConflictError
    |   +-- TaskStatusConflictError
    |   +-- ConcurrentModificationError
    |   +-- MaterialReferencedError
    |
    +-- InsufficientStockError               kind=INSUFFICIENT_STOCK
    |
    +-- InternalError                        kind=INTERNAL
        +-- ImmutabilityViolationError
        +-- LedgerIntegrityError

===============================================================================
RETRY SEMANTICS
===============================================================================

Only the CONFLICT kind is retryable: the caller re-reads current state and
tries again.  Every other kind needs corrected input (or operator attention,
for INTERNAL) and fails identically if repeated as-is.

===============================================================================
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Stable error kinds exposed to transport layers."""

    VALIDATION = "VALIDATION"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    INTERNAL = "INTERNAL"


class GarmentKernelError(Exception):
    """
    Base exception for all kernel errors.

    All subclasses must define ``code`` and inherit a ``kind`` from one of the
    six category classes below.
    """

    code: str = "GARMENT_KERNEL_ERROR"
    kind: ErrorKind = ErrorKind.INTERNAL
    retryable: bool = False

    def to_dict(self) -> dict:
        """Serializable error envelope: stable kind, code and message."""
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": str(self),
            "retryable": self.retryable,
        }


# =============================================================================
# Validation
# =============================================================================


class ValidationError(GarmentKernelError):
    """Missing or malformed input.  Caller's fault; no state was changed."""

    code: str = "VALIDATION_ERROR"
    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class MaterialInactiveError(ValidationError):
    """Material has been deactivated and cannot take part in new postings."""

    code: str = "MATERIAL_INACTIVE"

    def __init__(self, material_id: str, material_code: str):
        self.material_id = material_id
        self.material_code = material_code
        super().__init__(
            f"Material {material_code} ({material_id}) is inactive",
            field="material_id",
        )


class StaffInactiveError(ValidationError):
    """Staff member is deactivated and cannot receive work."""

    code: str = "STAFF_INACTIVE"

    def __init__(self, staff_id: str):
        self.staff_id = staff_id
        super().__init__(f"Staff member {staff_id} is inactive", field="assignee_id")


class InvalidLabelError(ValidationError):
    """Batch label payload is malformed or does not match its batch."""

    code: str = "INVALID_BATCH_LABEL"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid batch label: {reason}", field="label")


class DuplicateAllocationError(ValidationError):
    """The same material appears twice in one batch's requested lines."""

    code: str = "DUPLICATE_ALLOCATION"

    def __init__(self, batch_id: str, material_id: str):
        self.batch_id = batch_id
        self.material_id = material_id
        super().__init__(
            f"Batch {batch_id} already has an allocation for material {material_id}",
            field="materials",
        )


# =============================================================================
# Authorization
# =============================================================================


class ForbiddenError(GarmentKernelError):
    """The actor (or the chosen assignee) lacks the required role."""

    code: str = "FORBIDDEN"
    kind: ErrorKind = ErrorKind.FORBIDDEN


class RoleNotPermittedError(ForbiddenError):
    """Actor's role is not permitted to perform the action."""

    code: str = "ROLE_NOT_PERMITTED"

    def __init__(self, action: str, role: str, allowed_roles: tuple[str, ...]):
        self.action = action
        self.role = role
        self.allowed_roles = allowed_roles
        super().__init__(
            f"Role {role} may not perform {action} "
            f"(allowed: {', '.join(allowed_roles)})"
        )


class AssigneeRoleError(ForbiddenError):
    """Chosen assignee does not hold the worker role the stage requires."""

    code: str = "ASSIGNEE_ROLE_MISMATCH"

    def __init__(self, assignee_id: str, required_role: str, actual_role: str):
        self.assignee_id = assignee_id
        self.required_role = required_role
        self.actual_role = actual_role
        super().__init__(
            f"Assignee {assignee_id} has role {actual_role}, "
            f"stage requires {required_role}"
        )


class NotAssigneeError(ForbiddenError):
    """Only the task's assignee may work the task."""

    code: str = "NOT_TASK_ASSIGNEE"

    def __init__(self, task_id: str, actor_id: str):
        self.task_id = task_id
        self.actor_id = actor_id
        super().__init__(f"Task {task_id} is not assigned to {actor_id}")


# =============================================================================
# Lookup
# =============================================================================


class NotFoundError(GarmentKernelError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"
    kind: ErrorKind = ErrorKind.NOT_FOUND


class BatchNotFoundError(NotFoundError):
    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Production batch not found: {batch_id}")


class MaterialNotFoundError(NotFoundError):
    code: str = "MATERIAL_NOT_FOUND"

    def __init__(self, material_id: str):
        self.material_id = material_id
        super().__init__(f"Material not found: {material_id}")


class ProductNotFoundError(NotFoundError):
    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class StaffNotFoundError(NotFoundError):
    code: str = "STAFF_NOT_FOUND"

    def __init__(self, staff_id: str):
        self.staff_id = staff_id
        super().__init__(f"Staff member not found: {staff_id}")


class TaskNotFoundError(NotFoundError):
    code: str = "TASK_NOT_FOUND"

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Stage task not found: {task_id}")


# =============================================================================
# Conflicts (retryable)
# =============================================================================


class ConflictError(GarmentKernelError):
    """
    A precondition on current persisted state does not hold.

    Includes lost races.  The caller may re-read current state and retry.
    """

    code: str = "CONFLICT"
    kind: ErrorKind = ErrorKind.CONFLICT
    retryable: bool = True


class StatusConflictError(ConflictError):
    """Batch is not in a status from which the requested action is legal."""

    code: str = "BATCH_STATUS_CONFLICT"

    def __init__(
        self,
        batch_id: str,
        action: str,
        required: tuple[str, ...],
        actual: str,
    ):
        self.batch_id = batch_id
        self.action = action
        self.required = required
        self.actual = actual
        super().__init__(
            f"Cannot {action} batch {batch_id}: requires status "
            f"{' or '.join(required)}, current status is {actual}"
        )


class TaskStatusConflictError(ConflictError):
    """Stage task is not in the status the operation requires."""

    code: str = "TASK_STATUS_CONFLICT"

    def __init__(self, task_id: str, required: str, actual: str):
        self.task_id = task_id
        self.required = required
        self.actual = actual
        super().__init__(
            f"Task {task_id} must be {required}, current status is {actual}"
        )


class ConcurrentModificationError(ConflictError):
    """Another transaction changed the same row first."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: str | None = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        target = f"{entity_type} {entity_id}" if entity_id else entity_type
        super().__init__(
            f"Concurrent modification of {target}: "
            "re-read current state and retry"
        )


class MaterialReferencedError(ConflictError):
    """Referenced material cannot be hard-deleted; deactivate it instead."""

    code: str = "MATERIAL_REFERENCED"
    retryable: bool = False

    def __init__(self, material_id: str, references: tuple[str, ...]):
        self.material_id = material_id
        self.references = references
        super().__init__(
            f"Material {material_id} is referenced by {', '.join(references)}; "
            "deactivate it instead of deleting"
        )


# =============================================================================
# Stock
# =============================================================================


class InsufficientStockError(GarmentKernelError):
    """Material stock cannot cover the requested quantity."""

    code: str = "INSUFFICIENT_STOCK"
    kind: ErrorKind = ErrorKind.INSUFFICIENT_STOCK

    def __init__(
        self,
        material_id: str,
        material_code: str,
        requested: str,
        available: str,
    ):
        self.material_id = material_id
        self.material_code = material_code
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for {material_code}: "
            f"requested {requested}, available {available}"
        )


# =============================================================================
# Internal
# =============================================================================


class InternalError(GarmentKernelError):
    """Unexpected store failure or broken internal invariant."""

    code: str = "INTERNAL_ERROR"
    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str = "Unexpected store failure"):
        super().__init__(message)


class ImmutabilityViolationError(InternalError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class LedgerIntegrityError(InternalError):
    """Material stock diverges from its ledger."""

    code: str = "LEDGER_INTEGRITY"

    def __init__(self, material_id: str, recorded: str, replayed: str):
        self.material_id = material_id
        self.recorded = recorded
        self.replayed = replayed
        super().__init__(
            f"Ledger mismatch for material {material_id}: "
            f"recorded {recorded}, replayed {replayed}"
        )
