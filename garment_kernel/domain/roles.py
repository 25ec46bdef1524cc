"""
Roles, actors and the access policy.

The identity collaborator authenticates; the kernel only authorizes against
the role it is handed.  Every write operation receives an ``Actor`` and is
checked against an ``AccessPolicy`` before any state is touched.  The policy
itself comes from configuration (``garment_config``); the kernel never reads
configuration files.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from uuid import UUID

from garment_kernel.exceptions import RoleNotPermittedError

# At most this many roles may hold any one action
MAX_ROLES_PER_ACTION = 2


class Role(str, Enum):
    OWNER = "OWNER"
    WAREHOUSE_HEAD = "WAREHOUSE_HEAD"
    PRODUCTION_HEAD = "PRODUCTION_HEAD"
    CUTTER = "CUTTER"
    SEWER = "SEWER"
    FINISHER = "FINISHER"


@dataclass(frozen=True)
class Actor:
    """The caller of an operation, as supplied by the identity collaborator."""

    actor_id: UUID
    role: Role

    def __post_init__(self) -> None:
        if not isinstance(self.role, Role):
            # Accept the role's string value from transport adapters
            object.__setattr__(self, "role", Role(self.role))


@dataclass(frozen=True)
class AccessPolicy:
    """
    Action name -> roles permitted to perform it.

    Keys are action values (``"assign_cutter"``...).  Construction rejects an
    empty role set or more than MAX_ROLES_PER_ACTION roles for one action;
    coverage of every action is checked by the configuration loader, which
    knows the full action list.
    """

    rules: Mapping[str, frozenset[Role]]

    def __post_init__(self) -> None:
        frozen: dict[str, frozenset[Role]] = {}
        for action, roles in self.rules.items():
            role_set = frozenset(Role(r) for r in roles)
            if not role_set:
                raise ValueError(f"Action {action} has no permitted roles")
            if len(role_set) > MAX_ROLES_PER_ACTION:
                raise ValueError(
                    f"Action {action} grants {len(role_set)} roles "
                    f"(max {MAX_ROLES_PER_ACTION})"
                )
            frozen[getattr(action, "value", action)] = role_set
        object.__setattr__(self, "rules", MappingProxyType(frozen))

    def roles_for(self, action) -> frozenset[Role]:
        return self.rules.get(getattr(action, "value", action), frozenset())

    def is_allowed(self, action, role: Role) -> bool:
        return Role(role) in self.roles_for(action)

    def authorize(self, actor: Actor, action) -> None:
        """Raise RoleNotPermittedError unless ``actor`` may perform ``action``."""
        if not self.is_allowed(action, actor.role):
            raise RoleNotPermittedError(
                action=getattr(action, "value", action),
                role=actor.role.value,
                allowed_roles=tuple(sorted(r.value for r in self.roles_for(action))),
            )
