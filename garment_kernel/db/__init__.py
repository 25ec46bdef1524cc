"""Database layer - store handle, base classes, types, and append-only guards."""

from garment_kernel.db.base import Base, TrackedBase
from garment_kernel.db.engine import Store, create_store
from garment_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from garment_kernel.db.types import UTCDateTime, UUIDString, normalize_quantity

__all__ = [
    "Store",
    "create_store",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UTCDateTime",
    "normalize_quantity",
    "register_immutability_listeners",
    "unregister_immutability_listeners",
]
