"""
Module: garment_kernel.db.base
Responsibility: Declarative base classes for all ORM models.  Provides the
    UUID primary key convention, the type annotation map that fixes column
    types schema-wide, and the TrackedBase mixin for audit timestamps.
Architecture position: Kernel > DB.  Lowest-level import target; every model
    module imports from here.  MUST NOT import from models/, services/,
    selectors/ or domain/.

Invariants enforced:
    - UUID primary keys (uuid4, stored as String(36) for portability).
    - Quantities and prices are Decimal mapped to Numeric(38, 9).  No floats.
    - Timestamps are timezone-aware.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from garment_kernel.db.types import ExactDecimal, UTCDateTime, UUIDString


class Base(DeclarativeBase):
    """
    Declarative base for all garment kernel models.

    Guarantees:
        - id is a uuid4 UUID stored as String(36).
        - Decimal maps to ExactDecimal (Numeric(38, 9), exact on SQLite).
        - datetime maps to UTCDateTime (timezone-aware on every backend).
        - int maps to BigInteger (ledger and timeline sequences).
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: ExactDecimal(),
        datetime: UTCDateTime(),
        UUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base that records who created a row and when it last changed.

    created_by_id is mandatory: every tracked record has an originating actor.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    updated_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
