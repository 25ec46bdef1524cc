"""
Module: garment_kernel.models.sequence
Responsibility: Named counter rows for dense, gap-free sequences.
Architecture position: Kernel > Models.  Only services/sequence_service.py
    reads or writes this table, always under a row lock.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from garment_kernel.db.base import Base


class SequenceCounter(Base):
    """One named sequence and its last issued value."""

    __tablename__ = "sequence_counters"

    # e.g. "batch_sku:20240101"
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(nullable=False, default=0)
