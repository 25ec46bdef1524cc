"""
Module: garment_kernel.selectors.base
Responsibility: Base class for the read-only query side.  Selectors answer
    questions about batches and stock without mutating anything.
Architecture position: Kernel > Selectors.  May import from db/, models/
    and domain/ DTOs.  MUST NOT import from services/.

Invariants enforced:
    - Read-only: selectors never add, delete, flush or commit.
    - DTO return convention: frozen dataclasses leave, ORM rows do not.
    - The caller owns the session and its transaction scope.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from garment_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Read-only query helper bound to a caller-owned Session."""

    def __init__(self, session: Session):
        self.session = session
