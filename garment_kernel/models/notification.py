"""
Module: garment_kernel.models.notification
Responsibility: Persisted notifications written by DatabaseNotifier.
Architecture position: Kernel > Models.  Written outside the transition's
    transaction (after commit), so a failed insert never undoes a transition.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from garment_kernel.db.base import Base


class Notification(Base):
    __tablename__ = "notifications"

    __table_args__ = (
        Index("idx_notification_recipient_unread", "recipient_id", "is_read"),
    )

    recipient_id: Mapped[UUID] = mapped_column()
    type: Mapped[str] = mapped_column(String(50))
    title: Mapped[str] = mapped_column(String(200))
    message: Mapped[str] = mapped_column(String(4000))
    is_read: Mapped[bool] = mapped_column(default=False)
    created_at: Mapped[datetime] = mapped_column()
