"""
Notifier port and implementations.

Responsibility:
    Hands NotificationMessage records to the notification collaborator.
    Delivery is fire-and-forget: the batch state machine dispatches only
    after its transaction has committed, and a failing notifier is logged,
    never raised.

Implementations:
    LoggingNotifier   -- default; writes one structured log line per message.
    InMemoryNotifier  -- collects messages (tests, local runs).
    DatabaseNotifier  -- persists Notification rows through its own session,
                         outside the transition's transaction.
"""

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable

from sqlalchemy.orm import Session

from garment_kernel.domain.clock import Clock, SystemClock
from garment_kernel.domain.dtos import NotificationMessage
from garment_kernel.logging_config import get_logger
from garment_kernel.models.notification import Notification

logger = get_logger("services.notifications")

BATCH_ASSIGNMENT = "BATCH_ASSIGNMENT"
TASK_VERIFIED = "TASK_VERIFIED"


class Notifier(ABC):
    @abstractmethod
    def send(self, message: NotificationMessage) -> None:
        ...


class LoggingNotifier(Notifier):
    def send(self, message: NotificationMessage) -> None:
        logger.info(
            "notification_sent",
            extra={
                "recipient_id": str(message.recipient_id),
                "notification_type": message.type,
                "title": message.title,
            },
        )


class InMemoryNotifier(Notifier):
    """Thread-safe collector."""

    def __init__(self):
        self._lock = threading.Lock()
        self._messages: list[NotificationMessage] = []

    def send(self, message: NotificationMessage) -> None:
        with self._lock:
            self._messages.append(message)

    @property
    def messages(self) -> tuple[NotificationMessage, ...]:
        with self._lock:
            return tuple(self._messages)

    def for_recipient(self, recipient_id) -> tuple[NotificationMessage, ...]:
        return tuple(m for m in self.messages if m.recipient_id == recipient_id)

    def clear(self) -> None:
        with self._lock:
            self._messages.clear()


class DatabaseNotifier(Notifier):
    """Writes each message as an unread Notification row in its own transaction."""

    def __init__(self, session_factory: Callable[[], Session], clock: Clock | None = None):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    def send(self, message: NotificationMessage) -> None:
        session = self._session_factory()
        try:
            session.add(
                Notification(
                    recipient_id=message.recipient_id,
                    type=message.type,
                    title=message.title,
                    message=message.message,
                    is_read=False,
                    created_at=self._clock.now(),
                )
            )
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


def dispatch_notifications(
    notifier: Notifier,
    messages: Iterable[NotificationMessage],
) -> int:
    """
    Send every message, tolerating failures.

    Returns the number delivered.  A failure is logged at WARNING with the
    traceback and the remaining messages are still attempted.
    """
    delivered = 0
    for message in messages:
        try:
            notifier.send(message)
            delivered += 1
        except Exception:
            logger.warning(
                "notification_dispatch_failed",
                exc_info=True,
                extra={
                    "recipient_id": str(message.recipient_id),
                    "notification_type": message.type,
                },
            )
    return delivered
