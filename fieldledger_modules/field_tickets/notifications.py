"""
Field ticket notifications (``fieldledger_modules.field_tickets.notifications``).

Responsibility
--------------
Tells the job owner when a ticket is signed or disputed.  Delivery is an
external concern behind the ``Notifier`` protocol.

Invariants enforced
-------------------
* Notifications are queued on the session and dispatched only after the
  transaction commits.  A rolled-back transition sends nothing.
* A failing notifier never fails the transition: the error is logged as
  ``notification_dispatch_failed`` and dropped.
* With an executor, dispatch does not block the committing thread.
"""

from __future__ import annotations

from concurrent.futures import Executor, Future
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from sqlalchemy import event
from sqlalchemy.orm import Session

from fieldledger_kernel.logging_config import get_logger

logger = get_logger("modules.field_tickets.notifications")

FIELD_TICKET_SIGNED = "field_ticket_signed"
FIELD_TICKET_DISPUTED = "field_ticket_disputed"


@dataclass(frozen=True)
class Notification:
    type: str
    tenant_id: UUID
    recipient_id: UUID
    ticket_id: UUID
    ticket_number: str
    title: str
    message: str
    link: str


class Notifier(Protocol):
    def send(self, notification: Notification) -> None: ...


class NotificationDispatcher:
    """
    Queues notifications per session and sends them after commit.

    Contract:
        ``install(session)`` once per session (repeat calls are no-ops),
        then ``enqueue(session, notification)`` inside the transaction.
    """

    def __init__(self, notifier: Notifier, executor: Executor | None = None):
        self._notifier = notifier
        self._executor = executor
        self._key = f"field_ticket_notifications:{id(self)}"

    def install(self, session: Session) -> None:
        installed_key = f"{self._key}:installed"
        if session.info.get(installed_key):
            return
        session.info[installed_key] = True
        event.listen(session, "after_commit", self._after_commit)
        event.listen(session, "after_rollback", self._after_rollback)

    def enqueue(self, session: Session, notification: Notification) -> None:
        session.info.setdefault(self._key, []).append(notification)

    def pending(self, session: Session) -> list[Notification]:
        return list(session.info.get(self._key, ()))

    def _after_rollback(self, session: Session) -> None:
        session.info.pop(self._key, None)

    def _after_commit(self, session: Session) -> None:
        for notification in session.info.pop(self._key, ()):
            if self._executor is None:
                self._send(notification)
            else:
                future = self._executor.submit(self._notifier.send, notification)
                future.add_done_callback(
                    lambda f, n=notification: self._log_future_failure(f, n)
                )

    def _send(self, notification: Notification) -> None:
        try:
            self._notifier.send(notification)
        except Exception:
            self._log_failure(notification)
        else:
            logger.debug(
                "notification_dispatched",
                extra={"notification_type": notification.type,
                       "ticket_number": notification.ticket_number},
            )

    def _log_future_failure(self, future: Future, notification: Notification) -> None:
        exc = future.exception()
        if exc is not None:
            logger.warning(
                "notification_dispatch_failed",
                exc_info=(type(exc), exc, exc.__traceback__),
                extra={"notification_type": notification.type,
                       "ticket_number": notification.ticket_number},
            )

    def _log_failure(self, notification: Notification) -> None:
        logger.warning(
            "notification_dispatch_failed",
            exc_info=True,
            extra={"notification_type": notification.type,
                   "ticket_number": notification.ticket_number},
        )
