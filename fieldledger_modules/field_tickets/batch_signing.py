"""
Batch Signature Coordinator (``fieldledger_modules.field_tickets.batch_signing``).

Responsibility
--------------
Applies one inspector signature to many pending tickets at once.  Either
every requested ticket is signed or none is.

Architecture position
---------------------
**Modules layer** -- sibling of ``FieldTicketService``.  Shares its
transition helper, its signature row builder and its notification
builder so single and batch signing cannot drift apart.

Invariants enforced
-------------------
* All targets are loaded with a row lock and validated before the first
  write.  One ticket outside ``pending_signature`` rejects the whole
  batch and names every offender.
* Every signed ticket points at the same signature row, which carries the
  batch id.
* All tickets move to ``signed`` in one transaction.  A concurrent change
  detected at flush time rolls everything back.

Failure modes
-------------
* ``ValidationError`` -- empty id list or malformed signature.
* ``TicketNotFoundError`` -- a requested id is not visible to the tenant.
* ``BatchSignatureRejectedError`` -- one or more targets not pending.
* ``BatchSignatureConflictError`` -- version check failed at flush.
"""

from __future__ import annotations

from collections.abc import Sequence
from concurrent.futures import Executor
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from fieldledger_kernel.domain.clock import Clock, SystemClock
from fieldledger_kernel.exceptions import (
    BatchSignatureConflictError,
    BatchSignatureRejectedError,
    TicketNotFoundError,
    ValidationError,
)
from fieldledger_kernel.logging_config import LogContext, get_logger
from fieldledger_modules.field_tickets.aggregator import install_recompute_listener
from fieldledger_modules.field_tickets.models import (
    BatchSignResult,
    SignatureInput,
    TicketStatus,
)
from fieldledger_modules.field_tickets.notifications import (
    NotificationDispatcher,
    Notifier,
)
from fieldledger_modules.field_tickets.orm import FieldTicketModel, JobModel
from fieldledger_modules.field_tickets.service import (
    apply_transition,
    new_signature_record,
    signed_notification,
)
from fieldledger_modules.field_tickets.validation import check_signature
from fieldledger_modules.field_tickets.workflows import SIGN

logger = get_logger("modules.field_tickets.batch_signing")


def _dedupe(ticket_ids: Sequence[UUID]) -> list[UUID]:
    seen: set[UUID] = set()
    ordered = []
    for ticket_id in ticket_ids:
        if ticket_id not in seen:
            seen.add(ticket_id)
            ordered.append(ticket_id)
    return ordered


class BatchSignatureCoordinator:
    """All-or-nothing signing of several pending tickets."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        notifier: Notifier | None = None,
        notification_executor: Executor | None = None,
    ):
        self.session = session
        self._clock = clock or SystemClock()
        self._dispatcher: NotificationDispatcher | None = None
        if notifier is not None:
            self._dispatcher = NotificationDispatcher(notifier, notification_executor)
            self._dispatcher.install(session)
        install_recompute_listener(session)

    def batch_sign(
        self,
        tenant_id: UUID,
        actor_id: UUID,
        ticket_ids: Sequence[UUID],
        signature: SignatureInput,
    ) -> BatchSignResult:
        """
        Sign every ticket in ``ticket_ids`` with one signature.

        Duplicate ids are signed once.  On any failure the session is
        rolled back and no ticket, signature or notification is written.
        """
        if tenant_id is None:
            raise ValidationError("tenant_id", "is required")
        if not ticket_ids:
            raise ValidationError("ticket_ids", "at least one ticket is required")
        check_signature(signature)
        requested = _dedupe(ticket_ids)

        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            try:
                result = self._sign_all(tenant_id, actor_id, requested, signature)
                self.session.commit()
            except StaleDataError as exc:
                self.session.rollback()
                logger.warning(
                    "batch_sign_conflict",
                    extra={"ticket_count": len(requested)},
                )
                raise BatchSignatureConflictError(
                    [str(ticket_id) for ticket_id in requested]
                ) from exc
            except Exception:
                self.session.rollback()
                raise

        logger.info(
            "batch_sign_completed",
            extra={"batch_id": str(result.batch_id), "signed_count": result.signed_count},
        )
        return result

    def _sign_all(
        self,
        tenant_id: UUID,
        actor_id: UUID,
        requested: list[UUID],
        signature: SignatureInput,
    ) -> BatchSignResult:
        rows = self.session.execute(
            select(FieldTicketModel)
            .where(
                FieldTicketModel.id.in_(requested),
                FieldTicketModel.tenant_id == tenant_id,
                FieldTicketModel.is_deleted.is_(False),
            )
            .with_for_update(of=FieldTicketModel)
            .execution_options(populate_existing=True)
        ).unique().scalars().all()
        by_id = {ticket.id: ticket for ticket in rows}

        missing = [ticket_id for ticket_id in requested if ticket_id not in by_id]
        if missing:
            raise TicketNotFoundError(str(missing[0]))

        tickets = [by_id[ticket_id] for ticket_id in requested]
        offending = [
            t for t in tickets if t.status != TicketStatus.PENDING_SIGNATURE.value
        ]
        if offending:
            logger.warning(
                "batch_sign_rejected",
                extra={
                    "ticket_count": len(tickets),
                    "offending_ticket_numbers": [t.ticket_number for t in offending],
                },
            )
            raise BatchSignatureRejectedError(
                [str(t.id) for t in offending],
                [t.ticket_number for t in offending],
            )

        now = self._clock.now_utc()
        batch_id = uuid4()
        record = new_signature_record(tenant_id, actor_id, signature, now, batch_id=batch_id)
        self.session.add(record)
        for ticket in tickets:
            apply_transition(ticket, SIGN)
            ticket.inspector_signature = record
            ticket.updated_by_id = actor_id
            ticket.updated_at = now
        self.session.flush()

        if self._dispatcher is not None:
            jobs = {
                job.id: job
                for job in self.session.execute(
                    select(JobModel).where(JobModel.id.in_({t.job_id for t in tickets}))
                ).scalars()
            }
            for ticket in tickets:
                notification = signed_notification(
                    ticket, jobs[ticket.job_id], signature.signer_name, batch=True
                )
                if notification is not None:
                    self._dispatcher.enqueue(self.session, notification)

        return BatchSignResult(
            batch_id=batch_id,
            signed_at=now,
            ticket_ids=tuple(t.id for t in tickets),
            ticket_numbers=tuple(t.ticket_number for t in tickets),
        )
