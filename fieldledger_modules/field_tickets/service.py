"""
Field Ticket Module Service (``fieldledger_modules.field_tickets.service``).

Responsibility
--------------
Creates, edits and moves field tickets through their lifecycle: create,
update, add photos, submit for signature, apply signature, approve,
dispute, resolve dispute, mark billed, soft delete.  Every write path ends
with the aggregator recomputing totals.

Architecture position
---------------------
**Modules layer** -- ``FieldTicketService`` is the sole public entry point
for single-ticket writes.  Batch signing lives in
``batch_signing.BatchSignatureCoordinator``; reads live in
``selectors.FieldTicketSelector``.

Invariants enforced
-------------------
* Each public method owns the transaction boundary (``commit`` on
  success, ``rollback`` on any exception before re-raising).
* Every operation is tenant-scoped.  A ticket or job in another tenant is
  reported exactly like a missing one.
* Status changes go through ``FIELD_TICKET_WORKFLOW``; a failed guard
  raises before anything is written.
* Entries, photos and markup change only in ``draft`` or
  ``pending_signature``.
* Ticket numbers come from an atomic per-tenant-per-year counter.  A
  failed allocation is retried up to ``max_allocation_attempts`` times in
  a fresh transaction.
* Signatures are never modified; resolving a dispute with a replacement
  signature inserts a new signature row.
* Dispute evidence is appended, never replaced.

Failure modes
-------------
* ``ValidationError`` -- malformed input, before any database access.
* ``NotFoundError`` -- ticket or job not visible to the tenant.
* ``PreconditionViolationError`` subclasses -- wrong status for the action.
* ``SequenceAllocationConflictError`` -- allocation retries exhausted.
* ``OptimisticLockError`` -- the ticket changed under us; nothing written.

Audit relevance
---------------
Each transition logs ``field_ticket_transition`` with from/to status and
action; the ticket row records the actor and timestamp of every step.

Usage::

    service = FieldTicketService(session, clock=clock)
    ticket = service.create_ticket(tenant_id, actor_id, draft)
    service.add_photos(tenant_id, ticket.id, actor_id, photos)
    service.submit_for_signature(tenant_id, ticket.id, actor_id)
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from concurrent.futures import Executor
from datetime import datetime
from typing import TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from fieldledger_config.schema import NumberingSettings
from fieldledger_kernel.domain.clock import Clock
from fieldledger_kernel.exceptions import (
    InvalidTransitionError,
    JobNotFoundError,
    OptimisticLockError,
    PhotoRequiredError,
    SequenceAllocationConflictError,
    SignatureRequiredError,
    TicketNotDeletableError,
    TicketNotEditableError,
    TicketNotFoundError,
    ValidationError,
)
from fieldledger_kernel.logging_config import LogContext, get_logger
from fieldledger_kernel.services.base import BaseService
from fieldledger_modules.field_tickets.aggregator import (
    install_recompute_listener,
    recompute_ticket,
)
from fieldledger_modules.field_tickets.models import (
    DisputeCategory,
    EquipmentEntryInput,
    EvidenceInput,
    GpsLocation,
    LaborEntryInput,
    MaterialEntryInput,
    PhotoInput,
    SignatureInput,
    SyncStatus,
    TicketDraft,
    TicketStatus,
    TicketUpdate,
)
from fieldledger_modules.field_tickets.notifications import (
    FIELD_TICKET_DISPUTED,
    FIELD_TICKET_SIGNED,
    Notification,
    NotificationDispatcher,
    Notifier,
)
from fieldledger_modules.field_tickets.numbering import (
    TicketNumberAllocator,
    sequence_name,
)
from fieldledger_modules.field_tickets.orm import (
    DisputeEvidenceModel,
    EquipmentEntryModel,
    FieldTicketModel,
    InspectorSignatureModel,
    JobModel,
    LaborEntryModel,
    MaterialEntryModel,
    TicketPhotoModel,
)
from fieldledger_modules.field_tickets.validation import (
    check_evidence,
    check_photo,
    check_signature,
    check_ticket_draft,
    check_ticket_update,
)
from fieldledger_modules.field_tickets.workflows import (
    APPROVE,
    DISPUTE,
    EDITABLE_STATUSES,
    FIELD_TICKET_WORKFLOW,
    MARK_BILLED,
    RESOLVE_DISPUTE,
    SIGN,
    SUBMIT,
)

logger = get_logger("modules.field_tickets.service")

T = TypeVar("T")


# -----------------------------------------------------------------------------
# Row builders
# -----------------------------------------------------------------------------


def _labor_row(entry: LaborEntryInput, position: int) -> LaborEntryModel:
    return LaborEntryModel(
        position=position,
        worker_id=entry.worker_id,
        worker_name=entry.worker_name.strip(),
        role=entry.role.value,
        regular_hours=entry.regular_hours,
        overtime_hours=entry.overtime_hours,
        double_time_hours=entry.double_time_hours,
        regular_rate=entry.regular_rate,
        overtime_rate=entry.overtime_rate,
        double_time_rate=entry.double_time_rate,
        notes=entry.notes,
    )


def _equipment_row(entry: EquipmentEntryInput, position: int) -> EquipmentEntryModel:
    return EquipmentEntryModel(
        position=position,
        equipment_id=entry.equipment_id,
        equipment_type=entry.equipment_type.value,
        description=entry.description.strip(),
        hours=entry.hours,
        hourly_rate=entry.hourly_rate,
        standby_hours=entry.standby_hours,
        standby_rate=entry.standby_rate,
        notes=entry.notes,
    )


def _material_row(entry: MaterialEntryInput, position: int) -> MaterialEntryModel:
    return MaterialEntryModel(
        position=position,
        material_code=entry.material_code,
        description=entry.description.strip(),
        quantity=entry.quantity,
        unit=entry.unit,
        unit_cost=entry.unit_cost,
        markup=entry.markup,
        source=entry.source.value,
        purchase_order_number=entry.purchase_order_number,
        notes=entry.notes,
    )


def _photo_row(photo: PhotoInput, position: int, now: datetime) -> TicketPhotoModel:
    gps = photo.gps
    return TicketPhotoModel(
        position=position,
        url=photo.url,
        storage_key=photo.storage_key,
        file_name=photo.file_name,
        mime_type=photo.mime_type,
        latitude=gps.latitude if gps else None,
        longitude=gps.longitude if gps else None,
        accuracy=gps.accuracy if gps else None,
        altitude=gps.altitude if gps else None,
        captured_at=photo.captured_at or now,
        photo_type=photo.photo_type.value,
        description=photo.description,
    )


def _evidence_rows(
    items: Sequence[EvidenceInput],
    start: int,
    actor_id: UUID,
    now: datetime,
) -> list[DisputeEvidenceModel]:
    return [
        DisputeEvidenceModel(
            position=start + i,
            url=item.url,
            storage_key=item.storage_key,
            file_name=item.file_name,
            evidence_type=item.evidence_type.value,
            description=item.description,
            added_by_id=actor_id,
            added_at=now,
        )
        for i, item in enumerate(items)
    ]


def new_signature_record(
    tenant_id: UUID,
    actor_id: UUID,
    signature: SignatureInput,
    signed_at: datetime,
    batch_id: UUID | None = None,
) -> InspectorSignatureModel:
    """Build the immutable signature row for a captured signature."""
    location: GpsLocation | None = signature.location
    return InspectorSignatureModel(
        tenant_id=tenant_id,
        signature_data=signature.signature_data,
        signer_name=signature.signer_name.strip(),
        signer_title=signature.signer_title,
        signer_company=signature.signer_company,
        signer_employee_id=signature.signer_employee_id,
        latitude=location.latitude if location else None,
        longitude=location.longitude if location else None,
        accuracy=location.accuracy if location else None,
        altitude=location.altitude if location else None,
        signed_at=signed_at,
        device_info=signature.device_info,
        batch_id=batch_id,
        created_at=signed_at,
        updated_at=signed_at,
        created_by_id=actor_id,
    )


def signed_notification(
    ticket: FieldTicketModel,
    job: JobModel,
    signer_name: str,
    batch: bool = False,
) -> Notification | None:
    if job.owner_id is None:
        return None
    return Notification(
        type=FIELD_TICKET_SIGNED,
        tenant_id=ticket.tenant_id,
        recipient_id=job.owner_id,
        ticket_id=ticket.id,
        ticket_number=ticket.ticket_number,
        title="Field Ticket Signed (Batch)" if batch else "Field Ticket Signed",
        message=(
            f"Field ticket {ticket.ticket_number} for WO {job.wo_number} "
            f"has been signed by {signer_name}"
        ),
        link=f"/billing/field-tickets/{ticket.id}",
    )


def load_ticket_for_update(
    session: Session,
    tenant_id: UUID,
    ticket_id: UUID,
) -> FieldTicketModel:
    """Load a visible ticket with a row lock, refreshing any cached copy."""
    if tenant_id is None:
        raise ValidationError("tenant_id", "is required")
    ticket = session.execute(
        select(FieldTicketModel)
        .where(
            FieldTicketModel.id == ticket_id,
            FieldTicketModel.tenant_id == tenant_id,
            FieldTicketModel.is_deleted.is_(False),
        )
        .with_for_update(of=FieldTicketModel)
        .execution_options(populate_existing=True)
    ).unique().scalar_one_or_none()
    if ticket is None:
        raise TicketNotFoundError(str(ticket_id))
    return ticket


def apply_transition(ticket: FieldTicketModel, action: str) -> str:
    """
    Move ``ticket`` along ``action`` and return the new status.

    Raises:
        InvalidTransitionError: no transition for ``action`` out of the
            current status.  The ticket is left unchanged.
    """
    transition = FIELD_TICKET_WORKFLOW.find_transition(ticket.status, action)
    if transition is None:
        raise InvalidTransitionError(str(ticket.id), ticket.status, action)
    from_status = ticket.status
    ticket.status = transition.to_state
    logger.info(
        "field_ticket_transition",
        extra={
            "ticket_number": ticket.ticket_number,
            "from_status": from_status,
            "to_status": transition.to_state,
            "action": action,
        },
    )
    return transition.to_state


class FieldTicketService(BaseService[FieldTicketModel]):
    """
    Orchestrates field ticket writes.

    Contract
    --------
    * Methods return the persisted ``FieldTicketModel`` after commit.
    * The session passed in is committed or rolled back by every public
      method; callers should not hold other pending work on it.

    Non-goals
    ---------
    * Authorization (who may approve, who counts as elevated) is decided
      by the caller and passed in.
    * Photo and signature image storage.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        numbering: NumberingSettings | None = None,
        notifier: Notifier | None = None,
        notification_executor: Executor | None = None,
    ):
        super().__init__(session, clock)
        self._numbering = numbering or NumberingSettings()
        self._allocator = TicketNumberAllocator(session, self._numbering)
        self._dispatcher: NotificationDispatcher | None = None
        if notifier is not None:
            self._dispatcher = NotificationDispatcher(notifier, notification_executor)
            self._dispatcher.install(session)
        install_recompute_listener(session)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(self, ticket_id: UUID, operation: Callable[[], T]) -> T:
        try:
            return self._commit_or_rollback(operation)
        except StaleDataError as exc:
            raise OptimisticLockError("FieldTicket", str(ticket_id)) from exc

    def _load_job(self, tenant_id: UUID, job_id: UUID) -> JobModel:
        job = self.session.execute(
            select(JobModel).where(
                JobModel.id == job_id,
                JobModel.tenant_id == tenant_id,
                JobModel.is_deleted.is_(False),
            )
        ).scalar_one_or_none()
        if job is None:
            raise JobNotFoundError(str(job_id))
        return job

    def _touch(self, ticket: FieldTicketModel, actor_id: UUID, now: datetime) -> None:
        ticket.updated_by_id = actor_id
        ticket.updated_at = now

    def _notify(self, notification: Notification | None) -> None:
        if self._dispatcher is not None and notification is not None:
            self._dispatcher.enqueue(self.session, notification)

    @staticmethod
    def _require_editable(ticket: FieldTicketModel, action: str) -> None:
        if ticket.status not in EDITABLE_STATUSES:
            raise TicketNotEditableError(
                str(ticket.id),
                ticket.status,
                action,
                reason="entries can only change in draft or pending_signature",
            )

    # ------------------------------------------------------------------
    # Create / read / edit
    # ------------------------------------------------------------------

    def create_ticket(
        self,
        tenant_id: UUID,
        actor_id: UUID,
        draft: TicketDraft,
    ) -> FieldTicketModel:
        """
        Open a new ticket in ``draft`` with an allocated ticket number.

        Client-supplied totals do not exist on ``TicketDraft``; totals are
        computed from the entries before the row is written.
        """
        if tenant_id is None:
            raise ValidationError("tenant_id", "is required")
        check_ticket_draft(draft)

        attempts = self._numbering.max_allocation_attempts
        last_error: Exception | None = None
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            for attempt in range(1, attempts + 1):
                try:
                    return self._commit_or_rollback(
                        lambda: self._insert_ticket(tenant_id, actor_id, draft)
                    )
                except (IntegrityError, OperationalError) as exc:
                    last_error = exc
                    logger.warning(
                        "ticket_number_allocation_retry",
                        extra={"attempt": attempt, "max_attempts": attempts,
                               "error": type(exc).__name__},
                    )
            year = self._clock.now_utc().year
            raise SequenceAllocationConflictError(
                sequence_name(tenant_id, year), attempts
            ) from last_error

    def _insert_ticket(
        self,
        tenant_id: UUID,
        actor_id: UUID,
        draft: TicketDraft,
    ) -> FieldTicketModel:
        now = self._clock.now_utc()
        self._load_job(tenant_id, draft.job_id)
        ticket_number = self._allocator.allocate(tenant_id, now.year)

        location = draft.location
        ticket = FieldTicketModel(
            tenant_id=tenant_id,
            job_id=draft.job_id,
            ticket_number=ticket_number,
            change_reason=draft.change_reason.value,
            change_description=draft.change_description.strip(),
            work_date=draft.work_date,
            work_start_time=draft.work_start_time,
            work_end_time=draft.work_end_time,
            latitude=location.latitude,
            longitude=location.longitude,
            accuracy=location.accuracy,
            altitude=location.altitude,
            location_captured_at=location.captured_at or now,
            location_description=draft.location_description,
            markup_rate=draft.markup_rate,
            status=FIELD_TICKET_WORKFLOW.initial_state,
            foreman_name=draft.foreman_name,
            internal_notes=draft.internal_notes,
            offline_id=draft.offline_id,
            sync_status=(
                SyncStatus.PENDING.value if draft.offline_id else SyncStatus.SYNCED.value
            ),
            synced_at=None if draft.offline_id else now,
            created_at=now,
            updated_at=now,
            created_by_id=actor_id,
        )
        ticket.labor_entries = [_labor_row(e, i) for i, e in enumerate(draft.labor_entries)]
        ticket.equipment_entries = [
            _equipment_row(e, i) for i, e in enumerate(draft.equipment_entries)
        ]
        ticket.material_entries = [
            _material_row(e, i) for i, e in enumerate(draft.material_entries)
        ]
        ticket.photos = [_photo_row(p, i, now) for i, p in enumerate(draft.photos)]
        recompute_ticket(ticket)

        self.session.add(ticket)
        self.session.flush()
        logger.info(
            "field_ticket_created",
            extra={
                "ticket_number": ticket.ticket_number,
                "job_id": str(draft.job_id),
                "total_amount": str(ticket.total_amount),
            },
        )
        return ticket

    def get_ticket(self, tenant_id: UUID, ticket_id: UUID) -> FieldTicketModel:
        """Load a visible ticket with its entries, photos and signature."""
        if tenant_id is None:
            raise ValidationError("tenant_id", "is required")
        ticket = self.session.execute(
            select(FieldTicketModel).where(
                FieldTicketModel.id == ticket_id,
                FieldTicketModel.tenant_id == tenant_id,
                FieldTicketModel.is_deleted.is_(False),
            )
        ).unique().scalar_one_or_none()
        if ticket is None:
            raise TicketNotFoundError(str(ticket_id))
        return ticket

    def update_ticket(
        self,
        tenant_id: UUID,
        ticket_id: UUID,
        actor_id: UUID,
        update: TicketUpdate,
    ) -> FieldTicketModel:
        """Apply a partial update while the ticket is editable.

        An entry list in ``update`` replaces the ticket's list wholesale.
        """
        check_ticket_update(update)

        def operation() -> FieldTicketModel:
            ticket = load_ticket_for_update(self.session, tenant_id, ticket_id)
            self._require_editable(ticket, "update")
            now = self._clock.now_utc()

            for name in ("change_description", "work_date", "work_start_time",
                         "work_end_time", "location_description", "internal_notes",
                         "markup_rate"):
                value = getattr(update, name)
                if value is not None:
                    setattr(ticket, name, value)
            if update.change_reason is not None:
                ticket.change_reason = update.change_reason.value
            if update.labor_entries is not None:
                ticket.labor_entries = [
                    _labor_row(e, i) for i, e in enumerate(update.labor_entries)
                ]
            if update.equipment_entries is not None:
                ticket.equipment_entries = [
                    _equipment_row(e, i) for i, e in enumerate(update.equipment_entries)
                ]
            if update.material_entries is not None:
                ticket.material_entries = [
                    _material_row(e, i) for i, e in enumerate(update.material_entries)
                ]
            recompute_ticket(ticket)
            self._touch(ticket, actor_id, now)
            self.session.flush()
            logger.info(
                "field_ticket_updated",
                extra={"ticket_number": ticket.ticket_number,
                       "total_amount": str(ticket.total_amount)},
            )
            return ticket

        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id, ticket_id=ticket_id):
            return self._run(ticket_id, operation)

    def add_photos(
        self,
        tenant_id: UUID,
        ticket_id: UUID,
        actor_id: UUID,
        photos: Sequence[PhotoInput],
    ) -> FieldTicketModel:
        """Append photo metadata to an editable ticket."""
        if not photos:
            raise ValidationError("photos", "at least one photo is required")
        for i, photo in enumerate(photos):
            check_photo(photo, f"photos[{i}]")

        def operation() -> FieldTicketModel:
            ticket = load_ticket_for_update(self.session, tenant_id, ticket_id)
            self._require_editable(ticket, "add_photos")
            now = self._clock.now_utc()
            start = len(ticket.photos)
            for i, photo in enumerate(photos):
                ticket.photos.append(_photo_row(photo, start + i, now))
            self._touch(ticket, actor_id, now)
            self.session.flush()
            logger.info(
                "field_ticket_photos_added",
                extra={"ticket_number": ticket.ticket_number,
                       "photo_count": len(ticket.photos)},
            )
            return ticket

        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id, ticket_id=ticket_id):
            return self._run(ticket_id, operation)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def submit_for_signature(
        self,
        tenant_id: UUID,
        ticket_id: UUID,
        actor_id: UUID,
    ) -> FieldTicketModel:
        """``draft -> pending_signature``; requires at least one photo."""

        def operation() -> FieldTicketModel:
            ticket = load_ticket_for_update(self.session, tenant_id, ticket_id)
            if FIELD_TICKET_WORKFLOW.find_transition(ticket.status, SUBMIT) is None:
                raise InvalidTransitionError(str(ticket.id), ticket.status, SUBMIT)
            if not ticket.photos:
                raise PhotoRequiredError(str(ticket.id), ticket.status)
            now = self._clock.now_utc()
            recompute_ticket(ticket)
            apply_transition(ticket, SUBMIT)
            ticket.submitted_at = now
            ticket.submitted_by_id = actor_id
            self._touch(ticket, actor_id, now)
            self.session.flush()
            return ticket

        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id, ticket_id=ticket_id):
            return self._run(ticket_id, operation)

    def apply_signature(
        self,
        tenant_id: UUID,
        ticket_id: UUID,
        actor_id: UUID,
        signature: SignatureInput,
    ) -> FieldTicketModel:
        """``pending_signature -> signed``; stores the inspector signature."""
        check_signature(signature)

        def operation() -> FieldTicketModel:
            ticket = load_ticket_for_update(self.session, tenant_id, ticket_id)
            now = self._clock.now_utc()
            apply_transition(ticket, SIGN)
            ticket.inspector_signature = new_signature_record(
                tenant_id, actor_id, signature, now
            )
            self._touch(ticket, actor_id, now)
            self.session.flush()
            job = self.session.get(JobModel, ticket.job_id)
            self._notify(signed_notification(ticket, job, signature.signer_name))
            return ticket

        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id, ticket_id=ticket_id):
            return self._run(ticket_id, operation)

    def approve(
        self,
        tenant_id: UUID,
        ticket_id: UUID,
        actor_id: UUID,
        notes: str | None = None,
    ) -> FieldTicketModel:
        """``signed -> approved``; requires a stored inspector signature."""

        def operation() -> FieldTicketModel:
            ticket = load_ticket_for_update(self.session, tenant_id, ticket_id)
            if FIELD_TICKET_WORKFLOW.find_transition(ticket.status, APPROVE) is None:
                raise InvalidTransitionError(
                    str(ticket.id), ticket.status, APPROVE,
                    reason="only signed tickets can be approved",
                )
            if not ticket.has_signature:
                raise SignatureRequiredError(str(ticket.id), ticket.status)
            now = self._clock.now_utc()
            apply_transition(ticket, APPROVE)
            ticket.approved_at = now
            ticket.approved_by_id = actor_id
            ticket.approval_notes = notes
            self._touch(ticket, actor_id, now)
            self.session.flush()
            return ticket

        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id, ticket_id=ticket_id):
            return self._run(ticket_id, operation)

    def dispute(
        self,
        tenant_id: UUID,
        ticket_id: UUID,
        actor_id: UUID,
        reason: str,
        category: DisputeCategory = DisputeCategory.OTHER,
        evidence: Sequence[EvidenceInput] = (),
    ) -> FieldTicketModel:
        """
        Move an open ticket to ``disputed`` and append any evidence.

        Disputing an already disputed ticket updates the reason and category
        and keeps the status recorded before the first dispute.
        """
        if not reason or not reason.strip():
            raise ValidationError("reason", "dispute reason is required")
        if not isinstance(category, DisputeCategory):
            raise ValidationError("category", "must be a dispute category")
        check_evidence(evidence)

        def operation() -> FieldTicketModel:
            ticket = load_ticket_for_update(self.session, tenant_id, ticket_id)
            now = self._clock.now_utc()
            from_status = ticket.status
            apply_transition(ticket, DISPUTE)
            if from_status != TicketStatus.DISPUTED.value:
                ticket.disputed_from_status = from_status
            ticket.is_disputed = True
            ticket.disputed_at = now
            ticket.disputed_by_id = actor_id
            ticket.dispute_reason = reason.strip()
            ticket.dispute_category = category.value
            ticket.dispute_evidence.extend(
                _evidence_rows(evidence, len(ticket.dispute_evidence), actor_id, now)
            )
            self._touch(ticket, actor_id, now)
            self.session.flush()

            job = self.session.get(JobModel, ticket.job_id)
            if job is not None and job.owner_id is not None:
                self._notify(
                    Notification(
                        type=FIELD_TICKET_DISPUTED,
                        tenant_id=ticket.tenant_id,
                        recipient_id=job.owner_id,
                        ticket_id=ticket.id,
                        ticket_number=ticket.ticket_number,
                        title="Field Ticket Disputed",
                        message=(
                            f"Field ticket {ticket.ticket_number} for WO "
                            f"{job.wo_number} was disputed: {ticket.dispute_reason}"
                        ),
                        link=f"/billing/field-tickets/{ticket.id}",
                    )
                )
            return ticket

        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id, ticket_id=ticket_id):
            return self._run(ticket_id, operation)

    def resolve_dispute(
        self,
        tenant_id: UUID,
        ticket_id: UUID,
        actor_id: UUID,
        resolution: str,
        evidence: Sequence[EvidenceInput] = (),
        replacement_signature: SignatureInput | None = None,
    ) -> FieldTicketModel:
        """
        ``disputed -> signed``.

        A ticket disputed before it was ever signed needs a replacement
        signature to resolve.  New evidence is appended to the existing
        trail.  A replacement signature, when given, becomes the ticket's
        current signature; the previous signature row is kept.
        """
        check_evidence(evidence)
        if replacement_signature is not None:
            check_signature(replacement_signature, "replacement_signature")

        def operation() -> FieldTicketModel:
            ticket = load_ticket_for_update(self.session, tenant_id, ticket_id)
            if FIELD_TICKET_WORKFLOW.find_transition(ticket.status, RESOLVE_DISPUTE) is None:
                raise InvalidTransitionError(
                    str(ticket.id), ticket.status, RESOLVE_DISPUTE,
                    reason="only disputed tickets can be resolved",
                )
            if not resolution or not resolution.strip():
                raise ValidationError("resolution", "dispute resolution is required")
            if not ticket.has_signature and replacement_signature is None:
                raise SignatureRequiredError(
                    str(ticket.id),
                    ticket.status,
                    RESOLVE_DISPUTE,
                    reason="ticket was never signed; resolve with a replacement signature",
                )
            now = self._clock.now_utc()
            apply_transition(ticket, RESOLVE_DISPUTE)
            ticket.dispute_resolution = resolution.strip()
            ticket.dispute_resolved_at = now
            ticket.dispute_resolved_by_id = actor_id
            ticket.dispute_evidence.extend(
                _evidence_rows(evidence, len(ticket.dispute_evidence), actor_id, now)
            )
            if replacement_signature is not None:
                ticket.inspector_signature = new_signature_record(
                    tenant_id, actor_id, replacement_signature, now
                )
            self._touch(ticket, actor_id, now)
            self.session.flush()
            return ticket

        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id, ticket_id=ticket_id):
            return self._run(ticket_id, operation)

    def mark_billed(
        self,
        tenant_id: UUID,
        ticket_id: UUID,
        actor_id: UUID,
        claim_id: str,
    ) -> FieldTicketModel:
        """``approved -> billed``, recording the claim the ticket went onto."""
        if not claim_id or not str(claim_id).strip():
            raise ValidationError("claim_id", "is required")

        def operation() -> FieldTicketModel:
            ticket = load_ticket_for_update(self.session, tenant_id, ticket_id)
            now = self._clock.now_utc()
            apply_transition(ticket, MARK_BILLED)
            ticket.claim_id = str(claim_id).strip()
            ticket.billed_at = now
            ticket.billed_by_id = actor_id
            self._touch(ticket, actor_id, now)
            self.session.flush()
            return ticket

        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id, ticket_id=ticket_id):
            return self._run(ticket_id, operation)

    def soft_delete(
        self,
        tenant_id: UUID,
        ticket_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
        elevated: bool = False,
    ) -> FieldTicketModel:
        """
        Flag a ticket as deleted.  The row is kept for audit.

        Only drafts may be deleted unless the caller has elevated privilege.
        """

        def operation() -> FieldTicketModel:
            ticket = load_ticket_for_update(self.session, tenant_id, ticket_id)
            if ticket.status != TicketStatus.DRAFT.value and not elevated:
                raise TicketNotDeletableError(
                    str(ticket.id), ticket.status, "delete",
                    reason="only draft tickets can be deleted",
                )
            now = self._clock.now_utc()
            ticket.is_deleted = True
            ticket.deleted_at = now
            ticket.deleted_by_id = actor_id
            ticket.delete_reason = (reason or "").strip() or "Deleted by user"
            self._touch(ticket, actor_id, now)
            self.session.flush()
            logger.info(
                "field_ticket_deleted",
                extra={"ticket_number": ticket.ticket_number, "status": ticket.status,
                       "elevated": elevated},
            )
            return ticket

        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id, ticket_id=ticket_id):
            return self._run(ticket_id, operation)
