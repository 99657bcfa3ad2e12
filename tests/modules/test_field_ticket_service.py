"""
Tests for the Field Ticket Module Service.

Validates:
- Ticket creation: numbering, server-side totals, job scoping, offline capture
- Editing: entry replacement, recomputation, editable-status rule
- Lifecycle: submit, sign, approve, dispute, resolve, mark billed
- Failed preconditions leave the ticket exactly as it was
- Signatures and dispute evidence are never modified
- Tenant isolation and soft delete
- Notifications after commit only; notifier failures do not fail the operation
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm.exc import StaleDataError

from fieldledger_kernel.domain.clock import as_utc
from fieldledger_kernel.exceptions import (
    ImmutabilityViolationError,
    InvalidTransitionError,
    JobNotFoundError,
    OptimisticLockError,
    PhotoRequiredError,
    SignatureRequiredError,
    TicketNotDeletableError,
    TicketNotEditableError,
    TicketNotFoundError,
    ValidationError,
)
from fieldledger_modules.field_tickets.models import (
    DisputeCategory,
    EvidenceInput,
    EvidenceType,
    LaborEntryInput,
    SyncStatus,
    TicketUpdate,
)
from fieldledger_modules.field_tickets.notifications import (
    FIELD_TICKET_DISPUTED,
    FIELD_TICKET_SIGNED,
)
from fieldledger_modules.field_tickets.orm import (
    DisputeEvidenceModel,
    FieldTicketModel,
    InspectorSignatureModel,
)
from fieldledger_modules.field_tickets.service import FieldTicketService
from tests.conftest import (
    FIXED_NOW,
    OTHER_TENANT_ID,
    TEST_OWNER_ID,
    RecordingNotifier,
    draft_for,
    photo,
    sample_equipment,
    sample_labor,
    sample_material,
    signature,
)


def _evidence(url="https://files.example.com/e1.jpg"):
    return EvidenceInput(url=url, evidence_type=EvidenceType.PHOTO)


def _reload(session, ticket_id) -> FieldTicketModel:
    session.expire_all()
    return session.get(FieldTicketModel, ticket_id)


# =============================================================================
# Creation
# =============================================================================


class TestCreateTicket:

    def test_totals_computed_server_side(self, ticket_service, tenant_id, actor_id, job, session):
        ticket = ticket_service.create_ticket(
            tenant_id,
            actor_id,
            draft_for(
                job.id,
                labor=[sample_labor()],
                equipment=[sample_equipment()],
                material=[sample_material()],
                markup_rate=Decimal("10"),
            ),
        )
        stored = _reload(session, ticket.id)
        assert stored.labor_total == Decimal("550")
        assert stored.equipment_total == Decimal("1350")
        assert stored.material_total == Decimal("1840")
        assert stored.subtotal == Decimal("3740")
        assert stored.markup == Decimal("374")
        assert stored.total_amount == Decimal("4114")
        assert stored.status == "draft"

    def test_sequential_ticket_numbers(self, ticket_service, tenant_id, actor_id, job):
        first = ticket_service.create_ticket(tenant_id, actor_id, draft_for(job.id))
        second = ticket_service.create_ticket(tenant_id, actor_id, draft_for(job.id))
        assert first.ticket_number == "FT-2024-00001"
        assert second.ticket_number == "FT-2024-00002"

    def test_numbering_is_per_tenant(self, ticket_service, make_job, tenant_id, actor_id, job):
        other_job = make_job(tenant_id=OTHER_TENANT_ID, wo_number="WO-9")
        ticket_service.create_ticket(tenant_id, actor_id, draft_for(job.id))
        other = ticket_service.create_ticket(OTHER_TENANT_ID, actor_id, draft_for(other_job.id))
        assert other.ticket_number == "FT-2024-00001"

    def test_created_at_from_clock(self, ticket_service, tenant_id, actor_id, job):
        ticket = ticket_service.create_ticket(tenant_id, actor_id, draft_for(job.id))
        assert as_utc(ticket.created_at) == FIXED_NOW
        assert ticket.created_by_id == actor_id

    def test_job_in_other_tenant_is_not_found(self, ticket_service, make_job, tenant_id, actor_id):
        other_job = make_job(tenant_id=OTHER_TENANT_ID)
        with pytest.raises(JobNotFoundError):
            ticket_service.create_ticket(tenant_id, actor_id, draft_for(other_job.id))

    def test_deleted_job_is_not_found(self, ticket_service, make_job, tenant_id, actor_id):
        deleted = make_job(is_deleted=True)
        with pytest.raises(JobNotFoundError):
            ticket_service.create_ticket(tenant_id, actor_id, draft_for(deleted.id))

    def test_failed_create_consumes_no_number(
        self, ticket_service, make_job, tenant_id, actor_id, job
    ):
        deleted = make_job(is_deleted=True, wo_number="WO-2")
        with pytest.raises(JobNotFoundError):
            ticket_service.create_ticket(tenant_id, actor_id, draft_for(deleted.id))
        ticket = ticket_service.create_ticket(tenant_id, actor_id, draft_for(job.id))
        assert ticket.ticket_number == "FT-2024-00001"

    def test_invalid_entry_rejected_before_write(
        self, ticket_service, session, tenant_id, actor_id, job
    ):
        bad = LaborEntryInput(worker_name="X", regular_rate=Decimal("0"))
        with pytest.raises(ValidationError) as exc_info:
            ticket_service.create_ticket(tenant_id, actor_id, draft_for(job.id, labor=[bad]))
        assert exc_info.value.field == "labor_entries[0].regular_rate"
        assert session.scalar(select(func.count()).select_from(FieldTicketModel)) == 0

    def test_offline_capture_pending_sync(self, ticket_service, tenant_id, actor_id, job):
        ticket = ticket_service.create_ticket(
            tenant_id, actor_id, draft_for(job.id, offline_id="device-1:42")
        )
        assert ticket.sync_status == SyncStatus.PENDING.value
        assert ticket.synced_at is None

    def test_logs_creation(self, ticket_service, tenant_id, actor_id, job, captured_logs):
        ticket_service.create_ticket(tenant_id, actor_id, draft_for(job.id))
        records = [r for r in captured_logs() if r["message"] == "field_ticket_created"]
        assert records and records[0]["ticket_number"] == "FT-2024-00001"


# =============================================================================
# Editing
# =============================================================================


class TestUpdateTicket:

    def test_replacing_entries_recomputes(self, ticket_service, make_ticket, session, tenant_id, actor_id):
        ticket = make_ticket("draft", labor=[sample_labor()])
        update = TicketUpdate(
            labor_entries=(
                LaborEntryInput(
                    worker_name="A. Jones",
                    regular_rate=Decimal("60"),
                    regular_hours=Decimal("4"),
                ),
            ),
            material_entries=(sample_material(),),
        )
        ticket_service.update_ticket(tenant_id, ticket.id, actor_id, update)
        stored = _reload(session, ticket.id)
        assert len(stored.labor_entries) == 1
        assert stored.labor_total == Decimal("240")
        assert stored.material_total == Decimal("1840")
        assert stored.total_amount == Decimal("2080")
        assert stored.updated_by_id == actor_id

    def test_pending_signature_is_editable(self, ticket_service, make_ticket, tenant_id, actor_id):
        ticket = make_ticket("pending_signature")
        updated = ticket_service.update_ticket(
            tenant_id, ticket.id, actor_id, TicketUpdate(markup_rate=Decimal("5"))
        )
        assert updated.markup == Decimal("27.50")

    @pytest.mark.parametrize("status", ["signed", "approved"])
    def test_locked_after_signature(self, ticket_service, make_ticket, session, tenant_id, actor_id, status):
        ticket = make_ticket(status)
        total_before = ticket.total_amount
        with pytest.raises(TicketNotEditableError):
            ticket_service.update_ticket(
                tenant_id, ticket.id, actor_id, TicketUpdate(markup_rate=Decimal("50"))
            )
        assert _reload(session, ticket.id).total_amount == total_before

    def test_direct_entry_change_recomputed_on_flush(self, ticket_service, make_ticket, session):
        ticket = make_ticket("draft", labor=[sample_labor()])
        stored = _reload(session, ticket.id)
        stored.labor_entries[0].regular_hours = Decimal("10")
        session.commit()
        assert _reload(session, ticket.id).labor_total == Decimal("650")

    def test_add_photos(self, ticket_service, make_ticket, tenant_id, actor_id):
        ticket = make_ticket("draft", photos=())
        updated = ticket_service.add_photos(
            tenant_id, ticket.id, actor_id, [photo("https://x/1.jpg"), photo("https://x/2.jpg")]
        )
        assert [p.position for p in updated.photos] == [0, 1]
        assert as_utc(updated.photos[0].captured_at) == FIXED_NOW

    def test_add_photos_after_signature_rejected(self, ticket_service, make_ticket, tenant_id, actor_id):
        ticket = make_ticket("signed")
        with pytest.raises(TicketNotEditableError):
            ticket_service.add_photos(tenant_id, ticket.id, actor_id, [photo()])

    def test_add_photos_requires_one(self, ticket_service, make_ticket, tenant_id, actor_id):
        ticket = make_ticket("draft")
        with pytest.raises(ValidationError):
            ticket_service.add_photos(tenant_id, ticket.id, actor_id, [])


# =============================================================================
# Lifecycle
# =============================================================================


class TestSubmitAndSign:

    def test_submit_without_photo_fails_and_stays_draft(
        self, ticket_service, make_ticket, session, tenant_id, actor_id
    ):
        ticket = make_ticket("draft", photos=())
        with pytest.raises(PhotoRequiredError):
            ticket_service.submit_for_signature(tenant_id, ticket.id, actor_id)
        stored = _reload(session, ticket.id)
        assert stored.status == "draft"
        assert stored.submitted_at is None

    def test_submit(self, ticket_service, make_ticket, tenant_id, actor_id):
        ticket = make_ticket("draft")
        submitted = ticket_service.submit_for_signature(tenant_id, ticket.id, actor_id)
        assert submitted.status == "pending_signature"
        assert as_utc(submitted.submitted_at) == FIXED_NOW
        assert submitted.submitted_by_id == actor_id

    def test_submit_twice_rejected(self, ticket_service, make_ticket, tenant_id, actor_id):
        ticket = make_ticket("pending_signature")
        with pytest.raises(InvalidTransitionError):
            ticket_service.submit_for_signature(tenant_id, ticket.id, actor_id)

    def test_sign_stores_signature_and_notifies(
        self, ticket_service, make_ticket, session, notifier, tenant_id, actor_id, job
    ):
        ticket = make_ticket("pending_signature")
        signed = ticket_service.apply_signature(tenant_id, ticket.id, actor_id, signature())
        assert signed.status == "signed"
        assert signed.has_signature
        assert signed.inspector_signature.signer_name == "Pat Inspector"
        assert signed.inspector_signature.batch_id is None
        sent = [n for n in notifier.sent if n.type == FIELD_TICKET_SIGNED]
        assert len(sent) == 1
        assert sent[0].recipient_id == TEST_OWNER_ID
        assert sent[0].ticket_number == ticket.ticket_number
        assert job.wo_number in sent[0].message

    def test_sign_draft_rejected(self, ticket_service, make_ticket, notifier, tenant_id, actor_id):
        ticket = make_ticket("draft")
        with pytest.raises(InvalidTransitionError):
            ticket_service.apply_signature(tenant_id, ticket.id, actor_id, signature())
        assert notifier.sent == []

    def test_sign_requires_signer_name(self, ticket_service, make_ticket, tenant_id, actor_id):
        ticket = make_ticket("pending_signature")
        with pytest.raises(ValidationError):
            ticket_service.apply_signature(tenant_id, ticket.id, actor_id, signature(name=" "))

    def test_failing_notifier_does_not_fail_signing(
        self, session, deterministic_clock, make_ticket, tenant_id, actor_id, captured_logs
    ):
        ticket = make_ticket("pending_signature")
        service = FieldTicketService(
            session, clock=deterministic_clock, notifier=RecordingNotifier(fail=True)
        )
        signed = service.apply_signature(tenant_id, ticket.id, actor_id, signature())
        assert signed.status == "signed"
        assert any(r["message"] == "notification_dispatch_failed" for r in captured_logs())


class TestApprove:

    def test_approve_signed(self, ticket_service, make_ticket, tenant_id, actor_id):
        ticket = make_ticket("signed")
        approved = ticket_service.approve(tenant_id, ticket.id, actor_id, notes="ok")
        assert approved.status == "approved"
        assert approved.approval_notes == "ok"
        assert as_utc(approved.approved_at) == FIXED_NOW

    def test_approve_without_signature_fails_and_stays_signed(
        self, ticket_service, make_ticket, session, tenant_id, actor_id
    ):
        ticket = make_ticket("draft")
        stored = _reload(session, ticket.id)
        stored.status = "signed"
        session.commit()

        with pytest.raises(SignatureRequiredError):
            ticket_service.approve(tenant_id, ticket.id, actor_id)
        assert _reload(session, ticket.id).status == "signed"

    @pytest.mark.parametrize("status", ["draft", "pending_signature"])
    def test_approve_unsigned_status_rejected(self, ticket_service, make_ticket, tenant_id, actor_id, status):
        ticket = make_ticket(status)
        with pytest.raises(InvalidTransitionError):
            ticket_service.approve(tenant_id, ticket.id, actor_id)


class TestDispute:

    @pytest.mark.parametrize("status", ["draft", "pending_signature", "signed", "approved"])
    def test_dispute_records_origin(self, ticket_service, make_ticket, tenant_id, actor_id, status):
        ticket = make_ticket(status)
        disputed = ticket_service.dispute(
            tenant_id, ticket.id, actor_id, "Hours overstated",
            category=DisputeCategory.HOURS, evidence=[_evidence()],
        )
        assert disputed.status == "disputed"
        assert disputed.disputed_from_status == status
        assert disputed.is_disputed
        assert disputed.dispute_category == "hours"
        assert len(disputed.dispute_evidence) == 1
        assert disputed.dispute_evidence[0].added_by_id == actor_id

    def test_dispute_notifies_owner(self, ticket_service, make_ticket, notifier, tenant_id, actor_id):
        ticket = make_ticket("signed")
        ticket_service.dispute(tenant_id, ticket.id, actor_id, "Rates wrong")
        sent = [n for n in notifier.sent if n.type == FIELD_TICKET_DISPUTED]
        assert len(sent) == 1
        assert "Rates wrong" in sent[0].message

    def test_dispute_requires_reason(self, ticket_service, make_ticket, session, tenant_id, actor_id):
        ticket = make_ticket("signed")
        with pytest.raises(ValidationError):
            ticket_service.dispute(tenant_id, ticket.id, actor_id, "   ")
        assert _reload(session, ticket.id).status == "signed"

    def test_cannot_dispute_billed(self, ticket_service, make_ticket, tenant_id, actor_id):
        ticket = make_ticket("billed")
        with pytest.raises(InvalidTransitionError):
            ticket_service.dispute(tenant_id, ticket.id, actor_id, "late")

    def test_dispute_again_keeps_origin_and_evidence(
        self, ticket_service, make_ticket, tenant_id, actor_id
    ):
        ticket = make_ticket("signed")
        ticket_service.dispute(tenant_id, ticket.id, actor_id, "first", evidence=[_evidence()])
        again = ticket_service.dispute(
            tenant_id, ticket.id, actor_id, "second",
            category=DisputeCategory.HOURS,
            evidence=[_evidence("https://files.example.com/e2.pdf")],
        )
        assert again.status == "disputed"
        assert again.disputed_from_status == "signed"
        assert again.dispute_reason == "second"
        assert again.dispute_category == "hours"
        assert [e.position for e in again.dispute_evidence] == [0, 1]
        assert again.dispute_evidence[0].url == "https://files.example.com/e1.jpg"


class TestResolveDispute:

    def test_resolve_on_draft_fails(self, ticket_service, make_ticket, session, tenant_id, actor_id):
        ticket = make_ticket("draft")
        with pytest.raises(InvalidTransitionError):
            ticket_service.resolve_dispute(tenant_id, ticket.id, actor_id, "fixed")
        assert _reload(session, ticket.id).status == "draft"

    def test_resolve_appends_evidence(self, ticket_service, make_ticket, session, tenant_id, actor_id):
        ticket = make_ticket("signed")
        ticket_service.dispute(tenant_id, ticket.id, actor_id, "hours", evidence=[_evidence()])
        resolved = ticket_service.resolve_dispute(
            tenant_id, ticket.id, actor_id, "Hours corrected on timesheet",
            evidence=[_evidence("https://files.example.com/e2.pdf")],
        )
        assert resolved.status == "signed"
        assert resolved.dispute_resolution == "Hours corrected on timesheet"
        assert resolved.is_disputed
        assert [e.position for e in resolved.dispute_evidence] == [0, 1]
        assert resolved.dispute_evidence[0].url == "https://files.example.com/e1.jpg"

    def test_resolve_requires_resolution(self, ticket_service, make_ticket, tenant_id, actor_id):
        ticket = make_ticket("signed")
        ticket_service.dispute(tenant_id, ticket.id, actor_id, "hours")
        with pytest.raises(ValidationError):
            ticket_service.resolve_dispute(tenant_id, ticket.id, actor_id, "")

    def test_replacement_signature_keeps_previous(
        self, ticket_service, make_ticket, session, tenant_id, actor_id
    ):
        ticket = make_ticket("signed")
        original_signature_id = ticket.inspector_signature_id
        ticket_service.dispute(tenant_id, ticket.id, actor_id, "scope")
        resolved = ticket_service.resolve_dispute(
            tenant_id, ticket.id, actor_id, "re-walked with inspector",
            replacement_signature=signature(name="Sam Supervisor"),
        )
        assert resolved.inspector_signature_id != original_signature_id
        assert resolved.inspector_signature.signer_name == "Sam Supervisor"
        previous = session.get(InspectorSignatureModel, original_signature_id)
        assert previous.signer_name == "Pat Inspector"

    @pytest.mark.parametrize("status", ["draft", "pending_signature"])
    def test_resolve_unsigned_requires_signature(
        self, ticket_service, make_ticket, session, tenant_id, actor_id, status
    ):
        ticket = make_ticket(status)
        ticket_service.dispute(tenant_id, ticket.id, actor_id, "scope")
        with pytest.raises(SignatureRequiredError):
            ticket_service.resolve_dispute(tenant_id, ticket.id, actor_id, "fixed")
        reloaded = _reload(session, ticket.id)
        assert reloaded.status == "disputed"
        assert reloaded.inspector_signature_id is None

    def test_resolve_unsigned_with_replacement_signature(
        self, ticket_service, make_ticket, tenant_id, actor_id
    ):
        ticket = make_ticket("draft")
        ticket_service.dispute(tenant_id, ticket.id, actor_id, "scope")
        resolved = ticket_service.resolve_dispute(
            tenant_id, ticket.id, actor_id, "walked with inspector",
            replacement_signature=signature(),
        )
        assert resolved.status == "signed"
        assert resolved.inspector_signature.signer_name == "Pat Inspector"

    def test_resolved_ticket_can_be_approved(self, ticket_service, make_ticket, tenant_id, actor_id):
        ticket = make_ticket("approved")
        ticket_service.dispute(tenant_id, ticket.id, actor_id, "quality")
        ticket_service.resolve_dispute(tenant_id, ticket.id, actor_id, "accepted")
        assert ticket_service.approve(tenant_id, ticket.id, actor_id).status == "approved"


class TestMarkBilled:

    def test_mark_billed(self, ticket_service, make_ticket, tenant_id, actor_id):
        ticket = make_ticket("approved")
        billed = ticket_service.mark_billed(tenant_id, ticket.id, actor_id, "CLM-77")
        assert billed.status == "billed"
        assert billed.claim_id == "CLM-77"
        assert as_utc(billed.billed_at) == FIXED_NOW

    def test_requires_claim(self, ticket_service, make_ticket, tenant_id, actor_id):
        ticket = make_ticket("approved")
        with pytest.raises(ValidationError):
            ticket_service.mark_billed(tenant_id, ticket.id, actor_id, "")

    def test_signed_cannot_be_billed(self, ticket_service, make_ticket, tenant_id, actor_id):
        ticket = make_ticket("signed")
        with pytest.raises(InvalidTransitionError):
            ticket_service.mark_billed(tenant_id, ticket.id, actor_id, "CLM-1")


# =============================================================================
# Immutability
# =============================================================================


class TestImmutableRecords:

    def test_signature_cannot_be_modified(self, make_ticket, session):
        ticket = make_ticket("signed")
        stored = session.get(InspectorSignatureModel, ticket.inspector_signature_id)
        stored.signer_name = "Someone Else"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_signature_cannot_be_deleted(self, make_ticket, session):
        ticket = make_ticket("signed")
        stored = session.get(InspectorSignatureModel, ticket.inspector_signature_id)
        session.delete(stored)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_evidence_cannot_be_modified(self, ticket_service, make_ticket, session, tenant_id, actor_id):
        ticket = make_ticket("signed")
        ticket_service.dispute(tenant_id, ticket.id, actor_id, "hours", evidence=[_evidence()])
        evidence = session.scalars(select(DisputeEvidenceModel)).one()
        evidence.description = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()


# =============================================================================
# Scoping, deletion and concurrency
# =============================================================================


class TestTenantScopeAndDeletion:

    def test_other_tenant_sees_not_found(self, ticket_service, make_ticket, actor_id):
        ticket = make_ticket("draft")
        with pytest.raises(TicketNotFoundError):
            ticket_service.get_ticket(OTHER_TENANT_ID, ticket.id)
        with pytest.raises(TicketNotFoundError):
            ticket_service.submit_for_signature(OTHER_TENANT_ID, ticket.id, actor_id)

    def test_soft_delete_draft(self, ticket_service, make_ticket, session, tenant_id, actor_id):
        ticket = make_ticket("draft")
        deleted = ticket_service.soft_delete(tenant_id, ticket.id, actor_id)
        assert deleted.is_deleted
        assert deleted.delete_reason == "Deleted by user"
        with pytest.raises(TicketNotFoundError):
            ticket_service.get_ticket(tenant_id, ticket.id)
        # Row is kept
        assert session.get(FieldTicketModel, ticket.id) is not None

    def test_soft_delete_signed_requires_elevation(self, ticket_service, make_ticket, tenant_id, actor_id):
        ticket = make_ticket("signed")
        with pytest.raises(TicketNotDeletableError):
            ticket_service.soft_delete(tenant_id, ticket.id, actor_id)
        deleted = ticket_service.soft_delete(
            tenant_id, ticket.id, actor_id, reason="duplicate", elevated=True
        )
        assert deleted.delete_reason == "duplicate"

    def test_stale_write_becomes_optimistic_lock_error(
        self, ticket_service, make_ticket, session, tenant_id, actor_id, monkeypatch
    ):
        ticket = make_ticket("draft")

        def _stale_flush(*args, **kwargs):
            raise StaleDataError("version mismatch")

        monkeypatch.setattr(session, "flush", _stale_flush)
        with pytest.raises(OptimisticLockError):
            ticket_service.submit_for_signature(tenant_id, ticket.id, actor_id)
        monkeypatch.undo()
        assert _reload(session, ticket.id).status == "draft"


class TestWorkDate:

    def test_work_date_round_trips(self, ticket_service, tenant_id, actor_id, job, session):
        ticket = ticket_service.create_ticket(
            tenant_id, actor_id, draft_for(job.id, work_date=date(2023, 12, 31))
        )
        assert _reload(session, ticket.id).work_date == date(2023, 12, 31)
