"""
SQLAlchemy ORM persistence models for the Field Ticket module.

Responsibility
--------------
Provide database-backed persistence for field tickets and everything
embedded in them: labor, equipment and material entries, photos, the
inspector signature, and the dispute evidence trail.  Also holds the
minimal ``JobModel`` a ticket must reference.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``FieldTicketService`` and
``FieldTicketSelector``.  Jobs, tickets and signatures inherit from
``TrackedBase``; entries, photos and evidence are owned rows of a ticket
and inherit from ``Base``.

Invariants enforced
-------------------
* All monetary fields and rates use ``Decimal`` (Numeric(38,9)) -- NEVER float.
* Enum fields stored as String(50) for readability and portability.
* ``(tenant_id, ticket_number)`` is unique.
* ``FieldTicketModel.version`` is an optimistic lock: a flush that updates
  a ticket row changed by another transaction raises ``StaleDataError``.
* ``InspectorSignatureModel`` rows are immutable once written.  A ticket
  points at its current signature; replacing a signature inserts a new row
  and repoints the ticket, leaving the old row for audit.
* ``DisputeEvidenceModel`` rows are append-only.

Audit relevance
---------------
* Workflow timestamp/actor pairs (submitted, approved, disputed,
  dispute-resolved, billed) are columns on the ticket.
* Soft delete keeps the row; ``is_deleted`` excludes it from every query.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fieldledger_kernel.db.base import Base, TrackedBase
from fieldledger_kernel.domain.clock import as_utc
from fieldledger_kernel.exceptions import ImmutabilityViolationError


# ---------------------------------------------------------------------------
# JobModel
# ---------------------------------------------------------------------------


class JobModel(TrackedBase):
    """
    A work order that field tickets are raised against.

    Guarantees:
        - Belongs to exactly one tenant.
        - Soft-deleted jobs cannot receive new tickets.
    """

    __tablename__ = "jobs"

    __table_args__ = (
        Index("idx_job_tenant", "tenant_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(nullable=False)
    wo_number: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    # Project manager notified about signatures and disputes
    owner_id: Mapped[UUID | None]
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<JobModel {self.wo_number}>"


# ---------------------------------------------------------------------------
# InspectorSignatureModel
# ---------------------------------------------------------------------------


class InspectorSignatureModel(TrackedBase):
    """
    An inspector's signature as captured on the device.

    A batch signature is one row referenced by every ticket in the batch.
    """

    __tablename__ = "inspector_signatures"

    __table_args__ = (
        Index("idx_signature_tenant", "tenant_id"),
        Index("idx_signature_batch", "batch_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(nullable=False)
    signature_data: Mapped[str] = mapped_column(Text, nullable=False)
    signer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    signer_title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    signer_company: Mapped[str | None] = mapped_column(String(200), nullable=True)
    signer_employee_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    latitude: Mapped[Decimal | None]
    longitude: Mapped[Decimal | None]
    accuracy: Mapped[Decimal | None]
    altitude: Mapped[Decimal | None]
    signed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    device_info: Mapped[str | None] = mapped_column(String(500), nullable=True)
    batch_id: Mapped[UUID | None]

    def __repr__(self) -> str:
        return f"<InspectorSignatureModel {self.signer_name} @ {self.signed_at}>"


@event.listens_for(InspectorSignatureModel, "before_update")
def _reject_signature_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        "InspectorSignature", str(target.id), "signatures cannot be modified"
    )


@event.listens_for(InspectorSignatureModel, "before_delete")
def _reject_signature_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        "InspectorSignature", str(target.id), "signatures cannot be deleted"
    )


# ---------------------------------------------------------------------------
# FieldTicketModel
# ---------------------------------------------------------------------------


class FieldTicketModel(TrackedBase):
    """
    A time-and-material change-order ticket.

    Guarantees:
        - ``ticket_number`` is unique within the tenant.
        - ``status`` follows the lifecycle in ``workflows.FIELD_TICKET_WORKFLOW``.
        - The six money columns are derived by the aggregator and never
          written from client input.
    """

    __tablename__ = "field_tickets"

    __table_args__ = (
        UniqueConstraint("tenant_id", "ticket_number", name="uq_field_ticket_number"),
        Index("idx_field_ticket_tenant_status", "tenant_id", "status", "work_date"),
        Index("idx_field_ticket_job", "job_id", "work_date"),
        Index("idx_field_ticket_claim", "claim_id"),
        Index("idx_field_ticket_offline", "offline_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(nullable=False)
    job_id: Mapped[UUID] = mapped_column(ForeignKey("jobs.id"), nullable=False)
    ticket_number: Mapped[str] = mapped_column(String(30), nullable=False)

    change_reason: Mapped[str] = mapped_column(String(50), nullable=False)
    change_description: Mapped[str] = mapped_column(Text, nullable=False)

    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    work_start_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    work_end_time: Mapped[str | None] = mapped_column(String(5), nullable=True)

    latitude: Mapped[Decimal]
    longitude: Mapped[Decimal]
    accuracy: Mapped[Decimal | None]
    altitude: Mapped[Decimal | None]
    location_captured_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    location_description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Derived totals
    labor_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    equipment_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    material_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    markup_rate: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    markup: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    status: Mapped[str] = mapped_column(String(30), nullable=False, default="draft")

    inspector_signature_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("inspector_signatures.id"), nullable=True
    )

    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    submitted_by_id: Mapped[UUID | None]

    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by_id: Mapped[UUID | None]
    approval_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_disputed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    disputed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    disputed_by_id: Mapped[UUID | None]
    dispute_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    dispute_category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    disputed_from_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    dispute_resolution: Mapped[str | None] = mapped_column(Text, nullable=True)
    dispute_resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    dispute_resolved_by_id: Mapped[UUID | None]

    claim_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    billed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    billed_by_id: Mapped[UUID | None]

    foreman_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    internal_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    offline_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    sync_status: Mapped[str] = mapped_column(String(20), nullable=False, default="synced")
    synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_by_id: Mapped[UUID | None]
    delete_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    labor_entries: Mapped[list["LaborEntryModel"]] = relationship(
        "LaborEntryModel",
        back_populates="ticket",
        cascade="all, delete-orphan",
        order_by="LaborEntryModel.position",
        lazy="selectin",
    )
    equipment_entries: Mapped[list["EquipmentEntryModel"]] = relationship(
        "EquipmentEntryModel",
        back_populates="ticket",
        cascade="all, delete-orphan",
        order_by="EquipmentEntryModel.position",
        lazy="selectin",
    )
    material_entries: Mapped[list["MaterialEntryModel"]] = relationship(
        "MaterialEntryModel",
        back_populates="ticket",
        cascade="all, delete-orphan",
        order_by="MaterialEntryModel.position",
        lazy="selectin",
    )
    photos: Mapped[list["TicketPhotoModel"]] = relationship(
        "TicketPhotoModel",
        back_populates="ticket",
        cascade="all, delete-orphan",
        order_by="TicketPhotoModel.position",
        lazy="selectin",
    )
    dispute_evidence: Mapped[list["DisputeEvidenceModel"]] = relationship(
        "DisputeEvidenceModel",
        back_populates="ticket",
        cascade="save-update, merge",
        order_by="DisputeEvidenceModel.position",
        lazy="selectin",
    )
    inspector_signature: Mapped["InspectorSignatureModel | None"] = relationship(
        "InspectorSignatureModel",
        lazy="joined",
    )

    @property
    def has_signature(self) -> bool:
        return self.inspector_signature_id is not None or self.inspector_signature is not None

    def to_summary(self):
        from fieldledger_modules.field_tickets.models import (
            ChangeReason,
            FieldTicketSummary,
            TicketStatus,
        )

        return FieldTicketSummary(
            id=self.id,
            ticket_number=self.ticket_number,
            job_id=self.job_id,
            status=TicketStatus(self.status),
            work_date=self.work_date,
            change_reason=ChangeReason(self.change_reason),
            total_amount=self.total_amount,
            created_at=as_utc(self.created_at),
            is_disputed=self.is_disputed,
            claim_id=self.claim_id,
        )

    def __repr__(self) -> str:
        return f"<FieldTicketModel {self.ticket_number} [{self.status}] {self.total_amount}>"


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


class LaborEntryModel(Base):
    """Hours for one worker on a ticket.  ``total_amount`` is derived."""

    __tablename__ = "field_ticket_labor_entries"

    __table_args__ = (
        Index("idx_labor_entry_ticket", "ticket_id"),
    )

    ticket_id: Mapped[UUID] = mapped_column(ForeignKey("field_tickets.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    worker_id: Mapped[UUID | None]
    worker_name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="journeyman")
    regular_hours: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    overtime_hours: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    double_time_hours: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    regular_rate: Mapped[Decimal]
    overtime_rate: Mapped[Decimal | None]
    double_time_rate: Mapped[Decimal | None]
    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    ticket: Mapped["FieldTicketModel"] = relationship(
        "FieldTicketModel",
        back_populates="labor_entries",
    )


class EquipmentEntryModel(Base):
    """Operating and standby hours for one piece of equipment."""

    __tablename__ = "field_ticket_equipment_entries"

    __table_args__ = (
        Index("idx_equipment_entry_ticket", "ticket_id"),
    )

    ticket_id: Mapped[UUID] = mapped_column(ForeignKey("field_tickets.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    equipment_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    equipment_type: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    hours: Mapped[Decimal]
    hourly_rate: Mapped[Decimal]
    standby_hours: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    standby_rate: Mapped[Decimal | None]
    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    ticket: Mapped["FieldTicketModel"] = relationship(
        "FieldTicketModel",
        back_populates="equipment_entries",
    )


class MaterialEntryModel(Base):
    """Material used, with its own markup percentage."""

    __tablename__ = "field_ticket_material_entries"

    __table_args__ = (
        Index("idx_material_entry_ticket", "ticket_id"),
    )

    ticket_id: Mapped[UUID] = mapped_column(ForeignKey("field_tickets.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    material_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal]
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="EA")
    unit_cost: Mapped[Decimal]
    markup: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    source: Mapped[str] = mapped_column(String(50), nullable=False, default="stock")
    purchase_order_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    ticket: Mapped["FieldTicketModel"] = relationship(
        "FieldTicketModel",
        back_populates="material_entries",
    )


class TicketPhotoModel(Base):
    """Photo metadata.  The image itself lives in external storage."""

    __tablename__ = "field_ticket_photos"

    __table_args__ = (
        Index("idx_ticket_photo_ticket", "ticket_id"),
    )

    ticket_id: Mapped[UUID] = mapped_column(ForeignKey("field_tickets.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    url: Mapped[str] = mapped_column(String(1000), nullable=False)
    storage_key: Mapped[str | None] = mapped_column(String(500), nullable=True)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False, default="image/jpeg")
    latitude: Mapped[Decimal | None]
    longitude: Mapped[Decimal | None]
    accuracy: Mapped[Decimal | None]
    altitude: Mapped[Decimal | None]
    captured_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    photo_type: Mapped[str] = mapped_column(String(50), nullable=False, default="work_in_progress")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    ticket: Mapped["FieldTicketModel"] = relationship(
        "FieldTicketModel",
        back_populates="photos",
    )


class DisputeEvidenceModel(Base):
    """One item of dispute evidence.  Append-only."""

    __tablename__ = "field_ticket_dispute_evidence"

    __table_args__ = (
        Index("idx_dispute_evidence_ticket", "ticket_id"),
    )

    ticket_id: Mapped[UUID] = mapped_column(ForeignKey("field_tickets.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    url: Mapped[str] = mapped_column(String(1000), nullable=False)
    storage_key: Mapped[str | None] = mapped_column(String(500), nullable=True)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    evidence_type: Mapped[str] = mapped_column(String(50), nullable=False, default="photo")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    added_by_id: Mapped[UUID] = mapped_column(nullable=False)
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    ticket: Mapped["FieldTicketModel"] = relationship(
        "FieldTicketModel",
        back_populates="dispute_evidence",
    )


@event.listens_for(DisputeEvidenceModel, "before_update")
def _reject_evidence_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        "DisputeEvidence", str(target.id), "dispute evidence is append-only"
    )


@event.listens_for(DisputeEvidenceModel, "before_delete")
def _reject_evidence_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        "DisputeEvidence", str(target.id), "dispute evidence is append-only"
    )
