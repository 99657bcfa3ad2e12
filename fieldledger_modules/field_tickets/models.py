"""
Field Ticket Domain Models.

The nouns of change-order capture: tickets, labor/equipment/material
entries, photos, inspector signatures, dispute evidence, and the report
shapes produced by the at-risk query.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from fieldledger_kernel.logging_config import get_logger

logger = get_logger("modules.field_tickets.models")


class TicketStatus(Enum):
    """Field ticket lifecycle states."""
    DRAFT = "draft"
    PENDING_SIGNATURE = "pending_signature"
    SIGNED = "signed"
    APPROVED = "approved"
    DISPUTED = "disputed"
    BILLED = "billed"
    PAID = "paid"
    VOIDED = "voided"


class ChangeReason(Enum):
    """Why the extra work happened."""
    SCOPE_CHANGE = "scope_change"
    UNFORESEEN_CONDITION = "unforeseen_condition"
    UTILITY_REQUEST = "utility_request"
    SAFETY_REQUIREMENT = "safety_requirement"
    PERMIT_REQUIREMENT = "permit_requirement"
    DESIGN_ERROR = "design_error"
    WEATHER_DAMAGE = "weather_damage"
    THIRD_PARTY_DAMAGE = "third_party_damage"
    OTHER = "other"


class LaborRole(Enum):
    FOREMAN = "foreman"
    JOURNEYMAN = "journeyman"
    APPRENTICE = "apprentice"
    LABORER = "laborer"
    OPERATOR = "operator"
    OTHER = "other"


class EquipmentType(Enum):
    BUCKET_TRUCK = "bucket_truck"
    DIGGER_DERRICK = "digger_derrick"
    CRANE = "crane"
    EXCAVATOR = "excavator"
    BACKHOE = "backhoe"
    TRENCHER = "trencher"
    DUMP_TRUCK = "dump_truck"
    FLATBED = "flatbed"
    TRAILER = "trailer"
    GENERATOR = "generator"
    COMPRESSOR = "compressor"
    PUMP = "pump"
    WELDER = "welder"
    TENSIONER = "tensioner"
    PULLER = "puller"
    OTHER = "other"


class MaterialSource(Enum):
    STOCK = "stock"
    PURCHASED = "purchased"
    UTILITY_PROVIDED = "utility_provided"
    RENTAL = "rental"


class PhotoType(Enum):
    CONDITION = "condition"
    OBSTRUCTION = "obstruction"
    WORK_IN_PROGRESS = "work_in_progress"
    COMPLETED = "completed"
    DAMAGE = "damage"
    OTHER = "other"


class DisputeCategory(Enum):
    """What part of the ticket the utility or GC disagrees with."""
    HOURS = "hours"
    RATES = "rates"
    MATERIALS = "materials"
    SCOPE = "scope"
    QUALITY = "quality"
    OTHER = "other"


class EvidenceType(Enum):
    PHOTO = "photo"
    DOCUMENT = "document"
    EMAIL = "email"
    RECEIPT = "receipt"
    OTHER = "other"


class SyncStatus(Enum):
    """Offline capture state of a ticket."""
    PENDING = "pending"
    SYNCED = "synced"
    CONFLICT = "conflict"
    ERROR = "error"


class AgingBucketName(Enum):
    FRESH = "fresh"
    WARNING = "warning"
    CRITICAL = "critical"


# -----------------------------------------------------------------------------
# Inputs
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class GpsLocation:
    """A captured GPS fix."""
    latitude: Decimal
    longitude: Decimal
    accuracy: Decimal | None = None
    altitude: Decimal | None = None
    captured_at: datetime | None = None


@dataclass(frozen=True)
class LaborEntryInput:
    """Hours for one worker.  Missing overtime/double-time rates fall back
    to 1.5x and 2x the regular rate."""
    worker_name: str
    regular_rate: Decimal
    role: LaborRole = LaborRole.JOURNEYMAN
    regular_hours: Decimal = Decimal("0")
    overtime_hours: Decimal = Decimal("0")
    double_time_hours: Decimal = Decimal("0")
    overtime_rate: Decimal | None = None
    double_time_rate: Decimal | None = None
    worker_id: UUID | None = None
    notes: str | None = None


@dataclass(frozen=True)
class EquipmentEntryInput:
    """Hours for one piece of equipment.  Missing standby rate falls back
    to half the hourly rate."""
    equipment_type: EquipmentType
    description: str
    hours: Decimal
    hourly_rate: Decimal
    standby_hours: Decimal = Decimal("0")
    standby_rate: Decimal | None = None
    equipment_id: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class MaterialEntryInput:
    description: str
    quantity: Decimal
    unit_cost: Decimal
    unit: str = "EA"
    markup: Decimal = Decimal("0")  # percent
    source: MaterialSource = MaterialSource.STOCK
    material_code: str | None = None
    purchase_order_number: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class PhotoInput:
    url: str
    photo_type: PhotoType = PhotoType.WORK_IN_PROGRESS
    storage_key: str | None = None
    file_name: str | None = None
    mime_type: str = "image/jpeg"
    gps: GpsLocation | None = None
    captured_at: datetime | None = None
    description: str | None = None


@dataclass(frozen=True)
class SignatureInput:
    """Inspector signature as captured on the device."""
    signature_data: str
    signer_name: str
    signer_title: str | None = None
    signer_company: str | None = None
    signer_employee_id: str | None = None
    location: GpsLocation | None = None
    device_info: str | None = None


@dataclass(frozen=True)
class EvidenceInput:
    url: str
    evidence_type: EvidenceType = EvidenceType.PHOTO
    storage_key: str | None = None
    file_name: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class TicketDraft:
    """Everything needed to open a new ticket."""
    job_id: UUID
    change_reason: ChangeReason
    change_description: str
    work_date: date
    location: GpsLocation
    labor_entries: tuple[LaborEntryInput, ...] = ()
    equipment_entries: tuple[EquipmentEntryInput, ...] = ()
    material_entries: tuple[MaterialEntryInput, ...] = ()
    photos: tuple[PhotoInput, ...] = ()
    markup_rate: Decimal = Decimal("0")
    work_start_time: str | None = None
    work_end_time: str | None = None
    location_description: str | None = None
    foreman_name: str | None = None
    internal_notes: str | None = None
    offline_id: str | None = None


@dataclass(frozen=True)
class TicketUpdate:
    """Partial update.  ``None`` leaves a field unchanged; an entry list,
    when given, replaces the existing list."""
    change_reason: ChangeReason | None = None
    change_description: str | None = None
    work_date: date | None = None
    work_start_time: str | None = None
    work_end_time: str | None = None
    location_description: str | None = None
    labor_entries: tuple[LaborEntryInput, ...] | None = None
    equipment_entries: tuple[EquipmentEntryInput, ...] | None = None
    material_entries: tuple[MaterialEntryInput, ...] | None = None
    markup_rate: Decimal | None = None
    internal_notes: str | None = None


# -----------------------------------------------------------------------------
# Outputs
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class TicketTotals:
    """Derived money fields of one ticket, rounded to cents."""
    labor_total: Decimal
    equipment_total: Decimal
    material_total: Decimal
    subtotal: Decimal
    markup: Decimal
    total_amount: Decimal


@dataclass(frozen=True)
class FieldTicketSummary:
    """Read-side view of a ticket used by listings and the billing queue."""
    id: UUID
    ticket_number: str
    job_id: UUID
    status: TicketStatus
    work_date: date
    change_reason: ChangeReason
    total_amount: Decimal
    created_at: datetime
    is_disputed: bool = False
    claim_id: str | None = None


@dataclass(frozen=True)
class StatusTotal:
    status: TicketStatus
    count: int
    total_amount: Decimal


@dataclass(frozen=True)
class AgingBucket:
    name: AgingBucketName
    count: int
    total_amount: Decimal


@dataclass(frozen=True)
class WeeklyTrendPoint:
    """One ISO week of at-risk creation."""
    year: int
    week: int
    count: int
    total_amount: Decimal


@dataclass(frozen=True)
class AtRiskReport:
    """Dashboard aggregates derived from a single read of the at-risk set."""
    total_at_risk: Decimal
    count: int
    by_status: tuple[StatusTotal, ...]
    aging: tuple[AgingBucket, ...]
    trend: tuple[WeeklyTrendPoint, ...]
    warning_days: int
    critical_days: int
    trend_weeks: int
    generated_at: datetime

    def bucket(self, name: AgingBucketName) -> AgingBucket:
        for b in self.aging:
            if b.name == name:
                return b
        raise KeyError(name)


@dataclass(frozen=True)
class BillingQueue:
    """Approved tickets not yet attached to a claim."""
    count: int
    total_amount: Decimal
    tickets: tuple[FieldTicketSummary, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class BatchSignResult:
    batch_id: UUID
    signed_at: datetime
    ticket_ids: tuple[UUID, ...]
    ticket_numbers: tuple[str, ...]

    @property
    def signed_count(self) -> int:
        return len(self.ticket_ids)
