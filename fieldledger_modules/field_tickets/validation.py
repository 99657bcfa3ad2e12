"""
Field ticket input validation (``fieldledger_modules.field_tickets.validation``).

Responsibility
--------------
Turns request-shaped mappings (camelCase or snake_case keys, numbers as
JSON numbers or strings) into the typed inputs of ``models.py``, and checks
typed inputs before the service touches the database.

Invariants enforced
-------------------
* Every failure is a ``ValidationError`` naming the offending field path,
  e.g. ``labor_entries[0].regular_rate``.
* Numbers go through ``to_decimal``: booleans, NaN, infinities and
  non-numeric strings are rejected, never read as zero.
* Client-supplied totals (``totalAmount``, ``subtotal``, ...) are ignored.
  Totals are always recomputed from the entries.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar
from uuid import UUID

from fieldledger_kernel.db.types import ZERO, to_decimal
from fieldledger_kernel.exceptions import ValidationError
from fieldledger_kernel.logging_config import get_logger
from fieldledger_modules.field_tickets.models import (
    ChangeReason,
    DisputeCategory,
    EquipmentEntryInput,
    EquipmentType,
    EvidenceInput,
    EvidenceType,
    GpsLocation,
    LaborEntryInput,
    LaborRole,
    MaterialEntryInput,
    MaterialSource,
    PhotoInput,
    PhotoType,
    SignatureInput,
    TicketDraft,
    TicketUpdate,
)

logger = get_logger("modules.field_tickets.validation")

E = TypeVar("E", bound=Enum)

_MISSING = object()
_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
_CLIENT_TOTAL_KEYS = (
    "total_amount",
    "labor_total",
    "equipment_total",
    "material_total",
    "subtotal",
    "markup",
)


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _lookup(data: Mapping[str, Any], key: str) -> Any:
    if key in data:
        return data[key]
    return data.get(_camel(key), _MISSING)


def _path(prefix: str, key: str) -> str:
    return f"{prefix}.{key}" if prefix else key


def _present(value: Any) -> bool:
    return value is not _MISSING and value is not None and value != ""


def _text(data, key, prefix="", required=False, max_length=None) -> str | None:
    value = _lookup(data, key)
    if not _present(value):
        if required:
            raise ValidationError(_path(prefix, key), "is required")
        return None
    if not isinstance(value, str):
        raise ValidationError(_path(prefix, key), "must be a string")
    value = value.strip()
    if required and not value:
        raise ValidationError(_path(prefix, key), "is required")
    if max_length is not None and len(value) > max_length:
        raise ValidationError(_path(prefix, key), f"must be at most {max_length} characters")
    return value or None


def _decimal(data, key, prefix="", required=False, default=None) -> Decimal | None:
    value = _lookup(data, key)
    if not _present(value):
        if required:
            raise ValidationError(_path(prefix, key), "is required")
        return default
    try:
        return to_decimal(value)
    except ValueError as exc:
        raise ValidationError(_path(prefix, key), str(exc)) from exc


def _enum(enum_cls: type[E], data, key, prefix="", default: E | None = None) -> E:
    value = _lookup(data, key)
    if not _present(value):
        if default is None:
            raise ValidationError(_path(prefix, key), "is required")
        return default
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as exc:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(
            _path(prefix, key), f"'{value}' is not one of: {allowed}"
        ) from exc


def _date(data, key, prefix="", required=False) -> date | None:
    value = _lookup(data, key)
    if not _present(value):
        if required:
            raise ValidationError(_path(prefix, key), "is required")
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError as exc:
            raise ValidationError(_path(prefix, key), "must be an ISO date") from exc
    raise ValidationError(_path(prefix, key), "must be an ISO date")


def _datetime(data, key, prefix="") -> datetime | None:
    value = _lookup(data, key)
    if not _present(value):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValidationError(_path(prefix, key), "must be an ISO timestamp") from exc
    raise ValidationError(_path(prefix, key), "must be an ISO timestamp")


def _uuid(data, key, prefix="", required=False) -> UUID | None:
    value = _lookup(data, key)
    if not _present(value):
        if required:
            raise ValidationError(_path(prefix, key), "is required")
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise ValidationError(_path(prefix, key), "must be a UUID") from exc


def _time(data, key, prefix="") -> str | None:
    value = _text(data, key, prefix)
    if value is not None and not _TIME_PATTERN.match(value):
        raise ValidationError(_path(prefix, key), "must be HH:MM")
    return value


def _list(data, key, prefix="") -> Sequence[Any] | None:
    value = _lookup(data, key)
    if value is _MISSING or value is None:
        return None
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise ValidationError(_path(prefix, key), "must be a list")
    return value


def _mapping(value: Any, path: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValidationError(path, "must be an object")
    return value


# -----------------------------------------------------------------------------
# Typed input checks
# -----------------------------------------------------------------------------


def _non_negative(value: Decimal | None, path: str) -> None:
    if value is not None and value < ZERO:
        raise ValidationError(path, "must be non-negative")


def check_gps(location: GpsLocation, path: str) -> None:
    if location.latitude is None or not -90 <= location.latitude <= 90:
        raise ValidationError(f"{path}.latitude", "must be between -90 and 90")
    if location.longitude is None or not -180 <= location.longitude <= 180:
        raise ValidationError(f"{path}.longitude", "must be between -180 and 180")
    _non_negative(location.accuracy, f"{path}.accuracy")


def check_labor_entry(entry: LaborEntryInput, path: str) -> None:
    if not entry.worker_name or not entry.worker_name.strip():
        raise ValidationError(f"{path}.worker_name", "is required")
    if entry.regular_rate is None or entry.regular_rate <= ZERO:
        raise ValidationError(f"{path}.regular_rate", "must be greater than zero")
    for name in ("regular_hours", "overtime_hours", "double_time_hours",
                 "overtime_rate", "double_time_rate"):
        _non_negative(getattr(entry, name), f"{path}.{name}")


def check_equipment_entry(entry: EquipmentEntryInput, path: str) -> None:
    if not entry.description or not entry.description.strip():
        raise ValidationError(f"{path}.description", "is required")
    if entry.hours is None:
        raise ValidationError(f"{path}.hours", "is required")
    if entry.hourly_rate is None:
        raise ValidationError(f"{path}.hourly_rate", "is required")
    for name in ("hours", "hourly_rate", "standby_hours", "standby_rate"):
        _non_negative(getattr(entry, name), f"{path}.{name}")


def check_material_entry(entry: MaterialEntryInput, path: str) -> None:
    if not entry.description or not entry.description.strip():
        raise ValidationError(f"{path}.description", "is required")
    if not entry.unit or not entry.unit.strip():
        raise ValidationError(f"{path}.unit", "is required")
    if entry.quantity is None:
        raise ValidationError(f"{path}.quantity", "is required")
    if entry.unit_cost is None:
        raise ValidationError(f"{path}.unit_cost", "is required")
    for name in ("quantity", "unit_cost", "markup"):
        _non_negative(getattr(entry, name), f"{path}.{name}")


def check_photo(photo: PhotoInput, path: str) -> None:
    if not photo.url or not photo.url.strip():
        raise ValidationError(f"{path}.url", "is required")
    if photo.gps is not None:
        check_gps(photo.gps, f"{path}.gps")


def check_signature(signature: SignatureInput, path: str = "signature") -> None:
    if not signature.signature_data or not signature.signature_data.strip():
        raise ValidationError(f"{path}.signature_data", "is required")
    if not signature.signer_name or not signature.signer_name.strip():
        raise ValidationError(f"{path}.signer_name", "is required")
    if signature.location is not None:
        check_gps(signature.location, f"{path}.location")


def check_evidence(items: Sequence[EvidenceInput], path: str = "evidence") -> None:
    for i, item in enumerate(items):
        if not item.url or not item.url.strip():
            raise ValidationError(f"{path}[{i}].url", "is required")


def _check_entries(
    labor: Sequence[LaborEntryInput] | None,
    equipment: Sequence[EquipmentEntryInput] | None,
    material: Sequence[MaterialEntryInput] | None,
) -> None:
    for i, entry in enumerate(labor or ()):
        check_labor_entry(entry, f"labor_entries[{i}]")
    for i, entry in enumerate(equipment or ()):
        check_equipment_entry(entry, f"equipment_entries[{i}]")
    for i, entry in enumerate(material or ()):
        check_material_entry(entry, f"material_entries[{i}]")


def check_ticket_draft(draft: TicketDraft) -> None:
    """Raise ``ValidationError`` for the first invalid field of ``draft``."""
    if draft.job_id is None:
        raise ValidationError("job_id", "is required")
    if not isinstance(draft.change_reason, ChangeReason):
        raise ValidationError("change_reason", "is required")
    if not draft.change_description or not draft.change_description.strip():
        raise ValidationError("change_description", "is required")
    if draft.work_date is None:
        raise ValidationError("work_date", "is required")
    if draft.location is None:
        raise ValidationError("location", "is required")
    check_gps(draft.location, "location")
    _non_negative(draft.markup_rate, "markup_rate")
    _check_entries(draft.labor_entries, draft.equipment_entries, draft.material_entries)
    for i, photo in enumerate(draft.photos):
        check_photo(photo, f"photos[{i}]")


def check_ticket_update(update: TicketUpdate) -> None:
    if update.change_description is not None and not update.change_description.strip():
        raise ValidationError("change_description", "must not be empty")
    _non_negative(update.markup_rate, "markup_rate")
    _check_entries(update.labor_entries, update.equipment_entries, update.material_entries)


# -----------------------------------------------------------------------------
# Payload parsing
# -----------------------------------------------------------------------------


def parse_gps(data: Any, path: str) -> GpsLocation:
    data = _mapping(data, path)
    location = GpsLocation(
        latitude=_decimal(data, "latitude", path, required=True),
        longitude=_decimal(data, "longitude", path, required=True),
        accuracy=_decimal(data, "accuracy", path),
        altitude=_decimal(data, "altitude", path),
        captured_at=_datetime(data, "captured_at", path),
    )
    check_gps(location, path)
    return location


def parse_labor_entry(data: Any, path: str) -> LaborEntryInput:
    data = _mapping(data, path)
    entry = LaborEntryInput(
        worker_name=_text(data, "worker_name", path, required=True, max_length=200),
        regular_rate=_decimal(data, "regular_rate", path, required=True),
        role=_enum(LaborRole, data, "role", path, default=LaborRole.JOURNEYMAN),
        regular_hours=_decimal(data, "regular_hours", path, default=ZERO),
        overtime_hours=_decimal(data, "overtime_hours", path, default=ZERO),
        double_time_hours=_decimal(data, "double_time_hours", path, default=ZERO),
        overtime_rate=_decimal(data, "overtime_rate", path),
        double_time_rate=_decimal(data, "double_time_rate", path),
        worker_id=_uuid(data, "worker_id", path),
        notes=_text(data, "notes", path),
    )
    check_labor_entry(entry, path)
    return entry


def parse_equipment_entry(data: Any, path: str) -> EquipmentEntryInput:
    data = _mapping(data, path)
    entry = EquipmentEntryInput(
        equipment_type=_enum(EquipmentType, data, "equipment_type", path),
        description=_text(data, "description", path, required=True, max_length=500),
        hours=_decimal(data, "hours", path, required=True),
        hourly_rate=_decimal(data, "hourly_rate", path, required=True),
        standby_hours=_decimal(data, "standby_hours", path, default=ZERO),
        standby_rate=_decimal(data, "standby_rate", path),
        equipment_id=_text(data, "equipment_id", path, max_length=100),
        notes=_text(data, "notes", path),
    )
    check_equipment_entry(entry, path)
    return entry


def parse_material_entry(data: Any, path: str) -> MaterialEntryInput:
    data = _mapping(data, path)
    entry = MaterialEntryInput(
        description=_text(data, "description", path, required=True, max_length=500),
        quantity=_decimal(data, "quantity", path, required=True),
        unit_cost=_decimal(data, "unit_cost", path, required=True),
        unit=_text(data, "unit", path, max_length=20) or "EA",
        markup=_decimal(data, "markup", path, default=ZERO),
        source=_enum(MaterialSource, data, "source", path, default=MaterialSource.STOCK),
        material_code=_text(data, "material_code", path, max_length=50),
        purchase_order_number=_text(data, "purchase_order_number", path, max_length=100),
        notes=_text(data, "notes", path),
    )
    check_material_entry(entry, path)
    return entry


def parse_photo(data: Any, path: str) -> PhotoInput:
    data = _mapping(data, path)
    gps_data = _lookup(data, "gps_coordinates")
    if gps_data is _MISSING:
        gps_data = _lookup(data, "gps")
    photo = PhotoInput(
        url=_text(data, "url", path, required=True, max_length=1000),
        photo_type=_enum(PhotoType, data, "photo_type", path, default=PhotoType.WORK_IN_PROGRESS),
        storage_key=_text(data, "storage_key", path, max_length=500),
        file_name=_text(data, "file_name", path, max_length=255),
        mime_type=_text(data, "mime_type", path, max_length=100) or "image/jpeg",
        gps=parse_gps(gps_data, f"{path}.gps") if _present(gps_data) else None,
        captured_at=_datetime(data, "captured_at", path),
        description=_text(data, "description", path),
    )
    check_photo(photo, path)
    return photo


def parse_photos(items: Any, path: str = "photos") -> tuple[PhotoInput, ...]:
    if isinstance(items, (str, bytes)) or not isinstance(items, Sequence):
        raise ValidationError(path, "must be a list")
    return tuple(parse_photo(item, f"{path}[{i}]") for i, item in enumerate(items))


def parse_signature(data: Any, path: str = "signature") -> SignatureInput:
    data = _mapping(data, path)
    location_data = _lookup(data, "signature_location")
    if location_data is _MISSING:
        location_data = _lookup(data, "location")
    signature = SignatureInput(
        signature_data=_text(data, "signature_data", path, required=True),
        signer_name=_text(data, "signer_name", path, required=True, max_length=200),
        signer_title=_text(data, "signer_title", path, max_length=200),
        signer_company=_text(data, "signer_company", path, max_length=200),
        signer_employee_id=_text(data, "signer_employee_id", path, max_length=100),
        location=(
            parse_gps(location_data, f"{path}.location") if _present(location_data) else None
        ),
        device_info=_text(data, "device_info", path, max_length=500),
    )
    check_signature(signature, path)
    return signature


def parse_evidence(items: Any, path: str = "evidence") -> tuple[EvidenceInput, ...]:
    if items is None:
        return ()
    if isinstance(items, (str, bytes)) or not isinstance(items, Sequence):
        raise ValidationError(path, "must be a list")
    parsed = []
    for i, raw in enumerate(items):
        item_path = f"{path}[{i}]"
        data = _mapping(raw, item_path)
        type_key = "document_type" if _lookup(data, "document_type") is not _MISSING else "evidence_type"
        parsed.append(
            EvidenceInput(
                url=_text(data, "url", item_path, required=True, max_length=1000),
                evidence_type=_enum(EvidenceType, data, type_key, item_path, default=EvidenceType.PHOTO),
                storage_key=_text(data, "storage_key", item_path, max_length=500),
                file_name=_text(data, "file_name", item_path, max_length=255),
                description=_text(data, "description", item_path),
            )
        )
    return tuple(parsed)


def parse_dispute_category(value: Any) -> DisputeCategory:
    if value is None or value == "":
        return DisputeCategory.OTHER
    return _enum(DisputeCategory, {"category": value}, "category")


def _parse_entry_lists(data: Mapping[str, Any]):
    labor = _list(data, "labor_entries")
    equipment = _list(data, "equipment_entries")
    material = _list(data, "material_entries")
    return (
        None if labor is None else tuple(
            parse_labor_entry(item, f"labor_entries[{i}]") for i, item in enumerate(labor)
        ),
        None if equipment is None else tuple(
            parse_equipment_entry(item, f"equipment_entries[{i}]")
            for i, item in enumerate(equipment)
        ),
        None if material is None else tuple(
            parse_material_entry(item, f"material_entries[{i}]")
            for i, item in enumerate(material)
        ),
    )


def _note_ignored_totals(data: Mapping[str, Any]) -> None:
    ignored = [k for k in _CLIENT_TOTAL_KEYS if _lookup(data, k) is not _MISSING]
    if ignored:
        logger.debug("client_totals_ignored", extra={"fields": ignored})


def parse_ticket_draft(payload: Mapping[str, Any]) -> TicketDraft:
    """
    Parse a create-ticket payload.

    Raises:
        ValidationError: naming the first offending field.
    """
    data = _mapping(payload, "body")
    _note_ignored_totals(data)
    location_data = _lookup(data, "location")
    if not _present(location_data):
        raise ValidationError("location", "is required")
    labor, equipment, material = _parse_entry_lists(data)
    photos = _list(data, "photos")
    draft = TicketDraft(
        job_id=_uuid(data, "job_id", required=True),
        change_reason=_enum(ChangeReason, data, "change_reason"),
        change_description=_text(data, "change_description", required=True),
        work_date=_date(data, "work_date", required=True),
        location=parse_gps(location_data, "location"),
        labor_entries=labor or (),
        equipment_entries=equipment or (),
        material_entries=material or (),
        photos=parse_photos(photos) if photos is not None else (),
        markup_rate=_decimal(data, "markup_rate", default=ZERO),
        work_start_time=_time(data, "work_start_time"),
        work_end_time=_time(data, "work_end_time"),
        location_description=_text(data, "location_description", max_length=500),
        foreman_name=_text(data, "foreman_name", max_length=200),
        internal_notes=_text(data, "internal_notes"),
        offline_id=_text(data, "offline_id", max_length=100),
    )
    check_ticket_draft(draft)
    return draft


def parse_ticket_update(payload: Mapping[str, Any]) -> TicketUpdate:
    """Parse an update payload.  Absent keys leave fields unchanged."""
    data = _mapping(payload, "body")
    _note_ignored_totals(data)
    labor, equipment, material = _parse_entry_lists(data)
    reason = _lookup(data, "change_reason")
    update = TicketUpdate(
        change_reason=_enum(ChangeReason, data, "change_reason") if _present(reason) else None,
        change_description=_text(data, "change_description"),
        work_date=_date(data, "work_date"),
        work_start_time=_time(data, "work_start_time"),
        work_end_time=_time(data, "work_end_time"),
        location_description=_text(data, "location_description", max_length=500),
        labor_entries=labor,
        equipment_entries=equipment,
        material_entries=material,
        markup_rate=_decimal(data, "markup_rate"),
        internal_notes=_text(data, "internal_notes"),
    )
    check_ticket_update(update)
    return update
