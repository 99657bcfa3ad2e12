"""
Ticket Aggregator (``fieldledger_modules.field_tickets.aggregator``).

Responsibility
--------------
Derives every money field of a ticket from its entries: each entry's
``total_amount``, the three category totals, subtotal, markup and total.

Architecture position
---------------------
**Modules layer**.  ``aggregate_totals`` is pure; ``recompute_ticket``
writes derived fields onto an ORM ticket; ``install_recompute_listener``
hooks ``recompute_ticket`` into a session's ``before_flush`` so no write
path can persist stale totals.

Invariants enforced
-------------------
* Entry totals are computed at full precision, then rounded to cents once.
* Category totals are exact sums of the rounded entry totals.
* ``subtotal == labor_total + equipment_total + material_total``.
* ``markup == round(subtotal * markup_rate / 100)``.
* ``total_amount == subtotal + markup``.
* Idempotent: recomputing unchanged entries yields identical values.

Failure modes
-------------
* ``ValueError`` from the rate helpers on negative or non-positive inputs
  propagates and aborts the flush; no total is ever replaced by zero.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from sqlalchemy import event
from sqlalchemy.orm import Session

from fieldledger_kernel.db.types import ZERO, round_money
from fieldledger_kernel.logging_config import get_logger
from fieldledger_modules.field_tickets.helpers import (
    calculate_equipment_total,
    calculate_labor_total,
    calculate_material_total,
    calculate_ticket_markup,
)
from fieldledger_modules.field_tickets.models import TicketTotals
from fieldledger_modules.field_tickets.orm import (
    EquipmentEntryModel,
    FieldTicketModel,
    LaborEntryModel,
    MaterialEntryModel,
)

logger = get_logger("modules.field_tickets.aggregator")


def aggregate_totals(
    labor_totals: Iterable[Decimal],
    equipment_totals: Iterable[Decimal],
    material_totals: Iterable[Decimal],
    markup_rate: Decimal,
) -> TicketTotals:
    """Combine already-rounded entry totals into ticket totals."""
    labor_total = sum(labor_totals, ZERO)
    equipment_total = sum(equipment_totals, ZERO)
    material_total = sum(material_totals, ZERO)
    subtotal = labor_total + equipment_total + material_total
    markup = round_money(calculate_ticket_markup(subtotal, markup_rate))
    return TicketTotals(
        labor_total=labor_total,
        equipment_total=equipment_total,
        material_total=material_total,
        subtotal=subtotal,
        markup=markup,
        total_amount=subtotal + markup,
    )


def _labor_total(entry: LaborEntryModel) -> Decimal:
    return round_money(
        calculate_labor_total(
            regular_hours=entry.regular_hours or ZERO,
            regular_rate=entry.regular_rate,
            overtime_hours=entry.overtime_hours or ZERO,
            double_time_hours=entry.double_time_hours or ZERO,
            overtime_rate=entry.overtime_rate,
            double_time_rate=entry.double_time_rate,
        )
    )


def _equipment_total(entry: EquipmentEntryModel) -> Decimal:
    return round_money(
        calculate_equipment_total(
            hours=entry.hours or ZERO,
            hourly_rate=entry.hourly_rate,
            standby_hours=entry.standby_hours or ZERO,
            standby_rate=entry.standby_rate,
        )
    )


def _material_total(entry: MaterialEntryModel) -> Decimal:
    return round_money(
        calculate_material_total(
            quantity=entry.quantity,
            unit_cost=entry.unit_cost,
            markup=entry.markup or ZERO,
        )
    )


def recompute_ticket(ticket: FieldTicketModel) -> TicketTotals:
    """
    Recompute and write every derived money field on ``ticket``.

    Postconditions:
        - Each entry's ``total_amount`` and the six ticket totals satisfy
          the aggregate invariants.
    """
    for entry in ticket.labor_entries:
        entry.total_amount = _labor_total(entry)
    for entry in ticket.equipment_entries:
        entry.total_amount = _equipment_total(entry)
    for entry in ticket.material_entries:
        entry.total_amount = _material_total(entry)

    totals = aggregate_totals(
        (e.total_amount for e in ticket.labor_entries),
        (e.total_amount for e in ticket.equipment_entries),
        (e.total_amount for e in ticket.material_entries),
        ticket.markup_rate or ZERO,
    )
    ticket.labor_total = totals.labor_total
    ticket.equipment_total = totals.equipment_total
    ticket.material_total = totals.material_total
    ticket.subtotal = totals.subtotal
    ticket.markup = totals.markup
    ticket.total_amount = totals.total_amount
    return totals


_ENTRY_TYPES = (LaborEntryModel, EquipmentEntryModel, MaterialEntryModel)


def _recompute_before_flush(session: Session, flush_context, instances) -> None:
    tickets: dict[int, FieldTicketModel] = {}
    for obj in list(session.new) + list(session.dirty):
        if isinstance(obj, FieldTicketModel):
            tickets[id(obj)] = obj
        elif isinstance(obj, _ENTRY_TYPES) and obj.ticket is not None:
            tickets[id(obj.ticket)] = obj.ticket
    for ticket in tickets.values():
        if ticket in session.deleted:
            continue
        recompute_ticket(ticket)
    if tickets:
        logger.debug("ticket_totals_recomputed", extra={"ticket_count": len(tickets)})


def install_recompute_listener(session: Session) -> None:
    """Recompute totals of every new or changed ticket before each flush.

    Safe to call repeatedly for the same session.
    """
    if not event.contains(session, "before_flush", _recompute_before_flush):
        event.listen(session, "before_flush", _recompute_before_flush)
