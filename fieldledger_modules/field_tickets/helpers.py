"""
Field Ticket Helpers (``fieldledger_modules.field_tickets.helpers``).

Responsibility
--------------
Pure rate arithmetic for the three entry kinds on a field ticket: labor,
equipment and material line totals.

Architecture position
---------------------
**Modules layer** -- pure helper functions.  No I/O, no session, no
clock, no database access.  Called by the ticket aggregator and from
tests.

Invariants enforced
-------------------
* All numeric inputs and outputs use ``Decimal`` -- NEVER ``float``.
* No rounding happens here.  Results carry full precision; the aggregator
  rounds once, where the value is persisted.
* Missing optional rates fall back to fixed multiples of the base rate:
  overtime 1.5x, double time 2x, equipment standby 0.5x.
* Zero hours or quantities give a zero total.

Failure modes
-------------
* Negative hours, quantities or rates -> ``ValueError``.
* Non-positive regular labor rate -> ``ValueError``.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fieldledger_modules.field_tickets.models import (
        EquipmentEntryInput,
        LaborEntryInput,
        MaterialEntryInput,
    )

OVERTIME_MULTIPLIER = Decimal("1.5")
DOUBLE_TIME_MULTIPLIER = Decimal("2")
STANDBY_MULTIPLIER = Decimal("0.5")

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def _require_non_negative(name: str, value: Decimal) -> None:
    if value < _ZERO:
        raise ValueError(f"{name} must be non-negative, got {value}")


def calculate_labor_total(
    regular_hours: Decimal,
    regular_rate: Decimal,
    overtime_hours: Decimal = _ZERO,
    double_time_hours: Decimal = _ZERO,
    overtime_rate: Decimal | None = None,
    double_time_rate: Decimal | None = None,
) -> Decimal:
    """
    Labor line total.

    ``regular_hours * regular_rate
    + overtime_hours * (overtime_rate or 1.5 * regular_rate)
    + double_time_hours * (double_time_rate or 2 * regular_rate)``

    Raises:
        ValueError: If any hours or rate is negative, or ``regular_rate``
            is not positive.
    """
    if regular_rate <= _ZERO:
        raise ValueError(f"Regular rate must be positive, got {regular_rate}")
    _require_non_negative("Regular hours", regular_hours)
    _require_non_negative("Overtime hours", overtime_hours)
    _require_non_negative("Double-time hours", double_time_hours)

    if overtime_rate is None:
        overtime_rate = regular_rate * OVERTIME_MULTIPLIER
    else:
        _require_non_negative("Overtime rate", overtime_rate)
    if double_time_rate is None:
        double_time_rate = regular_rate * DOUBLE_TIME_MULTIPLIER
    else:
        _require_non_negative("Double-time rate", double_time_rate)

    return (
        regular_hours * regular_rate
        + overtime_hours * overtime_rate
        + double_time_hours * double_time_rate
    )


def calculate_equipment_total(
    hours: Decimal,
    hourly_rate: Decimal,
    standby_hours: Decimal = _ZERO,
    standby_rate: Decimal | None = None,
) -> Decimal:
    """
    Equipment line total.

    ``hours * hourly_rate + standby_hours * (standby_rate or 0.5 * hourly_rate)``
    """
    _require_non_negative("Hours", hours)
    _require_non_negative("Hourly rate", hourly_rate)
    _require_non_negative("Standby hours", standby_hours)
    if standby_rate is None:
        standby_rate = hourly_rate * STANDBY_MULTIPLIER
    else:
        _require_non_negative("Standby rate", standby_rate)
    return hours * hourly_rate + standby_hours * standby_rate


def calculate_material_total(
    quantity: Decimal,
    unit_cost: Decimal,
    markup: Decimal = _ZERO,
) -> Decimal:
    """
    Material line total with its own markup percentage.

    ``quantity * unit_cost * (1 + markup / 100)``
    """
    _require_non_negative("Quantity", quantity)
    _require_non_negative("Unit cost", unit_cost)
    _require_non_negative("Markup", markup)
    base = quantity * unit_cost
    return base + base * markup / _HUNDRED


def calculate_ticket_markup(subtotal: Decimal, markup_rate: Decimal) -> Decimal:
    """Ticket-level markup: ``subtotal * markup_rate / 100``."""
    _require_non_negative("Markup rate", markup_rate)
    return subtotal * markup_rate / _HUNDRED


def labor_entry_total(entry: LaborEntryInput) -> Decimal:
    return calculate_labor_total(
        regular_hours=entry.regular_hours,
        regular_rate=entry.regular_rate,
        overtime_hours=entry.overtime_hours,
        double_time_hours=entry.double_time_hours,
        overtime_rate=entry.overtime_rate,
        double_time_rate=entry.double_time_rate,
    )


def equipment_entry_total(entry: EquipmentEntryInput) -> Decimal:
    return calculate_equipment_total(
        hours=entry.hours,
        hourly_rate=entry.hourly_rate,
        standby_hours=entry.standby_hours,
        standby_rate=entry.standby_rate,
    )


def material_entry_total(entry: MaterialEntryInput) -> Decimal:
    return calculate_material_total(
        quantity=entry.quantity,
        unit_cost=entry.unit_cost,
        markup=entry.markup,
    )
