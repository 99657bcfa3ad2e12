"""
Ticket numbering (``fieldledger_modules.field_tickets.numbering``).

Ticket numbers look like ``FT-2024-00001``: prefix, four-digit calendar
year, and a zero-padded 1-based sequence that restarts every year for every
tenant.  The format is an external contract; it appears on printed tickets
and in billing claims.

The sequence comes from a kernel ``SequenceService`` counter named
``field_ticket:<tenant_id>:<year>``, incremented atomically inside the
caller's transaction.  Counting existing tickets is never used.
"""

from __future__ import annotations

import re
from uuid import UUID

from sqlalchemy.orm import Session

from fieldledger_config.schema import NumberingSettings
from fieldledger_kernel.logging_config import get_logger
from fieldledger_kernel.services.sequence_service import SequenceService

logger = get_logger("modules.field_tickets.numbering")

_NUMBER_PATTERN = re.compile(r"^(?P<prefix>[A-Z]+)-(?P<year>\d{4})-(?P<seq>\d+)$")


def format_ticket_number(
    year: int,
    sequence: int,
    prefix: str = "FT",
    width: int = 5,
) -> str:
    """Render ``FT-<year>-<sequence>``, zero-padding the sequence to ``width``."""
    if sequence < 1:
        raise ValueError(f"Sequence must be >= 1, got {sequence}")
    if not 1000 <= year <= 9999:
        raise ValueError(f"Year must have four digits, got {year}")
    return f"{prefix}-{year:04d}-{sequence:0{width}d}"


def parse_ticket_number(ticket_number: str) -> tuple[str, int, int]:
    """Split a ticket number into ``(prefix, year, sequence)``."""
    match = _NUMBER_PATTERN.match(ticket_number)
    if match is None:
        raise ValueError(f"Not a ticket number: {ticket_number!r}")
    return match["prefix"], int(match["year"]), int(match["seq"])


def sequence_name(tenant_id: UUID, year: int) -> str:
    return f"field_ticket:{tenant_id}:{year}"


class TicketNumberAllocator:
    """
    Allocates the next ticket number for a tenant and year.

    Contract:
        Flushes within the caller's transaction and never commits.  The
        number is consumed only if the caller commits.
    """

    def __init__(self, session: Session, settings: NumberingSettings | None = None):
        self._sequences = SequenceService(session)
        self._settings = settings or NumberingSettings()

    def allocate(self, tenant_id: UUID, year: int) -> str:
        name = sequence_name(tenant_id, year)
        value = self._sequences.next_value(name)
        number = format_ticket_number(
            year, value, prefix=self._settings.prefix, width=self._settings.width
        )
        logger.info(
            "ticket_number_allocated",
            extra={"tenant_id": str(tenant_id), "year": year, "ticket_number": number},
        )
        return number

    def last_allocated(self, tenant_id: UUID, year: int) -> int | None:
        return self._sequences.current_value(sequence_name(tenant_id, year))
