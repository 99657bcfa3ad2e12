"""
Field Tickets Module (``fieldledger_modules.field_tickets``).

Responsibility
--------------
Change orders captured in the field: labor, equipment and material
entries priced into a ticket total, signed by the customer's inspector,
approved for billing, disputed and resolved.  Also reports the revenue
still waiting on a signature.

Architecture position
---------------------
**Modules layer** -- ``FieldTicketService`` and ``BatchSignatureCoordinator``
own writes; ``FieldTicketSelector`` owns reads.  Ticket numbers come from
the kernel ``SequenceService``; status changes from ``FIELD_TICKET_WORKFLOW``
on the kernel workflow types.

Invariants enforced
-------------------
* Stored totals always equal the aggregation of stored entries.
* Ticket numbers are unique per tenant, gap-free per tenant and year.
* No ticket reaches ``approved`` without a stored signature.
* A batch signature signs all of its tickets or none.

Failure modes
-------------
* Typed ``FieldLedgerError`` subclasses from ``fieldledger_kernel.exceptions``.
  Every public write rolls back before the error propagates.
"""

from fieldledger_modules.field_tickets.batch_signing import BatchSignatureCoordinator
from fieldledger_modules.field_tickets.models import (
    AtRiskReport,
    BatchSignResult,
    BillingQueue,
    ChangeReason,
    DisputeCategory,
    EquipmentEntryInput,
    EvidenceInput,
    FieldTicketSummary,
    GpsLocation,
    LaborEntryInput,
    MaterialEntryInput,
    PhotoInput,
    SignatureInput,
    TicketDraft,
    TicketStatus,
    TicketTotals,
    TicketUpdate,
)
from fieldledger_modules.field_tickets.selectors import FieldTicketSelector
from fieldledger_modules.field_tickets.service import FieldTicketService
from fieldledger_modules.field_tickets.workflows import FIELD_TICKET_WORKFLOW

__all__ = [
    "AtRiskReport",
    "BatchSignResult",
    "BatchSignatureCoordinator",
    "BillingQueue",
    "ChangeReason",
    "DisputeCategory",
    "EquipmentEntryInput",
    "EvidenceInput",
    "FIELD_TICKET_WORKFLOW",
    "FieldTicketSelector",
    "FieldTicketService",
    "FieldTicketSummary",
    "GpsLocation",
    "LaborEntryInput",
    "MaterialEntryInput",
    "PhotoInput",
    "SignatureInput",
    "TicketDraft",
    "TicketStatus",
    "TicketTotals",
    "TicketUpdate",
]
