"""Field Ticket Workflows.

State machine for the change-order ticket lifecycle:

    draft -> pending_signature -> signed -> approved -> billed
    draft | pending_signature | signed | approved | disputed -> disputed
    disputed -> signed   (dispute resolved)

``billed``, ``paid`` and ``voided`` are terminal here; the billing side
moves tickets beyond ``billed``.  Guards are descriptive;
``FieldTicketService`` evaluates them.
"""

from fieldledger_kernel.domain.workflow import Guard, Transition, Workflow
from fieldledger_kernel.logging_config import get_logger
from fieldledger_modules.field_tickets.models import TicketStatus

logger = get_logger("modules.field_tickets.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

PHOTO_ATTACHED = Guard(
    name="photo_attached",
    description="At least one photo is attached",
)

SIGNATURE_SUPPLIED = Guard(
    name="signature_supplied",
    description="Signature payload and signer name are supplied",
)

SIGNATURE_PRESENT = Guard(
    name="signature_present",
    description="An inspector signature is stored on the ticket",
)

DISPUTE_REASON_SUPPLIED = Guard(
    name="dispute_reason_supplied",
    description="A dispute reason is supplied",
)

RESOLUTION_SUPPLIED = Guard(
    name="resolution_supplied",
    description="A dispute resolution is supplied",
)

CLAIM_REFERENCE_SUPPLIED = Guard(
    name="claim_reference_supplied",
    description="The billing claim reference is supplied",
)


# -----------------------------------------------------------------------------
# Actions
# -----------------------------------------------------------------------------

SUBMIT = "submit"
SIGN = "sign"
APPROVE = "approve"
DISPUTE = "dispute"
RESOLVE_DISPUTE = "resolve_dispute"
MARK_BILLED = "mark_billed"

_DRAFT = TicketStatus.DRAFT.value
_PENDING = TicketStatus.PENDING_SIGNATURE.value
_SIGNED = TicketStatus.SIGNED.value
_APPROVED = TicketStatus.APPROVED.value
_DISPUTED = TicketStatus.DISPUTED.value
_BILLED = TicketStatus.BILLED.value

# A disputed ticket may be disputed again; the first pre-dispute status is kept
DISPUTABLE_STATUSES = (_DRAFT, _PENDING, _SIGNED, _APPROVED, _DISPUTED)

FIELD_TICKET_WORKFLOW = Workflow(
    name="field_ticket",
    description="Change-order field ticket lifecycle",
    initial_state=_DRAFT,
    states=tuple(s.value for s in TicketStatus),
    transitions=(
        Transition(_DRAFT, _PENDING, action=SUBMIT, guard=PHOTO_ATTACHED),
        Transition(_PENDING, _SIGNED, action=SIGN, guard=SIGNATURE_SUPPLIED),
        Transition(_SIGNED, _APPROVED, action=APPROVE, guard=SIGNATURE_PRESENT),
        *(
            Transition(state, _DISPUTED, action=DISPUTE, guard=DISPUTE_REASON_SUPPLIED)
            for state in DISPUTABLE_STATUSES
        ),
        Transition(_DISPUTED, _SIGNED, action=RESOLVE_DISPUTE, guard=RESOLUTION_SUPPLIED),
        Transition(_APPROVED, _BILLED, action=MARK_BILLED, guard=CLAIM_REFERENCE_SUPPLIED),
    ),
    terminal_states=(_BILLED, TicketStatus.PAID.value, TicketStatus.VOIDED.value),
)

# Entries, photos and markup may change only here
EDITABLE_STATUSES = frozenset({_DRAFT, _PENDING})

# Not yet confirmed by an inspector signature
AT_RISK_STATUSES = frozenset({_DRAFT, _PENDING})

logger.info(
    "field_ticket_workflow_defined",
    extra={
        "workflow": FIELD_TICKET_WORKFLOW.name,
        "transition_count": len(FIELD_TICKET_WORKFLOW.transitions),
    },
)
