"""
Typed Exception Hierarchy for the Field Ticket Engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (request handlers, batch jobs, tests) must react to errors by TYPE,
never by parsing message strings:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Every exception has an HTTP_STATUS attribute (transport mapping)
  4. Exceptions carry structured DATA (field, status, action, ticket numbers)

Example:
    try:
        service.approve(ticket_id, tenant_id=tenant, actor_id=actor)
    except SignatureRequiredError as e:
        respond(e.http_status, code=e.code, status=e.current_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FieldLedgerError (base)
    |
    +-- ValidationError                      400  malformed / missing field
    |
    +-- PreconditionViolationError           400  wrong state for the action
    |   +-- InvalidTransitionError
    |   +-- SignatureRequiredError
    |   +-- PhotoRequiredError
    |   +-- TicketNotEditableError
    |   +-- TicketNotDeletableError
    |   +-- BatchSignatureRejectedError
    |
    +-- NotFoundError                        404  not in caller's tenant scope
    |   +-- TicketNotFoundError
    |   +-- JobNotFoundError
    |
    +-- ConcurrencyConflictError             409  lost a race
    |   +-- SequenceAllocationConflictError
    |   +-- OptimisticLockError
    |   +-- BatchSignatureConflictError
    |
    +-- ImmutabilityViolationError           400  write to a frozen record

===============================================================================
DESIGN DECISIONS
===============================================================================

1. NotFoundError messages never say whether the resource exists in another
   tenant.  The message is identical for "absent" and "foreign".
2. ConcurrencyConflictError from sequence allocation is raised only after
   the bounded internal retries are exhausted.  Batch conflicts are raised
   immediately; a batch is never silently retried.
3. Calculation failures surface as ValidationError; no total is ever
   silently replaced by zero.
"""

from __future__ import annotations

from collections.abc import Sequence


class FieldLedgerError(Exception):
    """
    Base exception for all field ticket engine errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification and an ``http_status`` for transport mapping.
    """

    code: str = "FIELD_LEDGER_ERROR"
    http_status: int = 500


# Validation


class ValidationError(FieldLedgerError):
    """A required field is missing or a value is malformed."""

    code: str = "VALIDATION_ERROR"
    http_status: int = 400

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Preconditions


class PreconditionViolationError(FieldLedgerError):
    """The ticket is not in a state that permits the requested action."""

    code: str = "PRECONDITION_VIOLATION"
    http_status: int = 400

    def __init__(
        self,
        ticket_id: str,
        current_status: str,
        action: str,
        reason: str | None = None,
    ):
        self.ticket_id = ticket_id
        self.current_status = current_status
        self.action = action
        self.reason = reason
        message = (
            f"Cannot {action} ticket {ticket_id} in status '{current_status}'"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InvalidTransitionError(PreconditionViolationError):
    """No workflow transition exists for this action from the current status."""

    code: str = "INVALID_TRANSITION"


class SignatureRequiredError(PreconditionViolationError):
    """Approval or dispute resolution attempted without a stored inspector signature."""

    code: str = "SIGNATURE_REQUIRED"

    def __init__(
        self,
        ticket_id: str,
        current_status: str,
        action: str = "approve",
        reason: str = "inspector signature required before approval",
    ):
        super().__init__(ticket_id, current_status, action, reason=reason)


class PhotoRequiredError(PreconditionViolationError):
    """Submission attempted without any photo attached."""

    code: str = "PHOTO_REQUIRED"

    def __init__(self, ticket_id: str, current_status: str, action: str = "submit"):
        super().__init__(
            ticket_id,
            current_status,
            action,
            reason="at least one photo is required before submitting",
        )


class TicketNotEditableError(PreconditionViolationError):
    """Entries, photos or markup changed outside draft/pending_signature."""

    code: str = "TICKET_NOT_EDITABLE"


class TicketNotDeletableError(PreconditionViolationError):
    """Soft delete attempted on a non-draft ticket without elevated privilege."""

    code: str = "TICKET_NOT_DELETABLE"


class BatchSignatureRejectedError(PreconditionViolationError):
    """
    One or more batch targets are not awaiting signature.

    The whole batch is rejected and no ticket is mutated.
    """

    code: str = "BATCH_SIGNATURE_REJECTED"

    def __init__(
        self,
        offending_ticket_ids: Sequence[str],
        offending_ticket_numbers: Sequence[str],
    ):
        self.offending_ticket_ids = list(offending_ticket_ids)
        self.offending_ticket_numbers = list(offending_ticket_numbers)
        super().__init__(
            ticket_id=", ".join(self.offending_ticket_ids),
            current_status="mixed",
            action="batch_sign",
            reason=(
                "the following tickets are not in pending_signature status: "
                + ", ".join(self.offending_ticket_numbers)
            ),
        )


# Not found


class NotFoundError(FieldLedgerError):
    """Resource not found in the caller's tenant scope."""

    code: str = "NOT_FOUND"
    http_status: int = 404

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class TicketNotFoundError(NotFoundError):
    """Field ticket not found (or deleted, or owned by another tenant)."""

    code: str = "TICKET_NOT_FOUND"

    def __init__(self, ticket_id: str):
        super().__init__("Field ticket", ticket_id)


class JobNotFoundError(NotFoundError):
    """Job not found (or deleted, or owned by another tenant)."""

    code: str = "JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        super().__init__("Job", job_id)


# Concurrency


class ConcurrencyConflictError(FieldLedgerError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_CONFLICT"
    http_status: int = 409


class SequenceAllocationConflictError(ConcurrencyConflictError):
    """Ticket number allocation kept colliding after bounded retries."""

    code: str = "SEQUENCE_ALLOCATION_CONFLICT"

    def __init__(self, sequence_name: str, attempts: int):
        self.sequence_name = sequence_name
        self.attempts = attempts
        super().__init__(
            f"Could not allocate from sequence {sequence_name} "
            f"after {attempts} attempt(s)"
        )


class OptimisticLockError(ConcurrencyConflictError):
    """A ticket was modified by another transaction in between read and write."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


class BatchSignatureConflictError(ConcurrencyConflictError):
    """A batch target changed between validation and write; nothing was signed."""

    code: str = "BATCH_SIGNATURE_CONFLICT"

    def __init__(self, ticket_ids: Sequence[str]):
        self.ticket_ids = list(ticket_ids)
        super().__init__(
            "Batch signature aborted: tickets changed concurrently: "
            + ", ".join(self.ticket_ids)
        )


# Immutability


class ImmutabilityViolationError(FieldLedgerError):
    """Attempted to modify an immutable record (e.g. a stored signature)."""

    code: str = "IMMUTABILITY_VIOLATION"
    http_status: int = 400

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")
