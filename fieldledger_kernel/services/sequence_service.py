"""
SequenceService -- atomic allocation from named counter rows.

Responsibility:
    Provides strictly increasing sequence numbers per named counter.  The
    field ticket module uses one counter per (tenant, year) to number
    tickets, but nothing here knows about tickets.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by TicketNumberAllocator.

Invariants enforced:
    - Each call increments the counter with a single
      ``UPDATE ... SET current_value = current_value + 1 RETURNING`` so
      the read and the write cannot be separated by another transaction.
      The aggregate-max-plus-one pattern is never used.
    - Counter rows are created with ``INSERT ... ON CONFLICT DO NOTHING``;
      two transactions racing to create the same counter both succeed and
      both then increment it.
    - The increment is transactional: it becomes visible when the caller
      commits, and a rollback returns the value (no gap).

Failure modes:
    - OperationalError / IntegrityError from the driver when the database
      cannot serialize the write.  Callers that own the transaction retry a
      bounded number of times.

Audit relevance:
    Each allocation is logged at DEBUG level as ``sequence_allocated`` with
    the counter name and value.
"""

from uuid import uuid4

from sqlalchemy import String, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Mapped, Session, mapped_column

from fieldledger_kernel.db.base import Base
from fieldledger_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its last issued value.
    """

    __tablename__ = "sequence_counters"

    # e.g. "field_ticket:<tenant_id>:2024"
    name: Mapped[str] = mapped_column(
        String(120),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Contract:
        Accepts a sequence name and returns the next value.  The increment
        is only committed when the caller's transaction commits.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT retry -- the owner of the transaction does.

    Usage:
        seq = SequenceService(session).next_value("field_ticket:t1:2024")
        session.commit()
    """

    def __init__(self, session: Session):
        self._session = session

    def _insert_counter_if_missing(self, sequence_name: str) -> None:
        dialect = self._session.get_bind().dialect.name
        if dialect == "postgresql":
            insert_fn = postgresql.insert
        elif dialect == "sqlite":
            insert_fn = sqlite.insert
        else:
            raise RuntimeError(f"Unsupported database dialect: {dialect}")
        stmt = (
            insert_fn(SequenceCounter)
            .values(id=uuid4(), name=sequence_name, current_value=0)
            .on_conflict_do_nothing(index_elements=["name"])
        )
        self._session.execute(stmt)

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        Preconditions:
            - ``sequence_name`` is a non-empty string.

        Postconditions:
            - Returns an integer > 0 that is strictly greater than any value
              previously committed for this sequence name.

        Returns:
            The next sequence value (1 on first use).
        """
        if not sequence_name:
            raise ValueError("sequence_name must be non-empty")

        self._insert_counter_if_missing(sequence_name)
        value = self._session.execute(
            update(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .values(current_value=SequenceCounter.current_value + 1)
            .returning(SequenceCounter.current_value)
            .execution_options(synchronize_session=False)
        ).scalar_one()

        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": value},
        )
        return value

    def current_value(self, sequence_name: str) -> int | None:
        """
        Get the current value of a sequence without incrementing.

        Returns:
            Last issued value, or None if the sequence was never used.
        """
        return self._session.execute(
            select(SequenceCounter.current_value)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
