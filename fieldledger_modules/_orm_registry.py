"""
Module ORM Registry (``fieldledger_modules._orm_registry``).

Responsibility
--------------
Ensure every SQLAlchemy ORM model is imported so that ``Base.metadata``
contains its table before ``create_tables()`` runs.

Architecture position
---------------------
**Modules layer** -- utility.  Imported lazily by
``fieldledger_kernel.db.engine.create_tables`` and by ``tests/conftest.py``.
"""


def import_all_orm_models() -> None:
    """Import kernel and module ORM modules.  Idempotent."""
    # Kernel tables first (sequence_counters)
    import fieldledger_kernel.services.sequence_service  # noqa: F401
    import fieldledger_modules.field_tickets.orm  # noqa: F401
