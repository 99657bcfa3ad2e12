"""
FieldLedger Kernel

Shared infrastructure for the field ticket billing engine:
- Typed, coded exceptions
- Structured JSON logging
- SQLAlchemy declarative base, engine and session scope
- Atomic sequence allocation
- Injectable clock and workflow value types
"""

__version__ = "0.1.0"
