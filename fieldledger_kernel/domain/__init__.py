"""Pure domain primitives: clocks and workflow definitions."""

from fieldledger_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SystemClock,
    as_utc,
)
from fieldledger_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "as_utc",
    "Guard",
    "Transition",
    "Workflow",
]
