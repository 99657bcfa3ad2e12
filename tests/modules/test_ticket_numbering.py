"""
Tests for ticket number formatting and allocation.

Validates:
- FT-<year>-<5 digit sequence> format and parsing
- Per-tenant, per-year counters starting at 1
- A rolled-back allocation does not consume a number
- Year taken from the injected clock
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from fieldledger_config.schema import NumberingSettings
from fieldledger_modules.field_tickets.numbering import (
    TicketNumberAllocator,
    format_ticket_number,
    parse_ticket_number,
    sequence_name,
)
from tests.conftest import OTHER_TENANT_ID, TEST_TENANT_ID, draft_for


class TestFormat:

    def test_zero_padded(self):
        assert format_ticket_number(2024, 1) == "FT-2024-00001"
        assert format_ticket_number(2024, 12345) == "FT-2024-12345"

    def test_overflow_widens(self):
        assert format_ticket_number(2024, 123456) == "FT-2024-123456"

    def test_custom_prefix_and_width(self):
        assert format_ticket_number(2025, 7, prefix="CO", width=3) == "CO-2025-007"

    @pytest.mark.parametrize("seq,year", [(0, 2024), (-1, 2024), (1, 999), (1, 10000)])
    def test_invalid(self, seq, year):
        with pytest.raises(ValueError):
            format_ticket_number(year, seq)

    def test_parse(self):
        assert parse_ticket_number("FT-2024-00042") == ("FT", 2024, 42)

    def test_parse_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_ticket_number("FT2024-1")

    def test_sequence_name(self):
        assert sequence_name(TEST_TENANT_ID, 2024) == f"field_ticket:{TEST_TENANT_ID}:2024"


class TestAllocator:

    def test_counters_are_per_tenant_and_year(self, session):
        allocator = TicketNumberAllocator(session)
        assert allocator.allocate(TEST_TENANT_ID, 2024) == "FT-2024-00001"
        assert allocator.allocate(TEST_TENANT_ID, 2024) == "FT-2024-00002"
        assert allocator.allocate(TEST_TENANT_ID, 2025) == "FT-2025-00001"
        assert allocator.allocate(OTHER_TENANT_ID, 2024) == "FT-2024-00001"
        session.commit()
        assert allocator.last_allocated(TEST_TENANT_ID, 2024) == 2

    def test_rollback_releases_number(self, session):
        allocator = TicketNumberAllocator(session)
        allocator.allocate(TEST_TENANT_ID, 2024)
        session.commit()
        allocator.allocate(TEST_TENANT_ID, 2024)
        session.rollback()
        assert allocator.allocate(TEST_TENANT_ID, 2024) == "FT-2024-00002"
        session.commit()

    def test_never_used_sequence(self, session):
        assert TicketNumberAllocator(session).last_allocated(TEST_TENANT_ID, 2030) is None

    def test_settings_prefix(self, session):
        allocator = TicketNumberAllocator(session, NumberingSettings(prefix="CO", width=4))
        assert allocator.allocate(TEST_TENANT_ID, 2024) == "CO-2024-0001"
        session.commit()


class TestYearFromClock:

    def test_new_year_restarts_sequence(
        self, ticket_service, deterministic_clock, tenant_id, actor_id, job
    ):
        ticket_service.create_ticket(tenant_id, actor_id, draft_for(job.id))
        deterministic_clock.set_time(datetime(2025, 1, 2, 8, 0, tzinfo=timezone.utc))
        ticket = ticket_service.create_ticket(tenant_id, actor_id, draft_for(job.id))
        assert ticket.ticket_number == "FT-2025-00001"
