"""
Tests for the Field Ticket Selector.

Validates:
- Summaries and listings are tenant scoped and skip deleted tickets
- Billing queue holds approved, unclaimed tickets only
- The at-risk report matches a brute-force computation over all tickets
- Configured thresholds and per-call overrides
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest

from fieldledger_config.schema import RiskSettings
from fieldledger_kernel.exceptions import TicketNotFoundError, ValidationError
from fieldledger_modules.field_tickets.models import AgingBucketName, TicketStatus
from fieldledger_modules.field_tickets.selectors import FieldTicketSelector
from tests.conftest import FIXED_NOW, OTHER_TENANT_ID, draft_for, sample_labor


@pytest.fixture
def selector(session, deterministic_clock):
    return FieldTicketSelector(session, clock=deterministic_clock)


TODAY = FIXED_NOW.date()


class TestSummaries:

    def test_get_summary(self, selector, make_ticket, tenant_id):
        ticket = make_ticket("signed")
        summary = selector.get_summary(tenant_id, ticket.id)
        assert summary.ticket_number == ticket.ticket_number
        assert summary.status is TicketStatus.SIGNED
        assert summary.total_amount == Decimal("550")

    def test_other_tenant_not_found(self, selector, make_ticket):
        ticket = make_ticket("draft")
        with pytest.raises(TicketNotFoundError):
            selector.get_summary(OTHER_TENANT_ID, ticket.id)

    def test_list_filters(self, selector, make_ticket, tenant_id):
        old = make_ticket("draft", work_date=date(2024, 1, 1))
        new = make_ticket("signed", work_date=date(2024, 1, 10))
        assert [s.id for s in selector.list_tickets(tenant_id)] == [new.id, old.id]
        assert [s.id for s in selector.list_tickets(
            tenant_id, statuses=[TicketStatus.DRAFT]
        )] == [old.id]
        assert [s.id for s in selector.list_tickets(
            tenant_id, work_date_from=date(2024, 1, 5)
        )] == [new.id]

    def test_list_excludes_deleted(self, selector, make_ticket, ticket_service, tenant_id, actor_id):
        ticket = make_ticket("draft")
        ticket_service.soft_delete(tenant_id, ticket.id, actor_id)
        assert selector.list_tickets(tenant_id) == []

    @pytest.mark.parametrize("limit", [0, 501])
    def test_limit_bounds(self, selector, tenant_id, limit):
        with pytest.raises(ValidationError):
            selector.list_tickets(tenant_id, limit=limit)


class TestBillingQueue:

    def test_approved_unclaimed_only(self, selector, make_ticket, tenant_id):
        approved = make_ticket("approved")
        make_ticket("billed")
        make_ticket("signed")
        queue = selector.approved_for_billing(tenant_id)
        assert queue.count == 1
        assert queue.tickets[0].id == approved.id
        assert queue.total_amount == Decimal("550")


class TestAtRiskReport:

    def test_matches_brute_force(self, selector, make_ticket, ticket_service, session, tenant_id, actor_id):
        specs = [
            ("draft", 0), ("draft", 3), ("pending_signature", 4),
            ("pending_signature", 7), ("draft", 8), ("pending_signature", 30),
            ("signed", 20), ("approved", 40), ("billed", 50),
        ]
        tickets = [
            make_ticket(status, work_date=TODAY - timedelta(days=age)) for status, age in specs
        ]
        deleted = make_ticket("draft", work_date=TODAY - timedelta(days=9))
        ticket_service.soft_delete(tenant_id, deleted.id, actor_id)

        report = selector.at_risk_report(tenant_id)

        at_risk = [
            (t, age) for t, (status, age) in zip(tickets, specs)
            if status in ("draft", "pending_signature")
        ]
        assert report.count == len(at_risk)
        assert report.total_at_risk == sum((t.total_amount for t, _ in at_risk), Decimal("0"))

        expected = {name: 0 for name in AgingBucketName}
        for _, age in at_risk:
            if age <= 3:
                expected[AgingBucketName.FRESH] += 1
            elif age <= 7:
                expected[AgingBucketName.WARNING] += 1
            else:
                expected[AgingBucketName.CRITICAL] += 1
        assert {b.name: b.count for b in report.aging} == expected
        assert sum(b.total_amount for b in report.aging) == report.total_at_risk

        by_status = {s.status: s.count for s in report.by_status}
        assert by_status == {TicketStatus.DRAFT: 3, TicketStatus.PENDING_SIGNATURE: 3}
        assert sum(p.count for p in report.trend) == report.count

    def test_other_tenant_excluded(self, selector, make_ticket):
        make_ticket("draft")
        assert selector.at_risk_report(OTHER_TENANT_ID).count == 0

    def test_empty_report(self, selector, tenant_id):
        report = selector.at_risk_report(tenant_id)
        assert report.count == 0
        assert report.total_at_risk == Decimal("0")
        assert report.trend == ()
        assert all(b.count == 0 for b in report.aging)

    def test_configured_thresholds(self, session, deterministic_clock, make_ticket, tenant_id):
        make_ticket("draft", work_date=TODAY - timedelta(days=5))
        selector = FieldTicketSelector(
            session,
            risk_settings=RiskSettings(warning_days=5, critical_days=10),
            clock=deterministic_clock,
        )
        assert selector.at_risk_report(tenant_id).bucket(AgingBucketName.FRESH).count == 1
        assert (
            selector.at_risk_report(tenant_id, warning_days=2, critical_days=4)
            .bucket(AgingBucketName.CRITICAL)
            .count
            == 1
        )

    def test_invalid_override(self, selector, tenant_id):
        with pytest.raises(ValidationError):
            selector.at_risk_report(tenant_id, warning_days=7, critical_days=7)

    def test_trend_uses_creation_time(self, selector, make_ticket, deterministic_clock, tenant_id):
        deterministic_clock.set_time(FIXED_NOW - timedelta(weeks=12))
        make_ticket("draft")
        deterministic_clock.set_time(FIXED_NOW)
        make_ticket("draft")
        report = selector.at_risk_report(tenant_id, weeks=8)
        assert report.count == 2
        assert sum(p.count for p in report.trend) == 1
