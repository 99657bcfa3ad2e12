"""
Module: fieldledger_modules.field_tickets.selectors
Responsibility: Read-only queries over field tickets: single-ticket lookup,
    filtered listings, the billing queue, and the at-risk report.
Architecture position: Modules > Selectors.  Extends the kernel BaseSelector.
    Never adds, flushes or commits.

Invariants enforced:
    - Every query is scoped to one tenant and excludes soft-deleted tickets.
    - The at-risk report issues exactly one query for its rows; total,
      per-status split, aging and trend are all derived from that result.

Failure modes:
    - TicketNotFoundError when a ticket is absent, deleted, or owned by
      another tenant (same message in all three cases).
    - ValidationError for a missing tenant, bad thresholds or limits.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from uuid import UUID

from sqlalchemy import select

from fieldledger_config.schema import RiskSettings
from fieldledger_kernel.db.types import ZERO
from fieldledger_kernel.domain.clock import Clock, SystemClock
from fieldledger_kernel.exceptions import TicketNotFoundError, ValidationError
from fieldledger_kernel.logging_config import get_logger
from fieldledger_kernel.selectors.base import BaseSelector
from fieldledger_modules.field_tickets.models import (
    AtRiskReport,
    BillingQueue,
    FieldTicketSummary,
    TicketStatus,
)
from fieldledger_modules.field_tickets.orm import FieldTicketModel
from fieldledger_modules.field_tickets.risk import AtRiskRow, build_at_risk_report
from fieldledger_modules.field_tickets.workflows import AT_RISK_STATUSES

logger = get_logger("modules.field_tickets.selectors")

DEFAULT_LIST_LIMIT = 100
MAX_LIST_LIMIT = 500


def _require_tenant(tenant_id: UUID | None) -> UUID:
    if tenant_id is None:
        raise ValidationError("tenant_id", "is required")
    return tenant_id


class FieldTicketSelector(BaseSelector[FieldTicketModel]):
    """Read side of the field ticket module."""

    def __init__(
        self,
        session,
        risk_settings: RiskSettings | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._risk = risk_settings or RiskSettings()
        self._clock = clock or SystemClock()

    def _visible(self, tenant_id: UUID):
        return select(FieldTicketModel).where(
            FieldTicketModel.tenant_id == _require_tenant(tenant_id),
            FieldTicketModel.is_deleted.is_(False),
        )

    def get_summary(self, tenant_id: UUID, ticket_id: UUID) -> FieldTicketSummary:
        ticket = self.session.execute(
            self._visible(tenant_id).where(FieldTicketModel.id == ticket_id)
        ).scalar_one_or_none()
        if ticket is None:
            raise TicketNotFoundError(str(ticket_id))
        return ticket.to_summary()

    def list_tickets(
        self,
        tenant_id: UUID,
        job_id: UUID | None = None,
        statuses: Sequence[TicketStatus] | None = None,
        work_date_from: date | None = None,
        work_date_to: date | None = None,
        created_by_id: UUID | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[FieldTicketSummary]:
        """Newest work date first."""
        if not 1 <= limit <= MAX_LIST_LIMIT:
            raise ValidationError("limit", f"must be between 1 and {MAX_LIST_LIMIT}")
        stmt = self._visible(tenant_id)
        if job_id is not None:
            stmt = stmt.where(FieldTicketModel.job_id == job_id)
        if statuses:
            stmt = stmt.where(FieldTicketModel.status.in_([s.value for s in statuses]))
        if work_date_from is not None:
            stmt = stmt.where(FieldTicketModel.work_date >= work_date_from)
        if work_date_to is not None:
            stmt = stmt.where(FieldTicketModel.work_date <= work_date_to)
        if created_by_id is not None:
            stmt = stmt.where(FieldTicketModel.created_by_id == created_by_id)
        stmt = stmt.order_by(
            FieldTicketModel.work_date.desc(), FieldTicketModel.ticket_number.desc()
        ).limit(limit)
        return [t.to_summary() for t in self.session.execute(stmt).scalars()]

    def approved_for_billing(self, tenant_id: UUID) -> BillingQueue:
        """Approved tickets not yet attached to a claim, newest work date first."""
        stmt = (
            self._visible(tenant_id)
            .where(
                FieldTicketModel.status == TicketStatus.APPROVED.value,
                FieldTicketModel.claim_id.is_(None),
            )
            .order_by(FieldTicketModel.work_date.desc())
        )
        tickets = tuple(t.to_summary() for t in self.session.execute(stmt).scalars())
        return BillingQueue(
            count=len(tickets),
            total_amount=sum((t.total_amount for t in tickets), ZERO),
            tickets=tickets,
        )

    def at_risk_rows(self, tenant_id: UUID) -> list[AtRiskRow]:
        stmt = (
            select(
                FieldTicketModel.id,
                FieldTicketModel.ticket_number,
                FieldTicketModel.status,
                FieldTicketModel.work_date,
                FieldTicketModel.created_at,
                FieldTicketModel.total_amount,
            )
            .where(
                FieldTicketModel.tenant_id == _require_tenant(tenant_id),
                FieldTicketModel.is_deleted.is_(False),
                FieldTicketModel.status.in_(sorted(AT_RISK_STATUSES)),
            )
            .order_by(FieldTicketModel.created_at)
        )
        return [
            AtRiskRow(
                ticket_id=row.id,
                ticket_number=row.ticket_number,
                status=row.status,
                work_date=row.work_date,
                created_at=row.created_at,
                total_amount=row.total_amount,
            )
            for row in self.session.execute(stmt)
        ]

    def at_risk_report(
        self,
        tenant_id: UUID,
        warning_days: int | None = None,
        critical_days: int | None = None,
        weeks: int | None = None,
    ) -> AtRiskReport:
        """
        Revenue not yet confirmed by an inspector signature.

        Thresholds default to the configured ``RiskSettings``.
        """
        rows = self.at_risk_rows(tenant_id)
        report = build_at_risk_report(
            rows,
            now=self._clock.now_utc(),
            warning_days=self._risk.warning_days if warning_days is None else warning_days,
            critical_days=self._risk.critical_days if critical_days is None else critical_days,
            trend_weeks=self._risk.trend_weeks if weeks is None else weeks,
        )
        logger.debug(
            "at_risk_report_built",
            extra={"tenant_id": str(tenant_id), "count": report.count,
                   "total_at_risk": str(report.total_at_risk)},
        )
        return report
