"""
Risk Aggregation (``fieldledger_modules.field_tickets.risk``).

Responsibility
--------------
Pure functions that turn the at-risk ticket rows into the dashboard
views: total at risk, a per-status split, aging buckets and a weekly
creation trend.

Architecture position
---------------------
**Modules layer** -- pure helper functions.  No session, no clock.  The
selector reads the rows once and passes ``now`` in; every view is derived
from that same row list so the views cannot disagree.

Invariants enforced
-------------------
* ``sum(bucket.count) == count`` and ``sum(bucket.total_amount) ==
  total_at_risk``: aging buckets partition the at-risk set.
* An age equal to a threshold falls in the lower bucket
  (``age == warning_days`` is fresh, ``age == critical_days`` is warning).
* Ages are whole UTC calendar days from the work date.  A work date in the
  future has a negative age and is fresh.
* Trend points are ordered by ISO (year, week), oldest first, and only
  cover tickets created inside the lookback window.

Failure modes
-------------
* Non-positive thresholds, ``warning_days >= critical_days`` or a
  non-positive window -> ``ValidationError``.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import UUID

from fieldledger_kernel.db.types import ZERO
from fieldledger_kernel.domain.clock import as_utc
from fieldledger_kernel.exceptions import ValidationError
from fieldledger_modules.field_tickets.models import (
    AgingBucket,
    AgingBucketName,
    AtRiskReport,
    StatusTotal,
    TicketStatus,
    WeeklyTrendPoint,
)

DEFAULT_WARNING_DAYS = 3
DEFAULT_CRITICAL_DAYS = 7
DEFAULT_TREND_WEEKS = 8

_AT_RISK_ORDER = (TicketStatus.DRAFT, TicketStatus.PENDING_SIGNATURE)


@dataclass(frozen=True)
class AtRiskRow:
    """The columns of one at-risk ticket that the views need."""
    ticket_id: UUID
    ticket_number: str
    status: str
    work_date: date
    created_at: datetime
    total_amount: Decimal


def validate_thresholds(warning_days: int, critical_days: int, trend_weeks: int) -> None:
    if warning_days < 1:
        raise ValidationError("warning_days", "must be a positive number of days")
    if critical_days < 1:
        raise ValidationError("critical_days", "must be a positive number of days")
    if warning_days >= critical_days:
        raise ValidationError("warning_days", "must be less than critical_days")
    if trend_weeks < 1:
        raise ValidationError("weeks", "must be a positive number of weeks")


def age_in_days(work_date: date, today: date) -> int:
    return (today - work_date).days


def classify_age(age_days: int, warning_days: int, critical_days: int) -> AgingBucketName:
    if age_days <= warning_days:
        return AgingBucketName.FRESH
    if age_days <= critical_days:
        return AgingBucketName.WARNING
    return AgingBucketName.CRITICAL


def sum_amounts(rows: Iterable[AtRiskRow]) -> tuple[int, Decimal]:
    count = 0
    total = ZERO
    for row in rows:
        count += 1
        total += row.total_amount
    return count, total


def status_totals(rows: Sequence[AtRiskRow]) -> tuple[StatusTotal, ...]:
    """Count and value per at-risk status, zero rows included."""
    result = []
    for status in _AT_RISK_ORDER:
        count, total = sum_amounts(r for r in rows if r.status == status.value)
        result.append(StatusTotal(status=status, count=count, total_amount=total))
    return tuple(result)


def aging_buckets(
    rows: Sequence[AtRiskRow],
    today: date,
    warning_days: int = DEFAULT_WARNING_DAYS,
    critical_days: int = DEFAULT_CRITICAL_DAYS,
) -> tuple[AgingBucket, ...]:
    """Partition ``rows`` into fresh, warning and critical buckets."""
    counts = {name: 0 for name in AgingBucketName}
    totals = {name: ZERO for name in AgingBucketName}
    for row in rows:
        name = classify_age(age_in_days(row.work_date, today), warning_days, critical_days)
        counts[name] += 1
        totals[name] += row.total_amount
    return tuple(
        AgingBucket(name=name, count=counts[name], total_amount=totals[name])
        for name in AgingBucketName
    )


def weekly_trend(
    rows: Sequence[AtRiskRow],
    now: datetime,
    weeks: int = DEFAULT_TREND_WEEKS,
) -> tuple[WeeklyTrendPoint, ...]:
    """Group rows created in the last ``weeks`` weeks by ISO (year, week)."""
    since = as_utc(now) - timedelta(days=weeks * 7)
    groups: dict[tuple[int, int], list[AtRiskRow]] = {}
    for row in rows:
        created = as_utc(row.created_at)
        if created < since:
            continue
        iso = created.isocalendar()
        groups.setdefault((iso.year, iso.week), []).append(row)
    points = []
    for (year, week) in sorted(groups):
        count, total = sum_amounts(groups[(year, week)])
        points.append(WeeklyTrendPoint(year=year, week=week, count=count, total_amount=total))
    return tuple(points)


def build_at_risk_report(
    rows: Sequence[AtRiskRow],
    now: datetime,
    warning_days: int = DEFAULT_WARNING_DAYS,
    critical_days: int = DEFAULT_CRITICAL_DAYS,
    trend_weeks: int = DEFAULT_TREND_WEEKS,
) -> AtRiskReport:
    """Derive every view from one list of rows."""
    validate_thresholds(warning_days, critical_days, trend_weeks)
    now = as_utc(now)
    count, total = sum_amounts(rows)
    return AtRiskReport(
        total_at_risk=total,
        count=count,
        by_status=status_totals(rows),
        aging=aging_buckets(rows, now.date(), warning_days, critical_days),
        trend=weekly_trend(rows, now, trend_weeks),
        warning_days=warning_days,
        critical_days=critical_days,
        trend_weeks=trend_weeks,
        generated_at=now,
    )
