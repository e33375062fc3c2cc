"""Recurring audit date arithmetic and schedule helpers."""

from __future__ import annotations

import calendar
from datetime import date, datetime
from typing import Optional, TypeVar

from ..models import AuditFrequency, AuditSchedule

DateT = TypeVar("DateT", date, datetime)

FREQUENCY_MONTHS: dict[AuditFrequency, int] = {
    AuditFrequency.MONTHLY: 1,
    AuditFrequency.QUARTERLY: 3,
    AuditFrequency.SEMI_ANNUAL: 6,
    AuditFrequency.ANNUAL: 12,
    AuditFrequency.BIENNIAL: 24,
    AuditFrequency.ADHOC: 0,
}


def add_months(start: DateT, months: int) -> DateT:
    """Shift by whole calendar months, clamping to the last day of the month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def next_audit_date(start: DateT, frequency: AuditFrequency) -> DateT:
    """Next occurrence after ``start``. Ad hoc schedules do not advance."""
    return add_months(start, FREQUENCY_MONTHS[AuditFrequency(frequency)])


def build_schedule(
    template_id: str,
    frequency: AuditFrequency,
    start_date: datetime,
    auditee_id: str,
    auditor_ids: list[str],
    scheduled_by: str = "system",
    now: Optional[datetime] = None,
) -> AuditSchedule:
    return AuditSchedule(
        template_id=template_id,
        frequency=frequency,
        start_date=start_date,
        next_audit_date=next_audit_date(start_date, frequency),
        auditee_id=auditee_id,
        auditor_ids=list(auditor_ids),
        is_active=True,
        scheduled_by=scheduled_by,
        created_at=now or datetime.now(),
    )


def is_due(schedule: AuditSchedule, now: datetime) -> bool:
    return schedule.is_active and schedule.next_audit_date <= now


def advance_schedule(schedule: AuditSchedule, triggered_at: datetime) -> AuditSchedule:
    """Move a triggered schedule to its next occurrence in place.

    Ad hoc schedules fire once and are deactivated.
    """
    schedule.last_triggered_at = triggered_at
    if schedule.frequency == AuditFrequency.ADHOC:
        schedule.is_active = False
    else:
        schedule.next_audit_date = next_audit_date(schedule.next_audit_date, schedule.frequency)
    return schedule
