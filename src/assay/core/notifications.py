"""Notification boundary.

Delivery is fire-and-forget: the service calls these after a mutation has
been committed and logs, rather than raises, any failure.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Protocol, runtime_checkable

from ..models import AuditFinding, AuditReport, AuditStatus

logger = logging.getLogger(__name__)


@runtime_checkable
class Notifier(Protocol):
    """Protocol that all notification channels must implement."""

    def schedule_reminder(self, report_id: str, fires_at: datetime, message: str) -> None: ...

    def notify_status_change(self, report: AuditReport, previous_status: AuditStatus) -> None: ...

    def notify_finding(self, finding: AuditFinding, report_id: str) -> None: ...


class NullNotifier:
    """Discards every notification."""

    def schedule_reminder(self, report_id: str, fires_at: datetime, message: str) -> None:
        pass

    def notify_status_change(self, report: AuditReport, previous_status: AuditStatus) -> None:
        pass

    def notify_finding(self, finding: AuditFinding, report_id: str) -> None:
        pass


class LoggingNotifier:
    """Writes notifications to the ``assay.notifications`` logger."""

    def schedule_reminder(self, report_id: str, fires_at: datetime, message: str) -> None:
        logger.info("Reminder for %s at %s: %s", report_id, fires_at.isoformat(), message)

    def notify_status_change(self, report: AuditReport, previous_status: AuditStatus) -> None:
        logger.info(
            "Audit '%s' status changed from %s to %s",
            report.audit_name, previous_status.value, report.status.value,
        )

    def notify_finding(self, finding: AuditFinding, report_id: str) -> None:
        logger.info(
            "Finding '%s' [%s] recorded on report %s",
            finding.title, finding.risk_level.value, report_id,
        )
