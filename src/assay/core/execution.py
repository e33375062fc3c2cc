"""Audit execution: report instantiation and the status state machine."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..models import (
    AuditNote,
    AuditReport,
    AuditStatus,
    AuditTemplate,
    ExecutedProcedure,
    NoteType,
    ProcedureStatus,
)
from .errors import InvalidStatusTransition

ALLOWED_TRANSITIONS: dict[AuditStatus, frozenset[AuditStatus]] = {
    AuditStatus.PLANNED: frozenset({AuditStatus.IN_PROGRESS, AuditStatus.CANCELLED, AuditStatus.ON_HOLD}),
    AuditStatus.IN_PROGRESS: frozenset({AuditStatus.COMPLETED, AuditStatus.CANCELLED, AuditStatus.ON_HOLD}),
    AuditStatus.ON_HOLD: frozenset({AuditStatus.IN_PROGRESS, AuditStatus.CANCELLED}),
    AuditStatus.COMPLETED: frozenset(),
    AuditStatus.CANCELLED: frozenset(),
}


def can_transition(current: AuditStatus, new: AuditStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[current]


def check_transition(current: AuditStatus, new: AuditStatus) -> None:
    if not can_transition(current, new):
        raise InvalidStatusTransition(
            f"Cannot move audit from {current.value} to {new.value}"
        )


def instantiate_report(
    template: AuditTemplate,
    auditee_id: str,
    planned_start_date: datetime,
    planned_end_date: datetime,
    auditor_ids: list[str],
    executed_by: str = "system",
    audit_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AuditReport:
    """Build a planned report from a snapshot of ``template``.

    Objectives and procedures are deep-copied so later template edits
    never reach the report.
    """
    assignee = auditor_ids[0] if auditor_ids else executed_by
    procedures = [
        ExecutedProcedure(
            procedure=procedure.model_copy(deep=True),
            status=ProcedureStatus.NOT_STARTED,
            assigned_to=assignee,
        )
        for procedure in template.procedures
    ]

    return AuditReport(
        template_id=template.id,
        template_version=template.version,
        audit_name=audit_name or template.name,
        auditee_id=auditee_id,
        framework_id=template.framework_id,
        audit_type=template.audit_type,
        scope=template.scope,
        planned_start_date=planned_start_date,
        planned_end_date=planned_end_date,
        auditor_ids=list(auditor_ids),
        status=AuditStatus.PLANNED,
        executed_by=executed_by,
        created_at=now or datetime.now(),
        control_objectives=[o.model_copy(deep=True) for o in template.control_objectives],
        procedures=procedures,
        compliance_score=0.0,
    )


def apply_status_change(
    report: AuditReport,
    new_status: AuditStatus,
    updated_by: str,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AuditReport:
    """Move ``report`` to ``new_status`` in place and return it.

    Only the status, the actual start/end dates, the modification stamp
    and the status notes change. Scoring on completion is the caller's job.
    """
    check_transition(report.status, new_status)
    now = now or datetime.now()

    report.status = new_status
    report.modified_by = updated_by
    report.modified_at = now

    if new_status == AuditStatus.IN_PROGRESS and report.actual_start_date is None:
        report.actual_start_date = now
    elif new_status == AuditStatus.COMPLETED:
        report.actual_end_date = now

    if notes:
        report.status_notes.append(AuditNote(
            content=notes,
            created_by=updated_by,
            created_at=now,
            type=NoteType.STATUS_CHANGE,
        ))

    return report
