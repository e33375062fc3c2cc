"""Finding placement and status changes on a report."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..models import AuditFinding, AuditReport, ExecutedProcedure, FindingStatus
from .errors import DuplicateFinding, FindingNotFound, ProcedureNotFound


def locate_procedure(report: AuditReport, procedure_id: str) -> ExecutedProcedure:
    """Find an executed procedure by its own id or its source procedure id."""
    for executed in report.procedures:
        if executed.id == procedure_id or executed.procedure.id == procedure_id:
            return executed
    raise ProcedureNotFound(f"Procedure '{procedure_id}' not found in report '{report.id}'")


def locate_finding(report: AuditReport, finding_id: str) -> AuditFinding:
    for finding in report.all_findings():
        if finding.id == finding_id:
            return finding
    raise FindingNotFound(f"Finding '{finding_id}' not found in report '{report.id}'")


def attach_finding(report: AuditReport, procedure_id: str, finding: AuditFinding) -> AuditFinding:
    """Append ``finding`` to the procedure, stamping its owner ids."""
    executed = locate_procedure(report, procedure_id)
    if any(f.id == finding.id for f in report.all_findings()):
        raise DuplicateFinding(f"Finding '{finding.id}' already exists in report '{report.id}'")

    finding.report_id = report.id
    finding.procedure_id = executed.procedure.id
    executed.findings.append(finding)
    return finding


def apply_finding_status(
    finding: AuditFinding,
    status: FindingStatus,
    updated_by: str,
    resolution: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AuditFinding:
    """Set a finding's status. Resolver fields are only kept while resolved."""
    finding.status = status
    if resolution is not None:
        finding.resolution = resolution

    if status == FindingStatus.RESOLVED:
        finding.resolved_by = updated_by
        finding.resolved_at = now or datetime.now()
    else:
        finding.resolved_by = None
        finding.resolved_at = None

    return finding
