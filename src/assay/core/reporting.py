"""Comprehensive report sections and audit metrics.

The sections are plain text. Turning them into PDF, Word or HTML is left to
an external renderer.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Iterable, Optional

from ..models import (
    AuditMetrics,
    AuditReport,
    AuditStatus,
    ComprehensiveAuditReport,
    FindingStatus,
    ReportFormat,
    RiskLevel,
)
from .config import DEFAULT_CONFIG


def compliance_rating(score: float) -> str:
    if score >= 80:
        return "strong"
    if score >= 60:
        return "adequate"
    return "insufficient"


def generate_executive_summary(report: AuditReport, framework_name: str) -> str:
    score = f"{report.compliance_score:.1f}"
    lines = [
        "EXECUTIVE SUMMARY",
        "",
        f"Audit: {report.audit_name}",
        f"Framework: {framework_name}",
        f"Compliance Score: {score}%",
        "",
        f"This audit was conducted to assess compliance with {framework_name} requirements.",
        f"The overall compliance score of {score}% indicates "
        f"{compliance_rating(report.compliance_score)} compliance with the framework requirements.",
    ]
    return "\n".join(lines)


def generate_detailed_findings(report: AuditReport) -> str:
    findings = report.all_findings()
    if not findings:
        return "No findings identified during this audit."

    lines = ["DETAILED FINDINGS", ""]
    for index, finding in enumerate(findings, start=1):
        lines.append(f"Finding {index}: {finding.title}")
        lines.append(f"Risk Level: {finding.risk_level.display_name}")
        lines.append(f"Category: {finding.category}")
        lines.append(f"Status: {finding.status.value}")
        lines.append(f"Description: {finding.description}")
        lines.append("")
    return "\n".join(lines)


def generate_report_recommendations(report: AuditReport) -> str:
    recommendations: list[str] = []
    for finding in report.all_findings():
        if finding.recommendation and finding.recommendation not in recommendations:
            recommendations.append(finding.recommendation)

    if not recommendations:
        return "No specific recommendations at this time."

    lines = ["RECOMMENDATIONS", ""]
    for index, recommendation in enumerate(recommendations, start=1):
        lines.append(f"{index}. {recommendation}")
    return "\n".join(lines)


def generate_certification_statement(report: AuditReport, generated_at: datetime) -> str:
    lead = report.auditor_ids[0] if report.auditor_ids else "[Auditor Name]"
    lines = [
        "CERTIFICATION STATEMENT",
        "",
        "We certify that this audit was conducted in accordance with applicable auditing standards",
        "and that the findings and conclusions presented in this report are based on sufficient",
        "appropriate audit evidence.",
        "",
        f"Audit Team Lead: {lead}",
        f"Date: {generated_at.strftime('%b %d, %Y')}",
    ]
    return "\n".join(lines)


def build_comprehensive_report(
    report: AuditReport,
    framework_name: str,
    include_executive_summary: bool = True,
    include_detailed_findings: bool = True,
    include_recommendations: bool = True,
    format: ReportFormat = ReportFormat.PDF,
    appendices: Optional[list[str]] = None,
    now: Optional[datetime] = None,
) -> ComprehensiveAuditReport:
    generated_at = now or datetime.now()
    if appendices is None:
        appendices = DEFAULT_CONFIG["reports"]["appendices"]

    return ComprehensiveAuditReport(
        report_id=report.id,
        audit_report=report.model_copy(deep=True),
        generated_at=generated_at,
        format=format,
        executive_summary=generate_executive_summary(report, framework_name) if include_executive_summary else None,
        detailed_findings=generate_detailed_findings(report) if include_detailed_findings else None,
        recommendations=generate_report_recommendations(report) if include_recommendations else None,
        appendices=list(appendices),
        certification_statement=generate_certification_statement(report, generated_at),
    )


def _in_range(moment: Optional[datetime], start: datetime, end: datetime) -> bool:
    return moment is not None and start <= moment <= end


def _average(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def calculate_metrics(reports: Iterable[AuditReport], start: datetime, end: datetime) -> AuditMetrics:
    """Aggregate reports created within [start, end]."""
    all_reports = list(reports)
    in_range = [r for r in all_reports if _in_range(r.created_at, start, end)]
    completed = [r for r in in_range if r.status == AuditStatus.COMPLETED]

    findings = [f for r in all_reports for f in r.all_findings()]
    identified = [f for f in findings if _in_range(f.identified_at, start, end)]
    resolved = [
        f for f in findings
        if f.status == FindingStatus.RESOLVED and _in_range(f.resolved_at, start, end)
    ]

    durations = [
        (r.actual_end_date - r.actual_start_date).total_seconds()
        for r in completed
        if r.actual_start_date is not None and r.actual_end_date is not None
    ]

    by_framework: dict[str, list[float]] = defaultdict(list)
    for report in completed:
        by_framework[report.framework_id].append(report.compliance_score)

    return AuditMetrics(
        total_audits=len(in_range),
        completed_audits=len(completed),
        in_progress_audits=sum(1 for r in in_range if r.status == AuditStatus.IN_PROGRESS),
        planned_audits=sum(1 for r in in_range if r.status == AuditStatus.PLANNED),
        average_compliance_score=_average([r.compliance_score for r in completed]),
        total_findings=len(identified),
        critical_findings=sum(1 for f in identified if f.risk_level == RiskLevel.CRITICAL),
        resolved_findings=len(resolved),
        average_audit_duration_seconds=_average(durations),
        compliance_by_framework={k: _average(v) for k, v in by_framework.items()},
    )
