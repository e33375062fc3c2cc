"""Compliance gap analysis.

Aggregates findings from every report scoped to a framework and emits one
gap per requirement that any finding touches. The result is a pure function
of the framework and the reports passed in.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from ..models import (
    AuditFinding,
    AuditReport,
    ComplianceFramework,
    ComplianceGap,
    ComplianceGapAnalysis,
    RiskLevel,
    max_risk_level,
)


def findings_for_requirement(
    framework: ComplianceFramework,
    requirement_id: str,
    findings: Iterable[AuditFinding],
) -> list[AuditFinding]:
    """Findings whose control objectives intersect the requirement's linked objectives."""
    requirement = next(r for r in framework.requirements if r.id == requirement_id)
    linked = framework.linked_objective_ids(requirement)
    return [f for f in findings if linked.intersection(f.control_objective_ids)]


def determine_gap_risk_level(findings: list[AuditFinding]) -> RiskLevel:
    return max_risk_level(f.risk_level for f in findings) or RiskLevel.LOW


def generate_gap_description(findings: list[AuditFinding]) -> str:
    if not findings:
        return "No gaps identified"
    risk = determine_gap_risk_level(findings)
    if risk == RiskLevel.CRITICAL:
        return "Critical compliance gaps identified requiring immediate attention"
    if risk == RiskLevel.HIGH:
        return "High-risk compliance gaps requiring priority remediation"
    return "Minor compliance gaps identified"


def generate_recommendations(findings: list[AuditFinding]) -> list[str]:
    """Distinct, non-empty finding recommendations in first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for finding in findings:
        rec = finding.recommendation
        if rec and rec not in seen:
            seen.add(rec)
            result.append(rec)
    return result


def generate_overall_recommendations(gaps: list[ComplianceGap]) -> list[str]:
    recommendations: list[str] = []

    if any(g.risk_level == RiskLevel.CRITICAL for g in gaps):
        recommendations.append("Immediately address critical compliance gaps")
        recommendations.append("Implement emergency controls and monitoring")

    if any(g.risk_level == RiskLevel.HIGH for g in gaps):
        recommendations.append("Develop remediation plans for high-risk gaps")
        recommendations.append("Increase audit frequency for affected areas")

    return recommendations


def analyze_gaps(
    framework: ComplianceFramework,
    reports: Iterable[AuditReport],
    include_recommendations: bool = True,
    now: Optional[datetime] = None,
) -> ComplianceGapAnalysis:
    """Generate a gap analysis for ``framework`` over ``reports``.

    Reports bound to other frameworks are ignored.
    """
    now = now or datetime.now()
    scoped = [r for r in reports if r.framework_id == framework.id]
    all_findings = [f for report in scoped for f in report.all_findings()]

    gaps: list[ComplianceGap] = []
    for requirement in framework.requirements:
        relevant = findings_for_requirement(framework, requirement.id, all_findings)
        if not relevant:
            continue
        gaps.append(ComplianceGap(
            id=f"gap-{framework.id}-{requirement.id}",
            framework_id=framework.id,
            requirement_id=requirement.id,
            requirement_title=requirement.title,
            gap_description=generate_gap_description(relevant),
            risk_level=determine_gap_risk_level(relevant),
            identified_at=now,
            recommendations=generate_recommendations(relevant) if include_recommendations else [],
            finding_ids=[f.id for f in relevant],
        ))

    total = len(framework.requirements)
    return ComplianceGapAnalysis(
        framework_id=framework.id,
        framework_name=framework.name,
        generated_at=now,
        total_requirements=total,
        compliant_requirements=total - len(gaps),
        gaps=gaps,
        overall_risk_level=max_risk_level(g.risk_level for g in gaps),
        recommended_actions=generate_overall_recommendations(gaps) if include_recommendations else [],
    )
