"""Compliance scoring.

Score = max(0, passed/total * 100 - penalty) where a procedure passes when
every finding on it is resolved, and the penalty is 20 per critical, 10 per
high and 5 per medium finding. The penalty is unbounded until the final clamp.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Callable, Optional

from ..models import AuditReport, ComplianceScore, ComplianceTrend, RiskLevel
from ..storage.codec import decode_score, encode
from ..storage.repository import RecordKind, Repository

SEVERITY_PENALTIES: dict[RiskLevel, float] = {
    RiskLevel.CRITICAL: 20.0,
    RiskLevel.HIGH: 10.0,
    RiskLevel.MEDIUM: 5.0,
    RiskLevel.LOW: 0.0,
}


def calculate_base_score(report: AuditReport) -> float:
    total = len(report.procedures)
    if total == 0:
        return 0.0
    passed = sum(1 for p in report.procedures if p.passed)
    return passed / total * 100


def calculate_penalty(report: AuditReport) -> float:
    return sum(SEVERITY_PENALTIES[f.risk_level] for f in report.all_findings())


def calculate_score(report: AuditReport) -> float:
    """Compute the 0-100 compliance score of a report."""
    score = calculate_base_score(report) - calculate_penalty(report)
    return min(100.0, max(0.0, score))


def identify_risk_areas(report: AuditReport) -> list[str]:
    """Distinct categories of high and critical findings, first seen first."""
    areas: list[str] = []
    for finding in report.all_findings():
        if finding.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL) and finding.category not in areas:
            areas.append(finding.category)
    return areas


def determine_trend(previous: Optional[float], current: float) -> ComplianceTrend:
    if previous is None or current == previous:
        return ComplianceTrend.STABLE
    if current > previous:
        return ComplianceTrend.IMPROVING
    return ComplianceTrend.DECLINING


class ComplianceScorer:
    """Scores reports and keeps the latest score per framework.

    With a repository, each tracked score is stored under its framework id so
    the trend compares against the last assessment of an earlier session.
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now, repository: Optional[Repository] = None):
        self.clock = clock
        self.repository = repository
        self._scores: dict[str, ComplianceScore] = {}
        self._lock = threading.Lock()

    def load(self) -> None:
        if self.repository is None:
            return
        scores = [decode_score(r) for r in self.repository.query(RecordKind.COMPLIANCE_SCORE)]
        with self._lock:
            for score in scores:
                self._scores[score.framework_id] = score

    def record(self, report: AuditReport) -> ComplianceScore:
        """Track a report's already computed score against its framework."""
        return self.track(report.framework_id, report.compliance_score, identify_risk_areas(report))

    def track(self, framework_id: str, score: float, risk_areas: list[str]) -> ComplianceScore:
        with self._lock:
            previous = self._scores.get(framework_id)
            record = ComplianceScore(
                framework_id=framework_id,
                score=score,
                last_assessment=self.clock(),
                trend=determine_trend(previous.score if previous else None, score),
                risk_areas=list(risk_areas),
            )
            if self.repository is not None:
                self.repository.save(RecordKind.COMPLIANCE_SCORE, framework_id, encode(record))
            self._scores[framework_id] = record
        return record.model_copy()

    def get(self, framework_id: str) -> Optional[ComplianceScore]:
        with self._lock:
            record = self._scores.get(framework_id)
        return record.model_copy() if record else None

    def all_scores(self) -> dict[str, ComplianceScore]:
        with self._lock:
            return {k: v.model_copy() for k, v in self._scores.items()}
