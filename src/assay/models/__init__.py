"""Audit domain data models."""

from .activity import AuditActivity, AuditActivityLog
from .finding import (
    ActionPriority,
    ActionStatus,
    AuditFinding,
    FindingStatus,
    RemedialAction,
)
from .framework import ComplianceFramework, RegulatoryRequirement, RiskLevel, max_risk_level
from .gap import ComplianceGap, ComplianceGapAnalysis, GapStatus
from .report import (
    AuditEvidence,
    AuditMetrics,
    AuditNote,
    AuditReport,
    AuditStatus,
    ComplianceScore,
    ComplianceTrend,
    ComprehensiveAuditReport,
    EvidenceType,
    ExecutedProcedure,
    NoteType,
    ProcedureStatus,
    ReportFormat,
)
from .schedule import AuditSchedule
from .template import (
    AuditFrequency,
    AuditProcedure,
    AuditScope,
    AuditTemplate,
    AuditType,
    ControlObjective,
    RiskArea,
)

__all__ = [
    "ActionPriority",
    "ActionStatus",
    "AuditActivity",
    "AuditActivityLog",
    "AuditEvidence",
    "AuditFinding",
    "AuditFrequency",
    "AuditMetrics",
    "AuditNote",
    "AuditProcedure",
    "AuditReport",
    "AuditSchedule",
    "AuditScope",
    "AuditStatus",
    "AuditTemplate",
    "AuditType",
    "ComplianceFramework",
    "ComplianceGap",
    "ComplianceGapAnalysis",
    "ComplianceScore",
    "ComplianceTrend",
    "ComprehensiveAuditReport",
    "ControlObjective",
    "EvidenceType",
    "ExecutedProcedure",
    "FindingStatus",
    "GapStatus",
    "NoteType",
    "ProcedureStatus",
    "RegulatoryRequirement",
    "RemedialAction",
    "ReportFormat",
    "RiskArea",
    "RiskLevel",
    "max_risk_level",
]
