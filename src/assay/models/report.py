"""Audit report (execution run) data models."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .finding import AuditFinding
from .template import AuditProcedure, AuditScope, AuditType, ControlObjective


class AuditStatus(str, Enum):
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ON_HOLD = "on_hold"

    @property
    def is_terminal(self) -> bool:
        return self in (AuditStatus.COMPLETED, AuditStatus.CANCELLED)


class ProcedureStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    BLOCKED = "blocked"


class EvidenceType(str, Enum):
    DOCUMENT = "document"
    SCREENSHOT = "screenshot"
    INTERVIEW = "interview"
    OBSERVATION = "observation"
    SYSTEM_OUTPUT = "system_output"
    SAMPLE = "sample"
    PHOTO = "photo"
    VIDEO = "video"


class NoteType(str, Enum):
    GENERAL = "general"
    STATUS_CHANGE = "status_change"
    FINDING = "finding"
    RECOMMENDATION = "recommendation"
    FOLLOW_UP = "follow_up"


class ComplianceTrend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class ReportFormat(str, Enum):
    PDF = "pdf"
    WORD = "word"
    HTML = "html"
    EXCEL = "excel"


class AuditEvidence(BaseModel):
    id: str
    type: EvidenceType
    title: str
    description: str = ""
    file_url: Optional[str] = None
    collected_by: str = ""
    collected_at: datetime = Field(default_factory=datetime.now)
    hash: Optional[str] = None


class AuditNote(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    content: str
    created_by: str
    created_at: datetime = Field(default_factory=datetime.now)
    type: NoteType = NoteType.GENERAL


class ExecutedProcedure(BaseModel):
    """A procedure instance owned by exactly one report."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    procedure: AuditProcedure
    status: ProcedureStatus = ProcedureStatus.NOT_STARTED
    assigned_to: str = ""
    evidence: list[AuditEvidence] = []
    findings: list[AuditFinding] = []
    notes: str = ""
    completed_at: Optional[datetime] = None
    actual_hours: Optional[float] = None

    @property
    def passed(self) -> bool:
        return all(f.is_resolved for f in self.findings)


class AuditReport(BaseModel):
    """One concrete audit run, snapshotted from a template."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    template_id: str
    template_version: str = "1.0"
    audit_name: str
    auditee_id: str
    framework_id: str
    audit_type: AuditType = AuditType.COMPLIANCE
    scope: AuditScope = AuditScope.ORGANIZATIONAL
    planned_start_date: datetime
    planned_end_date: datetime
    actual_start_date: Optional[datetime] = None
    actual_end_date: Optional[datetime] = None
    auditor_ids: list[str] = []
    status: AuditStatus = AuditStatus.PLANNED
    executed_by: str = "system"
    created_at: datetime = Field(default_factory=datetime.now)
    modified_by: Optional[str] = None
    modified_at: Optional[datetime] = None
    control_objectives: list[ControlObjective] = []
    procedures: list[ExecutedProcedure] = []
    compliance_score: float = Field(default=0.0, ge=0, le=100)
    status_notes: list[AuditNote] = []

    def all_findings(self) -> list[AuditFinding]:
        return [f for proc in self.procedures for f in proc.findings]


class ComplianceScore(BaseModel):
    """Per-framework score tracking record."""

    framework_id: str
    score: float
    last_assessment: datetime
    trend: ComplianceTrend = ComplianceTrend.STABLE
    risk_areas: list[str] = []


class ComprehensiveAuditReport(BaseModel):
    """Plain-text report sections handed to an external renderer."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    report_id: str
    audit_report: AuditReport
    generated_at: datetime
    format: ReportFormat = ReportFormat.PDF
    executive_summary: Optional[str] = None
    detailed_findings: Optional[str] = None
    recommendations: Optional[str] = None
    appendices: list[str] = []
    certification_statement: str = ""


class AuditMetrics(BaseModel):
    total_audits: int = 0
    completed_audits: int = 0
    in_progress_audits: int = 0
    planned_audits: int = 0
    average_compliance_score: float = 0.0
    total_findings: int = 0
    critical_findings: int = 0
    resolved_findings: int = 0
    average_audit_duration_seconds: float = 0.0
    compliance_by_framework: dict[str, float] = {}
