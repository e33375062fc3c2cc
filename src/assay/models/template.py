"""Audit template data models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .framework import RiskLevel


class AuditType(str, Enum):
    COMPLIANCE = "compliance"
    FINANCIAL = "financial"
    OPERATIONAL = "operational"
    SECURITY = "security"
    PERFORMANCE = "performance"
    QUALITY = "quality"
    ENVIRONMENTAL = "environmental"
    SAFETY = "safety"


class AuditScope(str, Enum):
    ORGANIZATIONAL = "organizational"
    DEPARTMENTAL = "departmental"
    PROCESS = "process"
    SYSTEM = "system"
    PROJECT = "project"
    FINANCIAL = "financial"
    DATA_PROTECTION = "data_protection"
    OPERATIONAL = "operational"


class AuditFrequency(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMI_ANNUAL = "semi_annual"
    ANNUAL = "annual"
    BIENNIAL = "biennial"
    ADHOC = "adhoc"


class ControlObjective(BaseModel):
    """A compliance goal a template is designed to test."""

    id: str
    title: str
    description: str = ""
    category: str = ""
    risk_level: RiskLevel = RiskLevel.MEDIUM


class AuditProcedure(BaseModel):
    """A checklist step testing one control objective."""

    id: str
    control_objective_id: str
    title: str
    description: str = ""
    steps: list[str] = []
    evidence_required: list[str] = []
    estimated_hours: float = 0.0


class RiskArea(BaseModel):
    id: str
    name: str
    description: str = ""


class AuditTemplate(BaseModel):
    """Reusable audit blueprint bound to one framework."""

    id: str
    name: str
    description: str = ""
    framework_id: str
    audit_type: AuditType = AuditType.COMPLIANCE
    scope: AuditScope = AuditScope.ORGANIZATIONAL
    control_objectives: list[ControlObjective] = []
    procedures: list[AuditProcedure] = []
    risk_areas: list[RiskArea] = []
    frequency: AuditFrequency = AuditFrequency.ANNUAL
    created_by: str = "system"
    created_at: datetime = Field(default_factory=datetime.now)
    modified_by: Optional[str] = None
    modified_at: Optional[datetime] = None
    version: str = "1.0"
    is_active: bool = True
