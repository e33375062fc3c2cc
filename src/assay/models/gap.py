"""Compliance gap analysis data models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from .framework import RiskLevel


class GapStatus(str, Enum):
    OPEN = "open"
    IN_REMEDIATION = "in_remediation"
    CLOSED = "closed"
    ACCEPTED = "accepted"


class ComplianceGap(BaseModel):
    """An unmet requirement inferred from findings across reports."""

    id: str
    framework_id: str
    requirement_id: str
    requirement_title: str
    gap_description: str
    risk_level: RiskLevel
    identified_at: datetime
    status: GapStatus = GapStatus.OPEN
    recommendations: list[str] = []
    finding_ids: list[str] = []


class ComplianceGapAnalysis(BaseModel):
    """Gap analysis result. Derived on demand, never the source of truth."""

    framework_id: str
    framework_name: str = ""
    generated_at: datetime
    total_requirements: int = 0
    compliant_requirements: int = 0
    gaps: list[ComplianceGap] = []
    overall_risk_level: Optional[RiskLevel] = None
    recommended_actions: list[str] = []
