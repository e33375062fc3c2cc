"""Finding and remedial action data models."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .framework import RiskLevel


class FindingStatus(str, Enum):
    OPEN = "open"
    IN_REMEDIATION = "in_remediation"
    RESOLVED = "resolved"
    CLOSED = "closed"
    DISPUTED = "disputed"


class ActionPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ActionStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    OVERDUE = "overdue"


class AuditFinding(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    description: str = ""
    category: str = ""
    risk_level: RiskLevel
    control_objective_ids: list[str] = []
    status: FindingStatus = FindingStatus.OPEN
    identified_by: str = ""
    identified_at: datetime = Field(default_factory=datetime.now)
    resolution: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    recommendation: Optional[str] = None
    report_id: Optional[str] = None
    procedure_id: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.status == FindingStatus.RESOLVED


class RemedialAction(BaseModel):
    """Work item addressing a high or critical finding."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    finding_id: str
    report_id: str
    title: str = "Remedial Action Required"
    description: str = "Address finding identified in audit"
    priority: ActionPriority = ActionPriority.HIGH
    assigned_to: str = ""
    due_date: datetime
    status: ActionStatus = ActionStatus.OPEN
    created_by: str = ""
    created_at: datetime = Field(default_factory=datetime.now)
    completed_by: Optional[str] = None
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None
