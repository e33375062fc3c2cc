"""Activity log data models."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class AuditActivity(str, Enum):
    TEMPLATE_CREATED = "template_created"
    TEMPLATE_UPDATED = "template_updated"
    AUDIT_EXECUTED = "audit_executed"
    STATUS_CHANGED = "status_changed"
    FINDING_ADDED = "finding_added"
    FINDING_UPDATED = "finding_updated"
    SCHEDULE_CREATED = "schedule_created"
    SCHEDULE_TRIGGERED = "schedule_triggered"


class AuditActivityLog(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    activity: AuditActivity
    template_id: Optional[str] = None
    report_id: Optional[str] = None
    user_id: str
    details: str
    timestamp: datetime
