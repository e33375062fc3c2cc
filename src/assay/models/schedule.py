"""Recurring audit schedule data model."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .template import AuditFrequency


class AuditSchedule(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    template_id: str
    frequency: AuditFrequency
    start_date: datetime
    next_audit_date: datetime
    auditee_id: str
    auditor_ids: list[str] = []
    is_active: bool = True
    scheduled_by: str = "system"
    created_at: datetime = Field(default_factory=datetime.now)
    last_triggered_at: Optional[datetime] = None
