"""Shared fixtures for Assay tests."""

from __future__ import annotations

import copy
from datetime import datetime, timedelta
from typing import Optional
from unittest.mock import MagicMock

import pytest

from assay.core.config import DEFAULT_CONFIG
from assay.core.errors import RepositoryError
from assay.core.notifications import Notifier
from assay.core.service import AuditService
from assay.models import (
    AuditFinding,
    AuditProcedure,
    AuditTemplate,
    ControlObjective,
    RiskLevel,
)
from assay.storage.repository import InMemoryRepository, Predicate, Record, RecordKind


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FailingRepository(InMemoryRepository):
    """In-memory repository whose saves fail for selected record kinds."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_saves: set[RecordKind] = set()
        self.fail_queries: set[RecordKind] = set()

    def save(self, kind: RecordKind, record_id: str, record: Record) -> None:
        if kind in self.fail_saves:
            raise RepositoryError(f"disk full while saving {kind.value}")
        super().save(kind, record_id, record)

    def query(self, kind: RecordKind, predicate: Optional[Predicate] = None) -> list[Record]:
        if kind in self.fail_queries:
            raise RepositoryError(f"store offline while querying {kind.value}")
        return super().query(kind, predicate)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 1, 1, 9, 0, 0))


@pytest.fixture
def config() -> dict:
    return copy.deepcopy(DEFAULT_CONFIG)


@pytest.fixture
def repository() -> FailingRepository:
    return FailingRepository()


@pytest.fixture
def notifier() -> MagicMock:
    return MagicMock(spec=Notifier)


@pytest.fixture
def service(repository, notifier, config, clock) -> AuditService:
    return AuditService(repository=repository, notifier=notifier, config=config, clock=clock)


@pytest.fixture
def objectives() -> list[ControlObjective]:
    return [
        ControlObjective(id="obj-a", title="Access reviews", category="Access Control", risk_level=RiskLevel.HIGH),
        ControlObjective(id="obj-b", title="Backups", category="Operations"),
    ]


@pytest.fixture
def procedures() -> list[AuditProcedure]:
    return [
        AuditProcedure(id="p1", control_objective_id="obj-a", title="Review access lists", steps=["Pull list", "Compare"]),
        AuditProcedure(id="p2", control_objective_id="obj-b", title="Test restore", steps=["Restore sample"]),
    ]


@pytest.fixture
def template(service, objectives, procedures) -> AuditTemplate:
    """Template T with objectives {A, B} and procedures {p1->A, p2->B}."""
    return service.create_template(
        name="Store Security Audit",
        description="Quarterly store checks",
        framework="iso27001",
        control_objectives=objectives,
        procedures=procedures,
        created_by="alice",
    )


@pytest.fixture
def report(service, template):
    return service.execute_audit(
        template.id,
        auditee_id="store-12",
        planned_start_date=datetime(2025, 2, 1),
        planned_end_date=datetime(2025, 2, 7),
        auditor_ids=["bob"],
        executed_by="alice",
    )


def make_finding(
    risk: RiskLevel,
    title: str = "Stale accounts",
    objectives: Optional[list[str]] = None,
    category: str = "Access Control",
    recommendation: Optional[str] = None,
) -> AuditFinding:
    return AuditFinding(
        title=title,
        description=f"{title} found during fieldwork",
        category=category,
        risk_level=risk,
        control_objective_ids=objectives if objectives is not None else ["obj-a"],
        identified_by="bob",
        recommendation=recommendation,
    )


@pytest.fixture
def finding_factory():
    return make_finding
