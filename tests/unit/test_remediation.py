"""Tests for core/remediation.py."""

from __future__ import annotations

from datetime import timedelta

import pytest

from assay.core.errors import RepositoryError
from assay.core.remediation import RemedialActionManager, requires_remediation
from assay.models import ActionPriority, ActionStatus, FindingStatus, RiskLevel
from assay.storage.codec import encode
from assay.storage.repository import InMemoryRepository, RecordKind


@pytest.fixture
def manager(config, clock) -> RemedialActionManager:
    return RemedialActionManager(InMemoryRepository(), config, clock)


class TestRequiresRemediation:
    @pytest.mark.parametrize("risk", [RiskLevel.HIGH, RiskLevel.CRITICAL])
    def test_high_and_critical(self, risk):
        assert requires_remediation(risk)

    @pytest.mark.parametrize("risk", [RiskLevel.LOW, RiskLevel.MEDIUM])
    def test_low_and_medium(self, risk):
        assert not requires_remediation(risk)


class TestSpawn:
    def test_defaults(self, manager, clock):
        action = manager.spawn("f1", "r1", "bob")
        assert action.priority == ActionPriority.HIGH
        assert action.status == ActionStatus.OPEN
        assert action.due_date == clock.now + timedelta(days=30)
        assert action.assigned_to == "bob"
        assert action.created_by == "bob"
        assert action.title == "Remedial Action Required"
        assert action.description == "Address finding identified in audit"

    def test_persisted(self, manager):
        action = manager.spawn("f1", "r1", "bob")
        record = manager.repository.fetch(RecordKind.REMEDIAL_ACTION, action.id)
        assert record["finding_id"] == "f1"

    def test_configured_due_days_and_priority(self, config, clock):
        config["remediation"]["due_days"] = 14
        config["remediation"]["priority"] = "urgent"
        manager = RemedialActionManager(InMemoryRepository(), config, clock)
        action = manager.spawn("f1", "r1", "bob")
        assert action.due_date == clock.now + timedelta(days=14)
        assert action.priority == ActionPriority.URGENT

    def test_load_restores_actions(self, manager, config, clock):
        action = manager.spawn("f1", "r1", "bob")
        restored = RemedialActionManager(manager.repository, config, clock)
        restored.load()
        assert [a.id for a in restored.actions_for("f1")] == [action.id]

    def test_one_record_per_finding(self, manager):
        first = manager.spawn("f1", "r1", "bob")
        second = manager.spawn("f1", "r1", "bob")
        assert first.id == second.id
        assert len(manager.actions_for("f1")) == 1
        assert len(manager.repository.query(RecordKind.REMEDIAL_ACTION)) == 1

    def test_withdraw_cancels(self, manager):
        action = manager.spawn("f1", "r1", "bob")
        manager.withdraw(action)
        assert manager.actions_for("f1")[0].status == ActionStatus.CANCELLED
        assert manager.repository.fetch(RecordKind.REMEDIAL_ACTION, action.id)["status"] == "cancelled"

    def test_withdrawn_action_not_closed(self, manager):
        manager.withdraw(manager.spawn("f1", "r1", "bob"))
        assert manager.pending_for("f1") == []
        assert manager.close_all_for("f1", "carol") == []
        assert manager.actions_for("f1")[0].status == ActionStatus.CANCELLED


class TestCloseAllFor:
    def test_closes_open_actions(self, manager, clock):
        manager.spawn("f1", "r1", "bob")
        clock.advance(days=5)
        closed = manager.close_all_for("f1", "carol")
        assert len(closed) == 1
        for action in manager.actions_for("f1"):
            assert action.status == ActionStatus.COMPLETED
            assert action.completed_by == "carol"
            assert action.completed_at == clock.now

    def test_leaves_other_findings_alone(self, manager):
        manager.spawn("f1", "r1", "bob")
        other = manager.spawn("f2", "r1", "bob")
        manager.close_all_for("f1", "carol")
        assert manager.actions_for("f2")[0].status == ActionStatus.OPEN
        assert manager.actions_for("f2")[0].id == other.id

    def test_already_completed_untouched(self, manager, clock):
        manager.spawn("f1", "r1", "bob")
        manager.close_all_for("f1", "carol")
        first_completion = manager.actions_for("f1")[0].completed_at
        clock.advance(days=1)
        assert manager.close_all_for("f1", "dave") == []
        assert manager.actions_for("f1")[0].completed_at == first_completion

    def test_no_actions(self, manager):
        assert manager.close_all_for("nothing", "carol") == []


class TestSpawnRuleThroughService:
    @pytest.mark.parametrize("risk,expected", [
        (RiskLevel.LOW, 0),
        (RiskLevel.MEDIUM, 0),
        (RiskLevel.HIGH, 1),
        (RiskLevel.CRITICAL, 1),
    ])
    def test_exactly_one_for_high_and_critical(self, service, report, finding_factory, risk, expected):
        finding = service.add_finding(report.id, "p1", finding_factory(risk))
        assert len(service.list_remedial_actions(finding.id)) == expected

    def test_closure_scoped_to_resolved_finding(self, service, report, finding_factory):
        first = service.add_finding(report.id, "p1", finding_factory(RiskLevel.HIGH, title="One"))
        second = service.add_finding(report.id, "p2", finding_factory(RiskLevel.CRITICAL, title="Two"))
        service.update_finding_status(first.id, FindingStatus.RESOLVED, "carol")
        assert service.list_remedial_actions(first.id)[0].status == ActionStatus.COMPLETED
        assert service.list_remedial_actions(second.id)[0].status == ActionStatus.OPEN

    def test_not_revoked_when_risk_changes(self, service, report, finding_factory):
        finding = service.add_finding(report.id, "p1", finding_factory(RiskLevel.HIGH))
        service.update_finding_status(finding.id, FindingStatus.DISPUTED, "carol")
        assert len(service.list_remedial_actions(finding.id)) == 1


class FailOnceRepository(InMemoryRepository):
    """Once armed, lets ``skip`` remedial action saves through and fails the next one."""

    def __init__(self):
        super().__init__()
        self.countdown: int | None = None

    def arm(self, skip: int) -> None:
        self.countdown = skip

    def save(self, kind, record_id, record):
        if kind == RecordKind.REMEDIAL_ACTION and self.countdown is not None:
            if self.countdown == 0:
                self.countdown = None
                raise RepositoryError("disk full")
            self.countdown -= 1
        super().save(kind, record_id, record)


class TestCloseAllForFailures:
    def _manager_with_two_actions(self, config, clock) -> RemedialActionManager:
        repository = InMemoryRepository()
        seed = RemedialActionManager(repository, config, clock)
        first = seed.spawn("f1", "r1", "bob")
        legacy = first.model_copy(update={"id": "legacy-action"})
        repository.save(RecordKind.REMEDIAL_ACTION, legacy.id, encode(legacy))

        flaky = FailOnceRepository()
        for record in repository.query(RecordKind.REMEDIAL_ACTION):
            flaky.save(RecordKind.REMEDIAL_ACTION, record["id"], record)
        flaky.arm(skip=1)
        manager = RemedialActionManager(flaky, config, clock)
        manager.load()
        return manager

    def test_all_or_nothing(self, config, clock):
        manager = self._manager_with_two_actions(config, clock)
        assert len(manager.actions_for("f1")) == 2

        with pytest.raises(RepositoryError):
            manager.close_all_for("f1", "carol")

        assert {a.status for a in manager.actions_for("f1")} == {ActionStatus.OPEN}
        stored = manager.repository.query(RecordKind.REMEDIAL_ACTION)
        assert {r["status"] for r in stored} == {"open"}

    def test_restore_puts_snapshots_back(self, manager):
        manager.spawn("f1", "r1", "bob")
        before = manager.pending_for("f1")
        manager.close_all_for("f1", "carol")
        manager.restore(before)
        assert manager.actions_for("f1")[0].status == ActionStatus.OPEN
        assert manager.repository.fetch(RecordKind.REMEDIAL_ACTION, before[0].id)["status"] == "open"
