"""Tests for core/execution.py and the execution paths of the service."""

from __future__ import annotations

from datetime import datetime

import pytest

from assay.core.errors import (
    AuditExecutionFailed,
    AuditReportNotFound,
    InvalidStatusTransition,
    StatusUpdateFailed,
    TemplateNotFound,
)
from assay.core.execution import ALLOWED_TRANSITIONS, can_transition, check_transition
from assay.models import AuditProcedure, AuditStatus, NoteType, ProcedureStatus, RiskLevel
from assay.storage.repository import RecordKind


class TestTransitions:
    @pytest.mark.parametrize("current,new", [
        (AuditStatus.PLANNED, AuditStatus.IN_PROGRESS),
        (AuditStatus.PLANNED, AuditStatus.CANCELLED),
        (AuditStatus.PLANNED, AuditStatus.ON_HOLD),
        (AuditStatus.IN_PROGRESS, AuditStatus.COMPLETED),
        (AuditStatus.IN_PROGRESS, AuditStatus.ON_HOLD),
        (AuditStatus.IN_PROGRESS, AuditStatus.CANCELLED),
        (AuditStatus.ON_HOLD, AuditStatus.IN_PROGRESS),
        (AuditStatus.ON_HOLD, AuditStatus.CANCELLED),
    ])
    def test_allowed(self, current, new):
        assert can_transition(current, new)

    @pytest.mark.parametrize("current,new", [
        (AuditStatus.PLANNED, AuditStatus.COMPLETED),
        (AuditStatus.ON_HOLD, AuditStatus.COMPLETED),
        (AuditStatus.COMPLETED, AuditStatus.IN_PROGRESS),
        (AuditStatus.CANCELLED, AuditStatus.PLANNED),
        (AuditStatus.IN_PROGRESS, AuditStatus.PLANNED),
    ])
    def test_rejected(self, current, new):
        with pytest.raises(InvalidStatusTransition):
            check_transition(current, new)

    def test_terminal_states_have_no_exits(self):
        assert not ALLOWED_TRANSITIONS[AuditStatus.COMPLETED]
        assert not ALLOWED_TRANSITIONS[AuditStatus.CANCELLED]


class TestExecuteAudit:
    def test_planned_report_from_template(self, report, template):
        assert report.status == AuditStatus.PLANNED
        assert len(report.procedures) == 2
        assert report.compliance_score == 0
        assert report.template_id == template.id
        assert report.template_version == "1.0"
        assert report.framework_id == "iso27001"
        assert report.audit_name == template.name

    def test_procedures_not_started(self, report):
        assert all(p.status == ProcedureStatus.NOT_STARTED for p in report.procedures)
        assert [p.procedure.id for p in report.procedures] == ["p1", "p2"]

    def test_assigned_to_first_auditor(self, report):
        assert all(p.assigned_to == "bob" for p in report.procedures)

    def test_assigned_to_executor_without_auditors(self, service, template):
        report = service.execute_audit(
            template.id, "store-9", datetime(2025, 3, 1), datetime(2025, 3, 2), executed_by="alice",
        )
        assert all(p.assigned_to == "alice" for p in report.procedures)

    def test_custom_audit_name(self, service, template):
        report = service.execute_audit(
            template.id, "store-9", datetime(2025, 3, 1), datetime(2025, 3, 2), audit_name="Spring visit",
        )
        assert report.audit_name == "Spring visit"

    def test_unknown_template(self, service):
        with pytest.raises(TemplateNotFound):
            service.execute_audit("missing", "store-1", datetime(2025, 3, 1), datetime(2025, 3, 2))

    def test_persisted(self, report, repository):
        record = repository.fetch(RecordKind.REPORT, report.id)
        assert record["status"] == "planned"

    def test_repository_failure_wrapped(self, service, template, repository):
        repository.fail_saves.add(RecordKind.REPORT)
        with pytest.raises(AuditExecutionFailed):
            service.execute_audit(template.id, "store-1", datetime(2025, 3, 1), datetime(2025, 3, 2))
        assert service.list_reports() == []

    def test_schedules_reminder_day_before(self, report, notifier):
        notifier.schedule_reminder.assert_called_once_with(
            report.id,
            datetime(2025, 1, 31),
            "Audit 'Store Security Audit' is scheduled to start tomorrow",
        )

    def test_notifier_failure_does_not_fail(self, service, template, notifier):
        notifier.schedule_reminder.side_effect = RuntimeError("push gateway down")
        report = service.execute_audit(template.id, "store-1", datetime(2025, 3, 1), datetime(2025, 3, 2))
        assert service.get_report(report.id).status == AuditStatus.PLANNED


class TestSnapshotIsolation:
    def test_template_edits_do_not_reach_report(self, service, template, report, objectives):
        service.update_template(
            template.id,
            procedures=[AuditProcedure(id="p9", control_objective_id="obj-a", title="Replacement")],
        )
        stored = service.get_report(report.id)
        assert [p.procedure.id for p in stored.procedures] == ["p1", "p2"]
        assert stored.template_version == "1.0"

    def test_objective_edits_do_not_reach_report(self, service, template, report, objectives, procedures):
        changed = [o.model_copy(update={"title": "Changed"}) for o in objectives]
        service.update_template(template.id, control_objectives=changed, procedures=procedures)
        assert service.get_report(report.id).control_objectives[0].title == "Access reviews"


class TestUpdateStatus:
    def test_start_sets_actual_start(self, service, report, clock):
        updated = service.update_status(report.id, AuditStatus.IN_PROGRESS, updated_by="bob")
        assert updated.status == AuditStatus.IN_PROGRESS
        assert updated.actual_start_date == clock.now

    def test_resume_keeps_original_start(self, service, report, clock):
        started = service.update_status(report.id, AuditStatus.IN_PROGRESS)
        clock.advance(days=2)
        service.update_status(report.id, AuditStatus.ON_HOLD)
        clock.advance(days=2)
        resumed = service.update_status(report.id, AuditStatus.IN_PROGRESS)
        assert resumed.actual_start_date == started.actual_start_date

    def test_complete_sets_end_and_scores(self, service, report, clock):
        service.update_status(report.id, AuditStatus.IN_PROGRESS)
        clock.advance(days=3)
        completed = service.update_status(report.id, AuditStatus.COMPLETED)
        assert completed.actual_end_date == clock.now
        assert completed.compliance_score == 100.0

    def test_completion_tracks_framework_score(self, service, report):
        service.update_status(report.id, AuditStatus.IN_PROGRESS)
        service.update_status(report.id, AuditStatus.COMPLETED)
        assert service.get_compliance_score("iso27001").score == 100.0

    def test_notes_append_status_change_note(self, service, report):
        updated = service.update_status(report.id, AuditStatus.ON_HOLD, updated_by="bob", notes="Store closed")
        assert len(updated.status_notes) == 1
        note = updated.status_notes[0]
        assert note.type == NoteType.STATUS_CHANGE
        assert note.content == "Store closed"
        assert note.created_by == "bob"

    def test_no_note_without_notes(self, service, report):
        assert service.update_status(report.id, AuditStatus.ON_HOLD).status_notes == []

    def test_cancel_freezes_score(self, service, report, finding_factory):
        service.update_status(report.id, AuditStatus.IN_PROGRESS)
        service.add_finding(report.id, "p2", finding_factory(RiskLevel.LOW, objectives=["obj-b"]))
        before = service.get_report(report.id).compliance_score
        cancelled = service.update_status(report.id, AuditStatus.CANCELLED)
        assert cancelled.compliance_score == before

    def test_invalid_transition(self, service, report):
        with pytest.raises(InvalidStatusTransition):
            service.update_status(report.id, AuditStatus.COMPLETED)
        assert service.get_report(report.id).status == AuditStatus.PLANNED

    def test_unknown_report(self, service):
        with pytest.raises(AuditReportNotFound):
            service.update_status("missing", AuditStatus.IN_PROGRESS)

    def test_notifies_previous_status(self, service, report, notifier):
        service.update_status(report.id, AuditStatus.IN_PROGRESS)
        changed, previous = notifier.notify_status_change.call_args.args
        assert changed.status == AuditStatus.IN_PROGRESS
        assert previous == AuditStatus.PLANNED

    def test_repository_failure_leaves_cache(self, service, report, repository):
        repository.fail_saves.add(RecordKind.REPORT)
        with pytest.raises(StatusUpdateFailed):
            service.update_status(report.id, AuditStatus.IN_PROGRESS)
        assert service.get_report(report.id).status == AuditStatus.PLANNED

    def test_activity_failure_swallowed(self, service, report, repository):
        repository.fail_saves.add(RecordKind.ACTIVITY)
        updated = service.update_status(report.id, AuditStatus.IN_PROGRESS)
        assert updated.status == AuditStatus.IN_PROGRESS

    def test_reads_through_repository_on_cache_miss(self, report, repository, config, clock):
        from assay.core.service import AuditService

        fresh = AuditService(repository=repository, config=config, clock=clock)
        updated = fresh.update_status(report.id, AuditStatus.IN_PROGRESS)
        assert updated.actual_start_date == clock.now
        assert updated.modified_at == clock.now
