"""Audit service facade.

Ties the template registry, execution state machine, findings tracking,
remedial actions, scoring, gap analysis and scheduling together over an
injected repository and notifier.

Each report is guarded by its own lock. A mutation works on a deep copy of
the cached report, persists it while the lock is held and only then replaces
the cached copy. Notifications and activity logging happen after the lock is
released and never fail the operation.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional, Union

from ..compliance.catalog import FrameworkCatalog
from ..compliance.gaps import analyze_gaps
from ..models import (
    AuditActivity,
    AuditActivityLog,
    AuditFinding,
    AuditFrequency,
    AuditMetrics,
    AuditProcedure,
    AuditReport,
    AuditSchedule,
    AuditScope,
    AuditStatus,
    AuditTemplate,
    AuditType,
    ComplianceFramework,
    ComplianceGapAnalysis,
    ComplianceScore,
    ComprehensiveAuditReport,
    ControlObjective,
    FindingStatus,
    RemedialAction,
    ReportFormat,
    RiskArea,
)
from ..storage.codec import decode_finding, decode_report, decode_schedule, encode
from ..storage.repository import InMemoryRepository, RecordKind, Repository
from .config import get_effective_config
from .errors import (
    AuditExecutionFailed,
    AuditReportNotFound,
    DuplicateFinding,
    FindingCreationFailed,
    FindingNotFound,
    FindingUpdateFailed,
    GapAnalysisFailed,
    LoadFailed,
    MetricsGenerationFailed,
    OperationFailed,
    RecordNotFound,
    ReportClosed,
    ReportGenerationFailed,
    RepositoryError,
    ScheduleCreationFailed,
    ScheduleUpdateFailed,
    ScoreUpdateFailed,
    StatusUpdateFailed,
)
from .execution import apply_status_change, instantiate_report
from .findings import apply_finding_status, attach_finding, locate_finding
from .notifications import Notifier, NullNotifier
from .remediation import RemedialActionManager
from .reporting import build_comprehensive_report, calculate_metrics
from .scheduler import advance_schedule, build_schedule, is_due
from .scoring import ComplianceScorer, calculate_score
from .templates import TemplateRegistry, default_templates

logger = logging.getLogger(__name__)


class AuditService:
    def __init__(
        self,
        repository: Optional[Repository] = None,
        notifier: Optional[Notifier] = None,
        catalog: Optional[FrameworkCatalog] = None,
        config: Optional[dict] = None,
        clock: Callable[[], datetime] = datetime.now,
        seed_templates: bool = True,
    ):
        self.config = config if config is not None else get_effective_config()
        self.repository = repository if repository is not None else InMemoryRepository()
        self.notifier = notifier if notifier is not None else NullNotifier()
        if catalog is None:
            frameworks_dir = self.config.get("frameworks", {}).get("directory")
            catalog = FrameworkCatalog.with_directory(Path(frameworks_dir) if frameworks_dir else None)
        self.catalog = catalog
        self.clock = clock

        self.templates = TemplateRegistry(self.catalog, self.repository, clock)
        self.remediation = RemedialActionManager(self.repository, self.config, clock)
        self.scorer = ComplianceScorer(clock, self.repository)

        self._reports: dict[str, AuditReport] = {}
        self._finding_reports: dict[str, str] = {}
        self._claimed_findings: set[str] = set()
        self._schedules: dict[str, AuditSchedule] = {}
        self._report_locks: dict[str, threading.RLock] = {}
        self._guard = threading.Lock()
        self._schedule_lock = threading.Lock()

        if seed_templates:
            self.templates.seed(default_templates(clock()))

    # Settings

    def _setting(self, section: str, key: str, default):
        return self.config.get(section, {}).get(key, default)

    @property
    def recompute_on_resolve(self) -> bool:
        return bool(self._setting("scoring", "recompute_on_resolve", False))

    @property
    def reject_on_closed_reports(self) -> bool:
        return bool(self._setting("findings", "reject_on_closed_reports", True))

    # Loading and lookup

    def load(self) -> None:
        """Warm every cache from the repository."""
        try:
            self.templates.load()
            self.remediation.load()
            self.scorer.load()
            reports = [decode_report(r) for r in self.repository.query(RecordKind.REPORT)]
            schedules = [decode_schedule(r) for r in self.repository.query(RecordKind.SCHEDULE)]
        except RepositoryError as e:
            raise LoadFailed(e) from e

        with self._guard:
            for report in reports:
                self._cache_report(report)
            for schedule in schedules:
                self._schedules[schedule.id] = schedule
        logger.info("Loaded %d report(s) and %d schedule(s)", len(reports), len(schedules))

    def _report_lock(self, report_id: str) -> threading.RLock:
        with self._guard:
            return self._report_locks.setdefault(report_id, threading.RLock())

    def _cache_report(self, report: AuditReport) -> None:
        self._reports[report.id] = report
        for finding in report.all_findings():
            self._finding_reports[finding.id] = report.id

    def _load_report(self, report_id: str, failure: type[OperationFailed]) -> AuditReport:
        with self._guard:
            cached = self._reports.get(report_id)
        if cached is not None:
            return cached

        logger.debug("Report cache miss for %s", report_id)
        try:
            report = decode_report(self.repository.fetch(RecordKind.REPORT, report_id))
        except RecordNotFound:
            raise AuditReportNotFound(f"Audit report '{report_id}' not found") from None
        except RepositoryError as e:
            raise failure(e) from e
        with self._guard:
            self._cache_report(report)
        return report

    def _commit_report(self, report: AuditReport) -> None:
        with self._guard:
            self._cache_report(report)

    def _report_id_for_finding(self, finding_id: str, failure: type[OperationFailed]) -> str:
        with self._guard:
            report_id = self._finding_reports.get(finding_id)
        if report_id is not None:
            return report_id

        logger.debug("Finding cache miss for %s", finding_id)
        try:
            record = decode_finding(self.repository.fetch(RecordKind.FINDING, finding_id))
        except RecordNotFound:
            raise FindingNotFound(f"Audit finding '{finding_id}' not found") from None
        except RepositoryError as e:
            raise failure(e) from e
        if not record.report_id:
            raise FindingNotFound(f"Audit finding '{finding_id}' is not attached to a report")
        return record.report_id

    def _finding_recorded(self, finding_id: str, failure: type[OperationFailed]) -> bool:
        """Whether ``finding_id`` already belongs to a stored report.

        A finding record whose report does not list it is left over from a
        failed ``add_finding`` and does not count.
        """
        with self._guard:
            if finding_id in self._finding_reports:
                return True
        try:
            record = decode_finding(self.repository.fetch(RecordKind.FINDING, finding_id))
        except RecordNotFound:
            return False
        except RepositoryError as e:
            raise failure(e) from e
        if not record.report_id:
            return False
        try:
            owner = self._load_report(record.report_id, failure)
        except AuditReportNotFound:
            return False
        return any(f.id == finding_id for f in owner.all_findings())

    def _claim_finding(self, finding_id: str) -> None:
        """Reserve a finding id across every report until it is committed or released."""
        if self._finding_recorded(finding_id, FindingCreationFailed):
            raise DuplicateFinding(f"Audit finding '{finding_id}' is already recorded")
        with self._guard:
            if finding_id in self._finding_reports or finding_id in self._claimed_findings:
                raise DuplicateFinding(f"Audit finding '{finding_id}' is already recorded")
            self._claimed_findings.add(finding_id)

    def _release_finding(self, finding_id: str) -> None:
        with self._guard:
            self._claimed_findings.discard(finding_id)

    def _restore_record(self, kind: RecordKind, entity) -> None:
        """Best-effort write of an earlier snapshot after a failed multi-record save."""
        try:
            self.repository.save(kind, entity.id, encode(entity))
        except RepositoryError as e:
            logger.warning("Could not restore %s %s: %s", kind.value, entity.id, e)

    def get_report(self, report_id: str) -> AuditReport:
        with self._report_lock(report_id):
            return self._load_report(report_id, LoadFailed).model_copy(deep=True)

    def list_reports(
        self,
        framework_id: Optional[str] = None,
        status: Optional[AuditStatus] = None,
    ) -> list[AuditReport]:
        with self._guard:
            reports = [r.model_copy(deep=True) for r in self._reports.values()]
        if framework_id is not None:
            reports = [r for r in reports if r.framework_id == framework_id]
        if status is not None:
            reports = [r for r in reports if r.status == status]
        return sorted(reports, key=lambda r: r.created_at)

    def _read_reports(self, failure: type[OperationFailed], framework_id: Optional[str] = None) -> list[AuditReport]:
        """Stored reports overlaid with the cache, which is never older."""
        def in_scope(record: dict) -> bool:
            return framework_id is None or record.get("framework_id") == framework_id

        try:
            records = self.repository.query(RecordKind.REPORT, in_scope)
            stored = {report.id: report for report in map(decode_report, records)}
        except RepositoryError as e:
            raise failure(e) from e
        for report in self.list_reports(framework_id=framework_id):
            stored[report.id] = report
        return list(stored.values())

    def get_finding(self, finding_id: str) -> AuditFinding:
        report_id = self._report_id_for_finding(finding_id, LoadFailed)
        report = self.get_report(report_id)
        return locate_finding(report, finding_id)

    def list_findings(self, report_id: Optional[str] = None) -> list[AuditFinding]:
        if report_id is not None:
            return self.get_report(report_id).all_findings()
        return [f for r in self.list_reports() for f in r.all_findings()]

    def get_schedule(self, schedule_id: str) -> Optional[AuditSchedule]:
        with self._guard:
            schedule = self._schedules.get(schedule_id)
        return schedule.model_copy() if schedule else None

    def list_schedules(self, active_only: bool = False) -> list[AuditSchedule]:
        with self._guard:
            schedules = [s.model_copy() for s in self._schedules.values()]
        if active_only:
            schedules = [s for s in schedules if s.is_active]
        return sorted(schedules, key=lambda s: s.next_audit_date)

    def list_remedial_actions(self, finding_id: Optional[str] = None) -> list[RemedialAction]:
        if finding_id is not None:
            return self.remediation.actions_for(finding_id)
        return self.remediation.list_actions()

    def get_compliance_score(self, framework_id: str) -> Optional[ComplianceScore]:
        return self.scorer.get(framework_id)

    # Side channels

    def _log_activity(
        self,
        activity: AuditActivity,
        user_id: str,
        details: str,
        template_id: Optional[str] = None,
        report_id: Optional[str] = None,
    ) -> None:
        entry = AuditActivityLog(
            activity=activity,
            template_id=template_id,
            report_id=report_id,
            user_id=user_id,
            details=details,
            timestamp=self.clock(),
        )
        try:
            self.repository.save(RecordKind.ACTIVITY, entry.id, encode(entry))
        except RepositoryError as e:
            logger.warning("Could not record %s activity: %s", activity.value, e)

    def _record_score(self, report: AuditReport) -> None:
        try:
            self.scorer.record(report)
        except RepositoryError as e:
            logger.warning("Could not track score for %s: %s", report.framework_id, e)

    def _notify(self, method: str, *args) -> None:
        try:
            getattr(self.notifier, method)(*args)
        except Exception as e:
            logger.warning("Notification %s failed: %s", method, e)

    # Templates

    def get_template(self, template_id: str) -> AuditTemplate:
        return self.templates.get(template_id)

    def list_templates(self, active_only: bool = False) -> list[AuditTemplate]:
        return self.templates.list_templates(active_only)

    def create_template(
        self,
        name: str,
        description: str,
        framework: Union[ComplianceFramework, str],
        control_objectives: list[ControlObjective],
        procedures: list[AuditProcedure],
        risk_areas: Optional[list[RiskArea]] = None,
        frequency: AuditFrequency = AuditFrequency.ANNUAL,
        created_by: str = "system",
        audit_type: AuditType = AuditType.COMPLIANCE,
        scope: AuditScope = AuditScope.ORGANIZATIONAL,
        template_id: Optional[str] = None,
    ) -> AuditTemplate:
        template = self.templates.create_template(
            name=name,
            description=description,
            framework=framework,
            control_objectives=control_objectives,
            procedures=procedures,
            risk_areas=risk_areas,
            frequency=frequency,
            created_by=created_by,
            audit_type=audit_type,
            scope=scope,
            template_id=template_id,
        )
        self._log_activity(
            AuditActivity.TEMPLATE_CREATED, created_by,
            f"Created template: {template.name}", template_id=template.id,
        )
        return template

    def update_template(self, template_id: str, modified_by: str = "system", **fields) -> AuditTemplate:
        template = self.templates.update_template(template_id, modified_by=modified_by, **fields)
        self._log_activity(
            AuditActivity.TEMPLATE_UPDATED, modified_by,
            f"Updated template: {template.name} to version {template.version}", template_id=template.id,
        )
        return template

    # Execution

    def execute_audit(
        self,
        template_id: str,
        auditee_id: str,
        planned_start_date: datetime,
        planned_end_date: datetime,
        auditor_ids: Optional[list[str]] = None,
        executed_by: str = "system",
        audit_name: Optional[str] = None,
    ) -> AuditReport:
        """Instantiate a planned report from the current template version."""
        template = self.templates.get(template_id)
        report = instantiate_report(
            template,
            auditee_id=auditee_id,
            planned_start_date=planned_start_date,
            planned_end_date=planned_end_date,
            auditor_ids=auditor_ids or [],
            executed_by=executed_by,
            audit_name=audit_name,
            now=self.clock(),
        )

        with self._report_lock(report.id):
            try:
                self.repository.save(RecordKind.REPORT, report.id, encode(report))
            except RepositoryError as e:
                raise AuditExecutionFailed(e) from e
            self._commit_report(report)

        logger.info("Executed audit %s from template %s for %s", report.id, template.id, auditee_id)
        self._log_activity(
            AuditActivity.AUDIT_EXECUTED, executed_by,
            f"Started audit: {report.audit_name}", template_id=template.id, report_id=report.id,
        )
        reminder_days = int(self._setting("notifications", "reminder_days_before", 1))
        self._notify(
            "schedule_reminder",
            report.id,
            report.planned_start_date - timedelta(days=reminder_days),
            f"Audit '{report.audit_name}' is scheduled to start tomorrow",
        )
        return report.model_copy(deep=True)

    def update_status(
        self,
        report_id: str,
        new_status: AuditStatus,
        updated_by: str = "system",
        notes: Optional[str] = None,
    ) -> AuditReport:
        """Move a report through its state machine.

        Completing a report recomputes its compliance score.
        """
        new_status = AuditStatus(new_status)
        with self._report_lock(report_id):
            current = self._load_report(report_id, StatusUpdateFailed)
            previous_status = current.status
            working = current.model_copy(deep=True)
            apply_status_change(working, new_status, updated_by, notes, now=self.clock())
            if new_status == AuditStatus.COMPLETED:
                working.compliance_score = calculate_score(working)
            try:
                self.repository.save(RecordKind.REPORT, working.id, encode(working))
            except RepositoryError as e:
                raise StatusUpdateFailed(e) from e
            self._commit_report(working)

        if new_status == AuditStatus.COMPLETED:
            self._record_score(working)
        logger.info("Audit %s moved from %s to %s", report_id, previous_status.value, new_status.value)
        self._log_activity(
            AuditActivity.STATUS_CHANGED, updated_by,
            f"Status changed from {previous_status.value} to {new_status.value}",
            template_id=working.template_id, report_id=report_id,
        )
        self._notify("notify_status_change", working.model_copy(deep=True), previous_status)
        return working.model_copy(deep=True)

    # Findings

    def add_finding(
        self,
        report_id: str,
        procedure_id: str,
        finding: AuditFinding,
        created_by: Optional[str] = None,
    ) -> AuditFinding:
        """Record a finding on a procedure and rescore the report.

        High and critical findings spawn a remedial action. The finding and
        its action are stored before the report, so a failed report save
        never leaves a stored high-risk finding without its action.
        """
        with self._report_lock(report_id):
            current = self._load_report(report_id, FindingCreationFailed)
            if current.status.is_terminal and self.reject_on_closed_reports:
                raise ReportClosed(f"Audit report '{report_id}' is {current.status.value}")

            working = current.model_copy(deep=True)
            recorded = finding.model_copy(deep=True)
            if created_by:
                recorded.identified_by = created_by
            attach_finding(working, procedure_id, recorded)
            working.compliance_score = calculate_score(working)
            working.modified_by = recorded.identified_by or None
            working.modified_at = self.clock()

            self._claim_finding(recorded.id)
            try:
                try:
                    self.repository.save(RecordKind.FINDING, recorded.id, encode(recorded))
                    action = self.remediation.spawn_if_required(recorded, working.id)
                    try:
                        self.repository.save(RecordKind.REPORT, working.id, encode(working))
                    except RepositoryError:
                        if action is not None:
                            self.remediation.withdraw(action)
                        raise
                except RepositoryError as e:
                    raise FindingCreationFailed(e) from e
                self._commit_report(working)
            finally:
                self._release_finding(recorded.id)

        self._record_score(working)
        logger.info(
            "Finding %s [%s] added to report %s", recorded.id, recorded.risk_level.value, report_id,
        )
        self._log_activity(
            AuditActivity.FINDING_ADDED, recorded.identified_by or "system",
            f"Added finding: {recorded.title}", template_id=working.template_id, report_id=report_id,
        )
        self._notify("notify_finding", recorded.model_copy(), report_id)
        return recorded.model_copy(deep=True)

    def update_finding_status(
        self,
        finding_id: str,
        status: FindingStatus,
        updated_by: str = "system",
        resolution: Optional[str] = None,
    ) -> AuditFinding:
        """Change a finding's status.

        Resolving closes the finding's open remedial actions inside the same
        critical section, before the resolved finding is stored. If a later
        save fails the actions and the finding record are put back. The
        report score is left alone unless ``scoring.recompute_on_resolve`` is
        set; call ``recalculate_score`` otherwise.
        """
        status = FindingStatus(status)
        report_id = self._report_id_for_finding(finding_id, FindingUpdateFailed)
        with self._report_lock(report_id):
            current = self._load_report(report_id, FindingUpdateFailed)
            previous = locate_finding(current, finding_id).model_copy(deep=True)
            working = current.model_copy(deep=True)
            finding = locate_finding(working, finding_id)
            apply_finding_status(finding, status, updated_by, resolution, now=self.clock())
            if self.recompute_on_resolve:
                working.compliance_score = calculate_score(working)
            working.modified_by = updated_by
            working.modified_at = self.clock()

            closing = self.remediation.pending_for(finding_id) if status == FindingStatus.RESOLVED else []
            try:
                if closing:
                    self.remediation.close_all_for(finding_id, updated_by)
                try:
                    self.repository.save(RecordKind.FINDING, finding.id, encode(finding))
                    self.repository.save(RecordKind.REPORT, working.id, encode(working))
                except RepositoryError:
                    self._restore_record(RecordKind.FINDING, previous)
                    self.remediation.restore(closing)
                    raise
            except RepositoryError as e:
                raise FindingUpdateFailed(e) from e
            self._commit_report(working)

        if self.recompute_on_resolve:
            self._record_score(working)
        logger.info("Finding %s is now %s", finding_id, status.value)
        self._log_activity(
            AuditActivity.FINDING_UPDATED, updated_by,
            f"Finding {finding.title} status changed to {status.value}",
            template_id=working.template_id, report_id=report_id,
        )
        return finding.model_copy(deep=True)

    def recalculate_score(self, report_id: str, updated_by: str = "system") -> float:
        with self._report_lock(report_id):
            current = self._load_report(report_id, ScoreUpdateFailed)
            working = current.model_copy(deep=True)
            working.compliance_score = calculate_score(working)
            working.modified_by = updated_by
            working.modified_at = self.clock()
            try:
                self.repository.save(RecordKind.REPORT, working.id, encode(working))
            except RepositoryError as e:
                raise ScoreUpdateFailed(e) from e
            self._commit_report(working)

        self._record_score(working)
        logger.info("Report %s rescored at %.1f", report_id, working.compliance_score)
        return working.compliance_score

    # Analysis and reporting

    def analyze_gaps(self, framework_id: str, include_recommendations: bool = True) -> ComplianceGapAnalysis:
        framework = self.catalog.get(framework_id)
        reports = self._read_reports(GapAnalysisFailed, framework_id=framework.id)
        analysis = analyze_gaps(framework, reports, include_recommendations, now=self.clock())
        logger.info(
            "Gap analysis for %s: %d gap(s) across %d report(s)",
            framework.id, len(analysis.gaps), len(reports),
        )
        return analysis

    def generate_comprehensive_report(
        self,
        report_id: str,
        include_executive_summary: bool = True,
        include_detailed_findings: bool = True,
        include_recommendations: bool = True,
        format: ReportFormat = ReportFormat.PDF,
    ) -> ComprehensiveAuditReport:
        with self._report_lock(report_id):
            report = self._load_report(report_id, ReportGenerationFailed).model_copy(deep=True)

        framework_name = report.framework_id
        if report.framework_id in self.catalog:
            framework_name = self.catalog.get(report.framework_id).name

        comprehensive = build_comprehensive_report(
            report,
            framework_name,
            include_executive_summary=include_executive_summary,
            include_detailed_findings=include_detailed_findings,
            include_recommendations=include_recommendations,
            format=ReportFormat(format),
            appendices=self._setting("reports", "appendices", None),
            now=self.clock(),
        )
        try:
            self.repository.save(RecordKind.COMPREHENSIVE_REPORT, comprehensive.id, encode(comprehensive))
        except RepositoryError as e:
            raise ReportGenerationFailed(e) from e
        logger.info("Generated %s report %s for audit %s", comprehensive.format.value, comprehensive.id, report_id)
        return comprehensive

    def generate_metrics(self, start: datetime, end: datetime) -> AuditMetrics:
        reports = self._read_reports(MetricsGenerationFailed)
        return calculate_metrics(reports, start, end)

    # Scheduling

    def schedule_recurring(
        self,
        template_id: str,
        frequency: AuditFrequency,
        start_date: datetime,
        auditee_id: str,
        auditor_ids: Optional[list[str]] = None,
        scheduled_by: str = "system",
    ) -> AuditSchedule:
        template = self.templates.get(template_id)
        schedule = build_schedule(
            template.id,
            AuditFrequency(frequency),
            start_date,
            auditee_id,
            auditor_ids or [],
            scheduled_by=scheduled_by,
            now=self.clock(),
        )
        with self._schedule_lock:
            try:
                self.repository.save(RecordKind.SCHEDULE, schedule.id, encode(schedule))
            except RepositoryError as e:
                raise ScheduleCreationFailed(e) from e
            with self._guard:
                self._schedules[schedule.id] = schedule

        logger.info(
            "Scheduled %s audits of %s, next on %s",
            schedule.frequency.value, template.id, schedule.next_audit_date.isoformat(),
        )
        self._log_activity(
            AuditActivity.SCHEDULE_CREATED, scheduled_by,
            f"Scheduled recurring audit: {template.name}", template_id=template.id,
        )
        self._notify(
            "schedule_reminder",
            schedule.id,
            schedule.next_audit_date,
            f"Audit '{template.name}' is due",
        )
        return schedule.model_copy()

    def trigger_due_schedules(self, now: Optional[datetime] = None) -> list[AuditReport]:
        """Execute one audit for every active schedule that has come due."""
        now = now or self.clock()
        duration = timedelta(days=int(self._setting("scheduling", "default_duration_days", 7)))
        started: list[AuditReport] = []

        with self._schedule_lock:
            with self._guard:
                due = sorted(
                    (s for s in self._schedules.values() if is_due(s, now)),
                    key=lambda s: s.next_audit_date,
                )
            for schedule in due:
                planned_start = schedule.next_audit_date
                report = self.execute_audit(
                    schedule.template_id,
                    schedule.auditee_id,
                    planned_start,
                    planned_start + duration,
                    auditor_ids=schedule.auditor_ids,
                    executed_by=schedule.scheduled_by,
                )
                advanced = advance_schedule(schedule.model_copy(), now)
                try:
                    self.repository.save(RecordKind.SCHEDULE, advanced.id, encode(advanced))
                except RepositoryError as e:
                    raise ScheduleUpdateFailed(e) from e
                with self._guard:
                    self._schedules[advanced.id] = advanced

                self._log_activity(
                    AuditActivity.SCHEDULE_TRIGGERED, schedule.scheduled_by,
                    f"Triggered scheduled audit {report.id}",
                    template_id=schedule.template_id, report_id=report.id,
                )
                started.append(report)

        if started:
            logger.info("Triggered %d scheduled audit(s)", len(started))
        return started

