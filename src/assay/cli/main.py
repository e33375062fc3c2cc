"""Assay command line interface.

Every command works against a YAML-backed store in the data directory
(``.assay`` by default).
"""

from __future__ import annotations

import functools
import logging
from datetime import datetime
from pathlib import Path

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..core.config import DEFAULT_CONFIG, DEFAULT_DATA_DIR, get_effective_config
from ..core.errors import AuditError
from ..core.findings import locate_procedure
from ..core.notifications import LoggingNotifier
from ..core.service import AuditService
from ..models import AuditFinding, AuditFrequency, AuditStatus, FindingStatus, ReportFormat, RiskLevel
from ..storage.yaml_store import YamlFileRepository

console = Console()

DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"]

RISK_COLORS = {
    RiskLevel.LOW: "green",
    RiskLevel.MEDIUM: "yellow",
    RiskLevel.HIGH: "red",
    RiskLevel.CRITICAL: "bold red",
}


def _values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


def build_service(data_dir: Path) -> AuditService:
    """Service over the YAML store in ``data_dir``, with caches warmed."""
    service = AuditService(
        repository=YamlFileRepository(data_dir),
        notifier=LoggingNotifier(),
        config=get_effective_config(data_dir),
    )
    service.load()
    return service


def handle_errors(func):
    """Report engine errors as a red ERROR line and exit 1."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except AuditError as e:
            console.print(f"  [red]ERROR[/red] {e}")
            raise SystemExit(1) from e

    return wrapper


def _service(ctx: click.Context) -> AuditService:
    return build_service(ctx.obj["data_dir"])


@click.group()
@click.pass_context
@click.option("--data-dir", "-d", type=click.Path(file_okay=False), default=DEFAULT_DATA_DIR,
              show_default=True, help="Directory holding config.yaml and the record store")
@click.option("--verbose", "-v", is_flag=True, help="Log engine activity")
def assay_cli(ctx: click.Context, data_dir: str, verbose: bool) -> None:
    """Assay - compliance audit lifecycle and scoring."""
    ctx.ensure_object(dict)
    ctx.obj["data_dir"] = Path(data_dir)
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )


@assay_cli.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Create the data directory with a default config.yaml."""
    data_dir: Path = ctx.obj["data_dir"]
    config_path = data_dir / "config.yaml"
    if config_path.exists():
        console.print(f"  [yellow]SKIP[/yellow] {config_path} already exists")
        return

    data_dir.mkdir(parents=True, exist_ok=True)
    config_path.write_text(
        yaml.dump(DEFAULT_CONFIG, default_flow_style=False, sort_keys=False, allow_unicode=True, width=120),
        encoding="utf-8",
    )
    console.print(f"  [green]Initialized[/green] {data_dir}")


@assay_cli.command()
@click.pass_context
@handle_errors
def frameworks(ctx: click.Context) -> None:
    """List compliance frameworks."""
    service = _service(ctx)
    table = Table(title="Compliance Frameworks")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("Requirements", justify="right")
    for framework in service.catalog.list_frameworks():
        table.add_row(framework.id, framework.name, framework.version, str(len(framework.requirements)))
    console.print(table)


@assay_cli.command()
@click.pass_context
@click.option("--all", "show_all", is_flag=True, help="Include inactive templates")
@handle_errors
def templates(ctx: click.Context, show_all: bool) -> None:
    """List audit templates."""
    service = _service(ctx)
    table = Table(title="Audit Templates")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Framework")
    table.add_column("Version")
    table.add_column("Frequency")
    for template in sorted(service.list_templates(active_only=not show_all), key=lambda t: t.id):
        table.add_row(template.id, template.name, template.framework_id, template.version, template.frequency.value)
    console.print(table)


@assay_cli.command()
@click.pass_context
@click.argument("template_id")
@click.option("--auditee", required=True, help="Auditee identifier")
@click.option("--start", "start", type=click.DateTime(DATE_FORMATS), required=True, help="Planned start date")
@click.option("--end", "end", type=click.DateTime(DATE_FORMATS), required=True, help="Planned end date")
@click.option("--auditor", "auditors", multiple=True, help="Auditor id (repeatable)")
@click.option("--name", "audit_name", type=str, help="Audit name (defaults to the template name)")
@click.option("--by", "executed_by", default="system", show_default=True)
@handle_errors
def execute(
    ctx: click.Context,
    template_id: str,
    auditee: str,
    start: datetime,
    end: datetime,
    auditors: tuple[str, ...],
    audit_name: str | None,
    executed_by: str,
) -> None:
    """Start an audit from a template.

    Example: assay execute iso27001-template --auditee store-12 --start 2025-03-01 --end 2025-03-07
    """
    service = _service(ctx)
    report = service.execute_audit(
        template_id,
        auditee_id=auditee,
        planned_start_date=start,
        planned_end_date=end,
        auditor_ids=list(auditors),
        executed_by=executed_by,
        audit_name=audit_name,
    )
    console.print(f"  [green]Created[/green] report {report.id}")
    console.print(f"  Audit:      {report.audit_name}")
    console.print(f"  Procedures: {len(report.procedures)}")
    for executed in report.procedures:
        console.print(f"    - {executed.procedure.id}: {executed.procedure.title}")


@assay_cli.command()
@click.pass_context
@click.argument("report_id")
@click.argument("new_status", type=click.Choice(_values(AuditStatus)))
@click.option("--notes", "-n", type=str, help="Note recorded with the status change")
@click.option("--by", "updated_by", default="system", show_default=True)
@handle_errors
def status(ctx: click.Context, report_id: str, new_status: str, notes: str | None, updated_by: str) -> None:
    """Move an audit to a new status."""
    service = _service(ctx)
    report = service.update_status(report_id, AuditStatus(new_status), updated_by=updated_by, notes=notes)
    console.print(f"  [green]OK[/green] {report.audit_name} is now {report.status.value}")
    if report.status == AuditStatus.COMPLETED:
        console.print(f"  Compliance score: {report.compliance_score:.1f}%")


@assay_cli.command("add-finding")
@click.pass_context
@click.argument("report_id")
@click.argument("procedure_id")
@click.option("--title", "-t", required=True)
@click.option("--risk", "-r", type=click.Choice(_values(RiskLevel)), required=True)
@click.option("--category", "-c", default="", help="Finding category")
@click.option("--description", default="")
@click.option("--objective", "objectives", multiple=True,
              help="Control objective id (repeatable, defaults to the procedure's objective)")
@click.option("--recommendation", type=str)
@click.option("--by", "identified_by", default="system", show_default=True)
@handle_errors
def add_finding(
    ctx: click.Context,
    report_id: str,
    procedure_id: str,
    title: str,
    risk: str,
    category: str,
    description: str,
    objectives: tuple[str, ...],
    recommendation: str | None,
    identified_by: str,
) -> None:
    """Record a finding against a procedure of an audit."""
    service = _service(ctx)
    if not objectives:
        executed = locate_procedure(service.get_report(report_id), procedure_id)
        objectives = (executed.procedure.control_objective_id,)

    finding = service.add_finding(
        report_id,
        procedure_id,
        AuditFinding(
            title=title,
            description=description,
            category=category,
            risk_level=RiskLevel(risk),
            control_objective_ids=list(objectives),
            recommendation=recommendation,
            identified_by=identified_by,
        ),
    )
    color = RISK_COLORS[finding.risk_level]
    console.print(f"  [green]Added[/green] finding {finding.id} [{color}]{finding.risk_level.display_name}[/{color}]")
    actions = service.list_remedial_actions(finding.id)
    for action in actions:
        console.print(f"  Remedial action {action.id} due {action.due_date:%Y-%m-%d}")
    console.print(f"  Compliance score: {service.get_report(report_id).compliance_score:.1f}%")


@assay_cli.command("finding-status")
@click.pass_context
@click.argument("finding_id")
@click.argument("new_status", type=click.Choice(_values(FindingStatus)))
@click.option("--resolution", type=str)
@click.option("--by", "updated_by", default="system", show_default=True)
@handle_errors
def finding_status(
    ctx: click.Context,
    finding_id: str,
    new_status: str,
    resolution: str | None,
    updated_by: str,
) -> None:
    """Change a finding's status.

    The report score is not recomputed unless scoring.recompute_on_resolve is
    set; run `assay score` afterwards.
    """
    service = _service(ctx)
    finding = service.update_finding_status(
        finding_id, FindingStatus(new_status), updated_by=updated_by, resolution=resolution,
    )
    console.print(f"  [green]OK[/green] {finding.title} is now {finding.status.value}")


@assay_cli.command()
@click.pass_context
@click.argument("report_id")
@handle_errors
def score(ctx: click.Context, report_id: str) -> None:
    """Recalculate an audit's compliance score.

    The trend compares against the last score stored for the framework.
    """
    service = _service(ctx)
    value = service.recalculate_score(report_id)
    console.print(f"  Compliance score: [bold]{value:.1f}%[/bold]")
    tracked = service.get_compliance_score(service.get_report(report_id).framework_id)
    if tracked is not None:
        console.print(f"  Trend: {tracked.trend.value}")


@assay_cli.command()
@click.pass_context
@click.argument("framework_id")
@click.option("--no-recommendations", is_flag=True)
@handle_errors
def gaps(ctx: click.Context, framework_id: str, no_recommendations: bool) -> None:
    """Run a gap analysis for a framework."""
    service = _service(ctx)
    analysis = service.analyze_gaps(framework_id, include_recommendations=not no_recommendations)

    console.print(f"\n  [bold cyan]{analysis.framework_name}[/bold cyan] gap analysis")
    console.print(
        f"  Compliant requirements: {analysis.compliant_requirements}/{analysis.total_requirements}"
    )
    if not analysis.gaps:
        console.print("  [green]No gaps identified[/green]")
        return

    overall = analysis.overall_risk_level
    color = RISK_COLORS[overall]
    console.print(f"  Overall risk: [{color}]{overall.display_name}[/{color}]")
    for gap in analysis.gaps:
        color = RISK_COLORS[gap.risk_level]
        console.print(f"\n  [{color}]{gap.risk_level.display_name.upper()}[/{color}] {gap.requirement_title}")
        console.print(f"    {gap.gap_description}")
        for recommendation in gap.recommendations:
            console.print(f"    - {recommendation}")
    if analysis.recommended_actions:
        console.print("\n  Recommended actions:")
        for action in analysis.recommended_actions:
            console.print(f"    - {action}")


@assay_cli.command()
@click.pass_context
@click.argument("template_id")
@click.option("--frequency", "-f", type=click.Choice(_values(AuditFrequency)), required=True)
@click.option("--start", "start", type=click.DateTime(DATE_FORMATS), required=True)
@click.option("--auditee", required=True)
@click.option("--auditor", "auditors", multiple=True)
@click.option("--by", "scheduled_by", default="system", show_default=True)
@handle_errors
def schedule(
    ctx: click.Context,
    template_id: str,
    frequency: str,
    start: datetime,
    auditee: str,
    auditors: tuple[str, ...],
    scheduled_by: str,
) -> None:
    """Schedule a recurring audit."""
    service = _service(ctx)
    created = service.schedule_recurring(
        template_id,
        AuditFrequency(frequency),
        start,
        auditee,
        auditor_ids=list(auditors),
        scheduled_by=scheduled_by,
    )
    console.print(f"  [green]Scheduled[/green] {created.id}")
    console.print(f"  Next audit: {created.next_audit_date:%Y-%m-%d}")


@assay_cli.command("run-due")
@click.pass_context
@click.option("--now", "now", type=click.DateTime(DATE_FORMATS), help="Evaluate schedules as of this date")
@handle_errors
def run_due(ctx: click.Context, now: datetime | None) -> None:
    """Start audits for every schedule that has come due."""
    service = _service(ctx)
    started = service.trigger_due_schedules(now)
    if not started:
        console.print("  No schedules due")
        return
    for report in started:
        console.print(f"  [green]Started[/green] {report.id} {report.audit_name} ({report.planned_start_date:%Y-%m-%d})")


@assay_cli.command()
@click.pass_context
@click.argument("report_id")
@click.option("--format", "-f", "report_format", type=click.Choice(_values(ReportFormat)), default="pdf")
@click.option("--no-summary", is_flag=True)
@click.option("--no-findings", is_flag=True)
@click.option("--no-recommendations", is_flag=True)
@handle_errors
def report(
    ctx: click.Context,
    report_id: str,
    report_format: str,
    no_summary: bool,
    no_findings: bool,
    no_recommendations: bool,
) -> None:
    """Generate the comprehensive report sections for an audit."""
    service = _service(ctx)
    comprehensive = service.generate_comprehensive_report(
        report_id,
        include_executive_summary=not no_summary,
        include_detailed_findings=not no_findings,
        include_recommendations=not no_recommendations,
        format=ReportFormat(report_format),
    )
    for section in (comprehensive.executive_summary, comprehensive.detailed_findings, comprehensive.recommendations):
        if section:
            console.print(section, markup=False)
            console.print()
    for appendix in comprehensive.appendices:
        console.print(f"  {appendix}", markup=False)
    console.print()
    console.print(comprehensive.certification_statement, markup=False)


def main() -> None:
    assay_cli()


if __name__ == "__main__":
    main()
