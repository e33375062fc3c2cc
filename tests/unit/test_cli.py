"""Tests for CLI entry points."""

from __future__ import annotations

import re
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner

from assay.cli.main import assay_cli
from assay.storage.repository import RecordKind
from assay.storage.yaml_store import YamlFileRepository


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / ".assay"


@pytest.fixture
def invoke(data_dir: Path):
    runner = CliRunner()

    def _invoke(*args: str):
        return runner.invoke(assay_cli, ["--data-dir", str(data_dir), *args])

    return _invoke


def _report_id(output: str) -> str:
    return re.search(r"report ([0-9a-f-]{36})", output).group(1)


class TestInit:
    def test_writes_default_config(self, invoke, data_dir: Path):
        result = invoke("init")
        assert result.exit_code == 0
        assert "Initialized" in result.output
        config = yaml.safe_load((data_dir / "config.yaml").read_text(encoding="utf-8"))
        assert config["remediation"]["due_days"] == 30

    def test_does_not_overwrite(self, invoke, data_dir: Path):
        data_dir.mkdir()
        (data_dir / "config.yaml").write_text("scoring:\n  recompute_on_resolve: true\n", encoding="utf-8")
        result = invoke("init")
        assert result.exit_code == 0
        assert "SKIP" in result.output
        assert "recompute_on_resolve: true" in (data_dir / "config.yaml").read_text(encoding="utf-8")


class TestListing:
    def test_frameworks(self, invoke):
        result = invoke("frameworks")
        assert result.exit_code == 0
        assert "iso27001" in result.output
        assert "hipaa" in result.output

    def test_templates(self, invoke):
        result = invoke("templates")
        assert result.exit_code == 0
        assert "sox" in result.output


class TestAuditFlow:
    def test_execute(self, invoke, data_dir: Path):
        result = invoke(
            "execute", "iso27001-template",
            "--auditee", "store-12", "--start", "2025-03-01", "--end", "2025-03-07", "--auditor", "bob",
        )
        assert result.exit_code == 0, result.output
        assert "Procedures: 2" in result.output
        report_id = _report_id(result.output)
        assert YamlFileRepository(data_dir).fetch(RecordKind.REPORT, report_id)["auditee_id"] == "store-12"

    def test_full_lifecycle(self, invoke, data_dir: Path):
        result = invoke(
            "execute", "iso27001-template",
            "--auditee", "store-12", "--start", "2025-03-01", "--end", "2025-03-07",
        )
        report_id = _report_id(result.output)

        assert invoke("status", report_id, "in_progress", "--notes", "Kickoff").exit_code == 0

        result = invoke(
            "add-finding", report_id, "iso-proc-1",
            "--title", "Shared admin account", "--risk", "critical", "--category", "Access Control",
            "--recommendation", "Issue named admin accounts",
        )
        assert result.exit_code == 0, result.output
        assert "Remedial action" in result.output
        finding_id = YamlFileRepository(data_dir).query(RecordKind.FINDING)[0]["id"]

        result = invoke("gaps", "iso27001")
        assert result.exit_code == 0
        assert "Critical compliance gaps" in result.output
        assert "Issue named admin accounts" in result.output

        result = invoke("finding-status", finding_id, "resolved", "--resolution", "Account split")
        assert result.exit_code == 0
        assert "resolved" in result.output

        result = invoke("score", report_id)
        assert result.exit_code == 0
        assert "80.0%" in result.output
        assert "Trend: improving" in result.output

        result = invoke("status", report_id, "completed")
        assert result.exit_code == 0
        assert "Compliance score: 80.0%" in result.output

        result = invoke("report", report_id)
        assert result.exit_code == 0
        assert "EXECUTIVE SUMMARY" in result.output
        assert "1. Issue named admin accounts" in result.output

    def test_finding_defaults_to_procedure_objective(self, invoke, data_dir: Path):
        report_id = _report_id(invoke(
            "execute", "gdpr-template", "--auditee", "eu", "--start", "2025-03-01", "--end", "2025-03-02",
        ).output)
        invoke("add-finding", report_id, "gdpr-proc-1", "--title", "No DPIA", "--risk", "medium")
        record = YamlFileRepository(data_dir).query(RecordKind.FINDING)[0]
        assert record["control_objective_ids"] == ["gdpr-data-1"]

    def test_invalid_transition_exits_one(self, invoke):
        report_id = _report_id(invoke(
            "execute", "sox-template", "--auditee", "finance", "--start", "2025-03-01", "--end", "2025-03-02",
        ).output)
        result = invoke("status", report_id, "completed")
        assert result.exit_code == 1
        assert "ERROR" in result.output

    def test_unknown_report_exits_one(self, invoke):
        result = invoke("score", "missing")
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_unknown_template_exits_one(self, invoke):
        result = invoke("execute", "nope", "--auditee", "x", "--start", "2025-03-01", "--end", "2025-03-02")
        assert result.exit_code == 1

    def test_invalid_status_value(self, invoke):
        result = invoke("status", "r1", "finished")
        assert result.exit_code == 2


class TestScheduling:
    def test_schedule_and_run_due(self, invoke):
        result = invoke(
            "schedule", "internal-controls-template",
            "--frequency", "quarterly", "--start", "2025-01-01", "--auditee", "store-12",
        )
        assert result.exit_code == 0, result.output
        assert "Next audit: 2025-04-01" in result.output

        assert "No schedules due" in invoke("run-due", "--now", "2025-03-01").output

        result = invoke("run-due", "--now", "2025-04-02")
        assert result.exit_code == 0
        assert "Started" in result.output
        assert "2025-04-01" in result.output

    def test_gaps_without_findings(self, invoke):
        result = invoke("gaps", "hipaa")
        assert result.exit_code == 0
        assert "No gaps identified" in result.output

    def test_gaps_unknown_framework(self, invoke):
        result = invoke("gaps", "pci")
        assert result.exit_code == 1


class TestWiring:
    @patch("assay.cli.main.build_service")
    def test_gaps_passes_recommendation_flag(self, mock_build, invoke, data_dir: Path):
        mock_build.return_value.analyze_gaps.return_value.gaps = []
        result = invoke("gaps", "sox", "--no-recommendations")
        assert result.exit_code == 0
        mock_build.assert_called_once_with(data_dir)
        mock_build.return_value.analyze_gaps.assert_called_once_with("sox", include_recommendations=False)

    @patch("assay.cli.main.build_service")
    def test_init_does_not_touch_store(self, mock_build, invoke):
        invoke("init")
        mock_build.assert_not_called()
