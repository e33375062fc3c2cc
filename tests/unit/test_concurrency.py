"""Concurrent mutation of a single audit report."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from assay.core.scoring import calculate_score
from assay.models import FindingStatus, RiskLevel
from assay.storage.codec import decode_report
from assay.storage.repository import RecordKind


class TestConcurrentFindings:
    def test_no_lost_updates(self, service, report, repository, finding_factory):
        def add(i: int):
            procedure_id = "p1" if i % 2 else "p2"
            objectives = ["obj-a"] if i % 2 else ["obj-b"]
            return service.add_finding(report.id, procedure_id, finding_factory(RiskLevel.LOW, title=f"F{i}", objectives=objectives))

        with ThreadPoolExecutor(max_workers=8) as pool:
            added = list(pool.map(add, range(40)))

        stored = service.get_report(report.id)
        assert {f.id for f in stored.all_findings()} == {f.id for f in added}
        assert stored.compliance_score == calculate_score(stored)

        persisted = decode_report(repository.fetch(RecordKind.REPORT, report.id))
        assert len(persisted.all_findings()) == 40

    def test_adds_and_resolutions_interleave(self, service, report, config, finding_factory):
        config["scoring"]["recompute_on_resolve"] = True
        seeded = [
            service.add_finding(report.id, "p1", finding_factory(RiskLevel.HIGH, title=f"Seed {i}"))
            for i in range(10)
        ]

        def resolve(finding):
            return service.update_finding_status(finding.id, FindingStatus.RESOLVED, "carol")

        def add(i: int):
            return service.add_finding(
                report.id, "p2", finding_factory(RiskLevel.MEDIUM, title=f"New {i}", objectives=["obj-b"]),
            )

        with ThreadPoolExecutor(max_workers=8) as pool:
            resolved = [pool.submit(resolve, f) for f in seeded]
            added = [pool.submit(add, i) for i in range(10)]
            for future in resolved + added:
                future.result()

        stored = service.get_report(report.id)
        assert len(stored.all_findings()) == 20
        assert all(
            f.status == FindingStatus.RESOLVED for f in stored.all_findings() if f.title.startswith("Seed")
        )
        assert stored.compliance_score == calculate_score(stored)
        assert all(a.status.value == "completed" for a in service.list_remedial_actions() if a.finding_id in {f.id for f in seeded})
