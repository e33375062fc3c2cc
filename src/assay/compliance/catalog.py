"""Framework catalog.

Holds the immutable framework definitions audits are scored and gap-analysed
against. Built-in frameworks are seeded at construction; extra frameworks can
be merged in from a directory of YAML files.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional

from ..core.errors import FrameworkNotFound
from ..models import ComplianceFramework
from .loader import get_available_frameworks

DEFAULT_FRAMEWORK_ID = "default"

BUILTIN_FRAMEWORKS: list[dict] = [
    {
        "id": "iso27001",
        "name": "ISO 27001",
        "description": "Information Security Management Systems",
        "version": "2013",
        "certification_body": "ISO",
        "requirements": [
            {
                "id": "iso-req-1",
                "title": "A.9.1.1 Access control policy",
                "description": "An access control policy shall be established, documented and reviewed",
                "category": "Access Control",
                "control_objective_ids": ["iso-access-1"],
            },
            {
                "id": "iso-req-2",
                "title": "A.8.2.1 Classification of information",
                "description": "Information shall be classified in terms of legal requirements, value and criticality",
                "category": "Information Security",
                "control_objective_ids": ["iso-info-1"],
            },
        ],
    },
    {
        "id": "sox",
        "name": "Sarbanes-Oxley Act",
        "description": "Financial reporting and internal controls",
        "version": "2002",
        "certification_body": "SEC",
        "requirements": [
            {
                "id": "sox-req-1",
                "title": "Section 302 - Corporate Responsibility",
                "description": "CEO and CFO must certify financial reports",
                "category": "Management Certification",
                "control_objective_ids": ["sox-financial-1"],
            },
            {
                "id": "sox-req-2",
                "title": "Section 404 - Management Assessment of Internal Controls",
                "description": "Management must assess the effectiveness of internal control over financial reporting",
                "category": "Internal Controls",
                "control_objective_ids": ["sox-financial-1"],
            },
        ],
    },
    {
        "id": "gdpr",
        "name": "GDPR",
        "description": "General Data Protection Regulation",
        "version": "2018",
        "certification_body": "EU",
        "requirements": [
            {
                "id": "gdpr-req-1",
                "title": "Article 6 - Lawfulness of processing",
                "description": "Processing shall be lawful only if at least one legal basis applies",
                "category": "Legal Basis",
                "control_objective_ids": ["gdpr-data-1"],
            },
        ],
    },
    {
        "id": "hipaa",
        "name": "HIPAA",
        "description": "Health Insurance Portability and Accountability Act",
        "version": "1996",
        "certification_body": "HHS",
        "requirements": [
            {
                "id": "hipaa-req-1",
                "title": "164.306 Security Standards",
                "description": "Implement administrative, physical, and technical safeguards",
                "category": "Security",
            },
        ],
    },
    {
        "id": DEFAULT_FRAMEWORK_ID,
        "name": "Generic Framework",
        "description": "Default compliance framework",
        "version": "1.0",
        "certification_body": "Internal",
    },
]


class FrameworkCatalog:
    """Id-indexed, read-only collection of compliance frameworks."""

    def __init__(self, frameworks: Optional[Iterable[ComplianceFramework]] = None):
        if frameworks is None:
            frameworks = [ComplianceFramework.model_validate(f) for f in BUILTIN_FRAMEWORKS]
        self._frameworks: dict[str, ComplianceFramework] = {f.id: f for f in frameworks}

    @classmethod
    def with_directory(cls, frameworks_dir: Optional[Path]) -> "FrameworkCatalog":
        """Built-in frameworks plus any found in ``frameworks_dir``.

        A file whose id matches a built-in framework replaces it.
        """
        catalog = cls()
        if frameworks_dir is None:
            return catalog
        merged = dict(catalog._frameworks)
        for framework in get_available_frameworks(Path(frameworks_dir)):
            merged[framework.id] = framework
        return cls(merged.values())

    def get(self, framework_id: str) -> ComplianceFramework:
        try:
            return self._frameworks[framework_id]
        except KeyError:
            raise FrameworkNotFound(f"Compliance framework '{framework_id}' not found") from None

    def __contains__(self, framework_id: object) -> bool:
        return framework_id in self._frameworks

    def __len__(self) -> int:
        return len(self._frameworks)

    def list_frameworks(self, active_only: bool = False) -> list[ComplianceFramework]:
        frameworks = list(self._frameworks.values())
        if active_only:
            frameworks = [f for f in frameworks if f.is_active]
        return frameworks
