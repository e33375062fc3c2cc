"""Template registry: creation, versioned updates and structural validation."""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime
from typing import Callable, Optional, Union

from ..compliance.catalog import DEFAULT_FRAMEWORK_ID, FrameworkCatalog
from ..models import (
    AuditFrequency,
    AuditProcedure,
    AuditScope,
    AuditTemplate,
    AuditType,
    ComplianceFramework,
    ControlObjective,
    RiskArea,
    RiskLevel,
)
from ..storage.codec import decode_template, encode
from ..storage.repository import RecordKind, Repository
from .errors import (
    DuplicateTemplate,
    InvalidProcedureMapping,
    InvalidTemplateName,
    MissingControlObjectives,
    MissingProcedures,
    RecordNotFound,
    RepositoryError,
    TemplateCreationFailed,
    TemplateNotFound,
    TemplateUpdateFailed,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({
    "name",
    "description",
    "control_objectives",
    "procedures",
    "risk_areas",
    "frequency",
    "is_active",
})


def validate_template(template: AuditTemplate) -> None:
    """Raise the first structural problem found in ``template``."""
    if not template.name.strip():
        raise InvalidTemplateName()

    if not template.control_objectives:
        raise MissingControlObjectives()

    if not template.procedures:
        raise MissingProcedures()

    objective_ids = {o.id for o in template.control_objectives}
    for procedure in template.procedures:
        if procedure.control_objective_id not in objective_ids:
            raise InvalidProcedureMapping(
                f"Procedure '{procedure.id}' references unknown control objective "
                f"'{procedure.control_objective_id}'"
            )


def increment_version(version: str) -> str:
    """Bump the minor component of a "major.minor" version string.

    Malformed versions reset to "1.1".
    """
    try:
        parts = [int(p) for p in version.split(".")]
    except (ValueError, AttributeError):
        return "1.1"
    if len(parts) < 2:
        return "1.1"
    return f"{parts[0]}.{parts[1] + 1}"


class TemplateRegistry:
    """Id-indexed template cache over the repository.

    Creates and updates are serialized by one mutation lock held from the
    read of the current template through the save and the cache commit, so
    concurrent updates never hand out the same version twice.
    """

    def __init__(
        self,
        catalog: FrameworkCatalog,
        repository: Repository,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.catalog = catalog
        self.repository = repository
        self.clock = clock
        self._templates: dict[str, AuditTemplate] = {}
        self._lock = threading.Lock()
        self._mutation_lock = threading.Lock()

    def seed(self, templates: list[AuditTemplate]) -> None:
        """Add built-in templates without overriding known ones."""
        with self._lock:
            for template in templates:
                self._templates.setdefault(template.id, template)

    def load(self) -> None:
        """Warm the cache from the repository. Stored templates win over seeds."""
        records = self.repository.query(RecordKind.TEMPLATE)
        templates = [decode_template(r) for r in records]
        with self._lock:
            for template in templates:
                self._templates[template.id] = template

    def get(self, template_id: str) -> AuditTemplate:
        with self._lock:
            cached = self._templates.get(template_id)
        if cached is not None:
            return cached.model_copy(deep=True)

        logger.debug("Template cache miss for %s", template_id)
        try:
            template = decode_template(self.repository.fetch(RecordKind.TEMPLATE, template_id))
        except RecordNotFound:
            raise TemplateNotFound(f"Audit template '{template_id}' not found") from None
        with self._lock:
            self._templates[template.id] = template
        return template.model_copy(deep=True)

    def exists(self, template_id: str) -> bool:
        """Whether ``template_id`` is cached or stored."""
        try:
            self.get(template_id)
        except TemplateNotFound:
            return False
        return True

    def list_templates(self, active_only: bool = False) -> list[AuditTemplate]:
        with self._lock:
            templates = [t.model_copy(deep=True) for t in self._templates.values()]
        if active_only:
            templates = [t for t in templates if t.is_active]
        return templates

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
        """Validate and store a new template at version 1.0.

        An explicit ``template_id`` that is already taken raises
        ``DuplicateTemplate``; use ``update_template`` to change it.
        """
        framework_id = framework.id if isinstance(framework, ComplianceFramework) else framework

        template = AuditTemplate(
            id=template_id or str(uuid.uuid4()),
            name=name,
            description=description,
            framework_id=framework_id,
            audit_type=audit_type,
            scope=scope,
            control_objectives=[o.model_copy(deep=True) for o in control_objectives],
            procedures=[p.model_copy(deep=True) for p in procedures],
            risk_areas=list(risk_areas or []),
            frequency=frequency,
            created_by=created_by,
            created_at=self.clock(),
            version="1.0",
            is_active=True,
        )

        validate_template(template)
        self.catalog.get(framework_id)

        with self._mutation_lock:
            try:
                if template_id and self.exists(template_id):
                    raise DuplicateTemplate(f"Audit template '{template_id}' already exists")
                self.repository.save(RecordKind.TEMPLATE, template.id, encode(template))
            except RepositoryError as e:
                raise TemplateCreationFailed(e) from e

            with self._lock:
                self._templates[template.id] = template
        logger.info("Created template %s '%s' for %s", template.id, template.name, framework_id)
        return template.model_copy(deep=True)

    def update_template(self, template_id: str, modified_by: str = "system", **fields) -> AuditTemplate:
        """Apply ``fields`` to a template and bump its minor version.

        The merged template is validated before anything is stored.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise TypeError(f"Unsupported template fields: {', '.join(sorted(unknown))}")

        with self._mutation_lock:
            current = self.get(template_id)

            changes = {k: v for k, v in fields.items() if v is not None}
            updated = current.model_copy(deep=True)
            for key, value in changes.items():
                setattr(updated, key, value)
            updated = AuditTemplate.model_validate(updated.model_dump())
            updated.version = increment_version(current.version)
            updated.modified_by = modified_by
            updated.modified_at = self.clock()

            validate_template(updated)

            try:
                self.repository.save(RecordKind.TEMPLATE, updated.id, encode(updated))
            except RepositoryError as e:
                raise TemplateUpdateFailed(e) from e

            with self._lock:
                self._templates[updated.id] = updated
        logger.info("Updated template %s to version %s", updated.id, updated.version)
        return updated.model_copy(deep=True)


def default_templates(now: Optional[datetime] = None) -> list[AuditTemplate]:
    """Built-in templates for the seeded frameworks."""
    created_at = now or datetime.now()
    return [
        AuditTemplate(
            id="iso27001-template",
            name="ISO 27001 Information Security Management",
            description="Comprehensive audit template for ISO 27001 compliance",
            framework_id="iso27001",
            audit_type=AuditType.COMPLIANCE,
            scope=AuditScope.ORGANIZATIONAL,
            control_objectives=[
                ControlObjective(
                    id="iso-access-1",
                    title="Access Control Management",
                    description="Ensure appropriate access controls are implemented",
                    category="Access Control",
                    risk_level=RiskLevel.HIGH,
                ),
                ControlObjective(
                    id="iso-info-1",
                    title="Information Classification",
                    description="Ensure information is properly classified and protected",
                    category="Information Security",
                    risk_level=RiskLevel.MEDIUM,
                ),
            ],
            procedures=[
                AuditProcedure(
                    id="iso-proc-1",
                    control_objective_id="iso-access-1",
                    title="Review User Access Controls",
                    description="Review and test user access control mechanisms",
                    steps=[
                        "Review access control policy",
                        "Test user authentication mechanisms",
                        "Verify privileged access controls",
                        "Document findings",
                    ],
                    evidence_required=["Access control policy", "User access reports", "Authentication logs"],
                    estimated_hours=4.0,
                ),
                AuditProcedure(
                    id="iso-proc-2",
                    control_objective_id="iso-info-1",
                    title="Review Information Classification",
                    description="Sample information assets and check their classification labels",
                    steps=[
                        "Review classification scheme",
                        "Sample labelled information assets",
                        "Verify handling rules per classification",
                    ],
                    evidence_required=["Classification policy", "Asset inventory"],
                    estimated_hours=3.0,
                ),
            ],
            risk_areas=[
                RiskArea(id="access-control", name="Access Control", description="User access management"),
                RiskArea(id="data-protection", name="Data Protection", description="Information security"),
                RiskArea(id="incident-response", name="Incident Response", description="Security incident handling"),
            ],
            frequency=AuditFrequency.ANNUAL,
            created_at=created_at,
        ),
        AuditTemplate(
            id="sox-template",
            name="Sarbanes-Oxley Compliance Audit",
            description="Financial controls and reporting audit template",
            framework_id="sox",
            audit_type=AuditType.FINANCIAL,
            scope=AuditScope.FINANCIAL,
            control_objectives=[
                ControlObjective(
                    id="sox-financial-1",
                    title="Financial Reporting Accuracy",
                    description="Ensure accuracy of financial reporting",
                    category="Financial Reporting",
                    risk_level=RiskLevel.CRITICAL,
                ),
            ],
            procedures=[
                AuditProcedure(
                    id="sox-proc-1",
                    control_objective_id="sox-financial-1",
                    title="Test Financial Controls",
                    description="Test key financial reporting controls",
                    steps=[
                        "Review financial close process",
                        "Test journal entry controls",
                        "Verify management review controls",
                        "Document control deficiencies",
                    ],
                    evidence_required=["Financial statements", "Journal entries", "Management reviews"],
                    estimated_hours=8.0,
                ),
            ],
            risk_areas=[
                RiskArea(id="financial-reporting", name="Financial Reporting", description="Accuracy of financial statements"),
                RiskArea(id="internal-controls", name="Internal Controls", description="Control effectiveness"),
                RiskArea(id="disclosure", name="Disclosure", description="Material disclosure requirements"),
            ],
            frequency=AuditFrequency.ANNUAL,
            created_at=created_at,
        ),
        AuditTemplate(
            id="gdpr-template",
            name="GDPR Privacy Compliance Audit",
            description="Data protection and privacy audit template",
            framework_id="gdpr",
            audit_type=AuditType.COMPLIANCE,
            scope=AuditScope.DATA_PROTECTION,
            control_objectives=[
                ControlObjective(
                    id="gdpr-data-1",
                    title="Data Processing Compliance",
                    description="Ensure lawful processing of personal data",
                    category="Data Protection",
                    risk_level=RiskLevel.HIGH,
                ),
            ],
            procedures=[
                AuditProcedure(
                    id="gdpr-proc-1",
                    control_objective_id="gdpr-data-1",
                    title="Review Data Processing Activities",
                    description="Review data processing lawfulness and documentation",
                    steps=[
                        "Review data processing register",
                        "Verify legal basis for processing",
                        "Check consent mechanisms",
                        "Assess data retention policies",
                    ],
                    evidence_required=["Data processing register", "Consent records", "Privacy policies"],
                    estimated_hours=6.0,
                ),
            ],
            risk_areas=[
                RiskArea(id="data-processing", name="Data Processing", description="Lawful processing of personal data"),
                RiskArea(id="consent", name="Consent Management", description="Consent collection and management"),
                RiskArea(id="data-rights", name="Data Subject Rights", description="Individual rights compliance"),
            ],
            frequency=AuditFrequency.ANNUAL,
            created_at=created_at,
        ),
        AuditTemplate(
            id="internal-controls-template",
            name="Internal Controls Assessment",
            description="Operational and financial internal controls audit",
            framework_id=DEFAULT_FRAMEWORK_ID,
            audit_type=AuditType.OPERATIONAL,
            scope=AuditScope.OPERATIONAL,
            control_objectives=[
                ControlObjective(
                    id="ic-segregation-1",
                    title="Segregation of Duties",
                    description="Ensure proper segregation of duties in key processes",
                    category="Internal Controls",
                    risk_level=RiskLevel.HIGH,
                ),
            ],
            procedures=[
                AuditProcedure(
                    id="ic-proc-1",
                    control_objective_id="ic-segregation-1",
                    title="Test Segregation of Duties",
                    description="Test segregation of duties in key business processes",
                    steps=[
                        "Map key business processes",
                        "Identify critical duties and responsibilities",
                        "Test for proper segregation",
                        "Document any conflicts",
                    ],
                    evidence_required=["Process documentation", "Role definitions", "User access reports"],
                    estimated_hours=3.0,
                ),
            ],
            risk_areas=[
                RiskArea(id="segregation-duties", name="Segregation of Duties", description="Proper segregation of responsibilities"),
                RiskArea(id="authorization", name="Authorization Controls", description="Approval processes"),
                RiskArea(id="documentation", name="Documentation", description="Process documentation and evidence"),
            ],
            frequency=AuditFrequency.QUARTERLY,
            created_at=created_at,
        ),
    ]
