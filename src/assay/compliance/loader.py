"""Framework YAML loading.

A framework file looks like::

    id: pci-dss
    name: PCI DSS
    version: "4.0"
    certification_body: PCI SSC
    requirements:
      - id: pci-req-8
        title: "Req 8 - Identify users and authenticate access"
        category: Access Control
        control_objective_ids: [iso-access-1]
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from ..models import ComplianceFramework

logger = logging.getLogger(__name__)


def load_framework_file(path: Path) -> Optional[ComplianceFramework]:
    """Load one framework definition, or None if the file is not one."""
    try:
        content = yaml.safe_load(path.read_text(encoding="utf-8-sig"))
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Skipping unreadable framework file %s: %s", path, e)
        return None

    if not isinstance(content, dict) or not content.get("id"):
        return None

    try:
        return ComplianceFramework.model_validate(content)
    except ValidationError as e:
        logger.warning("Skipping invalid framework file %s: %s", path, e)
        return None


def get_available_frameworks(frameworks_dir: Path) -> list[ComplianceFramework]:
    """Get all framework definitions found under a directory."""
    frameworks: list[ComplianceFramework] = []

    if not frameworks_dir.exists():
        return frameworks

    for yaml_file in sorted(frameworks_dir.rglob("*.yaml")):
        framework = load_framework_file(yaml_file)
        if framework is not None:
            frameworks.append(framework)

    return frameworks


def get_framework_by_id(framework_id: str, frameworks_dir: Path) -> Optional[ComplianceFramework]:
    """Load a specific framework definition by ID."""
    frameworks = get_available_frameworks(frameworks_dir)
    return next((f for f in frameworks if f.id == framework_id), None)
