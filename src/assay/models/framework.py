"""Compliance framework data models."""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def weight(self) -> int:
        return _RISK_WEIGHTS[self]

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


_RISK_WEIGHTS = {
    RiskLevel.LOW: 1,
    RiskLevel.MEDIUM: 2,
    RiskLevel.HIGH: 3,
    RiskLevel.CRITICAL: 4,
}


def max_risk_level(levels: Iterable[RiskLevel]) -> Optional[RiskLevel]:
    """Return the most severe risk level, or None for an empty input."""
    return max(levels, key=lambda level: level.weight, default=None)


class RegulatoryRequirement(BaseModel):
    """One clause of a regulatory framework."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str = ""
    category: str = ""
    mandatory: bool = True
    control_objective_ids: tuple[str, ...] = ()


class ComplianceFramework(BaseModel):
    """A regulatory standard and its requirement list."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    version: str = ""
    requirements: tuple[RegulatoryRequirement, ...] = ()
    certification_body: str = ""
    is_active: bool = True

    def linked_objective_ids(self, requirement: RegulatoryRequirement) -> set[str]:
        return {requirement.id, *requirement.control_objective_ids}
