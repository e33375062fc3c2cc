"""Record encoding and decoding.

Decoders either return a fully validated entity or raise ``DecodeError``;
they never hand back a partially populated model.
"""

from __future__ import annotations

from typing import TypeVar

from pydantic import BaseModel, ValidationError

from ..core.errors import DecodeError
from ..models import (
    AuditActivityLog,
    AuditFinding,
    AuditReport,
    AuditSchedule,
    AuditTemplate,
    ComplianceScore,
    ComprehensiveAuditReport,
    RemedialAction,
)
from .repository import Record, RecordKind

ModelT = TypeVar("ModelT", bound=BaseModel)

KIND_MODELS: dict[RecordKind, type[BaseModel]] = {
    RecordKind.TEMPLATE: AuditTemplate,
    RecordKind.REPORT: AuditReport,
    RecordKind.FINDING: AuditFinding,
    RecordKind.SCHEDULE: AuditSchedule,
    RecordKind.REMEDIAL_ACTION: RemedialAction,
    RecordKind.ACTIVITY: AuditActivityLog,
    RecordKind.COMPREHENSIVE_REPORT: ComprehensiveAuditReport,
    RecordKind.COMPLIANCE_SCORE: ComplianceScore,
}


def encode(entity: BaseModel) -> Record:
    """Convert an entity into a JSON-compatible record."""
    return entity.model_dump(mode="json")


def decode(model: type[ModelT], record: Record) -> ModelT:
    """Validate a record into ``model`` or raise DecodeError."""
    if not isinstance(record, dict):
        raise DecodeError(f"{model.__name__} record must be a mapping, got {type(record).__name__}")
    try:
        return model.model_validate(record)
    except ValidationError as e:
        record_id = record.get("id", "?")
        raise DecodeError(f"Invalid {model.__name__} record '{record_id}': {e}") from e


def decode_kind(kind: RecordKind, record: Record) -> BaseModel:
    return decode(KIND_MODELS[RecordKind(kind)], record)


def decode_template(record: Record) -> AuditTemplate:
    return decode(AuditTemplate, record)


def decode_report(record: Record) -> AuditReport:
    return decode(AuditReport, record)


def decode_finding(record: Record) -> AuditFinding:
    return decode(AuditFinding, record)


def decode_schedule(record: Record) -> AuditSchedule:
    return decode(AuditSchedule, record)


def decode_action(record: Record) -> RemedialAction:
    return decode(RemedialAction, record)


def decode_score(record: Record) -> ComplianceScore:
    return decode(ComplianceScore, record)
