"""Audit engine error types.

Validation and not-found errors are raised before any mutation or
persistence call. Collaborator failures are wrapped in an
``OperationFailed`` subclass that keeps the original error as ``cause``.
"""

from __future__ import annotations

from typing import Optional


class AuditError(Exception):
    """Base class for every error raised by the engine."""

    message = "Audit engine error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)


# Not-found

class NotFoundError(AuditError):
    """Stale or unknown reference. Callers should refresh and retry."""


class TemplateNotFound(NotFoundError):
    message = "Audit template not found"


class AuditReportNotFound(NotFoundError):
    message = "Audit report not found"


class ProcedureNotFound(NotFoundError):
    message = "Audit procedure not found"


class FindingNotFound(NotFoundError):
    message = "Audit finding not found"


class FrameworkNotFound(NotFoundError):
    message = "Compliance framework not found"


# Validation

class TemplateValidationError(AuditError):
    message = "Audit template is invalid"


class InvalidTemplateName(TemplateValidationError):
    message = "Template name is required"


class MissingControlObjectives(TemplateValidationError):
    message = "At least one control objective is required"


class MissingProcedures(TemplateValidationError):
    message = "At least one audit procedure is required"


class InvalidProcedureMapping(TemplateValidationError):
    message = "All procedures must be mapped to valid control objectives"


class InvalidStatusTransition(AuditError):
    message = "Audit status transition is not allowed"


class ReportClosed(AuditError):
    message = "Audit report is closed to new findings"


class DuplicateFinding(AuditError):
    message = "Audit finding already exists"


class DuplicateTemplate(AuditError):
    message = "Audit template already exists"


# Storage collaborator

class RepositoryError(AuditError):
    message = "Repository operation failed"


class RecordNotFound(RepositoryError):
    message = "Record not found"


class DecodeError(RepositoryError):
    message = "Record could not be decoded"


# Wrapped collaborator failures

class OperationFailed(AuditError):
    """An operation failed because a collaborator failed."""

    action = "complete audit operation"

    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"Failed to {self.action}: {cause}")


class TemplateCreationFailed(OperationFailed):
    action = "create audit template"


class TemplateUpdateFailed(OperationFailed):
    action = "update audit template"


class AuditExecutionFailed(OperationFailed):
    action = "execute audit"


class StatusUpdateFailed(OperationFailed):
    action = "update audit status"


class FindingCreationFailed(OperationFailed):
    action = "create audit finding"


class FindingUpdateFailed(OperationFailed):
    action = "update audit finding"


class GapAnalysisFailed(OperationFailed):
    action = "generate gap analysis"


class ReportGenerationFailed(OperationFailed):
    action = "generate audit report"


class MetricsGenerationFailed(OperationFailed):
    action = "generate audit metrics"


class ScheduleCreationFailed(OperationFailed):
    action = "create audit schedule"


class LoadFailed(OperationFailed):
    action = "load audit data"


class ScoreUpdateFailed(OperationFailed):
    action = "recalculate compliance score"


class ScheduleUpdateFailed(OperationFailed):
    action = "update audit schedule"
