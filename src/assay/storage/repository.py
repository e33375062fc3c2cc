"""Record repository boundary and an in-memory implementation."""

from __future__ import annotations

import copy
import threading
from enum import Enum
from typing import Callable, Optional, Protocol, runtime_checkable

from ..core.errors import RecordNotFound

Record = dict
Predicate = Callable[[Record], bool]


class RecordKind(str, Enum):
    TEMPLATE = "template"
    REPORT = "report"
    FINDING = "finding"
    SCHEDULE = "schedule"
    REMEDIAL_ACTION = "remedial_action"
    ACTIVITY = "activity"
    COMPREHENSIVE_REPORT = "comprehensive_report"
    COMPLIANCE_SCORE = "compliance_score"


@runtime_checkable
class Repository(Protocol):
    """Protocol for the generic key/record store the engine persists to.

    Implementations raise ``RepositoryError`` (or a subclass) on failure and
    ``RecordNotFound`` from ``fetch`` when the id is unknown.
    """

    def save(self, kind: RecordKind, record_id: str, record: Record) -> None: ...

    def fetch(self, kind: RecordKind, record_id: str) -> Record: ...

    def query(self, kind: RecordKind, predicate: Optional[Predicate] = None) -> list[Record]: ...


class InMemoryRepository:
    """Dict-backed repository. Records are deep-copied in and out."""

    def __init__(self) -> None:
        self._records: dict[RecordKind, dict[str, Record]] = {kind: {} for kind in RecordKind}
        self._lock = threading.Lock()

    def save(self, kind: RecordKind, record_id: str, record: Record) -> None:
        with self._lock:
            self._records[RecordKind(kind)][record_id] = copy.deepcopy(record)

    def fetch(self, kind: RecordKind, record_id: str) -> Record:
        with self._lock:
            record = self._records[RecordKind(kind)].get(record_id)
            if record is None:
                raise RecordNotFound(f"{RecordKind(kind).value} '{record_id}' not found")
            return copy.deepcopy(record)

    def query(self, kind: RecordKind, predicate: Optional[Predicate] = None) -> list[Record]:
        with self._lock:
            records = [copy.deepcopy(r) for r in self._records[RecordKind(kind)].values()]
        if predicate is None:
            return records
        return [r for r in records if predicate(r)]
