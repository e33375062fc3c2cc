"""YAML-file repository.

Each record kind lives in its own ``<kind>.yaml`` file under the store root,
as a mapping of record id to record.
"""

from __future__ import annotations

import copy
import threading
from pathlib import Path
from typing import Optional

import yaml

from ..core.errors import RecordNotFound, RepositoryError
from .repository import Predicate, Record, RecordKind


class YamlFileRepository:
    """Repository persisting records to YAML files in a directory."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self._lock = threading.Lock()

    def _path(self, kind: RecordKind) -> Path:
        return self.root / f"{RecordKind(kind).value}.yaml"

    def _load(self, kind: RecordKind) -> dict[str, Record]:
        path = self._path(kind)
        if not path.exists():
            return {}
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8-sig")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise RepositoryError(f"Cannot read {path.name}: {e}") from e
        if not isinstance(data, dict):
            raise RepositoryError(f"{path.name} must contain a mapping of records")
        return data

    def _dump(self, kind: RecordKind, records: dict[str, Record]) -> None:
        path = self._path(kind)
        content = yaml.dump(
            records,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
            width=120,
        )
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise RepositoryError(f"Cannot write {path.name}: {e}") from e

    def save(self, kind: RecordKind, record_id: str, record: Record) -> None:
        with self._lock:
            records = self._load(kind)
            records[record_id] = copy.deepcopy(record)
            self._dump(kind, records)

    def fetch(self, kind: RecordKind, record_id: str) -> Record:
        with self._lock:
            record = self._load(kind).get(record_id)
        if record is None:
            raise RecordNotFound(f"{RecordKind(kind).value} '{record_id}' not found")
        return record

    def query(self, kind: RecordKind, predicate: Optional[Predicate] = None) -> list[Record]:
        with self._lock:
            records = list(self._load(kind).values())
        if predicate is None:
            return records
        return [r for r in records if predicate(r)]
