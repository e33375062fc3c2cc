"""Persistence boundary: repository protocol, codecs and stores."""

from .repository import InMemoryRepository, Repository, RecordKind
from .yaml_store import YamlFileRepository

__all__ = ["InMemoryRepository", "RecordKind", "Repository", "YamlFileRepository"]
