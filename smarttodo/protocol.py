"""
Protocol definitions for the persistence collaborators.

Storage of todos, users and configuration lives outside this package.
The analysis service only needs load/save by key:
- TagStatisticsRepository: per-user tag usage, keyed by user id
- MetadataRepository: per-todo tag provenance, keyed by todo id
"""

from typing import Protocol, runtime_checkable

from .types import Metadata, TagStatistics


@runtime_checkable
class TagStatisticsRepository(Protocol):
    """Per-user tag statistics storage."""

    def load(self, user_id: str) -> TagStatistics | None: ...

    def save(self, stats: TagStatistics) -> None: ...


@runtime_checkable
class MetadataRepository(Protocol):
    """Per-todo tag provenance storage."""

    def load(self, todo_id: str) -> Metadata | None: ...

    def save(self, todo_id: str, metadata: Metadata) -> None: ...
