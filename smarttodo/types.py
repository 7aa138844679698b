"""
Data types for AI-assisted todo categorization.

Tag statistics, tag provenance (Metadata), chat messages and the
analysis result returned by providers.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with aware ones."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


class TimeHorizon(str, Enum):
    """When a todo should be addressed."""
    NOW = "now"
    SOON = "soon"
    LATER = "later"

    @classmethod
    def parse(cls, value: Any) -> "TimeHorizon":
        """Coerce a model-supplied value, defaulting to SOON when unrecognized."""
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.SOON


class TagSource(str, Enum):
    """Which actor asserted a tag."""
    USER = "user"
    AI = "ai"

    @classmethod
    def parse(cls, value: Any) -> "TagSource":
        """Coerce a persisted value. Only an explicit "user" is USER."""
        if isinstance(value, str) and value.strip().lower() == cls.USER.value:
            return cls.USER
        return cls.AI


# -----------------------------------------------------------------------------
# Tag statistics
# -----------------------------------------------------------------------------

@dataclass
class TagUsageStats:
    """
    Usage counts for one tag across a user's todos.

    Attributes:
        total: Number of todos bearing the tag
        ai: Number of those todos where the tag was AI-generated
        user: Number of those todos where the tag was user-defined
    """
    total: int = 0
    ai: int = 0
    user: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"total": self.total, "ai": self.ai, "user": self.user}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TagUsageStats":
        return cls(
            total=int(data.get("total", 0)),
            ai=int(data.get("ai", 0)),
            user=int(data.get("user", 0)),
        )


def aggregate_tag_usage(metadatas: Iterable["Metadata"]) -> dict[str, TagUsageStats]:
    """
    Count tag usage over a collection of todo metadata.

    Every todo bearing a tag adds one to its total, and one to the counter
    for the provenance recorded on that todo. Tags without a recorded
    source count as AI-generated.
    """
    usage: dict[str, TagUsageStats] = {}
    for metadata in metadatas:
        for tag in metadata.category_tags:
            stats = usage.setdefault(tag, TagUsageStats())
            stats.total += 1
            source = metadata.tag_sources.get(tag, TagSource.AI)
            if source == TagSource.USER:
                stats.user += 1
            else:
                stats.ai += 1
    return usage


@dataclass
class TagStatistics:
    """Per-user aggregate of tag usage, read by the tag curator."""
    user_id: str
    tag_stats: dict[str, TagUsageStats] = field(default_factory=dict)
    tainted: bool = False
    analysis_version: int = 0
    last_analyzed_at: datetime | None = None

    def mark_tainted(self) -> None:
        """Flag the statistics as stale pending recomputation."""
        self.tainted = True

    def recompute(self, metadatas: Iterable["Metadata"], now: datetime | None = None) -> None:
        """Rebuild usage counts from the user's todos and clear the taint."""
        self.tag_stats = aggregate_tag_usage(metadatas)
        self.tainted = False
        self.last_analyzed_at = now or utc_now()

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "tag_stats": {k: v.to_dict() for k, v in self.tag_stats.items()},
            "tainted": self.tainted,
            "analysis_version": self.analysis_version,
            "last_analyzed_at": (
                self.last_analyzed_at.isoformat() if self.last_analyzed_at else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TagStatistics":
        analyzed = data.get("last_analyzed_at")
        return cls(
            user_id=str(data.get("user_id", "")),
            tag_stats={
                str(k): TagUsageStats.from_dict(v)
                for k, v in (data.get("tag_stats") or {}).items()
            },
            tainted=bool(data.get("tainted", False)),
            analysis_version=int(data.get("analysis_version", 0)),
            last_analyzed_at=datetime.fromisoformat(analyzed) if analyzed else None,
        )


# -----------------------------------------------------------------------------
# Tag provenance
# -----------------------------------------------------------------------------

@dataclass
class Metadata:
    """
    Tags attached to a single todo, with the provenance of each tag.

    ``category_tags`` keeps display order and never holds duplicates.
    ``tag_sources`` has exactly one entry per name in ``category_tags``.
    """
    category_tags: list[str] = field(default_factory=list)
    tag_sources: dict[str, TagSource] = field(default_factory=dict)

    def add_tag(self, tag: str, source: TagSource) -> None:
        """Add a tag, or update its source if it is already present."""
        if tag not in self.tag_sources:
            self.category_tags.append(tag)
        self.tag_sources[tag] = TagSource(source)

    def remove_tag(self, tag: str) -> None:
        """Remove a tag. Removing an absent tag is a no-op."""
        if tag not in self.tag_sources:
            return
        self.category_tags = [t for t in self.category_tags if t != tag]
        del self.tag_sources[tag]

    def merge_tags(self, ai_tags: Iterable[str], user_tags: Iterable[str]) -> None:
        """
        Merge AI-suggested tags with user tags.

        AI tags are added unless the user also asserted them or the tag is
        already recorded. User tags are then added with source USER,
        overriding any earlier source for the same name.
        """
        user_tags = list(user_tags)
        user_set = set(user_tags)
        for tag in ai_tags:
            if tag in user_set or tag in self.tag_sources:
                continue
            self.add_tag(tag, TagSource.AI)
        for tag in user_tags:
            self.add_tag(tag, TagSource.USER)

    def set_user_tags(self, tags: Iterable[str]) -> None:
        """Replace all tags with ``tags``, every one marked as user-defined."""
        self.category_tags = []
        self.tag_sources = {}
        for tag in tags:
            self.add_tag(tag, TagSource.USER)

    def user_tags(self) -> list[str]:
        return [t for t in self.category_tags if self.tag_sources[t] == TagSource.USER]

    def ai_tags(self) -> list[str]:
        return [t for t in self.category_tags if self.tag_sources[t] == TagSource.AI]

    def to_dict(self) -> dict[str, Any]:
        return {
            "category_tags": list(self.category_tags),
            "tag_sources": {t: self.tag_sources[t].value for t in self.category_tags},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Metadata":
        """Load the persisted shape. Tags with a missing or unknown source load as AI."""
        metadata = cls()
        sources = data.get("tag_sources") or {}
        for tag in data.get("category_tags") or []:
            metadata.add_tag(tag, TagSource.parse(sources.get(tag)))
        return metadata


# -----------------------------------------------------------------------------
# Conversation and analysis
# -----------------------------------------------------------------------------

@dataclass
class AIContext:
    """A user's learned preferences, summarized from chat."""
    user_id: str
    context_summary: str = ""
    preferences: dict[str, Any] = field(default_factory=dict)

    def merge_summary(self, summary: str) -> None:
        """Append a new summary to the existing one, separated by a blank line."""
        if self.context_summary:
            self.context_summary = f"{self.context_summary}\n\n{summary}"
        else:
            self.context_summary = summary


@dataclass(frozen=True)
class ChatMessage:
    role: str  # "user" or "assistant"
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ChatResponse:
    """Assistant reply to a chat turn."""
    message: str
    summary: str = ""
    needs_update: bool = True


@dataclass
class AnalysisResult:
    """Tags and time horizon suggested for a todo."""
    tags: list[str]
    time_horizon: TimeHorizon = TimeHorizon.SOON
