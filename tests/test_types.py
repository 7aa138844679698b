"""
Tests for tag provenance (Metadata), tag statistics and time horizons.
"""

from datetime import datetime, timezone

import pytest

from smarttodo.types import (
    AIContext,
    ChatMessage,
    Metadata,
    TagSource,
    TagStatistics,
    TagUsageStats,
    TimeHorizon,
    aggregate_tag_usage,
    ensure_utc,
)


def assert_consistent(metadata: Metadata) -> None:
    """Every tag has exactly one source entry and appears once."""
    assert len(metadata.category_tags) == len(set(metadata.category_tags))
    assert set(metadata.category_tags) == set(metadata.tag_sources)


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------

class TestMergeTags:

    def test_merge_ai_and_user(self):
        m = Metadata()
        m.merge_tags(["a", "b"], ["b", "c"])
        assert set(m.category_tags) == {"a", "b", "c"}
        assert m.tag_sources == {
            "a": TagSource.AI,
            "b": TagSource.USER,
            "c": TagSource.USER,
        }
        assert_consistent(m)

    def test_existing_tag_not_downgraded_to_ai(self):
        m = Metadata()
        m.add_tag("work", TagSource.USER)
        m.merge_tags(["work", "urgent"], [])
        assert m.tag_sources["work"] == TagSource.USER
        assert m.tag_sources["urgent"] == TagSource.AI
        assert m.category_tags == ["work", "urgent"]

    def test_user_tag_overrides_ai(self):
        m = Metadata()
        m.add_tag("errand", TagSource.AI)
        m.merge_tags([], ["errand"])
        assert m.tag_sources["errand"] == TagSource.USER
        assert m.category_tags == ["errand"]

    def test_duplicate_ai_tags_collapse(self):
        m = Metadata()
        m.merge_tags(["x", "x", "y"], [])
        assert m.category_tags == ["x", "y"]
        assert_consistent(m)

    def test_empty_merge(self):
        m = Metadata()
        m.merge_tags([], [])
        assert m.category_tags == []
        assert m.tag_sources == {}


class TestSetUserTags:

    def test_replaces_everything(self):
        m = Metadata()
        m.merge_tags(["a", "b"], ["c"])
        m.set_user_tags(["b", "d"])
        assert m.category_tags == ["b", "d"]
        assert m.tag_sources == {"b": TagSource.USER, "d": TagSource.USER}
        assert_consistent(m)

    def test_dedupes(self):
        m = Metadata()
        m.set_user_tags(["a", "a", "b"])
        assert m.category_tags == ["a", "b"]

    def test_clear(self):
        m = Metadata()
        m.merge_tags(["a"], ["b"])
        m.set_user_tags([])
        assert m.category_tags == []
        assert m.tag_sources == {}


class TestAddRemove:

    def test_add_is_idempotent(self):
        m = Metadata()
        m.add_tag("home", TagSource.AI)
        m.add_tag("home", TagSource.AI)
        assert m.category_tags == ["home"]

    def test_add_existing_updates_source(self):
        m = Metadata()
        m.add_tag("home", TagSource.AI)
        m.add_tag("home", TagSource.USER)
        assert m.category_tags == ["home"]
        assert m.tag_sources["home"] == TagSource.USER

    def test_remove(self):
        m = Metadata()
        m.merge_tags(["a", "b"], [])
        m.remove_tag("a")
        assert m.category_tags == ["b"]
        assert "a" not in m.tag_sources

    def test_remove_absent_is_noop(self):
        m = Metadata()
        m.add_tag("a", TagSource.USER)
        m.remove_tag("zzz")
        assert m.category_tags == ["a"]

    def test_filtered_views(self):
        m = Metadata()
        m.merge_tags(["a", "b"], ["c"])
        assert m.ai_tags() == ["a", "b"]
        assert m.user_tags() == ["c"]
        assert Metadata().user_tags() == []
        assert Metadata().ai_tags() == []


class TestMetadataPersistence:

    def test_to_dict(self):
        m = Metadata()
        m.merge_tags(["a"], ["b"])
        assert m.to_dict() == {
            "category_tags": ["a", "b"],
            "tag_sources": {"a": "ai", "b": "user"},
        }

    def test_from_dict_repairs_orphans(self):
        m = Metadata.from_dict({
            "category_tags": ["a", "b", "a"],
            "tag_sources": {"b": "user", "ghost": "ai"},
        })
        assert m.category_tags == ["a", "b"]
        assert m.tag_sources == {"a": TagSource.AI, "b": TagSource.USER}
        assert_consistent(m)

    def test_from_dict_unknown_source_loads_as_ai(self):
        m = Metadata.from_dict({
            "category_tags": ["a", "b", "c"],
            "tag_sources": {"a": "system", "b": "USER", "c": None},
        })
        assert m.tag_sources == {"a": TagSource.AI, "b": TagSource.USER, "c": TagSource.AI}
        assert_consistent(m)

    def test_from_empty_dict(self):
        m = Metadata.from_dict({})
        assert m.category_tags == []


# ---------------------------------------------------------------------------
# Tag statistics
# ---------------------------------------------------------------------------

class TestTagStatistics:

    def test_aggregate(self):
        first = Metadata()
        first.merge_tags(["work"], ["urgent"])
        second = Metadata()
        second.merge_tags(["work", "urgent"], [])
        third = Metadata.from_dict({"category_tags": ["work"]})

        stats = aggregate_tag_usage([first, second, third])
        assert stats["work"] == TagUsageStats(total=3, ai=3, user=0)
        assert stats["urgent"] == TagUsageStats(total=2, ai=1, user=1)

    def test_recompute_clears_taint(self):
        stats = TagStatistics(user_id="u1")
        stats.mark_tainted()
        assert stats.tainted

        m = Metadata()
        m.merge_tags(["home"], [])
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        stats.recompute([m], now=now)

        assert not stats.tainted
        assert stats.last_analyzed_at == now
        assert stats.tag_stats == {"home": TagUsageStats(total=1, ai=1, user=0)}

    def test_dict_round_trip(self):
        stats = TagStatistics(
            user_id="u1",
            tag_stats={"work": TagUsageStats(total=4, ai=1, user=3)},
            tainted=True,
            analysis_version=2,
            last_analyzed_at=datetime(2025, 2, 3, 4, 5, 6, tzinfo=timezone.utc),
        )
        assert TagStatistics.from_dict(stats.to_dict()) == stats

    def test_from_dict_defaults(self):
        stats = TagStatistics.from_dict({"user_id": "u2"})
        assert stats.tag_stats == {}
        assert not stats.tainted
        assert stats.analysis_version == 0
        assert stats.last_analyzed_at is None


# ---------------------------------------------------------------------------
# Small value types
# ---------------------------------------------------------------------------

class TestTimeHorizon:

    @pytest.mark.parametrize("raw,expected", [
        ("now", TimeHorizon.NOW),
        ("SOON", TimeHorizon.SOON),
        (" later ", TimeHorizon.LATER),
        ("someday", TimeHorizon.SOON),
        ("", TimeHorizon.SOON),
        (None, TimeHorizon.SOON),
        (3, TimeHorizon.SOON),
    ])
    def test_parse(self, raw, expected):
        assert TimeHorizon.parse(raw) == expected

    def test_is_string_valued(self):
        assert TimeHorizon.NOW.value == "now"


def test_ensure_utc_naive():
    naive = datetime(2025, 1, 1, 12, 0)
    assert ensure_utc(naive).tzinfo == timezone.utc


def test_merge_summary():
    context = AIContext(user_id="u1")
    context.merge_summary("Prefers short tags.")
    assert context.context_summary == "Prefers short tags."
    context.merge_summary("Uses #errands.")
    assert context.context_summary == "Prefers short tags.\n\nUses #errands."


def test_chat_message_to_dict():
    assert ChatMessage("user", "hi").to_dict() == {"role": "user", "content": "hi"}
