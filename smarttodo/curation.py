"""
Tag curation: choose which of a user's existing tags to show the model.

Each candidate tag is scored by how often the user has used it and how
similar it is to the new todo's text. The highest scoring tags are taken,
in order, until either the tag count limit or the token budget would be
exceeded.
"""

from collections.abc import Mapping

from .types import TagUsageStats

DEFAULT_MAX_PROMPT_TAGS = 50
DEFAULT_TAG_TOKEN_BUDGET = 500

FREQUENCY_WEIGHT = 0.7
SIMILARITY_WEIGHT = 0.3
# Puts similarity (0-1) on the same scale as raw usage counts
SIMILARITY_SCALE = 100

CHARS_PER_TOKEN = 4


def _words(text: str) -> set[str]:
    return set(text.lower().split())


def similarity(a: str, b: str) -> float:
    """
    Jaccard similarity of the word sets of two strings.

    Words are compared case-insensitively and must match exactly.
    Returns 0.0 when either string has no words.
    """
    words_a = _words(a)
    words_b = _words(b)
    if not words_a or not words_b:
        return 0.0
    common = len(words_a & words_b)
    union = len(words_a) + len(words_b) - common
    if union == 0:
        return 0.0
    return common / union


def estimate_tokens(text: str) -> int:
    """Approximate token count of English text (about 4 characters per token).

    A coarse stand-in for a real tokenizer.
    """
    return len(text) // CHARS_PER_TOKEN


def format_tag_line(tag: str, stats: TagUsageStats) -> str:
    """Full one-line display form of a tag, used for token estimation."""
    return (
        f"- {tag} (used {stats.total} times, "
        f"{stats.ai} AI-generated, {stats.user} user-defined)\n"
    )


def score_tag(tag: str, stats: TagUsageStats, todo_text: str) -> float:
    return (
        FREQUENCY_WEIGHT * stats.total
        + SIMILARITY_WEIGHT * SIMILARITY_SCALE * similarity(tag, todo_text)
    )


def select_tags(
    usage_by_tag: Mapping[str, TagUsageStats],
    todo_text: str,
    max_tags: int = DEFAULT_MAX_PROMPT_TAGS,
    max_token_budget: int = DEFAULT_TAG_TOKEN_BUDGET,
) -> list[str]:
    """
    Select tags to present to the model as hints.

    Tags are ranked by score, highest first; equal scores are ordered by
    tag name so the result is reproducible. Selection is a strict prefix of
    that ranking: it stops at the first tag that would push the count past
    ``max_tags`` or the estimated tokens past ``max_token_budget``.

    Args:
        usage_by_tag: Tag name -> usage statistics
        todo_text: Text of the todo being analyzed
        max_tags: Maximum number of tags to return
        max_token_budget: Maximum estimated tokens for the rendered tag lines

    Returns:
        Tag names in ranked order
    """
    if not usage_by_tag or max_tags <= 0 or max_token_budget <= 0:
        return []

    ranked = sorted(
        usage_by_tag.items(),
        key=lambda item: (-score_tag(item[0], item[1], todo_text), item[0]),
    )

    selected: list[str] = []
    used_tokens = 0
    for tag, stats in ranked:
        if len(selected) >= max_tags:
            break
        cost = estimate_tokens(format_tag_line(tag, stats))
        if used_tokens + cost > max_token_budget:
            break
        selected.append(tag)
        used_tokens += cost
    return selected


class TagCurator:
    """Tag selection with configured limits."""

    def __init__(
        self,
        max_tags: int = DEFAULT_MAX_PROMPT_TAGS,
        token_budget: int = DEFAULT_TAG_TOKEN_BUDGET,
    ):
        self.max_tags = max_tags
        self.token_budget = token_budget

    def select(self, usage_by_tag: Mapping[str, TagUsageStats], todo_text: str) -> list[str]:
        return select_tags(usage_by_tag, todo_text, self.max_tags, self.token_budget)
