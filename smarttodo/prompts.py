"""
Prompts sent to the language model, and decoding of its replies.
"""

import json
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

from .curation import DEFAULT_MAX_PROMPT_TAGS, DEFAULT_TAG_TOKEN_BUDGET, select_tags
from .errors import MalformedResponseError
from .types import (
    AIContext,
    AnalysisResult,
    ChatMessage,
    TagStatistics,
    TimeHorizon,
    ensure_utc,
    utc_now,
)

ANALYSIS_SYSTEM_PROMPT = (
    "You are a helpful assistant that analyzes todo items and suggests tags "
    "and time horizons. Respond with valid JSON only."
)

CHAT_SYSTEM_PROMPT = (
    "You are a helpful assistant that helps users configure how their todos "
    "are analyzed and categorized. Be concise and helpful."
)

SUMMARY_SYSTEM_PROMPT = (
    "You are a helpful assistant that creates concise summaries of "
    "conversations. Focus on extracting user preferences and patterns."
)

OUTPUT_FORMAT_INSTRUCTIONS = """Respond with a JSON object in this format:
{
  "tags": ["tag1", "tag2"],
  "time_horizon": "now" | "soon" | "later"
}

Guidelines:
- "now": Items that need immediate attention or should be done very soon (including items due today or within 1-2 days)
- "soon": Items that should be done in the near future (typically within a week, or based on due date)
- "later": Items that can wait or are not urgent (typically more than a week away)

Use the due date as a strong signal for time horizon categorization. Items with earlier due dates should typically have higher priority time horizons.

When interpreting relative time expressions in the todo text (like "this weekend", "soon", "next week"), consider when the todo was created. For example, if a todo says "this weekend" and it was created on Monday, "this weekend" refers to the upcoming weekend. If it was created on Saturday, it might refer to today or tomorrow.

Return only valid JSON."""

TAG_REUSE_GUIDANCE = """Tag selection guidance:
- Prefer reusing existing tags when they are semantically similar or closely related to the todo item
- Only create new tags if no existing tag is a good match (consider synonyms, related concepts, and variations)
- When an existing tag is close enough, use it rather than creating a new one
- This helps maintain consistency and reduces tag proliferation"""

_ONE_DAY = timedelta(days=1)


def _is_date_only(dt: datetime) -> bool:
    return dt.hour == 0 and dt.minute == 0 and dt.second == 0 and dt.microsecond == 0


def _created_note(now: datetime, created_at: datetime) -> str:
    days = max((now - created_at) // _ONE_DAY, 0)
    if days == 0:
        return "This todo was entered today."
    if days == 1:
        return "This todo was entered yesterday."
    return f"This todo was entered {days} days ago."


def _due_date_section(now: datetime, due_date: datetime) -> str:
    # Whole days, truncated toward zero: a date-only due date earlier today is "due today"
    days_until = int((due_date - now).total_seconds() / 86400)

    if _is_date_only(due_date):
        section = f"Due date: {due_date.strftime('%Y-%m-%d')} (date only, no specific time)"
    else:
        section = f"Due date: {due_date.isoformat(timespec='seconds')} (specific time)"
    section += f" (in {days_until} days)"

    if days_until < 0:
        section += "\nNote: This item is overdue."
    elif days_until == 0:
        section += "\nNote: This item is due today."
    elif days_until <= 1:
        section += "\nNote: This item is due very soon (today or tomorrow)."
    elif days_until <= 7:
        section += f"\nNote: This item is due in {days_until} days (within a week)."
    return section


def format_tag_hint(tag: str, total: int, ai: int, user: int) -> str:
    line = f"- {tag} (used {total} times"
    if ai > 0 or user > 0:
        line += f", {ai} AI-generated, {user} user-defined"
    return line + ")"


class PromptBuilder:
    """
    Builds the analysis prompt for a todo.

    The clock is injectable so prompts are reproducible in tests.
    """

    def __init__(
        self,
        *,
        max_tags: int = DEFAULT_MAX_PROMPT_TAGS,
        token_budget: int = DEFAULT_TAG_TOKEN_BUDGET,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.max_tags = max_tags
        self.token_budget = token_budget
        self._clock = clock

    def build(
        self,
        text: str,
        due_date: datetime | None,
        created_at: datetime,
        preferences: str | None = None,
        tag_stats: TagStatistics | None = None,
    ) -> str:
        """
        Assemble the analysis prompt.

        Sections, in order: the task, time context, the due date (if any),
        output format instructions, existing tags to prefer (if statistics
        are available), and the user's preference summary (if any).
        """
        now = ensure_utc(self._clock())
        created_at = ensure_utc(created_at)

        parts = [
            "Analyze the following todo item and suggest:\n"
            "1. Relevant tags (as a JSON array of strings)\n"
            '2. Time horizon: "now", "soon", or "later"\n'
            "\n"
            f'Todo item: "{text}"',
            "Time context:\n"
            f"- Current date and time: {now.isoformat(timespec='seconds')}\n"
            f"- Todo created/entered at: {created_at.isoformat(timespec='seconds')}\n"
            f"- {_created_note(now, created_at)}",
        ]

        if due_date is not None:
            parts.append(_due_date_section(now, ensure_utc(due_date)))

        parts.append(OUTPUT_FORMAT_INSTRUCTIONS)

        if tag_stats is not None and tag_stats.tag_stats:
            selected = select_tags(tag_stats.tag_stats, text, self.max_tags, self.token_budget)
            if selected:
                lines = ["Existing tags (prefer reusing these when semantically similar):"]
                for tag in selected:
                    stats = tag_stats.tag_stats[tag]
                    lines.append(format_tag_hint(tag, stats.total, stats.ai, stats.user))
                parts.append("\n".join(lines))
                parts.append(TAG_REUSE_GUIDANCE)

        if preferences:
            parts.append(f"User preferences: {preferences}")

        return "\n\n".join(parts)


def build_analysis_prompt(
    text: str,
    due_date: datetime | None,
    created_at: datetime,
    preferences: str | None = None,
    tag_stats: TagStatistics | None = None,
    *,
    now: datetime | None = None,
) -> str:
    """Build an analysis prompt with default tag limits."""
    clock = (lambda: now) if now is not None else utc_now
    return PromptBuilder(clock=clock).build(text, due_date, created_at, preferences, tag_stats)


def build_chat_system_prompt(user_context: AIContext | None = None) -> str:
    if user_context is not None and user_context.context_summary:
        return f"{CHAT_SYSTEM_PROMPT}\n\nUser context: {user_context.context_summary}"
    return CHAT_SYSTEM_PROMPT


def build_summary_prompt(messages: Iterable[ChatMessage]) -> str:
    prompt = (
        "Summarize the following conversation into a concise context that can be "
        "used to better understand the user's preferences for todo categorization. "
        "Focus on key preferences and patterns.\n\nConversation:\n"
    )
    for msg in messages:
        prompt += f"{msg.role}: {msg.content}\n"
    return prompt


# -----------------------------------------------------------------------------
# Response decoding
# -----------------------------------------------------------------------------

def _decode_json_object(content: str) -> dict:
    """Decode a JSON object, extracting an embedded {...} once if needed."""
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        start = content.find("{")
        end = content.rfind("}")
        if start == -1 or end <= start:
            raise MalformedResponseError(f"failed to parse analysis response: {e}") from e
        try:
            data = json.loads(content[start:end + 1])
        except json.JSONDecodeError as inner:
            raise MalformedResponseError(
                f"failed to parse analysis response: {inner}"
            ) from inner
    if not isinstance(data, dict):
        raise MalformedResponseError("analysis response is not a JSON object")
    return data


def parse_analysis_response(content: str) -> AnalysisResult:
    """
    Decode the model's analysis reply.

    Tags are stripped and de-duplicated in order. An unknown or missing
    time horizon becomes "soon".

    Raises:
        MalformedResponseError: If no JSON object can be decoded
    """
    data = _decode_json_object(content.strip())

    raw_tags = data.get("tags") or []
    if not isinstance(raw_tags, list):
        raise MalformedResponseError("analysis response 'tags' is not a list")

    tags: list[str] = []
    for tag in raw_tags:
        if not isinstance(tag, str):
            continue
        tag = tag.strip()
        if tag and tag not in tags:
            tags.append(tag)

    return AnalysisResult(tags=tags, time_horizon=TimeHorizon.parse(data.get("time_horizon")))
