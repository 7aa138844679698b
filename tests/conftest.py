"""
Shared pytest fixtures for smarttodo tests.

Provides fake providers and in-memory repositories so no test calls a
real model.
"""

import threading
from datetime import datetime, timezone
from typing import Any

import pytest

from smarttodo.types import (
    AIContext,
    AnalysisResult,
    ChatMessage,
    ChatResponse,
    Metadata,
    TagStatistics,
    TimeHorizon,
)

FIXED_NOW = datetime(2025, 3, 10, 15, 30, 0, tzinfo=timezone.utc)


class MockProvider:
    """
    Scripted AI provider.

    Each call pops the next outcome from the script for that operation:
    an exception instance is raised, anything else is returned. When the
    script is exhausted the default reply is returned.
    """

    model = "mock-model"

    def __init__(
        self,
        analyze_script: list[Any] | None = None,
        chat_script: list[Any] | None = None,
        summarize_script: list[Any] | None = None,
    ):
        self.analyze_script = list(analyze_script or [])
        self.chat_script = list(chat_script or [])
        self.summarize_script = list(summarize_script or [])
        self.analyze_calls: list[dict[str, Any]] = []
        self.chat_calls: list[list[ChatMessage]] = []
        self.summarize_calls: list[list[ChatMessage]] = []
        self._lock = threading.Lock()

    @staticmethod
    def _next(script: list[Any], default: Any) -> Any:
        outcome = script.pop(0) if script else default
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def analyze(
        self,
        text: str,
        user_context: AIContext | None = None,
        *,
        due_date: datetime | None = None,
        created_at: datetime | None = None,
        tag_stats: TagStatistics | None = None,
        cancel: threading.Event | None = None,
    ) -> AnalysisResult:
        with self._lock:
            self.analyze_calls.append({
                "text": text,
                "user_context": user_context,
                "due_date": due_date,
                "created_at": created_at,
                "tag_stats": tag_stats,
            })
            return self._next(
                self.analyze_script,
                AnalysisResult(tags=["misc"], time_horizon=TimeHorizon.SOON),
            )

    def chat(self, messages, user_context=None, *, cancel=None) -> ChatResponse:
        with self._lock:
            self.chat_calls.append(list(messages))
            return self._next(self.chat_script, ChatResponse(message="Noted."))

    def summarize(self, messages, *, cancel=None) -> str:
        with self._lock:
            self.summarize_calls.append(list(messages))
            return self._next(self.summarize_script, "Prefers short tags.")


class InMemoryStatsRepository:
    """TagStatisticsRepository backed by a dict."""

    def __init__(self, *stats: TagStatistics):
        self.data: dict[str, TagStatistics] = {s.user_id: s for s in stats}
        self.saves = 0

    def load(self, user_id: str) -> TagStatistics | None:
        return self.data.get(user_id)

    def save(self, stats: TagStatistics) -> None:
        self.saves += 1
        self.data[stats.user_id] = stats


class InMemoryMetadataRepository:
    """MetadataRepository backed by a dict."""

    def __init__(self):
        self.data: dict[str, Metadata] = {}
        self.saves = 0

    def load(self, todo_id: str) -> Metadata | None:
        return self.data.get(todo_id)

    def save(self, todo_id: str, metadata: Metadata) -> None:
        self.saves += 1
        self.data[todo_id] = metadata


class RecordingSleep:
    """Stand-in for time.sleep that records the requested delays."""

    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def fixed_clock():
    """Clock returning a fixed instant."""
    return lambda: FIXED_NOW


@pytest.fixture
def mock_provider():
    """Create a fresh MockProvider with no scripted failures."""
    return MockProvider()


@pytest.fixture
def stats_repo():
    return InMemoryStatsRepository()


@pytest.fixture
def metadata_repo():
    return InMemoryMetadataRepository()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep provider selection and keys in the environment out of tests."""
    for name in (
        "AI_PROVIDER",
        "AI_MODEL",
        "AI_BASE_URL",
        "OPENAI_API_KEY",
        "SMARTTODO_OPENAI_API_KEY",
        "ANTHROPIC_API_KEY",
        "OLLAMA_HOST",
        "SMARTTODO_CONFIG_DIR",
        "SMARTTODO_FULL_LOG",
        "SMARTTODO_VERBOSE",
    ):
        monkeypatch.delenv(name, raising=False)
