"""
smarttodo - AI tag and time horizon suggestions for todos.

Quick Start:
    from smarttodo import PromptBuilder, TodoAnalyzer, default_registry

    provider = default_registry().create("openai", {"model": "gpt-4o-mini"})
    analysis = TodoAnalyzer(provider).analyze_todo("user-1", "todo-1", "buy groceries")
    print(analysis.result.tags, analysis.result.time_horizon)

Environment Variables:
    AI_PROVIDER                - Provider name (openai, anthropic, ollama, noop)
    AI_MODEL / AI_BASE_URL     - Provider model and endpoint overrides
    OPENAI_API_KEY             - API key for the OpenAI provider
    ANTHROPIC_API_KEY          - API key for the Anthropic provider
    SMARTTODO_CONFIG_DIR       - Directory holding smarttodo.toml
    SMARTTODO_FULL_LOG         - Log full prompts and responses
"""

from .backoff import BackoffPolicy, retry_delay
from .curation import TagCurator, select_tags, similarity
from .errors import (
    AIError,
    APIError,
    ErrorKind,
    MalformedResponseError,
    NoChoicesError,
    OperationCancelled,
    ProviderNotFoundError,
    UpstreamError,
    classify_error,
    extract_api_error,
)
from .prompts import PromptBuilder, build_analysis_prompt
from .providers import AIProvider, ProviderRegistry, default_registry
from .service import TodoAnalysis, TodoAnalyzer
from .sessions import ChatSession, ChatSessionStore
from .types import (
    AIContext,
    AnalysisResult,
    ChatMessage,
    ChatResponse,
    Metadata,
    TagSource,
    TagStatistics,
    TagUsageStats,
    TimeHorizon,
)

__version__ = "0.1.0"
__all__ = [
    "AIContext",
    "AIError",
    "AIProvider",
    "APIError",
    "AnalysisResult",
    "BackoffPolicy",
    "ChatMessage",
    "ChatResponse",
    "ChatSession",
    "ChatSessionStore",
    "ErrorKind",
    "MalformedResponseError",
    "Metadata",
    "NoChoicesError",
    "OperationCancelled",
    "PromptBuilder",
    "ProviderNotFoundError",
    "ProviderRegistry",
    "TagCurator",
    "TagSource",
    "TagStatistics",
    "TagUsageStats",
    "TimeHorizon",
    "TodoAnalysis",
    "TodoAnalyzer",
    "UpstreamError",
    "build_analysis_prompt",
    "classify_error",
    "default_registry",
    "extract_api_error",
    "retry_delay",
    "select_tags",
    "similarity",
]
