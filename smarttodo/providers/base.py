"""
Base provider protocol and registry.

AIProvider defines the interface concrete providers must implement.
Using Protocol for structural subtyping - no explicit inheritance required.
"""

import threading
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from ..errors import ProviderNotFoundError
from ..types import AIContext, AnalysisResult, ChatMessage, ChatResponse, TagStatistics

DEFAULT_TIMEOUT = 30.0  # seconds


@runtime_checkable
class AIProvider(Protocol):
    """
    Suggests tags and time horizons for todos, and holds preference chats.

    Every operation is a blocking call to an upstream model. Failures are
    raised as ``smarttodo.errors.AIError`` subclasses so callers can
    classify them and decide whether to retry.

    ``cancel`` is checked before and after the upstream call; when it is
    set the call raises OperationCancelled and returns nothing.

    Example implementation:
        class CannedProvider:
            def analyze(self, text, user_context=None, **kwargs):
                return AnalysisResult(tags=["misc"])

            def chat(self, messages, user_context=None, *, cancel=None):
                return ChatResponse(message="Noted.")

            def summarize(self, messages, *, cancel=None):
                return "Prefers short tags."
    """

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
        """
        Suggest tags and a time horizon for a todo.

        Args:
            text: The todo text
            user_context: The user's learned preferences, if any
            due_date: Optional due date of the todo
            created_at: When the todo was entered (defaults to now)
            tag_stats: The user's tag usage, used to prefer existing tags
            cancel: Cooperative cancellation flag

        Returns:
            AnalysisResult with tags and time horizon
        """
        ...

    def chat(
        self,
        messages: Sequence[ChatMessage],
        user_context: AIContext | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> ChatResponse:
        """Reply to a conversation about how todos should be categorized."""
        ...

    def summarize(
        self,
        messages: Sequence[ChatMessage],
        *,
        cancel: threading.Event | None = None,
    ) -> str:
        """Condense a conversation into a preference summary."""
        ...


ProviderFactory = Callable[..., AIProvider]


# -----------------------------------------------------------------------------
# Provider Registry
# -----------------------------------------------------------------------------

class ProviderRegistry:
    """
    Registry for discovering and instantiating providers.

    Providers are registered by name and instantiated from configuration,
    so the config file can select a provider without code changes.
    Registries are plain objects; create one per application (or per test)
    rather than sharing a process-wide instance.

    Example:
        registry = ProviderRegistry()
        registry.register("openai", OpenAIProvider)

        # Later, from config:
        provider = registry.create("openai", {"model": "gpt-4o-mini"})
    """

    def __init__(self):
        self._factories: dict[str, ProviderFactory] = {}

    def register(self, name: str, factory: ProviderFactory) -> None:
        """Register a provider factory (usually a class) under ``name``."""
        self._factories[name] = factory

    def create(self, name: str, params: dict[str, Any] | None = None) -> AIProvider:
        """
        Instantiate the provider registered under ``name``.

        Raises:
            ProviderNotFoundError: If nothing is registered under ``name``
            RuntimeError: If the factory fails (missing library, bad params)
        """
        if name not in self._factories:
            raise ProviderNotFoundError(name, self.list_providers())
        try:
            return self._factories[name](**(params or {}))
        except ImportError as e:
            raise RuntimeError(
                f"Failed to create AI provider '{name}': {e}\n"
                f"Install required dependencies."
            ) from e
        except Exception as e:
            raise RuntimeError(f"Failed to create AI provider '{name}': {e}") from e

    def list_providers(self) -> list[str]:
        """List registered provider names."""
        return list(self._factories.keys())

    def __contains__(self, name: str) -> bool:
        return name in self._factories


def default_registry() -> ProviderRegistry:
    """A new registry with the built-in providers registered."""
    from .llm import register_builtin_providers

    registry = ProviderRegistry()
    register_builtin_providers(registry)
    return registry
