"""
AI provider interface and built-in implementations.

Concrete providers are registered on an explicit ProviderRegistry;
``default_registry()`` returns a fresh one with the built-ins.
"""

from .base import AIProvider, ProviderFactory, ProviderRegistry, default_registry
from .llm import (
    AnthropicProvider,
    LLMProvider,
    NoopProvider,
    OllamaProvider,
    OpenAIProvider,
    register_builtin_providers,
)

__all__ = [
    # Protocol
    "AIProvider",
    "ProviderFactory",
    # Registry
    "ProviderRegistry",
    "default_registry",
    "register_builtin_providers",
    # Implementations
    "LLMProvider",
    "OpenAIProvider",
    "AnthropicProvider",
    "OllamaProvider",
    "NoopProvider",
]
