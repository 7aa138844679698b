"""
AI providers backed by hosted or local language models.
"""

import logging
import os
import threading
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

from ..curation import DEFAULT_MAX_PROMPT_TAGS, DEFAULT_TAG_TOKEN_BUDGET
from ..errors import (
    INSUFFICIENT_QUOTA_CODE,
    QUOTA_RETRY_AFTER,
    RATE_LIMIT_RETRY_AFTER,
    RATE_LIMIT_STATUS,
    AIError,
    APIError,
    NoChoicesError,
    OperationCancelled,
    UpstreamError,
    parse_retry_after,
)
from ..prompts import (
    ANALYSIS_SYSTEM_PROMPT,
    SUMMARY_SYSTEM_PROMPT,
    PromptBuilder,
    build_chat_system_prompt,
    build_summary_prompt,
    parse_analysis_response,
)
from ..sanitize import log_ai_call, sanitize_api_key
from ..types import (
    AIContext,
    AnalysisResult,
    ChatMessage,
    ChatResponse,
    TagStatistics,
    TimeHorizon,
    utc_now,
)
from .base import DEFAULT_TIMEOUT, ProviderRegistry

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_ANTHROPIC_MODEL = "claude-haiku-4-5-20251001"
DEFAULT_OLLAMA_MODEL = "llama3.2"
DEFAULT_OLLAMA_URL = "http://localhost:11434"

SUMMARY_MAX_TOKENS = 500


def _check_cancelled(cancel: threading.Event | None, operation: str) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled(f"{operation} cancelled")


def status_error(
    status_code: int,
    message: str,
    *,
    type: str = "",
    code: str = "",
    retry_after_header: str | None = None,
) -> APIError:
    """Build an APIError from an HTTP error status reported by an upstream SDK."""
    is_permanent = code == INSUFFICIENT_QUOTA_CODE
    retry_after = parse_retry_after(retry_after_header)
    if retry_after is None and status_code == RATE_LIMIT_STATUS:
        retry_after = QUOTA_RETRY_AFTER if is_permanent else RATE_LIMIT_RETRY_AFTER
    return APIError(
        message,
        type=type,
        code=code,
        status_code=status_code,
        retry_after=retry_after,
        is_permanent=is_permanent,
    )


class LLMProvider:
    """
    Shared implementation of the AIProvider operations.

    Subclasses implement ``_complete``, a single system+messages request to
    their model that returns the reply text or raises an AIError.
    """

    model = ""

    def __init__(
        self,
        *,
        max_prompt_tags: int = DEFAULT_MAX_PROMPT_TAGS,
        tag_token_budget: int = DEFAULT_TAG_TOKEN_BUDGET,
        full_log: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.full_log = full_log
        self._clock = clock
        self._prompts = PromptBuilder(
            max_tags=max_prompt_tags, token_budget=tag_token_budget, clock=clock,
        )

    def _complete(
        self,
        system: str,
        messages: list[dict[str, str]],
        *,
        json_mode: bool = False,
        max_tokens: int | None = None,
    ) -> str:
        raise NotImplementedError

    def _call(
        self,
        operation: str,
        system: str,
        messages: list[dict[str, str]],
        *,
        cancel: threading.Event | None,
        json_mode: bool = False,
        max_tokens: int | None = None,
    ) -> str:
        _check_cancelled(cancel, operation)
        prompt = messages[-1]["content"] if messages else ""
        log_ai_call(operation, self.model, attempt_logger=logger, prompt=prompt, full=self.full_log)
        try:
            content = self._complete(system, messages, json_mode=json_mode, max_tokens=max_tokens)
        except AIError as e:
            log_ai_call(operation, self.model, attempt_logger=logger, error=e, full=self.full_log)
            raise
        # A reply that arrives after cancellation is discarded
        _check_cancelled(cancel, operation)
        log_ai_call(operation, self.model, attempt_logger=logger, response=content, full=self.full_log)
        return content

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
        """Suggest tags and a time horizon for a todo."""
        preferences = user_context.context_summary if user_context else None
        prompt = self._prompts.build(
            text, due_date, created_at or self._clock(), preferences, tag_stats,
        )
        content = self._call(
            "analyze", ANALYSIS_SYSTEM_PROMPT,
            [{"role": "user", "content": prompt}],
            cancel=cancel, json_mode=True,
        )
        return parse_analysis_response(content)

    def chat(
        self,
        messages: Sequence[ChatMessage],
        user_context: AIContext | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> ChatResponse:
        """Reply to the conversation so far."""
        converted = [
            {"role": m.role if m.role in ("user", "assistant") else "user", "content": m.content}
            for m in messages
        ]
        content = self._call(
            "chat", build_chat_system_prompt(user_context), converted, cancel=cancel,
        )
        return ChatResponse(message=content, needs_update=True)

    def summarize(
        self,
        messages: Sequence[ChatMessage],
        *,
        cancel: threading.Event | None = None,
    ) -> str:
        """Summarize a conversation into a preference context."""
        content = self._call(
            "summarize", SUMMARY_SYSTEM_PROMPT,
            [{"role": "user", "content": build_summary_prompt(messages)}],
            cancel=cancel, max_tokens=SUMMARY_MAX_TOKENS,
        )
        return content.strip()


# -----------------------------------------------------------------------------
# Hosted providers
# -----------------------------------------------------------------------------

class OpenAIProvider(LLMProvider):
    """
    Provider using OpenAI's chat completions API.

    Requires: SMARTTODO_OPENAI_API_KEY or OPENAI_API_KEY environment variable
    (or the api_key parameter). ``base_url`` allows OpenAI-compatible servers.

    The SDK's own retries are disabled; retry timing is decided by
    ``smarttodo.backoff`` in the caller.
    """

    def __init__(
        self,
        model: str = DEFAULT_OPENAI_MODEL,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        **kwargs: Any,
    ):
        try:
            from openai import OpenAI
        except ImportError:
            raise RuntimeError("OpenAIProvider requires 'openai' library")

        super().__init__(**kwargs)
        self.model = model or DEFAULT_OPENAI_MODEL

        key = api_key or os.environ.get("SMARTTODO_OPENAI_API_KEY") or os.environ.get("OPENAI_API_KEY")
        if not key:
            raise ValueError(
                "OpenAI API key required. Set SMARTTODO_OPENAI_API_KEY or OPENAI_API_KEY"
            )

        self._client = OpenAI(
            api_key=key,
            base_url=base_url or DEFAULT_OPENAI_BASE_URL,
            timeout=timeout,
            max_retries=0,
        )
        # Reasoning models take max_completion_tokens instead of max_tokens
        self._new_api = self.model.startswith(("gpt-5", "o1", "o3", "o4"))
        logger.debug("OpenAI provider ready (model=%s, key=%s)", self.model, sanitize_api_key(key))

    def _complete(
        self,
        system: str,
        messages: list[dict[str, str]],
        *,
        json_mode: bool = False,
        max_tokens: int | None = None,
    ) -> str:
        import openai

        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "system", "content": system}, *messages],
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        if max_tokens:
            kwargs["max_completion_tokens" if self._new_api else "max_tokens"] = max_tokens

        try:
            response = self._client.chat.completions.create(**kwargs)
        except openai.APIStatusError as e:
            body = e.body if isinstance(e.body, dict) else {}
            raise status_error(
                e.status_code,
                str(body.get("message") or e.message),
                type=str(getattr(e, "type", None) or body.get("type") or ""),
                code=str(getattr(e, "code", None) or body.get("code") or ""),
                retry_after_header=e.response.headers.get("retry-after"),
            ) from e
        except openai.APIConnectionError as e:
            # Includes APITimeoutError
            raise UpstreamError(f"OpenAI request failed (model={self.model}): {e}") from e

        if not response.choices:
            raise NoChoicesError()
        return response.choices[0].message.content or ""


class AnthropicProvider(LLMProvider):
    """
    Provider using Anthropic's Messages API.

    Authentication (checked in priority order):
    1. api_key parameter (if provided)
    2. ANTHROPIC_API_KEY
    """

    def __init__(
        self,
        model: str = DEFAULT_ANTHROPIC_MODEL,
        api_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_tokens: int = 1024,
        **kwargs: Any,
    ):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise RuntimeError("AnthropicProvider requires 'anthropic' library")

        super().__init__(**kwargs)
        self.model = model or DEFAULT_ANTHROPIC_MODEL
        self.max_tokens = max_tokens

        key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not key:
            raise ValueError("Anthropic API key required. Set ANTHROPIC_API_KEY")

        self._client = Anthropic(api_key=key, timeout=timeout, max_retries=0)
        logger.debug("Anthropic provider ready (model=%s, key=%s)", self.model, sanitize_api_key(key))

    def _complete(
        self,
        system: str,
        messages: list[dict[str, str]],
        *,
        json_mode: bool = False,
        max_tokens: int | None = None,
    ) -> str:
        import anthropic

        try:
            response = self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens or self.max_tokens,
                system=system,
                messages=messages,
            )
        except anthropic.APIStatusError as e:
            body = e.body if isinstance(e.body, dict) else {}
            detail = body.get("error") if isinstance(body.get("error"), dict) else body
            raise status_error(
                e.status_code,
                str(detail.get("message") or e.message),
                type=str(detail.get("type") or ""),
                retry_after_header=e.response.headers.get("retry-after"),
            ) from e
        except anthropic.APIConnectionError as e:
            raise UpstreamError(f"Anthropic request failed (model={self.model}): {e}") from e

        texts = [block.text for block in response.content if getattr(block, "type", "") == "text"]
        if not texts:
            raise NoChoicesError()
        return "".join(texts)


# -----------------------------------------------------------------------------
# Local providers
# -----------------------------------------------------------------------------

def ollama_base_url(base_url: str | None = None) -> str:
    """Resolve the Ollama URL from the argument, OLLAMA_HOST, or the default."""
    url = base_url or os.environ.get("OLLAMA_HOST") or DEFAULT_OLLAMA_URL
    if not url.startswith(("http://", "https://")):
        url = f"http://{url}"
    return url.rstrip("/")


class OllamaProvider(LLMProvider):
    """
    Provider using Ollama's local chat API.

    Respects OLLAMA_HOST env var (default: http://localhost:11434).
    """

    def __init__(
        self,
        model: str = DEFAULT_OLLAMA_MODEL,
        base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.model = model or DEFAULT_OLLAMA_MODEL
        self.base_url = ollama_base_url(base_url)
        self.timeout = timeout

    def _complete(
        self,
        system: str,
        messages: list[dict[str, str]],
        *,
        json_mode: bool = False,
        max_tokens: int | None = None,
    ) -> str:
        import requests

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "system", "content": system}, *messages],
            "stream": False,
        }
        if json_mode:
            payload["format"] = "json"
        if max_tokens:
            payload["options"] = {"num_predict": max_tokens}

        try:
            response = requests.post(
                f"{self.base_url}/api/chat",
                json=payload,
                timeout=(10, self.timeout),  # (connect, read)
            )
        except requests.RequestException as e:
            raise UpstreamError(
                f"Ollama request failed (model={self.model}) at {self.base_url}: {e}"
            ) from e

        if not response.ok:
            detail = response.text[:200] if response.text else ""
            raise status_error(
                response.status_code,
                f"Ollama HTTP {response.status_code} (model={self.model}). {detail}",
                retry_after_header=response.headers.get("retry-after"),
            )

        try:
            content = response.json().get("message", {}).get("content", "")
        except ValueError as e:
            raise UpstreamError(f"Ollama returned invalid JSON (model={self.model})") from e
        if not content:
            raise NoChoicesError()
        return content


class NoopProvider:
    """
    Provider that never calls a model.

    Suggests no tags and a "soon" horizon. Useful when AI is disabled or
    for testing.
    """

    model = "noop"

    def __init__(self, **kwargs: Any):
        pass

    def analyze(self, text: str, user_context: AIContext | None = None, **kwargs: Any) -> AnalysisResult:
        return AnalysisResult(tags=[], time_horizon=TimeHorizon.SOON)

    def chat(
        self,
        messages: Sequence[ChatMessage],
        user_context: AIContext | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> ChatResponse:
        return ChatResponse(message="AI assistance is disabled.", needs_update=False)

    def summarize(self, messages: Sequence[ChatMessage], *, cancel: threading.Event | None = None) -> str:
        return ""


def register_builtin_providers(registry: ProviderRegistry) -> None:
    registry.register("openai", OpenAIProvider)
    registry.register("anthropic", AnthropicProvider)
    registry.register("ollama", OllamaProvider)
    registry.register("noop", NoopProvider)
