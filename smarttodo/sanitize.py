"""
Safe logging of AI requests and responses.

Prompts and responses are logged as short previews with control characters
stripped; full content is only logged when full logging is enabled. API keys
never appear in full. Correlation ids (user, todo, request) are carried in
context variables so provider code can log them without threading them
through every call.
"""

import hashlib
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

logger = logging.getLogger(__name__)

MAX_PREVIEW_LENGTH = 200
MAX_DEBUG_CONTENT_LENGTH = 10000
REDACTED = "[REDACTED]"

_user_id: ContextVar[str] = ContextVar("smarttodo_user_id", default="")
_todo_id: ContextVar[str] = ContextVar("smarttodo_todo_id", default="")
_request_id: ContextVar[str] = ContextVar("smarttodo_request_id", default="")


def sanitize_api_key(api_key: str | None) -> str:
    """Show only the first and last 4 characters of an API key."""
    if not api_key:
        return ""
    if len(api_key) <= 8:
        return REDACTED
    return api_key[:4] + REDACTED + api_key[-4:]


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def sanitize_for_log(text: str, max_length: int = MAX_PREVIEW_LENGTH) -> str:
    """Drop non-printable characters (keeping whitespace) and truncate."""
    if not text:
        return ""
    cleaned = "".join(
        ch for ch in text if ch.isprintable() or ch in (" ", "\t", "\n", "\r")
    )
    return truncate(cleaned, max_length)


def preview(text: str | None, full: bool = False) -> str:
    """Loggable form of a prompt or response."""
    if not text:
        return ""
    return sanitize_for_log(text, MAX_DEBUG_CONTENT_LENGTH if full else MAX_PREVIEW_LENGTH)


def hash_user_id(user_id: str) -> str:
    """Short stable hash of a user id, for logs that must not carry the id."""
    if not user_id:
        return ""
    return hashlib.sha256(user_id.encode("utf-8")).hexdigest()[:16]


# -----------------------------------------------------------------------------
# Correlation ids
# -----------------------------------------------------------------------------

@contextmanager
def log_context(
    *,
    user_id: str | None = None,
    todo_id: str | None = None,
    request_id: str | None = None,
) -> Iterator[None]:
    """Attach correlation ids to every AI call log emitted inside the block."""
    tokens = []
    if user_id is not None:
        tokens.append((_user_id, _user_id.set(str(user_id))))
    if todo_id is not None:
        tokens.append((_todo_id, _todo_id.set(str(todo_id))))
    if request_id is not None:
        tokens.append((_request_id, _request_id.set(str(request_id))))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def correlation_ids() -> dict[str, str]:
    """Correlation ids set by the enclosing ``log_context``, empty ones omitted."""
    ids = {
        "user_id": _user_id.get(),
        "todo_id": _todo_id.get(),
        "request_id": _request_id.get(),
    }
    return {k: v for k, v in ids.items() if v}


def log_ai_call(
    operation: str,
    model: str,
    *,
    attempt_logger: logging.Logger | None = None,
    prompt: str | None = None,
    response: str | None = None,
    error: BaseException | None = None,
    full: bool = False,
    **fields: Any,
) -> None:
    """
    Emit one structured event for an upstream call attempt.

    The event dict is attached as ``extra={"ai_event": ...}`` for handlers
    that format structured records; the message itself stays readable.
    """
    log = attempt_logger or logger
    event: dict[str, Any] = {"operation": operation, "model": model}
    event.update(correlation_ids())
    if prompt is not None:
        event["prompt_preview"] = preview(prompt, full)
    if response is not None:
        event["response_preview"] = preview(response, full)
    event.update(fields)

    if error is not None:
        event["error"] = sanitize_for_log(str(error), 1000)
        log.warning(
            "AI %s failed (model=%s): %s", operation, model, event["error"],
            extra={"ai_event": event},
        )
    elif response is not None:
        log.info(
            "AI %s completed (model=%s, %d chars)", operation, model, len(response),
            extra={"ai_event": event},
        )
    else:
        log.debug(
            "AI %s request (model=%s): %s", operation, model, event.get("prompt_preview", ""),
            extra={"ai_event": event},
        )
