"""
Errors raised by AI providers, and their classification.

Providers convert upstream failures into the exceptions below at the point
where the failure is first observed. ``classify_error`` then decides how a
caller should react: retry soon (rate limited), retry much later or alert
an operator (quota exhausted), or use the default retry tier.
"""

import json
from collections.abc import Iterator
from datetime import timedelta
from enum import Enum

RATE_LIMIT_STATUS = 429
INSUFFICIENT_QUOTA_CODE = "insufficient_quota"

RATE_LIMIT_MARKERS = ("429", "rate limit", "too many requests")
QUOTA_MARKERS = ("insufficient_quota", "quota", "billing")

# Suggested retry delays when the upstream gives no explicit hint
RATE_LIMIT_RETRY_AFTER = timedelta(seconds=60)
QUOTA_RETRY_AFTER = timedelta(hours=1)


class ErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    QUOTA_EXCEEDED = "quota_exceeded"
    OTHER = "other"
    NO_CHOICES = "no_choices"
    MALFORMED_RESPONSE = "malformed_response"


class AIError(Exception):
    """Base class for failures of an AI provider call."""
    kind = ErrorKind.OTHER


class APIError(AIError):
    """
    Structured error reported by the upstream API.

    Attributes:
        message: Upstream error message
        type: Upstream error type (e.g. "rate_limit_error")
        code: Upstream error code (e.g. "insufficient_quota")
        status_code: HTTP status code
        retry_after: Suggested delay before retrying, if known
        is_permanent: True for quota exhaustion, False for throttling
    """

    def __init__(
        self,
        message: str,
        *,
        type: str = "",
        code: str = "",
        status_code: int = 0,
        retry_after: timedelta | None = None,
        is_permanent: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.type = type
        self.code = code
        self.status_code = status_code
        self.retry_after = retry_after
        self.is_permanent = is_permanent

    @property
    def kind(self) -> ErrorKind:
        if self.is_permanent or self.code == INSUFFICIENT_QUOTA_CODE:
            return ErrorKind.QUOTA_EXCEEDED
        if self.status_code == RATE_LIMIT_STATUS:
            return ErrorKind.RATE_LIMITED
        return ErrorKind.OTHER

    def __str__(self) -> str:
        return f"API error (status {self.status_code}, type {self.type}): {self.message}"


class UpstreamError(AIError):
    """Network failure, timeout or unexpected HTTP status from the upstream."""


class NoChoicesError(AIError):
    """The upstream answered successfully but returned nothing."""
    kind = ErrorKind.NO_CHOICES

    def __init__(self, message: str = "no choices in response"):
        super().__init__(message)


class MalformedResponseError(AIError):
    """The reply could not be decoded as the expected JSON structure."""
    kind = ErrorKind.MALFORMED_RESPONSE


class OperationCancelled(AIError):
    """The caller cancelled the operation before it completed."""


class ProviderNotFoundError(ValueError):
    """No provider is registered under the requested name."""

    def __init__(self, name: str, available: list[str] | None = None):
        self.name = name
        self.available = available or []
        listed = ", ".join(self.available) or "none"
        super().__init__(f"AI provider not found: {name}. Available providers: {listed}")


# -----------------------------------------------------------------------------
# Classification
# -----------------------------------------------------------------------------

def _chain(err: BaseException) -> Iterator[BaseException]:
    """
    Walk an exception and its explicit causes (``raise ... from``).

    An error that was only being handled when this one was raised
    (``__context__``) is not part of the chain.
    """
    seen: set[int] = set()
    current: BaseException | None = err
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__


def find_api_error(err: BaseException | None) -> APIError | None:
    """Return the first structured APIError on the error's cause chain."""
    if err is None:
        return None
    for exc in _chain(err):
        if isinstance(exc, APIError):
            return exc
    return None


def classify_error(err: BaseException | None) -> ErrorKind:
    """
    Classify an upstream failure.

    Structured errors (APIError, NoChoicesError, MalformedResponseError)
    anywhere on the cause chain are trusted first. Otherwise the message
    is searched case-insensitively for quota markers, then rate limit
    markers. Anything else is OTHER.
    """
    if err is None:
        return ErrorKind.OTHER
    for exc in _chain(err):
        if isinstance(exc, (APIError, NoChoicesError, MalformedResponseError)):
            return exc.kind

    text = str(err).lower()
    if any(marker in text for marker in QUOTA_MARKERS):
        return ErrorKind.QUOTA_EXCEEDED
    if any(marker in text for marker in RATE_LIMIT_MARKERS):
        return ErrorKind.RATE_LIMITED
    return ErrorKind.OTHER


def is_rate_limit_error(err: BaseException | None) -> bool:
    return classify_error(err) == ErrorKind.RATE_LIMITED


def is_quota_error(err: BaseException | None) -> bool:
    return classify_error(err) == ErrorKind.QUOTA_EXCEEDED


def extract_api_error(err: BaseException | None) -> APIError | None:
    """
    Recover structured details from an unstructured rate limit error.

    Only errors whose message mentions "429" are considered. If the message
    embeds a JSON object (first "{" to last "}"), its message, type and code
    fields are used; an OpenAI-style {"error": {...}} envelope is unwrapped.
    A code of "insufficient_quota" marks the error permanent.

    Returns:
        APIError with a suggested retry delay, or None
    """
    if err is None:
        return None
    text = str(err)
    if "429" not in text:
        return None

    api_err = APIError(text, type="rate_limit_error", status_code=RATE_LIMIT_STATUS)

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        try:
            data = json.loads(text[start:end + 1])
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            if isinstance(data.get("error"), dict):
                data = data["error"]
            api_err.message = str(data.get("message") or text)
            api_err.type = str(data.get("type") or api_err.type)
            api_err.code = str(data.get("code") or "")
            api_err.is_permanent = api_err.code == INSUFFICIENT_QUOTA_CODE

    api_err.retry_after = QUOTA_RETRY_AFTER if api_err.is_permanent else RATE_LIMIT_RETRY_AFTER
    return api_err


def parse_retry_after(value: str | None) -> timedelta | None:
    """Parse a Retry-After header given in seconds. HTTP dates are ignored."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    if seconds < 0:
        return None
    return timedelta(seconds=seconds)
