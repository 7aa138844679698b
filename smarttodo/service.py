"""
Todo analysis with retries.

TodoAnalyzer is the caller-side orchestration around an AIProvider: it
loads the user's tag statistics, runs the analysis with the retry policy,
merges the suggested tags into the todo's metadata and marks the user's
statistics stale. Providers and the backoff policy never sleep; the retry
loop here does.
"""

import logging
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TypeVar

from .backoff import DEFAULT_POLICY, BackoffPolicy
from .errors import AIError, ErrorKind, OperationCancelled, classify_error
from .protocol import MetadataRepository, TagStatisticsRepository
from .providers.base import AIProvider
from .sanitize import log_context
from .sessions import ChatSessionStore
from .types import AIContext, AnalysisResult, Metadata

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3

# Failures that retrying cannot fix
_NOT_RETRYABLE = frozenset({ErrorKind.NO_CHOICES, ErrorKind.MALFORMED_RESPONSE})


@dataclass
class TodoAnalysis:
    """Outcome of analyzing one todo."""
    result: AnalysisResult
    metadata: Metadata
    attempts: int


class TodoAnalyzer:
    """
    Analyze todos against an AI provider, retrying transient failures.

    Args:
        provider: The AI provider
        stats_repo: Where per-user tag statistics are loaded and saved
        metadata_repo: Where per-todo metadata is loaded and saved
        policy: Retry delay policy
        max_attempts: Total attempts per call, including the first
        retry_quota: Whether quota exhaustion is retried (after hours-long
            delays) or raised immediately for an operator to handle
        sleep: Sleep function used when no cancel event is given
    """

    def __init__(
        self,
        provider: AIProvider,
        *,
        stats_repo: TagStatisticsRepository | None = None,
        metadata_repo: MetadataRepository | None = None,
        policy: BackoffPolicy = DEFAULT_POLICY,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_quota: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.provider = provider
        self.stats_repo = stats_repo
        self.metadata_repo = metadata_repo
        self.policy = policy
        self.max_attempts = max(1, max_attempts)
        self.retry_quota = retry_quota
        self._sleep = sleep

    def call_with_retry(
        self,
        operation: str,
        call: Callable[[], T],
        *,
        cancel: threading.Event | None = None,
    ) -> tuple[T, int]:
        """
        Run ``call``, retrying AI failures according to the policy.

        Returns:
            (result, number of attempts made)

        Raises:
            AIError: The last failure, once it is not retryable or the
                attempts are used up
            OperationCancelled: If ``cancel`` is set while waiting
        """
        attempt = 0
        while True:
            try:
                return call(), attempt + 1
            except OperationCancelled:
                raise
            except AIError as e:
                kind = classify_error(e)
                if kind in _NOT_RETRYABLE:
                    raise
                if kind == ErrorKind.QUOTA_EXCEEDED and not self.retry_quota:
                    logger.error("AI %s failed: quota exhausted: %s", operation, e)
                    raise
                if attempt + 1 >= self.max_attempts:
                    logger.warning(
                        "AI %s failed after %d attempts (%s): %s",
                        operation, attempt + 1, kind.value, e,
                    )
                    raise
                delay = self.policy.delay(e, attempt).total_seconds()
                logger.info(
                    "AI %s failed (attempt %d/%d, %s), retry after %ds: %s",
                    operation, attempt + 1, self.max_attempts, kind.value, delay, e,
                )
                self._wait(delay, cancel, operation)
                attempt += 1

    def _wait(self, seconds: float, cancel: threading.Event | None, operation: str) -> None:
        if cancel is None:
            self._sleep(seconds)
        elif cancel.wait(seconds):
            raise OperationCancelled(f"{operation} cancelled while waiting to retry")

    def analyze_todo(
        self,
        user_id: str,
        todo_id: str,
        text: str,
        *,
        metadata: Metadata | None = None,
        due_date: datetime | None = None,
        created_at: datetime | None = None,
        user_context: AIContext | None = None,
        cancel: threading.Event | None = None,
    ) -> TodoAnalysis:
        """
        Analyze a todo and merge the suggested tags into its metadata.

        Tags the user asserted on the todo keep their user provenance.
        Metadata is only saved, and the user's statistics only marked
        stale, after a successful analysis.
        """
        with log_context(user_id=user_id, todo_id=todo_id, request_id=uuid.uuid4().hex):
            stats = self.stats_repo.load(user_id) if self.stats_repo else None

            result, attempts = self.call_with_retry(
                "analyze",
                lambda: self.provider.analyze(
                    text,
                    user_context,
                    due_date=due_date,
                    created_at=created_at,
                    tag_stats=stats,
                    cancel=cancel,
                ),
                cancel=cancel,
            )

            if metadata is None and self.metadata_repo is not None:
                metadata = self.metadata_repo.load(todo_id)
            if metadata is None:
                metadata = Metadata()
            metadata.merge_tags(result.tags, metadata.user_tags())

            if self.metadata_repo is not None:
                self.metadata_repo.save(todo_id, metadata)
            if stats is not None and self.stats_repo is not None:
                stats.mark_tainted()
                self.stats_repo.save(stats)

            logger.info(
                "Analyzed todo %s: %d tags, horizon=%s (%d attempts)",
                todo_id, len(result.tags), result.time_horizon.value, attempts,
            )
            return TodoAnalysis(result=result, metadata=metadata, attempts=attempts)

    def refresh_user_context(
        self,
        sessions: ChatSessionStore,
        user_context: AIContext,
        *,
        cancel: threading.Event | None = None,
        merge: bool = False,
    ) -> bool:
        """
        Summarize the user's chat into their context if it has changed.

        Args:
            merge: Append the new summary to the existing one instead of
                replacing it

        Returns:
            True if the context summary was updated
        """
        session = sessions.get(user_context.user_id)
        if session is None or not session.needs_summary_update:
            return False
        with log_context(user_id=user_context.user_id):
            summary, _ = self.call_with_retry(
                "summarize",
                lambda: sessions.summarize(session, cancel=cancel),
                cancel=cancel,
            )
        if not summary:
            return False
        if merge:
            user_context.merge_summary(summary)
        else:
            user_context.context_summary = summary
        return True
