"""
In-memory chat sessions, one per user.

Sessions are created on first access and live until explicitly closed.
They are not persisted: closing a session (or restarting the process)
loses any history that has not been summarized.

The session map is read far more often than it is written, so it is
guarded by a reader/writer lock. Creation uses double-checked locking:
look up under the read lock, and only on a miss take the write lock and
look again before creating.
"""

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime

from .providers.base import AIProvider
from .types import AIContext, ChatMessage, ChatResponse, utc_now

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """
    Many concurrent readers or one writer.

    Waiting writers block new readers, so a steady stream of lookups
    cannot starve session creation or close.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


@dataclass
class ChatSession:
    """An active conversation with one user."""
    user_id: str
    created_at: datetime
    last_activity: datetime
    messages: list[ChatMessage] = field(default_factory=list)
    context_summary: str = ""
    needs_summary_update: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def history(self) -> list[ChatMessage]:
        """Snapshot of the messages so far."""
        with self._lock:
            return list(self.messages)


class ChatSessionStore:
    """
    Concurrency-safe map from user id to chat session.

    Args:
        provider: AI provider used for chat replies and summaries
        clock: Source of the current time (injectable for tests)
    """

    def __init__(self, provider: AIProvider, clock: Callable[[], datetime] = utc_now):
        self._provider = provider
        self._clock = clock
        self._sessions: dict[str, ChatSession] = {}
        self._lock = ReadWriteLock()

    def get_or_create(self, user_id: str) -> ChatSession:
        """Return the user's session, creating it on first access."""
        with self._lock.read_locked():
            session = self._sessions.get(user_id)
        if session is not None:
            self._touch(session)
            return session

        with self._lock.write_locked():
            # Another caller may have created it between the two locks
            session = self._sessions.get(user_id)
            if session is not None:
                self._touch(session)
                return session
            now = self._clock()
            session = ChatSession(user_id=user_id, created_at=now, last_activity=now)
            self._sessions[user_id] = session
        logger.debug("Created chat session for user %s", user_id)
        return session

    def get(self, user_id: str) -> ChatSession | None:
        """Return the user's session without creating one."""
        with self._lock.read_locked():
            return self._sessions.get(user_id)

    def close(self, user_id: str) -> None:
        """Discard the user's session. Closing an absent session is a no-op."""
        with self._lock.write_locked():
            removed = self._sessions.pop(user_id, None)
        if removed is not None:
            logger.debug("Closed chat session for user %s", user_id)

    def append_message(self, session: ChatSession, role: str, content: str) -> None:
        with session._lock:
            session.messages.append(ChatMessage(role=role, content=content))
            session.last_activity = self._clock()
            session.needs_summary_update = True

    def get_response(
        self,
        session: ChatSession,
        user_context: AIContext | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> ChatResponse:
        """
        Ask the provider to reply to the session's conversation.

        The reply is appended to the session only if the call succeeds;
        on failure or cancellation the session is left unchanged.
        """
        response = self._provider.chat(session.history(), user_context, cancel=cancel)
        self.append_message(session, "assistant", response.message)
        return response

    def summarize(
        self,
        session: ChatSession,
        *,
        cancel: threading.Event | None = None,
    ) -> str:
        """
        Summarize the session's conversation and store the summary.

        Returns "" without calling the provider when there are no messages.
        If messages were appended while the summary was being produced,
        the session stays flagged for another summary.
        """
        history = session.history()
        if not history:
            return ""

        summary = self._provider.summarize(history, cancel=cancel)

        with session._lock:
            session.context_summary = summary
            if len(session.messages) == len(history):
                session.needs_summary_update = False
        return summary

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._sessions)

    def __contains__(self, user_id: str) -> bool:
        with self._lock.read_locked():
            return user_id in self._sessions

    def _touch(self, session: ChatSession) -> None:
        with session._lock:
            session.last_activity = self._clock()
