"""
Tests for the per-user chat session store.

Includes thread-pool tests for the double-checked session creation.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from smarttodo.errors import OperationCancelled, UpstreamError
from smarttodo.sessions import ChatSessionStore, ReadWriteLock
from smarttodo.types import AIContext, ChatResponse

from conftest import MockProvider


class SteppingClock:
    """Clock that advances one second per call."""

    def __init__(self):
        self.now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            self.now += timedelta(seconds=1)
            return self.now


@pytest.fixture
def store(mock_provider):
    return ChatSessionStore(mock_provider, clock=SteppingClock())


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

class TestLifecycle:

    def test_create_on_first_access(self, store):
        assert "u1" not in store
        session = store.get_or_create("u1")
        assert session.user_id == "u1"
        assert session.messages == []
        assert not session.needs_summary_update
        assert "u1" in store
        assert len(store) == 1

    def test_same_session_returned(self, store):
        first = store.get_or_create("u1")
        assert store.get_or_create("u1") is first

    def test_access_touches_last_activity(self, store):
        session = store.get_or_create("u1")
        created = session.last_activity
        store.get_or_create("u1")
        assert session.last_activity > created
        assert session.created_at == created

    def test_get_does_not_create(self, store):
        assert store.get("nobody") is None
        assert len(store) == 0

    def test_close_then_fresh(self, store):
        first = store.get_or_create("u1")
        store.append_message(first, "user", "hello")
        store.close("u1")
        assert "u1" not in store

        second = store.get_or_create("u1")
        assert second is not first
        assert second.messages == []

    def test_close_absent_is_noop(self, store):
        store.close("nobody")
        assert len(store) == 0

    def test_users_isolated(self, store):
        a = store.get_or_create("a")
        b = store.get_or_create("b")
        store.append_message(a, "user", "only for a")
        assert b.messages == []


# ---------------------------------------------------------------------------
# Messages and replies
# ---------------------------------------------------------------------------

class TestMessages:

    def test_append_sets_summary_flag(self, store):
        session = store.get_or_create("u1")
        before = session.last_activity
        store.append_message(session, "user", "tag work things as work")
        assert session.needs_summary_update
        assert session.last_activity > before
        assert session.history()[0].content == "tag work things as work"

    def test_history_is_a_copy(self, store):
        session = store.get_or_create("u1")
        store.append_message(session, "user", "x")
        history = session.history()
        history.clear()
        assert len(session.messages) == 1

    def test_get_response_appends_reply(self, store, mock_provider):
        session = store.get_or_create("u1")
        store.append_message(session, "user", "hi")
        response = store.get_response(session, AIContext(user_id="u1"))

        assert response.message == "Noted."
        assert [m.role for m in session.messages] == ["user", "assistant"]
        assert mock_provider.chat_calls[0][0].content == "hi"

    def test_failed_reply_leaves_session_unchanged(self):
        provider = MockProvider(chat_script=[UpstreamError("timed out")])
        store = ChatSessionStore(provider)
        session = store.get_or_create("u1")
        store.append_message(session, "user", "hi")

        with pytest.raises(UpstreamError):
            store.get_response(session)
        assert len(session.messages) == 1

    def test_cancelled_reply_leaves_session_unchanged(self):
        provider = MockProvider(chat_script=[OperationCancelled("chat cancelled")])
        store = ChatSessionStore(provider)
        session = store.get_or_create("u1")
        store.append_message(session, "user", "hi")

        with pytest.raises(OperationCancelled):
            store.get_response(session)
        assert len(session.messages) == 1


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

class TestSummarize:

    def test_empty_history_skips_provider(self, store, mock_provider):
        session = store.get_or_create("u1")
        assert store.summarize(session) == ""
        assert mock_provider.summarize_calls == []

    def test_success_stores_summary(self, store):
        session = store.get_or_create("u1")
        store.append_message(session, "user", "I like short tags")
        assert store.summarize(session) == "Prefers short tags."
        assert session.context_summary == "Prefers short tags."
        assert not session.needs_summary_update

    def test_failure_leaves_state(self):
        provider = MockProvider(summarize_script=[UpstreamError("boom")])
        store = ChatSessionStore(provider)
        session = store.get_or_create("u1")
        store.append_message(session, "user", "x")

        with pytest.raises(UpstreamError):
            store.summarize(session)
        assert session.context_summary == ""
        assert session.needs_summary_update

    def test_messages_during_summary_keep_flag(self):
        store_ref = {}

        class InterleavingProvider(MockProvider):
            def summarize(self, messages, *, cancel=None):
                store, session = store_ref["store"], store_ref["session"]
                store.append_message(session, "user", "one more thing")
                return "summary of the first part"

        store = ChatSessionStore(InterleavingProvider())
        session = store.get_or_create("u1")
        store.append_message(session, "user", "first")
        store_ref.update(store=store, session=session)

        assert store.summarize(session) == "summary of the first part"
        assert session.context_summary == "summary of the first part"
        assert session.needs_summary_update


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------

class TestConcurrency:

    def test_concurrent_get_or_create_single_session(self, mock_provider):
        store = ChatSessionStore(mock_provider)
        barrier = threading.Barrier(16)

        def worker(_):
            barrier.wait()
            return store.get_or_create("same-user")

        with ThreadPoolExecutor(max_workers=16) as pool:
            sessions = list(pool.map(worker, range(16)))

        assert len({id(s) for s in sessions}) == 1
        assert len(store) == 1

    def test_concurrent_users(self, mock_provider):
        store = ChatSessionStore(mock_provider)

        def worker(i):
            session = store.get_or_create(f"user-{i % 8}")
            store.append_message(session, "user", f"message {i}")
            return session

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(worker, range(200)))

        assert len(store) == 8
        assert sum(len(store.get(f"user-{i}").messages) for i in range(8)) == 200

    def test_close_during_lookups(self, mock_provider):
        store = ChatSessionStore(mock_provider)
        errors = []

        def reader():
            try:
                for _ in range(200):
                    store.get_or_create("u1")
            except Exception as e:  # pragma: no cover
                errors.append(e)

        def closer():
            for _ in range(50):
                store.close("u1")

        threads = [threading.Thread(target=reader) for _ in range(4)]
        threads.append(threading.Thread(target=closer))
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert errors == []
        assert all(not t.is_alive() for t in threads)


class TestReadWriteLock:

    def test_readers_share(self):
        lock = ReadWriteLock()
        inside = []
        both_in = threading.Event()

        def reader():
            with lock.read_locked():
                inside.append(1)
                if len(inside) == 2:
                    both_in.set()
                both_in.wait(timeout=5)

        threads = [threading.Thread(target=reader) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)
        assert both_in.is_set()

    def test_writer_excludes_readers(self):
        lock = ReadWriteLock()
        log = []

        def writer():
            with lock.write_locked():
                log.append("w-start")
                time.sleep(0.05)
                log.append("w-end")

        def reader():
            with lock.read_locked():
                log.append("r")

        w = threading.Thread(target=writer)
        w.start()
        time.sleep(0.01)
        r = threading.Thread(target=reader)
        r.start()
        w.join(timeout=5)
        r.join(timeout=5)
        assert log == ["w-start", "w-end", "r"]


def test_chat_response_default_needs_update():
    assert ChatResponse(message="x").needs_update
