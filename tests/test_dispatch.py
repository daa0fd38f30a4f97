"""Tests for callback dispatchers."""

import threading

import pytest

from chat_sync.core.dispatch import InlineDispatcher, ThreadedDispatcher
from chat_sync.sync.session import SyncSession


class TestInlineDispatcher:
    def test_runs_immediately(self):
        seen = []
        InlineDispatcher().submit(seen.append, 1)
        assert seen == [1]

    def test_exception_logged_not_raised(self, caplog):
        def boom():
            raise RuntimeError("bad consumer")

        InlineDispatcher().submit(boom)
        assert "failed" in caplog.text
        assert "bad consumer" in caplog.text


class TestThreadedDispatcher:
    def test_runs_on_worker_thread_in_order(self):
        dispatcher = ThreadedDispatcher(name="test-dispatch")
        seen = []
        try:
            for n in range(10):
                dispatcher.submit(
                    lambda n=n: seen.append((n, threading.current_thread().name))
                )
            dispatcher.join()
        finally:
            dispatcher.close()

        assert [n for n, _ in seen] == list(range(10))
        assert {name for _, name in seen} == {"test-dispatch"}

    def test_close_runs_queued_callbacks(self):
        dispatcher = ThreadedDispatcher()
        seen = []
        dispatcher.submit(seen.append, "queued")
        dispatcher.close()
        assert seen == ["queued"]

    def test_submit_after_close(self):
        dispatcher = ThreadedDispatcher()
        dispatcher.close()
        with pytest.raises(RuntimeError, match="closed"):
            dispatcher.submit(print)

    def test_failing_callback_keeps_worker_alive(self):
        dispatcher = ThreadedDispatcher()
        seen = []
        dispatcher.submit(lambda: 1 / 0)
        dispatcher.submit(seen.append, "after")
        dispatcher.close()
        assert seen == ["after"]

    def test_session_callbacks_leave_backend_thread(self, backend):
        dispatcher = ThreadedDispatcher(name="consumer")
        threads = []
        session = SyncSession(backend, dispatcher=dispatcher)
        session.on_message(
            lambda sender, text, is_echo: threads.append(
                (text, threading.current_thread().name)
            )
        )
        try:
            session.set_current_user("alice")
            session.send_message("hi")
            dispatcher.join()
        finally:
            session.close()
            dispatcher.close()

        assert threads == [("hi", "consumer")]
