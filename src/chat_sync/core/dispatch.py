"""Serialized delivery of events to consumer callbacks.

Backends invoke their callbacks from whatever thread they own (the
in-memory store from the caller, the REST store from a stream thread).
A dispatcher decides where consumer callbacks run:

* ``InlineDispatcher`` runs them immediately on the delivering thread.
* ``ThreadedDispatcher`` queues them onto one worker thread, so every
  consumer callback runs on the same thread in submission order.

A failing callback is logged and never propagates back into the backend.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable

logger = logging.getLogger(__name__)

_STOP = object()


def _invoke(fn: Callable[..., Any], args: tuple) -> None:
    try:
        fn(*args)
    except Exception:
        logger.exception("Event callback %r failed", fn)


class InlineDispatcher:
    """Run callbacks immediately, serialized by a re-entrant lock."""

    def __init__(self) -> None:
        self._lock = threading.RLock()

    def submit(self, fn: Callable[..., Any], *args: Any) -> None:
        with self._lock:
            _invoke(fn, args)

    def close(self) -> None:
        pass


class ThreadedDispatcher:
    """Run callbacks on a single dedicated worker thread.

    Args:
        name: Worker thread name.
    """

    def __init__(self, name: str = "chat-sync-dispatch") -> None:
        self._queue: queue.Queue = queue.Queue()
        self._closed = False
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def submit(self, fn: Callable[..., Any], *args: Any) -> None:
        if self._closed:
            raise RuntimeError("Dispatcher is closed")
        self._queue.put((fn, args))

    def join(self) -> None:
        """Block until every submitted callback has run."""
        self._queue.join()

    def close(self, timeout: float = 5.0) -> None:
        """Run what is queued, then stop the worker."""
        if self._closed:
            return
        self._closed = True
        self._queue.put(_STOP)
        self._thread.join(timeout)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                fn, args = item
                _invoke(fn, args)
            finally:
                self._queue.task_done()
