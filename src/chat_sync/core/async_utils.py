"""Bridges between blocking backend calls, callback threads, and asyncio."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Generic, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

_CLOSED = object()


async def run_sync(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking function in a worker thread without blocking the event loop.

    Example:
        key = await run_sync(session.send_message, "hello")
    """
    return await asyncio.to_thread(func, *args, **kwargs)


class EventChannel(Generic[T]):
    """Thread-safe channel from callback threads into an asyncio consumer.

    Callbacks on any thread call ``put()``; the coroutine that owns the
    loop reads with ``await get()`` or ``async for``. Items arrive in the
    order they were put.

    Must be created while the target loop is running (or given the loop).
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    def put(self, item: T) -> None:
        """Enqueue *item* from any thread. Ignored after ``close()``."""
        if self._closed:
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
        except RuntimeError:
            # loop already closed; the consumer is gone
            logger.debug("Event loop closed, dropping %r", item)

    def close(self) -> None:
        """Stop iteration once queued items are consumed."""
        if self._closed:
            return
        self._closed = True
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, _CLOSED)
        except RuntimeError:
            logger.debug("Event loop closed before channel close")

    async def get(self) -> T:
        """Return the next item.

        Raises:
            EOFError: If the channel was closed and drained.
        """
        item = await self._queue.get()
        if item is _CLOSED:
            # keep the marker for any other waiter
            self._queue.put_nowait(_CLOSED)
            raise EOFError("channel closed")
        return item

    def __aiter__(self) -> EventChannel[T]:
        return self

    async def __anext__(self) -> T:
        try:
            return await self.get()
        except EOFError:
            raise StopAsyncIteration from None
