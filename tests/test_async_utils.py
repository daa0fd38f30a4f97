"""
Tests for async_utils module.

Covers run_sync and EventChannel.
"""

import asyncio
import threading

import pytest

from chat_sync.core.async_utils import EventChannel, run_sync


def _sync_add(a: int, b: int) -> int:
    return a + b


async def test_run_sync_calls_function():
    assert await run_sync(_sync_add, 3, 4) == 7


async def test_run_sync_passes_kwargs():
    def _kw_func(*, name: str) -> str:
        return f"hello {name}"

    assert await run_sync(_kw_func, name="world") == "hello world"


async def test_run_sync_runs_off_loop_thread():
    loop_thread = threading.get_ident()
    worker_thread = await run_sync(threading.get_ident)
    assert worker_thread != loop_thread


async def test_run_sync_propagates_exceptions():
    def _boom():
        raise ValueError("nope")

    with pytest.raises(ValueError, match="nope"):
        await run_sync(_boom)


async def test_channel_preserves_order():
    channel = EventChannel()
    for n in range(3):
        channel.put(n)
    assert [await channel.get() for _ in range(3)] == [0, 1, 2]


async def test_channel_put_from_other_thread():
    channel = EventChannel()
    thread = threading.Thread(target=lambda: [channel.put(i) for i in range(5)])
    thread.start()
    thread.join()
    channel.close()

    assert [item async for item in channel] == [0, 1, 2, 3, 4]


async def test_channel_close_raises_eof_for_every_waiter():
    channel = EventChannel()
    channel.close()
    with pytest.raises(EOFError):
        await channel.get()
    with pytest.raises(EOFError):
        await channel.get()


async def test_put_after_close_ignored():
    channel = EventChannel()
    channel.put("a")
    channel.close()
    channel.put("b")
    assert [item async for item in channel] == ["a"]


async def test_get_times_out_without_items():
    channel = EventChannel()
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(channel.get(), 0.01)


def test_put_after_loop_closed_is_dropped():
    loop = asyncio.new_event_loop()
    channel = EventChannel(loop)
    loop.close()
    channel.put("late")
    channel.close()


def test_requires_running_loop_without_explicit_loop():
    with pytest.raises(RuntimeError):
        EventChannel()
