"""Threading and asyncio plumbing shared by the sync core and the CLI."""

from .async_utils import EventChannel, run_sync
from .dispatch import InlineDispatcher, ThreadedDispatcher

__all__ = ["EventChannel", "InlineDispatcher", "ThreadedDispatcher", "run_sync"]
