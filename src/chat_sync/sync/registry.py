"""Registry of live child-added subscriptions, one per logical slot.

A *slot* names a consumer's interest (``"conversation"``, ``"users"``);
the registry guarantees each slot feeds its consumer from at most one
backend stream at a time:

* subscribing a slot to the path it already follows is a no-op;
* subscribing it to a new path tears the old stream down first;
* events arriving for a handle that is no longer current are dropped.

All mutations and deliveries run under one re-entrant lock. The owning
session shares that lock so identity changes and event handling never
interleave.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable

from chat_sync.backend.base import RemoteBackend
from chat_sync.errors import BackendError

logger = logging.getLogger(__name__)

ChildAddedCallback = Callable[[Any], None]


@dataclass(frozen=True)
class SubscriptionHandle:
    """Identity of one installed subscription.

    Attributes:
        slot: Logical slot the subscription serves.
        path: Store path being followed.
        token: Unique per installation; a re-install gets a new token.
    """

    slot: str
    path: str
    token: int


class SubscriptionRegistry:
    """Track at most one live subscription per slot.

    Args:
        backend: Store providing ``subscribe_child_added`` and
            ``unsubscribe_child_added``.
        lock: Lock to serialize on; a new ``RLock`` when omitted.
    """

    def __init__(
        self,
        backend: RemoteBackend,
        lock: threading.RLock | None = None,
    ) -> None:
        self._backend = backend
        self.lock = lock or threading.RLock()
        self._active: dict[str, SubscriptionHandle] = {}
        self._callbacks: dict[str, ChildAddedCallback] = {}
        self._backend_handles: dict[int, Any] = {}
        self._tokens = itertools.count(1)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def active(self, slot: str) -> SubscriptionHandle | None:
        """Return the live handle for *slot*, or ``None``."""
        with self.lock:
            return self._active.get(slot)

    def slots(self) -> list[str]:
        with self.lock:
            return list(self._active)

    def is_current(self, handle: SubscriptionHandle) -> bool:
        """Return ``True`` if *handle* is still the live one for its slot."""
        with self.lock:
            return self._active.get(handle.slot) == handle

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def subscribe(
        self,
        slot: str,
        path: str,
        on_child_added: ChildAddedCallback,
    ) -> SubscriptionHandle:
        """Point *slot* at *path*.

        If *slot* already follows *path* the existing handle is returned
        unchanged (the original callback stays installed). Otherwise any
        previous subscription for the slot is removed before the new one
        is installed; installation delivers backfill then live records.

        A backend failure during installation is logged, not raised: the
        slot keeps its handle but receives nothing until ``restore()``.
        """
        with self.lock:
            current = self._active.get(slot)
            if current is not None and current.path == path:
                logger.debug("Slot %s already subscribed to %s", slot, path)
                return current
            if current is not None:
                self._teardown(current)

            handle = SubscriptionHandle(slot, path, next(self._tokens))
            self._active[slot] = handle
            self._callbacks[slot] = on_child_added
            self._install(handle, on_child_added)
            return handle

    def unsubscribe(self, slot: str) -> bool:
        """Remove the subscription for *slot*.

        Idempotent: returns ``False`` when there was nothing to remove.
        """
        with self.lock:
            handle = self._active.get(slot)
            if handle is None:
                return False
            self._teardown(handle)
            return True

    def restore(self) -> list[SubscriptionHandle]:
        """Re-install every active subscription.

        Used after the backend reconnects. Each slot gets a fresh handle,
        so events still in flight for the old one are dropped, and the
        new installation delivers its backfill again.
        """
        restored: list[SubscriptionHandle] = []
        with self.lock:
            for slot in list(self._active):
                handle = self._active[slot]
                callback = self._callbacks[slot]
                self._teardown(handle)
                fresh = SubscriptionHandle(slot, handle.path, next(self._tokens))
                self._active[slot] = fresh
                self._callbacks[slot] = callback
                self._install(fresh, callback)
                restored.append(fresh)
        return restored

    def close(self) -> None:
        """Unsubscribe every slot."""
        with self.lock:
            for slot in list(self._active):
                self.unsubscribe(slot)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _install(
        self, handle: SubscriptionHandle, on_child_added: ChildAddedCallback
    ) -> None:
        def deliver(raw: Any) -> None:
            with self.lock:
                if self._active.get(handle.slot) != handle:
                    logger.debug(
                        "Dropping late record for %s (token %d)",
                        handle.path,
                        handle.token,
                    )
                    return
                on_child_added(raw)

        logger.debug("Subscribing slot %s to %s", handle.slot, handle.path)
        try:
            backend_handle = self._backend.subscribe_child_added(
                handle.path, deliver
            )
        except BackendError as exc:
            logger.warning(
                "Could not subscribe to %s: %s", handle.path, exc
            )
            return
        self._backend_handles[handle.token] = backend_handle

    def _teardown(self, handle: SubscriptionHandle) -> None:
        logger.debug("Unsubscribing slot %s from %s", handle.slot, handle.path)
        self._active.pop(handle.slot, None)
        self._callbacks.pop(handle.slot, None)
        if handle.token not in self._backend_handles:
            return
        backend_handle = self._backend_handles.pop(handle.token)
        try:
            self._backend.unsubscribe_child_added(handle.path, backend_handle)
        except BackendError as exc:
            logger.warning(
                "Could not unsubscribe from %s: %s", handle.path, exc
            )
