"""In-process implementation of the remote store.

Used by the tests and for local demos. Data lives in nested dicts;
children keep insertion order and pushed keys sort in push order, so
backfill order equals storage order.

Each subscriber has a mailbox. Records are queued under the store lock
and delivered after it is released, so callbacks may take other locks
(or write back into the store) without deadlocking. With a single
thread, delivery is synchronous: ``subscribe_child_added`` returns after
the backfill has been delivered, and ``append`` after the new record
has reached every listener.
"""

from __future__ import annotations

import copy
import itertools
import logging
import threading
import uuid
from collections import deque
from typing import Any

from chat_sync.backend.base import ChildCallback, normalize_path, split_path
from chat_sync.errors import AuthenticationError, BackendError
from chat_sync.sync.models import AuthInfo
from chat_sync.validators import validate_credentials

logger = logging.getLogger(__name__)


class _Listener:
    """One subscriber's mailbox.

    Only one thread drains a mailbox at a time; a thread that finds it
    busy leaves its records for the thread already draining.
    """

    def __init__(self, callback: ChildCallback) -> None:
        self.callback = callback
        self.active = True
        self._pending: deque[Any] = deque()
        self._lock = threading.Lock()
        self._draining = False

    def enqueue(self, value: Any) -> None:
        with self._lock:
            self._pending.append(copy.deepcopy(value))

    def drain(self) -> None:
        with self._lock:
            if self._draining:
                return
            self._draining = True
        while True:
            with self._lock:
                if not self.active:
                    self._pending.clear()
                if not self._pending:
                    self._draining = False
                    return
                value = self._pending.popleft()
            try:
                self.callback(value)
            except Exception:
                logger.exception("Child-added callback %r failed", self.callback)


class InMemoryBackend:
    """Thread-safe in-memory key-path store.

    Args:
        accounts: Optional ``{email: password}`` accounts to pre-create.
    """

    def __init__(self, accounts: dict[str, str] | None = None) -> None:
        self._lock = threading.RLock()
        self._root: dict[str, Any] = {}
        self._listeners: dict[str, dict[int, _Listener]] = {}
        self._handle_ids = itertools.count(1)
        self._push_ids = itertools.count(1)
        self._accounts: dict[str, tuple[str, str]] = {}
        self._auth: AuthInfo | None = None
        for email, password in (accounts or {}).items():
            self._accounts[email] = (password, uuid.uuid4().hex)

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    def get(self, path: str) -> Any:
        """Return a copy of the value at *path*, or ``None``."""
        with self._lock:
            return copy.deepcopy(self._node(split_path(path)))

    def subscribe_child_added(self, path: str, callback: ChildCallback) -> int:
        path = normalize_path(path)
        listener = _Listener(callback)
        with self._lock:
            handle = next(self._handle_ids)
            self._listeners.setdefault(path, {})[handle] = listener
            node = self._node(split_path(path))
            if isinstance(node, dict):
                for value in node.values():
                    listener.enqueue(value)
        logger.debug("Listener %d on %s", handle, path)
        listener.drain()
        return handle

    def unsubscribe_child_added(self, path: str, handle: Any = None) -> None:
        path = normalize_path(path)
        with self._lock:
            listeners = self._listeners.get(path)
            if listeners is None:
                return
            if handle is None:
                removed = list(listeners.values())
                del self._listeners[path]
            else:
                removed = [listeners.pop(handle)] if handle in listeners else []
                if not listeners:
                    del self._listeners[path]
            for listener in removed:
                listener.active = False

    def append(self, path: str, record: dict[str, Any]) -> str:
        segments = split_path(path)
        with self._lock:
            key = f"-{next(self._push_ids):019d}"
            parent = self._container(segments)
            parent[key] = copy.deepcopy(record)
            listeners = self._queue_for("/".join(segments), record)
        for listener in listeners:
            listener.drain()
        return key

    def set(self, path: str, record: dict[str, Any]) -> None:
        segments = split_path(path)
        if not segments:
            raise BackendError("Cannot set the store root")
        with self._lock:
            parent = self._container(segments[:-1])
            is_new = segments[-1] not in parent
            parent[segments[-1]] = copy.deepcopy(record)
            listeners = (
                self._queue_for("/".join(segments[:-1]), record)
                if is_new
                else []
            )
        for listener in listeners:
            listener.drain()

    def listener_count(self, path: str | None = None) -> int:
        """Number of live listeners on *path*, or on all paths."""
        with self._lock:
            if path is not None:
                return len(self._listeners.get(normalize_path(path), {}))
            return sum(len(v) for v in self._listeners.values())

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def authenticate(self, email: str, password: str) -> AuthInfo:
        with self._lock:
            account = self._accounts.get(email)
            if account is None or account[0] != password:
                raise AuthenticationError("Invalid email or password")
            self._auth = AuthInfo(
                uid=account[1],
                email=email,
                id_token=f"memory-{uuid.uuid4().hex}",
            )
            return self._auth

    def create_account(self, email: str, password: str) -> AuthInfo:
        ok, error = validate_credentials(email, password)
        if not ok:
            raise AuthenticationError(error)
        with self._lock:
            if email in self._accounts:
                raise AuthenticationError(f"Account {email} already exists")
            uid = uuid.uuid4().hex
            self._accounts[email] = (password, uid)
            return AuthInfo(uid=uid, email=email)

    def resume_session(self) -> AuthInfo | None:
        return self._auth

    def end_session(self) -> None:
        self._auth = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _node(self, segments: list[str]) -> Any:
        node: Any = self._root
        for segment in segments:
            if not isinstance(node, dict) or segment not in node:
                return None
            node = node[segment]
        return node

    def _container(self, segments: list[str]) -> dict[str, Any]:
        node = self._root
        for segment in segments:
            child = node.setdefault(segment, {})
            if not isinstance(child, dict):
                raise BackendError(
                    f"Cannot write below leaf value at '{segment}'"
                )
            node = child
        return node

    def _queue_for(self, path: str, record: dict[str, Any]) -> list[_Listener]:
        listeners = list(self._listeners.get(path, {}).values())
        for listener in listeners:
            listener.enqueue(record)
        return listeners
