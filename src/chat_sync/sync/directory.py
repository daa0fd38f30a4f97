"""The users-list stream and user registration."""

from __future__ import annotations

import logging
from typing import Any, Callable

from chat_sync.backend.base import RemoteBackend
from chat_sync.core.dispatch import InlineDispatcher
from chat_sync.sync.events import decode_user
from chat_sync.sync.models import UserRecord
from chat_sync.sync.paths import PathResolver
from chat_sync.sync.registry import SubscriptionRegistry
from chat_sync.validators import validate_identifier

logger = logging.getLogger(__name__)

USERS_SLOT = "users"

UserAddedCallback = Callable[[str], None]


class UserDirectory:
    """Follow the users collection and register new users.

    The users stream has its own slot in the registry, so it lives and
    dies independently of the conversation stream.

    Args:
        backend: Remote store.
        registry: Registry shared with the owning session.
        resolver: Path resolver for user record paths.
        dispatcher: Where ``on_user_added`` callbacks run.
    """

    def __init__(
        self,
        backend: RemoteBackend,
        registry: SubscriptionRegistry,
        resolver: PathResolver,
        dispatcher: Any = None,
    ) -> None:
        self._backend = backend
        self._registry = registry
        self._resolver = resolver
        self._dispatcher = dispatcher or InlineDispatcher()
        self._users: list[str] = []
        self._callbacks: list[UserAddedCallback] = []

    @property
    def users(self) -> list[str]:
        """Identifiers seen on the stream, in arrival order."""
        with self._registry.lock:
            return list(self._users)

    @property
    def watching(self) -> bool:
        return self._registry.active(USERS_SLOT) is not None

    def on_user_added(self, callback: UserAddedCallback) -> None:
        """Register *callback* and start the users stream if needed.

        When the stream is already running, *callback* first receives
        every user seen so far, then live additions.
        """
        with self._registry.lock:
            self._callbacks.append(callback)
            if self.watching:
                for identifier in self._users:
                    self._dispatcher.submit(callback, identifier)
            else:
                self.watch()

    def watch(self) -> None:
        """Subscribe to the users collection (no-op if already watching)."""
        with self._registry.lock:
            if not self.watching:
                self._users.clear()
            self._registry.subscribe(
                USERS_SLOT, self._resolver.users_path, self._on_user_record
            )

    def unwatch(self) -> None:
        """Stop following the users collection."""
        self._registry.unsubscribe(USERS_SLOT)

    def add_user(self, identifier: str) -> None:
        """Upsert ``{"identifier": identifier}`` at the user's path.

        Raises:
            ValueError: If *identifier* is empty.
        """
        ok, error = validate_identifier(identifier)
        if not ok:
            raise ValueError(error)
        path = self._resolver.user_path(identifier)
        logger.info("Registering user %s at %s", identifier, path)
        self._backend.set(path, UserRecord(identifier=identifier).to_record())

    def _on_user_record(self, raw: Any) -> None:
        event = decode_user(raw)
        if event is None:
            return
        self._users.append(event.identifier)
        for callback in list(self._callbacks):
            self._dispatcher.submit(callback, event.identifier)
