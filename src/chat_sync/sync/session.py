"""The stateful sync session: conversation identity to subscription.

``SyncSession`` owns the current ``(user, peer)`` pair. Every identity
change goes through the same steps, in order:

1. tear down the stream for the old pair;
2. update state and reset the message list;
3. resolve the canonical path for the new pair;
4. install a stream for it, when the pair is resolvable.

Sent messages are not added locally. They appear in ``messages`` when
the backend echoes them on the stream, so sends and receives share one
code path and one ordering.

Threading: state changes and stream deliveries are serialized on the
registry's re-entrant lock. Consumer callbacks go through the session's
dispatcher.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Any, Callable

from chat_sync.backend.base import RemoteBackend
from chat_sync.core.dispatch import InlineDispatcher
from chat_sync.sync.directory import UserDirectory, UserAddedCallback
from chat_sync.sync.events import decode_message
from chat_sync.sync.models import Conversation, MessageAdded, MessageRecord
from chat_sync.sync.paths import PathResolver
from chat_sync.sync.registry import SubscriptionRegistry
from chat_sync.validators import validate_message_text

logger = logging.getLogger(__name__)

CONVERSATION_SLOT = "conversation"

MessageCallback = Callable[[str, str, bool], None]
ConversationCallback = Callable[[Conversation | None], None]


class SyncSession:
    """Tie the current conversation identity to its subscription.

    Args:
        backend: Remote store (injected; there is no global instance).
        resolver: Path resolver; default chat layout when omitted.
        dispatcher: Where consumer callbacks run. An ``InlineDispatcher``
            owned by the session when omitted.
    """

    def __init__(
        self,
        backend: RemoteBackend,
        resolver: PathResolver | None = None,
        dispatcher: Any = None,
    ) -> None:
        self._backend = backend
        self.resolver = resolver or PathResolver()
        self._owns_dispatcher = dispatcher is None
        self.dispatcher = dispatcher or InlineDispatcher()
        self.registry = SubscriptionRegistry(backend)
        self._lock = self.registry.lock
        self.directory = UserDirectory(
            backend, self.registry, self.resolver, self.dispatcher
        )

        self._current_user: str | None = None
        self._current_peer: str | None = None
        self._messages: list[MessageAdded] = []
        self._message_callbacks: list[MessageCallback] = []
        self._conversation_callbacks: list[ConversationCallback] = []
        self._closed = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def current_user(self) -> str | None:
        return self._current_user

    @property
    def current_peer(self) -> str | None:
        return self._current_peer

    @property
    def conversation(self) -> Conversation | None:
        """The active conversation, or ``None`` when no user is set."""
        with self._lock:
            if not self._current_user:
                return None
            return Conversation(user=self._current_user, peer=self._current_peer)

    @property
    def current_path(self) -> str | None:
        with self._lock:
            return self.resolver.resolve(self._current_user, self._current_peer)

    @property
    def messages(self) -> list[MessageAdded]:
        """Messages of the current conversation in stream order."""
        with self._lock:
            return list(self._messages)

    @property
    def users(self) -> list[str]:
        return self.directory.users

    # ------------------------------------------------------------------
    # Consumer registration
    # ------------------------------------------------------------------

    def on_message(self, callback: MessageCallback) -> None:
        """Call ``callback(sender, text, is_echo)`` for every message event."""
        with self._lock:
            self._message_callbacks.append(callback)

    def on_conversation_changed(self, callback: ConversationCallback) -> None:
        """Call ``callback(conversation)`` whenever the message list resets."""
        with self._lock:
            self._conversation_callbacks.append(callback)

    def on_user_added(self, callback: UserAddedCallback) -> None:
        """Call ``callback(identifier)`` for every user; starts the users stream."""
        self.directory.on_user_added(callback)

    def watch_users(self) -> None:
        self.directory.watch()

    def unwatch_users(self) -> None:
        self.directory.unwatch()

    # ------------------------------------------------------------------
    # Identity changes
    # ------------------------------------------------------------------

    def set_current_user(self, identifier: str | None) -> None:
        """Switch the local user, keeping the peer.

        Setting the same user again re-affirms the existing subscription
        without resetting messages.
        """
        with self._lock:
            self._ensure_open()
            identifier = identifier or None
            if identifier == self._current_user:
                self._subscribe_current()
                return
            self._teardown_conversation()
            self._current_user = identifier
            self._rebuild()

    def set_current_peer(self, peer: str | None) -> None:
        """Switch the peer (``None`` for the general room), keeping the user.

        A peer equal to the current user is the caller's mistake to avoid;
        it is not rejected here.
        """
        with self._lock:
            self._ensure_open()
            if peer is not None and peer == self._current_user:
                logger.debug("Peer %s is the current user", peer)
            if peer == self._current_peer:
                self._subscribe_current()
                return
            self._teardown_conversation()
            self._current_peer = peer
            self._rebuild()

    def clear(self) -> None:
        """Forget user and peer and tear the conversation stream down.

        Does nothing once the session is closed.
        """
        with self._lock:
            if self._closed:
                return
            self._teardown_conversation()
            self._current_user = None
            self._current_peer = None
            self._rebuild()

    def resync(self) -> None:
        """Re-install every stream after the backend reconnected.

        Local lists are reset first because each stream delivers its
        backfill again.
        """
        with self._lock:
            self._ensure_open()
            self._messages.clear()
            self._notify_conversation(self.conversation)
            self.registry.restore()

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send_message(self, text: str) -> str | None:
        """Append a message from the current user to the current conversation.

        The message list is not touched; the backend echo delivers it.

        Returns:
            The backend key of the new record, or ``None`` when there is
            no resolvable conversation (no current user).

        Raises:
            ValueError: If *text* is empty or too large.
            BackendError: If the backend rejects the write.
        """
        ok, error = validate_message_text(text)
        if not ok:
            raise ValueError(error)

        with self._lock:
            self._ensure_open()
            user = self._current_user
            path = self.resolver.resolve(user, self._current_peer)

        if user is None or path is None:
            logger.warning("Cannot send message: no current conversation")
            return None

        record = MessageRecord(sender_identifier=user, text=text)
        key = self._backend.append(path, record.to_record())
        logger.debug("Sent message %s to %s", key, path)
        return key

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Unsubscribe everything. The session cannot be reused."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self.registry.close()
        if self._owns_dispatcher:
            self.dispatcher.close()

    def __enter__(self) -> SyncSession:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("SyncSession is closed")

    def _teardown_conversation(self) -> None:
        self.registry.unsubscribe(CONVERSATION_SLOT)

    def _rebuild(self) -> None:
        self._messages.clear()
        self._notify_conversation(self.conversation)
        self._subscribe_current()

    def _subscribe_current(self) -> None:
        user = self._current_user
        path = self.resolver.resolve(user, self._current_peer)
        if path is None:
            logger.debug(
                "No resolvable path for user=%r peer=%r",
                user,
                self._current_peer,
            )
            return
        self.registry.subscribe(
            CONVERSATION_SLOT, path, partial(self._on_message_record, user)
        )

    def _notify_conversation(self, conversation: Conversation | None) -> None:
        for callback in list(self._conversation_callbacks):
            self.dispatcher.submit(callback, conversation)

    def _on_message_record(self, user: str, raw: Any) -> None:
        event = decode_message(raw)
        if event is None:
            return
        event = event.model_copy(
            update={"is_echo": event.sender_identifier == user}
        )
        self._messages.append(event)
        for callback in list(self._message_callbacks):
            self.dispatcher.submit(
                callback, event.sender_identifier, event.text, event.is_echo
            )
