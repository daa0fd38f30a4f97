"""Realtime conversation sync core.

Architecture
------------
Leaf to root:

- ``paths``     -- ``PathResolver``: canonical, order-independent paths
  for the general room, private rooms, and user records.
- ``registry``  -- ``SubscriptionRegistry``: at most one live child-added
  stream per logical slot, torn down before a replacement is installed.
- ``events``    -- ``decode_message`` / ``decode_user``: raw records to
  ``MessageAdded`` / ``UserAdded``, dropping malformed ones.
- ``directory`` -- ``UserDirectory``: the users stream and registration.
- ``session``   -- ``SyncSession``: current ``(user, peer)`` identity,
  the message list, sending, and lifecycle.

Usage example
-------------
::

    from chat_sync.backend.memory import InMemoryBackend
    from chat_sync.sync import SyncSession

    backend = InMemoryBackend()
    with SyncSession(backend) as session:
        session.on_message(lambda sender, text, echo: print(sender, text))
        session.set_current_peer("bob")
        session.set_current_user("alice")
        session.send_message("hello")
"""

from .directory import USERS_SLOT, UserDirectory
from .events import decode_message, decode_user
from .models import (
    AuthInfo,
    Conversation,
    MessageAdded,
    MessageRecord,
    UserAdded,
    UserRecord,
)
from .paths import PathResolver, escape_segment
from .registry import SubscriptionHandle, SubscriptionRegistry
from .session import CONVERSATION_SLOT, SyncSession

__all__ = [
    "AuthInfo",
    "CONVERSATION_SLOT",
    "Conversation",
    "MessageAdded",
    "MessageRecord",
    "PathResolver",
    "SubscriptionHandle",
    "SubscriptionRegistry",
    "SyncSession",
    "USERS_SLOT",
    "UserAdded",
    "UserDirectory",
    "UserRecord",
    "decode_message",
    "decode_user",
    "escape_segment",
]
