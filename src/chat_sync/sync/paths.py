"""Canonical path derivation for conversations and users.

A private room between two users lives at one path no matter which of
them asks for it: the raw identifiers are ordered by plain string
comparison, joined with the separator, and escaped as a single segment.
"""

from __future__ import annotations

from urllib.parse import quote

from chat_sync.config_schema import ChatConfig

# quote() never escapes ".", which the store reserves in keys
_ALWAYS_SAFE = "-_~"


def escape_segment(value: str) -> str:
    """Percent-escape *value* so it is usable as exactly one path segment."""
    return quote(value, safe=_ALWAYS_SAFE).replace(".", "%2E")


class PathResolver:
    """Resolve conversation identities to canonical store paths.

    Args:
        chats_root: Collection holding every conversation.
        general_room: Key of the public room under ``chats_root``.
        users_root: Collection holding one record per user.
        separator: Joins the ordered identifiers of a private room.
    """

    def __init__(
        self,
        chats_root: str = "chats",
        general_room: str = "general",
        users_root: str = "users",
        separator: str = "AND",
    ) -> None:
        self.chats_root = chats_root.strip("/")
        self.general_room = general_room.strip("/")
        self.users_root = users_root.strip("/")
        self.separator = separator

    @classmethod
    def from_config(cls, chat: ChatConfig) -> PathResolver:
        return cls(
            chats_root=chat.chats_root,
            general_room=chat.general_room,
            users_root=chat.users_root,
            separator=chat.separator,
        )

    @property
    def general_path(self) -> str:
        return f"{self.chats_root}/{self.general_room}"

    @property
    def users_path(self) -> str:
        return self.users_root

    def resolve(self, self_id: str | None, peer: str | None = None) -> str | None:
        """Return the canonical path for ``(self_id, peer)``.

        Returns:
            The general room path when *peer* is ``None``, the private
            room path otherwise, or ``None`` when *self_id* is empty or
            *peer* is an empty string (nothing to subscribe to).
        """
        if not self_id:
            return None
        if peer is None:
            return self.general_path
        if not peer:
            return None

        lesser, greater = (self_id, peer) if self_id < peer else (peer, self_id)
        segment = escape_segment(f"{lesser}{self.separator}{greater}")
        return f"{self.chats_root}/{segment}"

    def user_path(self, identifier: str) -> str | None:
        """Return ``users/{escaped identifier}``, or ``None`` if empty."""
        if not identifier:
            return None
        return f"{self.users_root}/{escape_segment(identifier)}"
