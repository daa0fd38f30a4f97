"""The remote store contract consumed by the sync core.

The store is a tree of key paths (``chats/general``, ``users/alice``).
A *child-added* subscription on a path delivers every existing child
record in storage order (backfill), then each child added afterwards.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Protocol, runtime_checkable

if TYPE_CHECKING:
    from chat_sync.sync.models import AuthInfo

ChildCallback = Callable[[Any], None]


def split_path(path: str) -> list[str]:
    """Split a store path into segments, ignoring empty ones."""
    return [segment for segment in path.split("/") if segment]


def normalize_path(path: str) -> str:
    return "/".join(split_path(path))


@runtime_checkable
class RemoteBackend(Protocol):
    """Key-path store with child-added subscriptions and password auth."""

    def subscribe_child_added(self, path: str, callback: ChildCallback) -> Any:
        """Deliver backfill then live child records of *path* to *callback*.

        Returns:
            An opaque handle for ``unsubscribe_child_added``.
        """
        ...

    def unsubscribe_child_added(self, path: str, handle: Any = None) -> None:
        """Remove one handler (*handle*) or all handlers of *path*. Idempotent."""
        ...

    def append(self, path: str, record: dict[str, Any]) -> str:
        """Insert *record* as a new child of *path*; return its key."""
        ...

    def set(self, path: str, record: dict[str, Any]) -> None:
        """Write *record* at exactly *path*."""
        ...

    def authenticate(self, email: str, password: str) -> AuthInfo:
        ...

    def create_account(self, email: str, password: str) -> AuthInfo:
        ...

    def resume_session(self) -> AuthInfo | None:
        ...

    def end_session(self) -> None:
        ...
