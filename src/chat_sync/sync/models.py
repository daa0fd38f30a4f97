"""Pydantic models for the chat sync core.

- ``Conversation``: the active ``(user, peer)`` identity.
- ``MessageRecord`` / ``UserRecord``: wire shape of stored records.
- ``MessageAdded`` / ``UserAdded``: decoded domain events.
- ``AuthInfo``: result of a successful sign-in.

All models are frozen (immutable).
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Conversation(BaseModel):
    """A conversation identity.

    Attributes:
        user: The local participant.
        peer: The other participant of a private room, or ``None`` for
            the general room.
    """

    user: str
    peer: str | None = None

    model_config = {"frozen": True}

    @property
    def is_general(self) -> bool:
        return self.peer is None


class MessageRecord(BaseModel):
    """A chat message as stored under a conversation path."""

    sender_identifier: str = Field(alias="senderIdentifier")
    text: str

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_record(self) -> dict[str, str]:
        return self.model_dump(by_alias=True)


class UserRecord(BaseModel):
    """A user entry as stored under the users collection."""

    identifier: str

    model_config = {"frozen": True}

    def to_record(self) -> dict[str, str]:
        return self.model_dump()


class MessageAdded(BaseModel):
    """A message arrived on the conversation stream.

    Attributes:
        sender_identifier: Who sent the message.
        text: Message body.
        is_echo: ``True`` when the sender is the local user, i.e. the
            backend is reflecting a message this client sent.
    """

    sender_identifier: str
    text: str
    is_echo: bool = False

    model_config = {"frozen": True}


class UserAdded(BaseModel):
    """A user appeared on the users stream."""

    identifier: str

    model_config = {"frozen": True}


class AuthInfo(BaseModel):
    """Identity returned by the backend after authentication.

    Attributes:
        uid: Backend-assigned account id.
        email: Account email, used as the chat user identifier.
        id_token: Short-lived token sent with data requests.
        refresh_token: Long-lived token used to resume the session.
        expires_in: Lifetime of ``id_token`` in seconds, when known.
    """

    uid: str
    email: str
    id_token: str | None = None
    refresh_token: str | None = None
    expires_in: int | None = None

    model_config = {"frozen": True}
