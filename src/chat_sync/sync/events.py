"""Decode raw child records into domain events.

Records that do not match the expected shape are dropped, never raised:
a single bad record must not halt the stream it arrived on.
"""

from __future__ import annotations

import logging
from typing import Any

from chat_sync.sync.models import MessageAdded, UserAdded

logger = logging.getLogger(__name__)


def decode_message(raw: Any) -> MessageAdded | None:
    """Decode a conversation child record.

    Returns:
        ``MessageAdded`` when *raw* is a mapping whose
        ``senderIdentifier`` and ``text`` are both strings, else ``None``.
    """
    if not isinstance(raw, dict):
        logger.debug("Dropping non-object message record: %r", raw)
        return None

    sender = raw.get("senderIdentifier")
    text = raw.get("text")
    if not isinstance(sender, str) or not isinstance(text, str):
        logger.debug("Dropping malformed message record: %r", raw)
        return None

    return MessageAdded(sender_identifier=sender, text=text)


def decode_user(raw: Any) -> UserAdded | None:
    """Decode a users-collection child record.

    Returns:
        ``UserAdded`` when *raw* carries a non-empty string
        ``identifier``, else ``None``.
    """
    if not isinstance(raw, dict):
        logger.debug("Dropping non-object user record: %r", raw)
        return None

    identifier = raw.get("identifier")
    if not isinstance(identifier, str) or not identifier:
        logger.debug("Dropping malformed user record: %r", raw)
        return None

    return UserAdded(identifier=identifier)
