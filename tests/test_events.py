"""Tests for decoding raw records into domain events."""

import pytest

from chat_sync.sync.events import decode_message, decode_user
from chat_sync.sync.models import MessageAdded, UserAdded


class TestDecodeMessage:
    def test_valid_record(self):
        event = decode_message({"senderIdentifier": "bob", "text": "hi"})
        assert event == MessageAdded(sender_identifier="bob", text="hi")
        assert event.is_echo is False

    def test_extra_fields_ignored(self):
        event = decode_message(
            {"senderIdentifier": "bob", "text": "hi", "ts": 123}
        )
        assert event is not None
        assert event.text == "hi"

    def test_empty_text_allowed(self):
        """Only the type is checked on stored records."""
        event = decode_message({"senderIdentifier": "bob", "text": ""})
        assert event is not None

    def test_missing_text_dropped(self):
        assert decode_message({"senderIdentifier": "a"}) is None

    def test_missing_sender_dropped(self):
        assert decode_message({"text": "hi"}) is None

    @pytest.mark.parametrize(
        "raw",
        [
            {"senderIdentifier": 1, "text": "hi"},
            {"senderIdentifier": "bob", "text": 5},
            {"senderIdentifier": None, "text": "hi"},
            {"senderIdentifier": "bob", "text": ["hi"]},
        ],
    )
    def test_wrong_types_dropped(self, raw):
        assert decode_message(raw) is None

    @pytest.mark.parametrize("raw", [None, "hello", 42, ["a", "b"]])
    def test_non_object_dropped(self, raw):
        assert decode_message(raw) is None


class TestDecodeUser:
    def test_valid_record(self):
        assert decode_user({"identifier": "carol"}) == UserAdded(
            identifier="carol"
        )

    def test_missing_identifier_dropped(self):
        assert decode_user({"name": "carol"}) is None

    def test_empty_identifier_dropped(self):
        assert decode_user({"identifier": ""}) is None

    def test_wrong_type_dropped(self):
        assert decode_user({"identifier": 7}) is None

    def test_non_object_dropped(self):
        assert decode_user("carol") is None
