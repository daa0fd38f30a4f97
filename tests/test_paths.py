"""Tests for canonical path resolution.

Covers:
- General room path
- Order independence of private room paths
- Escaping of unsafe characters into a single segment
- Empty identifiers yield no path
- Custom layouts via ChatConfig
"""

import pytest

from chat_sync.config_schema import ChatConfig
from chat_sync.sync.paths import PathResolver, escape_segment


@pytest.fixture
def resolver():
    return PathResolver()


class TestGeneralRoom:
    @pytest.mark.parametrize("user", ["alice", "bob", "x@y.com", "Zed"])
    def test_no_peer_is_general(self, resolver, user):
        assert resolver.resolve(user, None) == "chats/general"

    def test_peer_defaults_to_general(self, resolver):
        assert resolver.resolve("alice") == "chats/general"


class TestPrivateRoom:
    def test_ordered_pair(self, resolver):
        assert resolver.resolve("alice", "bob") == "chats/aliceANDbob"

    def test_reversed_pair_same_path(self, resolver):
        assert resolver.resolve("bob", "alice") == "chats/aliceANDbob"

    @pytest.mark.parametrize(
        "x, y",
        [
            ("alice", "bob"),
            ("Bob", "bob"),
            ("a@example.com", "b@example.com"),
            ("user/1", "user 2"),
            ("é", "e"),
            ("a", "ab"),
        ],
    )
    def test_order_independent(self, resolver, x, y):
        assert resolver.resolve(x, y) == resolver.resolve(y, x)

    def test_uppercase_sorts_before_lowercase(self, resolver):
        """Ordering is plain code-point comparison."""
        assert resolver.resolve("bob", "Carol") == "chats/CarolANDbob"

    def test_email_identifiers_are_escaped(self, resolver):
        path = resolver.resolve("bob@example.com", "alice@example.com")
        assert path == "chats/alice%40example%2EcomANDbob%40example%2Ecom"

    def test_private_path_is_single_segment(self, resolver):
        path = resolver.resolve("a/b", "c/d")
        assert path.count("/") == 1
        assert path == "chats/a%2FbANDc%2Fd"


class TestUnresolvable:
    def test_empty_self(self, resolver):
        assert resolver.resolve("", "bob") is None

    def test_none_self(self, resolver):
        assert resolver.resolve(None, None) is None

    def test_empty_peer(self, resolver):
        assert resolver.resolve("alice", "") is None


class TestUserPath:
    def test_user_path(self, resolver):
        assert resolver.user_path("alice") == "users/alice"

    def test_user_path_escaped(self, resolver):
        assert resolver.user_path("a.b@c") == "users/a%2Eb%40c"

    def test_empty_user_path(self, resolver):
        assert resolver.user_path("") is None

    def test_users_path(self, resolver):
        assert resolver.users_path == "users"


class TestEscapeSegment:
    def test_plain_unchanged(self):
        assert escape_segment("abc-XYZ_09~") == "abc-XYZ_09~"

    def test_dot_escaped(self):
        assert escape_segment("a.b") == "a%2Eb"

    @pytest.mark.parametrize("char", ["/", "#", "$", "[", "]", " "])
    def test_reserved_escaped(self, char):
        assert char not in escape_segment(f"a{char}b")


class TestFromConfig:
    def test_custom_layout(self):
        resolver = PathResolver.from_config(
            ChatConfig(
                chats_root="rooms",
                general_room="lobby",
                users_root="people",
                separator="_",
            )
        )
        assert resolver.resolve("x") == "rooms/lobby"
        assert resolver.resolve("b", "a") == "rooms/a_b"
        assert resolver.user_path("a") == "people/a"
