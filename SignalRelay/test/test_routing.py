"""
Unit tests for the MessageRouter dispatch rules.
"""

import json

import pytest

from SignalRelay.core.exceptions import ProtocolError, UnknownSenderError
from SignalRelay.core.message.protocol import Message
from SignalRelay.core.server import DeliveryStatus


def inbound(**fields) -> Message:
    return Message.deserialize(json.dumps(fields))


class TestChatMessages:
    """Tests for ``message`` routing."""

    def test_broadcast_is_sanitized_and_stamped(self, router, connect_fake):
        alice = connect_fake("Alice")
        bob = connect_fake("Bob")

        results = router.handle(alice, inbound(type="message", text="<script>bad()</script>hi", id=alice.client_id))

        assert len(results) == 2
        assert all(result.delivered for result in results)
        for connection in (alice, bob):
            (message,) = connection.received
            assert message["text"] == "hi"
            assert message["name"] == "Alice"
            assert message["id"] == alice.client_id

    def test_name_reflects_current_username(self, router, registry, connect_fake):
        alice = connect_fake("Alice")
        registry.set_username(alice, "Alicia")

        router.handle(alice, inbound(type="message", text="hey", id=alice.client_id))

        assert alice.received[0]["name"] == "Alicia"

    def test_sender_without_username_stamps_null(self, router, connect_fake):
        anonymous = connect_fake()

        router.handle(anonymous, inbound(type="message", text="hey", id=anonymous.client_id))

        assert anonymous.received[0]["name"] is None

    def test_targeted_message_reaches_only_target(self, router, connect_fake):
        alice = connect_fake("Alice")
        bob = connect_fake("Bob")
        carol = connect_fake("Carol")

        results = router.handle(alice, inbound(type="message", text="psst", id=alice.client_id, target="Bob"))

        assert [result.client_id for result in results] == [bob.client_id]
        assert bob.received[0]["text"] == "psst"
        assert alice.sent == []
        assert carol.sent == []

    def test_unknown_target_dropped_silently(self, router, connect_fake):
        alice = connect_fake("Alice")
        carol = connect_fake("Carol")

        results = router.handle(alice, inbound(type="message", text="hi", id=alice.client_id, target="Bob"))

        assert [result.status for result in results] == [DeliveryStatus.TARGET_NOT_FOUND]
        assert not any(result.delivered for result in results)
        assert alice.sent == []
        assert carol.sent == []

    def test_empty_target_broadcasts(self, router, connect_fake):
        alice = connect_fake("Alice")
        bob = connect_fake("Bob")

        router.handle(alice, inbound(type="message", text="all", id=alice.client_id, target=""))

        assert len(alice.sent) == 1
        assert len(bob.sent) == 1

    def test_missing_text_left_alone(self, router, connect_fake):
        alice = connect_fake("Alice")

        router.handle(alice, inbound(type="message", id=alice.client_id))

        assert "text" not in alice.received[0]


class TestPassThrough:
    """Tests for opaque signaling messages."""

    def test_offer_forwarded_verbatim_to_target(self, router, connect_fake):
        alice = connect_fake("Alice")
        bob = connect_fake("Bob")
        raw = '{"name": "Alice", "target": "Bob", "type": "video-offer", "sdp": {"type": "offer", "sdp": "v=0 <x>"}}'

        results = router.handle(alice, Message.deserialize(raw))

        assert [result.status for result in results] == [DeliveryStatus.DELIVERED]
        assert bob.sent == [raw]
        assert alice.sent == []

    def test_unknown_type_without_target_broadcast(self, router, connect_fake):
        alice = connect_fake("Alice")
        bob = connect_fake("Bob")
        raw = '{"type": "typing", "who": "Alice"}'

        router.handle(alice, Message.deserialize(raw))

        assert alice.sent == [raw]
        assert bob.sent == [raw]

    def test_target_removed_mid_flight_is_dropped(self, router, registry, connect_fake):
        alice = connect_fake("Alice")
        bob = connect_fake("Bob")
        registry.remove(bob)

        results = router.handle(alice, inbound(type="new-ice-candidate", target="Bob", candidate={}))

        assert results[0].status is DeliveryStatus.TARGET_NOT_FOUND
        assert bob.sent == []

    def test_closed_recipient_reported_dropped(self, router, connect_fake):
        alice = connect_fake("Alice")
        bob = connect_fake("Bob")
        bob.closed = True

        results = router.handle(alice, inbound(type="hang-up", target="Bob"))

        assert results[0].status is DeliveryStatus.DROPPED

    def test_routing_follows_renames(self, router, registry, connect_fake):
        alice = connect_fake("Alice")
        bob = connect_fake("Bob")
        carol = connect_fake("Carol")
        registry.set_username(bob, "Robert")
        registry.set_username(carol, "Bob")

        router.handle(alice, inbound(type="video-answer", target="Bob", sdp={}))

        assert bob.sent == []
        assert len(carol.sent) == 1


class TestSenderResolution:
    """Tests for sender id checks."""

    def test_unknown_id_dropped(self, router, connect_fake):
        alice = connect_fake("Alice")
        bob = connect_fake("Bob")

        with pytest.raises(UnknownSenderError):
            router.handle(alice, inbound(type="message", text="hi", id=123))
        assert alice.sent == []
        assert bob.sent == []

    def test_id_of_another_connection_dropped(self, router, connect_fake):
        alice = connect_fake("Alice")
        bob = connect_fake("Bob")

        with pytest.raises(UnknownSenderError):
            router.handle(alice, inbound(type="username", name="Mallory", id=bob.client_id))
        assert bob.username == "Bob"

    def test_id_of_departed_connection_dropped(self, router, registry, connect_fake):
        alice = connect_fake("Alice")
        registry.remove(alice)

        with pytest.raises(UnknownSenderError):
            router.handle(alice, inbound(type="message", text="hi", id=alice.client_id))


class TestUsernameClaims:
    """Tests for ``username`` handling."""

    def test_unique_name_accepted(self, router, registry, connect_fake):
        alice = connect_fake()
        bob = connect_fake("Bob")

        router.handle(alice, inbound(type="username", name="Alice", id=alice.client_id))

        assert alice.username == "Alice"
        assert alice.received_types() == ["userlist"]
        assert alice.received[0]["users"] == ["Alice", "Bob"]
        assert bob.received[0]["users"] == ["Alice", "Bob"]
        assert registry.find_by_username("Alice") is alice

    def test_taken_name_altered_and_reported(self, router, connect_fake):
        first = connect_fake("Alice")
        second = connect_fake()

        router.handle(second, inbound(type="username", name="Alice", id=second.client_id))

        assert second.username == "Alice1"
        assert second.received_types() == ["rejectusername", "userlist"]
        assert second.received[0] == {"type": "rejectusername", "id": second.client_id, "name": "Alice1"}
        assert first.received_types() == ["userlist"]
        assert first.received[0]["users"] == ["Alice", "Alice1"]

    def test_reclaiming_own_name_gets_suffix(self, router, registry, connect_fake):
        alice = connect_fake("Alice")

        router.handle(alice, inbound(type="username", name="Alice", id=alice.client_id))

        assert alice.username == "Alice1"
        assert alice.received_types() == ["rejectusername", "userlist"]
        assert alice.received[0] == {"type": "rejectusername", "id": alice.client_id, "name": "Alice1"}
        assert registry.find_by_username("Alice") is None

    def test_rename_releases_old_name(self, router, registry, connect_fake):
        alice = connect_fake("Alice")

        router.handle(alice, inbound(type="username", name="Alicia", id=alice.client_id))

        assert registry.find_by_username("Alice") is None
        assert registry.find_by_username("Alicia") is alice

    def test_roster_lists_unnamed_connections(self, router, connect_fake):
        lurker = connect_fake()
        alice = connect_fake()

        router.handle(alice, inbound(type="username", name="Alice", id=alice.client_id))

        assert lurker.received[0]["users"] == [None, "Alice"]

    @pytest.mark.parametrize("name", [None, "", "   ", 5, ["Alice"]])
    def test_invalid_name_rejected(self, router, connect_fake, name):
        alice = connect_fake()

        with pytest.raises(ProtocolError):
            router.handle(alice, inbound(type="username", name=name, id=alice.client_id))
        assert alice.username is None
        assert alice.sent == []

    def test_identical_claims_get_distinct_names(self, router, registry, connect_fake):
        first = connect_fake()
        second = connect_fake()

        router.handle(first, inbound(type="username", name="Alice", id=first.client_id))
        router.handle(second, inbound(type="username", name="Alice", id=second.client_id))

        assert {first.username, second.username} == {"Alice", "Alice1"}
        assert "rejectusername" not in first.received_types()
        assert second.received_types().count("rejectusername") == 1
        assert sorted(registry.snapshot_usernames()) == ["Alice", "Alice1"]


class TestRosterBroadcast:
    """Tests for MessageRouter.broadcast_user_list."""

    def test_every_connection_gets_identical_payload(self, router, connect_fake):
        connections = [connect_fake(name) for name in ("Alice", "Bob", "Carol")]

        results = router.broadcast_user_list()

        assert set(results) == {connection.client_id for connection in connections}
        payloads = {connection.sent[0] for connection in connections}
        assert len(payloads) == 1
        assert json.loads(payloads.pop()) == {"type": "userlist", "users": ["Alice", "Bob", "Carol"]}
