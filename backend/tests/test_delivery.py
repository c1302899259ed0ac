"""Tests for message status transitions (sent -> delivered -> read)."""
import uuid

import pytest

from app.auth.service import AuthenticatedUser
from app.errors import AuthorizationError, NotFoundError
from app.realtime.broadcast import BroadcastRouter
from app.realtime.delivery import MessageDeliveryCoordinator
from app.realtime.session import ConnectionSession

from conftest import FakeWebSocket


def insert_message(repos, sender_id, content="hi"):
    return repos.messages.insert(
        message_id=str(uuid.uuid4()),
        sender_id=sender_id,
        room_id=repos.room_id,
        content=content,
    )


def status_of(repos, message_id):
    return repos.messages.get(message_id).status.value


@pytest.fixture
def router(repos):
    return BroadcastRouter(repos.membership)


@pytest.fixture
def delivery(repos, router):
    return MessageDeliveryCoordinator(repos.messages, repos.membership, router)


@pytest.fixture
def alice_session(repos, router):
    session = ConnectionSession(FakeWebSocket(), AuthenticatedUser("alice", "alice@example.com"))
    router.register(session)
    router.add_to_rooms(session, [repos.room_id])
    return session


class TestMarkDelivered:
    async def test_sent_becomes_delivered(self, repos, delivery, alice_session):
        message = insert_message(repos, "alice")

        assert await delivery.mark_delivered("bob", message.id, repos.room_id) is True
        assert status_of(repos, message.id) == "delivered"
        assert alice_session.websocket.sent == [{
            "event": "message_status_updated",
            "data": {"messageId": message.id, "status": "delivered"},
        }]

    async def test_repeat_is_a_no_op_but_still_broadcasts(self, repos, delivery, alice_session):
        message = insert_message(repos, "alice")
        await delivery.mark_delivered("bob", message.id, repos.room_id)

        assert await delivery.mark_delivered("bob", message.id, repos.room_id) is False
        assert status_of(repos, message.id) == "delivered"
        assert alice_session.websocket.events() == ["message_status_updated"] * 2

    async def test_read_never_regresses(self, repos, delivery):
        message = insert_message(repos, "alice")
        await delivery.mark_room_read(repos.room_id, "bob")

        for _ in range(3):
            await delivery.mark_delivered("bob", message.id, repos.room_id)
        assert status_of(repos, message.id) == "read"

    async def test_unknown_message_emits_nothing(self, repos, delivery, alice_session):
        with pytest.raises(NotFoundError):
            await delivery.mark_delivered("bob", "missing", repos.room_id)
        assert alice_session.websocket.sent == []

    async def test_message_from_another_room_is_not_found(self, repos, delivery):
        other = repos.rooms.create_room("bob", "group", ["alice"], "Other")
        message = insert_message(repos, "alice")
        with pytest.raises(NotFoundError):
            await delivery.mark_delivered("bob", message.id, other.id)
        assert status_of(repos, message.id) == "sent"

    async def test_non_member_cannot_acknowledge(self, repos, delivery):
        message = insert_message(repos, "alice")
        with pytest.raises(AuthorizationError):
            await delivery.mark_delivered("carol", message.id, repos.room_id)
        assert status_of(repos, message.id) == "sent"


class TestMarkRoomRead:
    async def test_marks_only_others_messages(self, repos, delivery):
        from_alice = insert_message(repos, "alice")
        from_bob = insert_message(repos, "bob")

        assert await delivery.mark_room_read(repos.room_id, "bob") == 1
        assert status_of(repos, from_alice.id) == "read"
        assert status_of(repos, from_bob.id) == "sent"

    async def test_updates_last_read_at(self, repos, delivery):
        assert repos.membership.last_read_at(repos.room_id, "bob") is None
        await delivery.mark_room_read(repos.room_id, "bob")
        assert repos.membership.last_read_at(repos.room_id, "bob") is not None

    async def test_second_call_changes_nothing(self, repos, delivery):
        message = insert_message(repos, "alice")
        await delivery.mark_room_read(repos.room_id, "bob")
        first_marker = repos.membership.last_read_at(repos.room_id, "bob")

        assert await delivery.mark_room_read(repos.room_id, "bob") == 0
        assert status_of(repos, message.id) == "read"
        assert repos.membership.last_read_at(repos.room_id, "bob") >= first_marker

    async def test_broadcasts_room_level_event(self, repos, delivery, alice_session):
        insert_message(repos, "alice")
        insert_message(repos, "alice")
        await delivery.mark_room_read(repos.room_id, "bob")
        assert alice_session.websocket.sent == [
            {"event": "messages_read", "data": {"roomId": repos.room_id, "userId": "bob"}}
        ]

    async def test_excludes_reader_connection(self, repos, router, delivery, alice_session):
        reader = ConnectionSession(FakeWebSocket(), AuthenticatedUser("bob", "bob@example.com"))
        router.register(reader)
        router.add_to_rooms(reader, [repos.room_id])

        await delivery.mark_room_read(repos.room_id, "bob", exclude_connection_id=reader.connection_id)

        assert reader.websocket.sent == []
        assert alice_session.websocket.events() == ["messages_read"]

    async def test_unread_count_follows_read_marker(self, repos, delivery):
        insert_message(repos, "alice")
        insert_message(repos, "alice")
        summary = next(r for r in repos.rooms.list_rooms_for_user("bob") if r.id == repos.room_id)
        assert summary.unread_count == 2

        await delivery.mark_room_read(repos.room_id, "bob")
        summary = next(r for r in repos.rooms.list_rooms_for_user("bob") if r.id == repos.room_id)
        assert summary.unread_count == 0
