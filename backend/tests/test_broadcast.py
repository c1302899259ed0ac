"""Tests for BroadcastRouter room routing and join authorization."""
import pytest

from app.auth.service import AuthenticatedUser
from app.errors import AuthorizationError
from app.realtime.broadcast import BroadcastRouter
from app.realtime.events import OutboundEvent, PresencePayload
from app.realtime.session import ConnectionSession

from conftest import FakeWebSocket


def make_session(user_id, fail=False):
    return ConnectionSession(FakeWebSocket(fail=fail), AuthenticatedUser(user_id, f"{user_id}@example.com"))


@pytest.fixture
def router(repos):
    return BroadcastRouter(repos.membership)


class TestRoomScopedFanOut:
    """Emits reach exactly the connections joined to the room."""

    async def test_emit_reaches_only_joined_connections(self, repos, router):
        other = repos.rooms.create_room("carol", "group", ["bob"], "Other")
        alice = make_session("alice")
        carol = make_session("carol")
        for session in (alice, carol):
            router.register(session)
        router.add_to_rooms(alice, [repos.room_id])
        router.add_to_rooms(carol, [other.id])

        delivered = await router.emit_to_room(
            repos.room_id, OutboundEvent.PRESENCE_UPDATE,
            PresencePayload(user_id="bob", status="online"),
        )

        assert delivered == 1
        assert alice.websocket.sent == [
            {"event": "presence_update", "data": {"userId": "bob", "status": "online"}}
        ]
        assert carol.websocket.sent == []

    async def test_emit_except_skips_origin(self, repos, router):
        alice, bob = make_session("alice"), make_session("bob")
        for session in (alice, bob):
            router.register(session)
            router.add_to_rooms(session, [repos.room_id])

        await router.emit_to_room_except(
            repos.room_id, OutboundEvent.TYPING_START,
            {"userId": "alice", "roomId": repos.room_id},
            exclude_connection_id=alice.connection_id,
        )

        assert alice.websocket.sent == []
        assert bob.websocket.events() == ["typing_start"]

    async def test_emit_to_empty_room(self, router):
        assert await router.emit_to_room("nowhere", OutboundEvent.ERROR, {"error": "x"}) == 0

    async def test_frames_keep_submission_order(self, repos, router):
        bob = make_session("bob")
        router.register(bob)
        router.add_to_rooms(bob, [repos.room_id])

        for event in (OutboundEvent.TYPING_START, OutboundEvent.TYPING_STOP, OutboundEvent.MESSAGES_READ):
            await router.emit_to_room(repos.room_id, event, {"roomId": repos.room_id})

        assert bob.websocket.events() == ["typing_start", "typing_stop", "messages_read"]


class TestJoinAuthorization:
    """join() only admits active members."""

    async def test_non_member_join_is_rejected(self, repos, router):
        carol = make_session("carol")
        router.register(carol)

        with pytest.raises(AuthorizationError):
            await router.join(carol, repos.room_id)

        assert carol.connection_id not in router.room_connection_ids(repos.room_id)
        await router.emit_to_room(repos.room_id, OutboundEvent.ERROR, {"error": "x"})
        assert carol.websocket.sent == []

    async def test_non_member_join_announces_nothing(self, repos, router):
        alice, carol = make_session("alice"), make_session("carol")
        for session in (alice, carol):
            router.register(session)
        router.add_to_rooms(alice, [repos.room_id])

        with pytest.raises(AuthorizationError):
            await router.join(carol, repos.room_id)
        assert alice.websocket.sent == []

    async def test_member_join_announces_to_others(self, repos, router):
        alice, bob = make_session("alice"), make_session("bob")
        for session in (alice, bob):
            router.register(session)
        router.add_to_rooms(alice, [repos.room_id])

        await router.join(bob, repos.room_id)

        assert repos.room_id in bob.joined_room_ids
        assert alice.websocket.sent == [
            {"event": "user_joined", "data": {"userId": "bob", "roomId": repos.room_id}}
        ]
        assert bob.websocket.sent == []

    async def test_inactive_member_cannot_join(self, repos, router):
        repos.rooms.remove_member(repos.room_id, "bob", "alice")
        bob = make_session("bob")
        router.register(bob)
        with pytest.raises(AuthorizationError):
            await router.join(bob, repos.room_id)


class TestDeadConnections:
    """Failed sends drop the connection from every room."""

    async def test_failed_send_unregisters(self, repos, router):
        alice, dead = make_session("alice"), make_session("bob", fail=True)
        for session in (alice, dead):
            router.register(session)
            router.add_to_rooms(session, [repos.room_id])

        delivered = await router.emit_to_room(repos.room_id, OutboundEvent.ERROR, {"error": "x"})

        assert delivered == 1
        assert dead.closed
        assert dead not in router.sessions()
        assert router.room_connection_ids(repos.room_id) == {alice.connection_id}

    def test_unregister_is_idempotent(self, repos, router):
        alice = make_session("alice")
        router.register(alice)
        router.add_to_rooms(alice, [repos.room_id])

        assert router.unregister(alice) is True
        assert router.unregister(alice) is False
        assert router.room_connection_ids(repos.room_id) == set()
