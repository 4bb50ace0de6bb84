"""Unit tests for the realtime ConnectionHub."""
import uuid

from devtinder.services.realtime import (
    Connection,
    ConnectionHub,
    conversation_room,
    personal_room,
)


class TestRooms:

    async def test_connect_joins_personal_room(self, hub, fake_socket):
        user_id = uuid.uuid4()
        connection = Connection(fake_socket, user_id)

        await hub.connect(connection)

        assert hub.is_online(user_id)
        assert hub.in_room(connection, personal_room(user_id))

    async def test_disconnect_leaves_every_room(self, hub, fake_socket):
        user_id = uuid.uuid4()
        connection = Connection(fake_socket, user_id)
        await hub.connect(connection)
        await hub.join(connection, conversation_room("c1"))

        await hub.disconnect(connection)

        assert not hub.is_online(user_id)
        assert hub.room_size(conversation_room("c1")) == 0

    async def test_leave_only_that_room(self, hub, fake_socket):
        connection = Connection(fake_socket, uuid.uuid4())
        await hub.join(connection, "a")
        await hub.join(connection, "b")

        await hub.leave(connection, "a")

        assert not hub.in_room(connection, "a")
        assert hub.in_room(connection, "b")

    async def test_same_user_on_two_devices(self, hub, make_socket):
        user_id = uuid.uuid4()
        phone, laptop = make_socket(), make_socket()
        await hub.connect(Connection(phone, user_id))
        await hub.connect(Connection(laptop, user_id))

        delivered = await hub.emit_to_user(user_id, "ping", {"n": 1})

        assert delivered == 2
        assert phone.events("ping") == laptop.events("ping") == [{"n": 1}]


class TestEmit:

    async def test_emit_wraps_event_and_data(self, hub, fake_socket):
        await hub.join(Connection(fake_socket, uuid.uuid4()), "room")

        await hub.emit("room", "user_typing", {"userId": "u"})

        assert fake_socket.sent == [{"event": "user_typing", "data": {"userId": "u"}}]

    async def test_emit_skips_sender(self, hub, make_socket):
        sender_socket, peer_socket = make_socket(), make_socket()
        sender = Connection(sender_socket, uuid.uuid4())
        await hub.join(sender, "room")
        await hub.join(Connection(peer_socket, uuid.uuid4()), "room")

        delivered = await hub.emit("room", "user_typing", {}, skip=sender)

        assert delivered == 1
        assert sender_socket.sent == []
        assert len(peer_socket.sent) == 1

    async def test_emit_to_empty_room(self, hub):
        assert await hub.emit("nobody-here", "ping", {}) == 0

    async def test_failed_send_drops_connection(self, hub, broken_socket, fake_socket):
        dead = Connection(broken_socket, uuid.uuid4())
        alive = Connection(fake_socket, uuid.uuid4())
        await hub.connect(dead)
        await hub.join(dead, "room")
        await hub.join(alive, "room")

        delivered = await hub.emit("room", "ping", {})

        assert delivered == 1
        assert hub.room_size("room") == 1
        assert not hub.is_online(dead.user_id)

    async def test_hubs_are_independent(self, fake_socket):
        first, second = ConnectionHub(), ConnectionHub()
        await first.join(Connection(fake_socket, uuid.uuid4()), "room")

        assert await second.emit("room", "ping", {}) == 0
