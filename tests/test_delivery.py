import pytest

from core.delivery import RoomChannel


class FakeConnection:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)


@pytest.fixture
def channel():
    return RoomChannel()


def test_join_leaves_previous_room(channel):
    conn = FakeConnection()

    channel.join(conn, "room-1", "alice")
    channel.join(conn, "room-2")

    assert channel.count("room-1") == 0
    assert channel.count("room-2") == 1
    assert channel.room_of(conn) == "room-2"
    assert channel.user_of(conn) == "alice"


def test_leave_and_disconnect_never_raise(channel):
    conn = FakeConnection()

    assert channel.leave(conn) is None
    channel.disconnect(conn)

    channel.join(conn, "room-1", "alice")
    assert channel.leave(conn) == "room-1"
    assert channel.count("room-1") == 0

    channel.disconnect(conn)
    channel.disconnect(conn)
    assert channel.user_of(conn) is None


@pytest.mark.asyncio
async def test_broadcast_includes_sender(channel):
    alice, bob, other = FakeConnection(), FakeConnection(), FakeConnection()
    channel.join(alice, "room-1", "alice")
    channel.join(bob, "room-1", "bob")
    channel.join(other, "room-2", "carol")

    delivered = await channel.broadcast("room-1", {"type": "new_message"})

    assert delivered == 2
    assert alice.sent == [{"type": "new_message"}]
    assert bob.sent == [{"type": "new_message"}]
    assert other.sent == []


@pytest.mark.asyncio
async def test_broadcast_exclude(channel):
    alice, bob = FakeConnection(), FakeConnection()
    channel.join(alice, "room-1", "alice")
    channel.join(bob, "room-1", "bob")

    await channel.broadcast("room-1", {"type": "typing"}, exclude=alice)

    assert alice.sent == []
    assert bob.sent == [{"type": "typing"}]


@pytest.mark.asyncio
async def test_failed_subscriber_does_not_block_others(channel):
    broken, healthy = FakeConnection(fail=True), FakeConnection()
    channel.join(broken, "room-1", "alice")
    channel.join(healthy, "room-1", "bob")

    delivered = await channel.broadcast("room-1", {"type": "room_update"})

    assert delivered == 1
    assert healthy.sent == [{"type": "room_update"}]
    assert channel.count("room-1") == 1
    assert channel.room_of(broken) is None


@pytest.mark.asyncio
async def test_broadcast_to_empty_room(channel):
    assert await channel.broadcast("nobody-here", {"type": "room_update"}) == 0


@pytest.mark.asyncio
async def test_send_to_failure_disconnects(channel):
    broken = FakeConnection(fail=True)
    channel.join(broken, "room-1", "alice")

    assert not await channel.send_to(broken, {"type": "pong"})
    assert channel.count("room-1") == 0
