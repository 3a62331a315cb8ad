import pytest
from fastapi.testclient import TestClient

from main import create_app


@pytest.fixture
def client(engine, session_factory, directory):
    app = create_app(
        session_factory=session_factory,
        bind=engine,
        directory=directory,
        sweeper_enabled=False,
    )
    with TestClient(app) as client:
        yield client


@pytest.fixture
def room_id(client):
    return client.post("/api/opinions/op-alice/debate-rooms", headers={"X-User-Id": "bob"}).json()["id"]


def test_ping(client):
    with client.websocket_connect("/ws/debate-rooms?user_id=alice") as ws:
        assert ws.receive_json()["type"] == "connected"
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def test_invalid_and_unknown_messages(client):
    with client.websocket_connect("/ws/debate-rooms?user_id=alice") as ws:
        ws.receive_json()

        ws.send_text("not json")
        assert ws.receive_json()["code"] == "invalid_json"

        ws.send_json({"type": "shout"})
        assert ws.receive_json()["code"] == "unknown_type"

        ws.send_json({"type": "typing"})
        assert ws.receive_json()["code"] == "not_joined"


def test_outsider_cannot_join(client, room_id):
    with client.websocket_connect("/ws/debate-rooms?user_id=carol") as ws:
        ws.receive_json()
        ws.send_json({"type": "join_room", "room_id": room_id})

        reply = ws.receive_json()
        assert reply["type"] == "error"
        assert reply["code"] == "not_permitted"


def test_message_is_pushed_to_room(client, room_id):
    with client.websocket_connect("/ws/debate-rooms?user_id=bob") as ws:
        ws.receive_json()
        ws.send_json({"type": "join_room", "room_id": room_id})
        assert ws.receive_json() == {"type": "joined", "room_id": room_id}

        client.post(
            f"/api/debate-rooms/{room_id}/messages",
            json={"content": "Opening"},
            headers={"X-User-Id": "alice"},
        )

        event = ws.receive_json()
        assert event["type"] == "new_message"
        assert event["message"]["content"] == "Opening"
        assert event["room"]["current_turn"] == "bob"


def test_typing_reaches_counterpart(client, room_id):
    with client.websocket_connect("/ws/debate-rooms?user_id=alice") as alice_ws, \
            client.websocket_connect("/ws/debate-rooms?user_id=bob") as bob_ws:
        alice_ws.receive_json()
        bob_ws.receive_json()
        alice_ws.send_json({"type": "join_room", "room_id": room_id})
        alice_ws.receive_json()
        bob_ws.send_json({"type": "join_room", "room_id": room_id})
        bob_ws.receive_json()

        alice_ws.send_json({"type": "typing", "is_typing": True})

        event = bob_ws.receive_json()
        assert event["type"] == "typing"
        assert event["user_id"] == "alice"


def test_leave_room(client, room_id):
    with client.websocket_connect("/ws/debate-rooms?user_id=bob") as ws:
        ws.receive_json()
        ws.send_json({"type": "join_room", "room_id": room_id})
        ws.receive_json()

        ws.send_json({"type": "leave_room"})
        assert ws.receive_json() == {"type": "left", "room_id": room_id}
