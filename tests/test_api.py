"""End-to-end tests for the REST routes and the realtime socket.

These drive the real application (lifespan, middleware, error handlers)
through FastAPI's TestClient against the SQLite test database.
"""
import uuid
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from devtinder.main import app
from devtinder.services.rate_limit import MessageRateLimiter


@pytest.fixture
def client(fresh_schema):
    with TestClient(app) as test_client:
        yield test_client


def auth(user):
    return {"Authorization": f"Bearer {user['accessToken']}"}


def create_user(client, name):
    resp = client.post(
        "/api/v1/users",
        json={"email": f"{name.lower()}@test.dev", "name": name, "skills": ["python", "sql"]},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def match_users(client, a, b):
    client.post(f"/api/v1/matches/like/{b['id']}", headers=auth(a))
    resp = client.post(f"/api/v1/matches/like/{a['id']}", headers=auth(b))
    return resp.json()


def open_conversation(client, a, b):
    resp = client.get(f"/api/v1/messages/conversation/{b['id']}", headers=auth(a))
    assert resp.status_code == 200, resp.text
    return resp.json()["id"]


class TestHealth:

    def test_liveness(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_deep_without_redis(self, client):
        body = client.get("/health/deep").json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["redis"] == "not_configured"


class TestUsers:

    def test_create_returns_token_usable_for_me(self, client):
        ada = create_user(client, "Ada")

        me = client.get("/api/v1/users/me", headers=auth(ada))

        assert me.status_code == 200
        assert me.json()["id"] == ada["id"]
        assert me.json()["isActive"] is True
        assert me.json()["skills"] == ["python", "sql"]

    def test_duplicate_email_conflicts(self, client):
        create_user(client, "Ada")
        resp = client.post("/api/v1/users", json={"email": "ada@test.dev", "name": "Ada Again"})
        assert resp.status_code == 409

    def test_missing_token_is_unauthorized(self, client):
        resp = client.get("/api/v1/users/me")
        assert resp.status_code == 401
        assert resp.json() == {"detail": "Authentication required"}

    def test_bad_token_is_unauthorized(self, client):
        resp = client.get("/api/v1/users/me", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    def test_public_profile(self, client):
        ada = create_user(client, "Ada")
        bob = create_user(client, "Bob")

        resp = client.get(f"/api/v1/users/{bob['id']}", headers=auth(ada))

        assert resp.status_code == 200
        assert resp.json()["name"] == "Bob"
        assert "email" not in resp.json()


class TestMatchRoutes:

    def test_like_then_like_back_matches(self, client):
        ada = create_user(client, "Ada")
        bob = create_user(client, "Bob")

        first = client.post(f"/api/v1/matches/like/{bob['id']}", headers=auth(ada))
        second = client.post(f"/api/v1/matches/like/{ada['id']}", headers=auth(bob))

        assert first.status_code == 200
        assert first.json()["message"] == "Like sent!"
        assert first.json()["isMatch"] is False
        assert first.json()["match"]["status"] == "pending"
        assert second.json()["isMatch"] is True
        assert second.json()["message"] == "It's a match!"
        assert second.json()["match"]["conversationId"] is not None

        matches = client.get("/api/v1/matches/my-matches", headers=auth(ada)).json()
        assert [m["otherUser"]["id"] for m in matches] == [bob["id"]]
        assert matches[0]["unreadCount"] == 0

    def test_like_yourself_is_bad_request(self, client):
        ada = create_user(client, "Ada")
        resp = client.post(f"/api/v1/matches/like/{ada['id']}", headers=auth(ada))
        assert resp.status_code == 400
        assert resp.json() == {"detail": "Cannot like yourself"}

    def test_like_malformed_id_is_bad_request(self, client):
        ada = create_user(client, "Ada")
        resp = client.post("/api/v1/matches/like/not-a-uuid", headers=auth(ada))
        assert resp.status_code == 400

    def test_like_unknown_user_is_not_found(self, client):
        ada = create_user(client, "Ada")
        resp = client.post(f"/api/v1/matches/like/{uuid.uuid4()}", headers=auth(ada))
        assert resp.status_code == 404

    def test_dislike_then_like_conflicts(self, client):
        ada = create_user(client, "Ada")
        bob = create_user(client, "Bob")

        resp = client.post(f"/api/v1/matches/dislike/{bob['id']}", headers=auth(ada))
        assert resp.json()["message"] == "User disliked"

        again = client.post(f"/api/v1/matches/like/{ada['id']}", headers=auth(bob))
        assert again.status_code == 409
        assert again.json() == {"detail": "You have already interacted with this user"}

    def test_potential_matches(self, client):
        ada = create_user(client, "Ada")
        bob = create_user(client, "Bob")
        carol = create_user(client, "Carol")
        client.post(f"/api/v1/matches/like/{bob['id']}", headers=auth(ada))

        resp = client.get("/api/v1/matches/potential", headers=auth(ada))

        assert resp.status_code == 200
        assert [u["id"] for u in resp.json()] == [carol["id"]]

    def test_bookmark_and_archive(self, client):
        ada = create_user(client, "Ada")
        bob = create_user(client, "Bob")
        match_id = match_users(client, ada, bob)["match"]["matchId"]

        bookmark = client.put(f"/api/v1/matches/{match_id}/bookmark", headers=auth(ada))
        assert bookmark.json() == {"matchId": match_id, "bookmarked": True}
        assert client.get(f"/api/v1/matches/{match_id}", headers=auth(ada)).json()["bookmarked"] is True

        archived = client.put(
            f"/api/v1/matches/{match_id}/status", json={"status": "archived"}, headers=auth(bob)
        )
        assert archived.status_code == 200
        assert archived.json()["status"] == "archived"

        again = client.put(
            f"/api/v1/matches/{match_id}/status", json={"status": "blocked"}, headers=auth(bob)
        )
        assert again.status_code == 409

    def test_outsider_cannot_see_match(self, client):
        ada = create_user(client, "Ada")
        bob = create_user(client, "Bob")
        eve = create_user(client, "Eve")
        match_id = match_users(client, ada, bob)["match"]["matchId"]

        resp = client.get(f"/api/v1/matches/{match_id}", headers=auth(eve))

        assert resp.status_code == 404


class TestMessageRoutes:

    def test_message_lifecycle(self, client):
        ada = create_user(client, "Ada")
        bob = create_user(client, "Bob")
        match_users(client, ada, bob)
        conversation_id = open_conversation(client, ada, bob)
        assert open_conversation(client, bob, ada) == conversation_id

        sent = client.post(
            f"/api/v1/messages/{conversation_id}",
            json={"text": "hello", "attachments": [{"type": "link", "url": "https://example.dev"}]},
            headers=auth(ada),
        )
        assert sent.status_code == 201
        message = sent.json()
        assert message["status"] == "sent"
        assert message["receiverId"] == bob["id"]
        assert message["attachments"] == [
            {"type": "link", "url": "https://example.dev", "preview": None, "language": None}
        ]

        conversations = client.get("/api/v1/messages/conversations", headers=auth(bob)).json()
        assert conversations[0]["unreadCount"] == 1
        assert conversations[0]["lastMessage"]["id"] == message["id"]

        page = client.get(f"/api/v1/messages/{conversation_id}", headers=auth(bob)).json()
        assert page["pagination"] == {"page": 1, "limit": 50, "total": 1, "pages": 1}
        assert page["messages"][0]["text"] == "hello"

        read = client.post(f"/api/v1/messages/{conversation_id}/read", headers=auth(bob))
        assert read.json() == {"message": "Messages marked as read", "updated": 1}
        matches = client.get("/api/v1/matches/my-matches", headers=auth(bob)).json()
        assert matches[0]["unreadCount"] == 0

        forbidden = client.delete(f"/api/v1/messages/{message['id']}", headers=auth(bob))
        assert forbidden.status_code == 403
        deleted = client.delete(f"/api/v1/messages/{message['id']}", headers=auth(ada))
        assert deleted.json() == {"message": "Message deleted", "messageId": message["id"]}

    def test_unmatched_users_cannot_open_conversation(self, client):
        ada = create_user(client, "Ada")
        bob = create_user(client, "Bob")
        client.post(f"/api/v1/matches/like/{bob['id']}", headers=auth(ada))

        resp = client.get(f"/api/v1/messages/conversation/{bob['id']}", headers=auth(ada))

        assert resp.status_code == 403
        assert resp.json() == {"detail": "You can only message matched users"}

    def test_blank_message_is_bad_request(self, client):
        ada = create_user(client, "Ada")
        bob = create_user(client, "Bob")
        match_users(client, ada, bob)
        conversation_id = open_conversation(client, ada, bob)

        resp = client.post(f"/api/v1/messages/{conversation_id}", json={"text": "   "}, headers=auth(ada))

        assert resp.status_code == 400

    def test_rate_limited_sender(self, client):
        ada = create_user(client, "Ada")
        bob = create_user(client, "Bob")
        match_users(client, ada, bob)
        conversation_id = open_conversation(client, ada, bob)
        redis = AsyncMock()
        redis.incr.return_value = 31
        app.state.rate_limiter = MessageRateLimiter(redis, limit=30, window_seconds=60)

        resp = client.post(f"/api/v1/messages/{conversation_id}", json={"text": "spam"}, headers=auth(ada))

        assert resp.status_code == 429
        page = client.get(f"/api/v1/messages/{conversation_id}", headers=auth(ada)).json()
        assert page["pagination"]["total"] == 0


class TestRealtimeSocket:

    def test_rejects_bad_token(self, client):
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/ws?token=bogus"):
                pass
        assert exc.value.code == 1008

    def test_connected_frame(self, client):
        ada = create_user(client, "Ada")
        with client.websocket_connect(f"/ws?token={ada['accessToken']}") as ws:
            assert ws.receive_json() == {"event": "connected", "data": {"userId": ada["id"]}}

    def test_match_created_pushed_to_initiator(self, client):
        ada = create_user(client, "Ada")
        bob = create_user(client, "Bob")
        client.post(f"/api/v1/matches/like/{bob['id']}", headers=auth(ada))

        with client.websocket_connect(f"/ws?token={ada['accessToken']}") as ws:
            ws.receive_json()
            client.post(f"/api/v1/matches/like/{ada['id']}", headers=auth(bob))
            frame = ws.receive_json()

        assert frame["event"] == "matchCreated"
        assert frame["data"]["user"]["id"] == bob["id"]
        assert frame["data"]["message"] == "It's a match!"

    def test_joined_receiver_gets_room_and_personal_events(self, client):
        ada = create_user(client, "Ada")
        bob = create_user(client, "Bob")
        match_users(client, ada, bob)
        conversation_id = open_conversation(client, ada, bob)

        with client.websocket_connect(f"/ws?token={bob['accessToken']}") as ws:
            ws.receive_json()
            ws.send_json({"event": "join_conversation", "data": {"conversationId": conversation_id}})
            joined = ws.receive_json()
            client.post(f"/api/v1/messages/{conversation_id}", json={"text": "hi"}, headers=auth(ada))
            room_frame = ws.receive_json()
            personal_frame = ws.receive_json()

        assert joined == {
            "event": "joined_conversation",
            "data": {"conversationId": conversation_id, "delivered": 0},
        }
        assert room_frame["event"] == "receiveMessage"
        assert room_frame["data"]["text"] == "hi"
        assert personal_frame["event"] == "newMessage"
        assert personal_frame["data"]["conversationId"] == conversation_id

    def test_join_marks_pending_messages_delivered(self, client):
        ada = create_user(client, "Ada")
        bob = create_user(client, "Bob")
        match_users(client, ada, bob)
        conversation_id = open_conversation(client, ada, bob)
        client.post(f"/api/v1/messages/{conversation_id}", json={"text": "while you were out"}, headers=auth(ada))

        with client.websocket_connect(f"/ws?token={ada['accessToken']}") as ada_ws:
            ada_ws.receive_json()
            with client.websocket_connect(f"/ws?token={bob['accessToken']}") as bob_ws:
                bob_ws.receive_json()
                bob_ws.send_json({"event": "join_conversation", "data": {"conversationId": conversation_id}})
                assert bob_ws.receive_json()["data"]["delivered"] == 1
            status_frame = ada_ws.receive_json()

        assert status_frame["event"] == "message_status"
        assert status_frame["data"]["status"] == "delivered"

    def test_send_and_typing_over_socket(self, client):
        ada = create_user(client, "Ada")
        bob = create_user(client, "Bob")
        match_users(client, ada, bob)
        conversation_id = open_conversation(client, ada, bob)
        join = {"event": "join_conversation", "data": {"conversationId": conversation_id}}

        with client.websocket_connect(f"/ws?token={ada['accessToken']}") as ada_ws, \
                client.websocket_connect(f"/ws?token={bob['accessToken']}") as bob_ws:
            ada_ws.receive_json()
            bob_ws.receive_json()
            ada_ws.send_json(join)
            ada_ws.receive_json()
            bob_ws.send_json(join)
            bob_ws.receive_json()

            ada_ws.send_json({"event": "typing_start", "data": {"conversationId": conversation_id}})
            typing = bob_ws.receive_json()

            ada_ws.send_json({
                "event": "send_message",
                "data": {"conversationId": conversation_id, "text": "over the wire"},
            })
            echoed = ada_ws.receive_json()
            received = bob_ws.receive_json()

            bob_ws.send_json({"event": "mark_messages_read", "data": {"conversationId": conversation_id}})
            bob_ws.receive_json()  # newMessage on the personal room
            read = ada_ws.receive_json()

        assert typing == {
            "event": "user_typing",
            "data": {"conversationId": conversation_id, "userId": ada["id"]},
        }
        assert echoed["event"] == received["event"] == "receiveMessage"
        assert received["data"]["text"] == "over the wire"
        assert read == {
            "event": "messages_read",
            "data": {"conversationId": conversation_id, "by": bob["id"]},
        }

    def test_errors_come_back_as_message_error(self, client):
        ada = create_user(client, "Ada")
        with client.websocket_connect(f"/ws?token={ada['accessToken']}") as ws:
            ws.receive_json()
            ws.send_json({
                "event": "send_message",
                "data": {"conversationId": str(uuid.uuid4()), "text": "anyone?"},
            })
            error = ws.receive_json()
            ws.send_json({"event": "dance", "data": {}})
            unsupported = ws.receive_json()

        assert error == {
            "event": "message_error",
            "data": {"event": "send_message", "error": "Conversation not found"},
        }
        assert unsupported["event"] == "message_error"
