"""Tests for the /api/message REST endpoints.

These run the full application (lifespan included) through TestClient, so
realtime side effects can be observed on real WebSocket sessions.
"""
from datetime import datetime, timedelta

from chatapp.auth import USER_ID_HEADER
from chatapp.messages import PersistenceError, get_message_service


def _as(user_id):
    return {USER_ID_HEADER: user_id}


def _send(client, sender, recipient, text="hello", **extra):
    return client.post(
        f"/api/message/send/{recipient}",
        json={"message": text, **extra},
        headers=_as(sender),
    )


# =============================================================================
# Health
# =============================================================================


def test_health_check(api_client):
    response = api_client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_root_banner(api_client):
    response = api_client.get("/")
    assert response.status_code == 200
    assert "running" in response.json()["message"]


# =============================================================================
# Identity
# =============================================================================


def test_missing_user_header_is_rejected(api_client):
    response = api_client.post("/api/message/send/bob", json={"message": "hi"})
    assert response.status_code == 401


def test_blank_user_header_is_rejected(api_client):
    response = api_client.get("/api/message/get/bob", headers=_as("   "))
    assert response.status_code == 401


# =============================================================================
# Send / get / read
# =============================================================================


def test_send_returns_created_message(api_client):
    response = _send(api_client, "alice", "bob", "hi bob")

    assert response.status_code == 201
    body = response.json()
    assert body["senderId"] == "alice"
    assert body["receiverId"] == "bob"
    assert body["message"] == "hi bob"
    assert body["messageType"] == "text"
    assert body["status"] == "sent"
    assert body["reactions"] == []


def test_timestamps_carry_utc_offset(api_client):
    sent = _send(api_client, "alice", "bob").json()
    api_client.put("/api/message/read/alice", headers=_as("bob"))
    read = api_client.get("/api/message/get/bob", headers=_as("alice")).json()[0]

    for stamp in (sent["createdAt"], read["readAt"]):
        parsed = datetime.fromisoformat(stamp.replace("Z", "+00:00"))
        assert parsed.utcoffset() == timedelta(0)


def test_send_media_message(api_client):
    response = _send(
        api_client, "alice", "bob", "voice note",
        messageType="audio", fileUrl="https://files.example/a.ogg",
        fileName="a.ogg", fileSize=4096,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["messageType"] == "audio"
    assert body["fileName"] == "a.ogg"
    assert body["fileSize"] == 4096


def test_send_rejects_empty_message(api_client):
    response = _send(api_client, "alice", "bob", "")
    assert response.status_code == 422


def test_send_rejects_unknown_message_type(api_client):
    response = _send(api_client, "alice", "bob", "x", messageType="sticker")
    assert response.status_code == 422


def test_reply_to_unknown_message_is_404(api_client):
    response = _send(api_client, "alice", "bob", "re", replyTo="missing")

    assert response.status_code == 404
    assert response.json() == {"error": "Message not found"}


def test_conversation_lists_in_send_order(api_client):
    _send(api_client, "alice", "bob", "1")
    _send(api_client, "bob", "alice", "2")
    _send(api_client, "alice", "bob", "3")

    for viewer, peer in (("alice", "bob"), ("bob", "alice")):
        response = api_client.get(f"/api/message/get/{peer}", headers=_as(viewer))
        assert response.status_code == 200
        assert [m["message"] for m in response.json()] == ["1", "2", "3"]


def test_get_without_history_is_empty_list(api_client):
    response = api_client.get("/api/message/get/bob", headers=_as("alice"))
    assert response.status_code == 200
    assert response.json() == []


def test_get_marks_peer_messages_read(api_client):
    _send(api_client, "alice", "bob", "ping")

    response = api_client.get("/api/message/get/alice", headers=_as("bob"))

    message = response.json()[0]
    assert message["status"] == "read"
    assert message["readAt"] is not None


def test_mark_read_reports_count(api_client):
    _send(api_client, "alice", "bob", "a")
    _send(api_client, "alice", "bob", "b")

    first = api_client.put("/api/message/read/alice", headers=_as("bob"))
    second = api_client.put("/api/message/read/alice", headers=_as("bob"))

    assert first.status_code == 200
    assert first.json() == {"message": "Messages marked as read", "count": 2}
    assert second.json()["count"] == 0


def test_reply_includes_preview(api_client):
    original = _send(api_client, "alice", "bob", "lunch?").json()

    reply = _send(api_client, "bob", "alice", "sure", replyTo=original["id"]).json()

    assert reply["replyTo"]["id"] == original["id"]
    assert reply["replyTo"]["message"] == "lunch?"


# =============================================================================
# Reactions / edits
# =============================================================================


def test_reaction_toggle_round_trip(api_client):
    msg = _send(api_client, "alice", "bob").json()
    url = f"/api/message/reaction/{msg['id']}"

    added = api_client.post(url, json={"emoji": "👍"}, headers=_as("bob"))
    assert added.status_code == 200
    assert [(r["userId"], r["emoji"]) for r in added.json()["reactions"]] == [("bob", "👍")]

    removed = api_client.post(url, json={"emoji": "👍"}, headers=_as("bob"))
    assert removed.json()["reactions"] == []


def test_reaction_by_outsider_is_403(api_client):
    msg = _send(api_client, "alice", "bob").json()

    response = api_client.post(
        f"/api/message/reaction/{msg['id']}", json={"emoji": "👀"}, headers=_as("mallory")
    )

    assert response.status_code == 403
    assert "error" in response.json()


def test_reaction_on_unknown_message_is_404(api_client):
    response = api_client.post(
        "/api/message/reaction/missing", json={"emoji": "👍"}, headers=_as("bob")
    )
    assert response.status_code == 404
    assert response.json() == {"error": "Message not found"}


def test_reaction_emoji_is_validated(api_client):
    msg = _send(api_client, "alice", "bob").json()
    url = f"/api/message/reaction/{msg['id']}"

    assert api_client.post(url, json={"emoji": ""}, headers=_as("bob")).status_code == 422
    assert api_client.post(url, json={"emoji": "x" * 33}, headers=_as("bob")).status_code == 422


def test_sender_can_edit(api_client):
    msg = _send(api_client, "alice", "bob", "helo").json()

    response = api_client.put(
        f"/api/message/edit/{msg['id']}", json={"message": "hello"}, headers=_as("alice")
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "hello"
    assert body["isEdited"] is True
    assert body["editedAt"] is not None


def test_receiver_cannot_edit(api_client):
    msg = _send(api_client, "alice", "bob", "original").json()

    response = api_client.put(
        f"/api/message/edit/{msg['id']}", json={"message": "changed"}, headers=_as("bob")
    )

    assert response.status_code == 403
    history = api_client.get("/api/message/get/bob", headers=_as("alice")).json()
    assert history[0]["message"] == "original"


def test_edit_unknown_message_is_404(api_client):
    response = api_client.put(
        "/api/message/edit/missing", json={"message": "x"}, headers=_as("alice")
    )
    assert response.status_code == 404


def test_edit_rejects_empty_text(api_client):
    msg = _send(api_client, "alice", "bob").json()
    response = api_client.put(
        f"/api/message/edit/{msg['id']}", json={"message": ""}, headers=_as("alice")
    )
    assert response.status_code == 422


# =============================================================================
# Persistence failures
# =============================================================================


def test_persistence_failure_is_500(api_client, monkeypatch):
    store = get_message_service().store

    def broken(*args, **kwargs):
        raise PersistenceError("disk on fire")

    monkeypatch.setattr(store, "create_message", broken)

    response = _send(api_client, "alice", "bob")

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}


# =============================================================================
# Realtime side effects
# =============================================================================


def test_online_recipient_gets_new_message_and_delivered_status(api_client):
    with api_client.websocket_connect("/ws?userId=bob") as bob_ws:
        assert bob_ws.receive_json() == {"type": "getOnlineUsers", "data": ["bob"]}

        response = _send(api_client, "alice", "bob", "are you there?")

        assert response.json()["status"] == "delivered"
        frame = bob_ws.receive_json()
        assert frame["type"] == "newMessage"
        assert frame["data"]["message"] == "are you there?"
        assert frame["data"]["id"] == response.json()["id"]


def test_sender_is_told_when_messages_are_read(api_client):
    with api_client.websocket_connect("/ws?userId=alice") as alice_ws:
        assert alice_ws.receive_json()["type"] == "getOnlineUsers"
        _send(api_client, "alice", "bob", "read me")

        api_client.get("/api/message/get/alice", headers=_as("bob"))

        assert alice_ws.receive_json() == {"type": "messagesRead", "data": {"readBy": "bob"}}


def test_edit_is_pushed_to_both_participants(api_client):
    with api_client.websocket_connect("/ws?userId=alice") as alice_ws:
        alice_ws.receive_json()  # getOnlineUsers [alice]
        with api_client.websocket_connect("/ws?userId=bob") as bob_ws:
            alice_ws.receive_json()  # getOnlineUsers [alice, bob]
            bob_ws.receive_json()  # getOnlineUsers [alice, bob]

            msg = _send(api_client, "alice", "bob", "helo").json()
            assert bob_ws.receive_json()["type"] == "newMessage"

            api_client.put(
                f"/api/message/edit/{msg['id']}", json={"message": "hello"}, headers=_as("alice")
            )

            for ws in (alice_ws, bob_ws):
                frame = ws.receive_json()
                assert frame["type"] == "messageEdited"
                assert frame["data"]["message"] == "hello"


def test_reaction_is_pushed_to_sender(api_client):
    with api_client.websocket_connect("/ws?userId=alice") as alice_ws:
        alice_ws.receive_json()  # getOnlineUsers
        msg = _send(api_client, "alice", "bob").json()

        api_client.post(
            f"/api/message/reaction/{msg['id']}", json={"emoji": "🔥"}, headers=_as("bob")
        )

        assert alice_ws.receive_json() == {
            "type": "messageReaction",
            "data": {"messageId": msg["id"], "userId": "bob", "emoji": "🔥", "isAdded": True},
        }
