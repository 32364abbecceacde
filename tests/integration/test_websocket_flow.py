"""
End-to-end flows over the /ws endpoint with an in-process client.
"""

import pytest
from starlette.websockets import WebSocketDisconnect

from realtime_chat.schemas.message import ChatMessage


def receive_until(ws, event: str, limit: int = 10) -> dict:
    """Read frames until one with the given event arrives."""
    for _ in range(limit):
        frame = ws.receive_json()
        if frame["event"] == event:
            return frame
    raise AssertionError(f"{event} not received")


def join(ws, room_id: str, ack: int = 1) -> dict:
    ws.send_json({"event": "room:join", "data": {"roomId": room_id}, "ack": ack})
    users = ws.receive_json()
    assert users["event"] == "room:users"
    history = ws.receive_json()
    assert history["event"] == "room:history"
    reply = ws.receive_json()
    assert reply == {"event": "ack", "ack": ack, "data": {"success": True}}
    return users["data"]


class TestGuestSessions:

    def test_guest_join(self, client):
        with client.websocket_connect("/ws") as ws:
            users = join(ws, "general")

        assert users["roomId"] == "general"
        assert users["userCount"] == 1
        member = users["users"][0]
        assert member["isGuest"] is True
        assert member["userId"].startswith("guest_")
        assert member["displayName"] == member["userId"]

    def test_join_with_bare_room_id(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"event": "room:join", "data": "general"})
            assert ws.receive_json()["event"] == "room:users"

    def test_invalid_join_is_negatively_acknowledged(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"event": "room:join", "data": {"roomId": ""}, "ack": 9})
            reply = ws.receive_json()

        assert reply["event"] == "ack"
        assert reply["ack"] == 9
        assert reply["data"]["success"] is False
        assert reply["data"]["error"]


class TestTwoClients:

    def test_presence_and_messages(self, client):
        with client.websocket_connect("/ws") as alice:
            join(alice, "general")
            with client.websocket_connect("/ws") as bob:
                users = join(bob, "general")
                assert users["userCount"] == 2

                joined = receive_until(alice, "room:user-joined")
                assert joined["data"]["userCount"] == 2
                bob_id = joined["data"]["userId"]

                bob.send_json({"event": "message:send", "data": {"content": "hello"}})
                for ws in (alice, bob):
                    message = receive_until(ws, "message:new")["data"]
                    assert message["content"] == "hello"
                    assert message["userId"] == bob_id
                    assert message["roomId"] == "general"

                bob.send_json({"event": "typing:start"})
                typing = receive_until(alice, "typing:started")
                assert typing["data"]["userId"] == bob_id

            left = receive_until(alice, "room:user-left")
            assert left["data"] == {"userId": bob_id, "displayName": bob_id, "userCount": 1}

    def test_leave_is_acknowledged_and_room_removed(self, client):
        with client.websocket_connect("/ws") as ws:
            join(ws, "general")
            ws.send_json({"event": "room:leave", "data": {"roomId": "general"}, "ack": 2})
            assert ws.receive_json() == {"event": "ack", "ack": 2, "data": {"success": True}}

            assert client.app.state.chat.registry.get_room("general") is None

    def test_leave_notifies_remaining_member(self, client):
        with client.websocket_connect("/ws") as alice, client.websocket_connect("/ws") as bob:
            join(alice, "general")
            join(bob, "general")
            receive_until(alice, "room:user-joined")

            bob.send_json({"event": "room:leave", "data": "general", "ack": 3})
            receive_until(bob, "ack")

            left = receive_until(alice, "room:user-left")
            assert left["data"]["userCount"] == 1


class TestRobustness:

    def test_malformed_frames_are_ignored(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("this is not json")
            ws.send_json(["not", "an", "envelope"])
            ws.send_json({"event": "no:such-event"})
            ws.send_json({"data": "missing event"})
            users = join(ws, "general")

        assert users["userCount"] == 1

    def test_message_before_join_is_ignored(self, client, app_gateway):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"event": "message:send", "data": {"content": "too early"}})
            ws.send_json({"event": "typing:start"})
            join(ws, "general")

        assert app_gateway.messages == []

    def test_history_is_replayed_on_join(self, client, app_gateway):
        app_gateway.messages = [
            ChatMessage(room_id="general", timestamp=1, user_id="bob", display_name="bob", content="first"),
            ChatMessage(room_id="general", timestamp=2, user_id="bob", display_name="bob", content="second"),
        ]
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"event": "room:join", "data": {"roomId": "general"}})
            history = receive_until(ws, "room:history")

        assert [m["content"] for m in history["data"]["messages"]] == ["first", "second"]


class TestAuthenticatedSessions:

    def test_enforced_rejects_missing_credential(self, enforced_client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with enforced_client.websocket_connect("/ws") as ws:
                ws.receive_json()

        assert exc_info.value.code == 1008

    def test_enforced_rejects_invalid_credential(self, enforced_client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with enforced_client.websocket_connect("/ws?token=not.a.jwt") as ws:
                ws.receive_json()

        assert exc_info.value.code == 1008

    def test_enforced_accepts_token_query_parameter(self, enforced_client, make_token):
        token = make_token(sub="user-42", email="u42@example.com")
        with enforced_client.websocket_connect(f"/ws?token={token}") as ws:
            users = join(ws, "general")

        assert users["users"] == [{"userId": "user-42", "displayName": "user-42", "isGuest": False}]

    def test_authorization_header(self, client, make_token):
        headers = {"Authorization": f"Bearer {make_token(sub='user-7')}"}
        with client.websocket_connect("/ws", headers=headers) as ws:
            users = join(ws, "general")

        assert users["users"][0]["userId"] == "user-7"
        assert users["users"][0]["isGuest"] is False

    def test_permissive_downgrades_bad_token_to_guest(self, client):
        with client.websocket_connect("/ws?token=not.a.jwt") as ws:
            users = join(ws, "general")

        assert users["users"][0]["isGuest"] is True
