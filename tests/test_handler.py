"""Tests for the WebSocket route handler."""

import json
from unittest.mock import MagicMock, patch

import pytest

from handshake_core.realtime.handler import WebSocketHandler, default_handler, lambda_handler
from handshake_core.store.exceptions import StoreUnavailableError


def event(route, connection_id, user_id=None, body=None):
    context = {"routeKey": route, "connectionId": connection_id}
    if user_id is not None:
        context["authorizer"] = {"userId": user_id}
    result = {"requestContext": context}
    if body is not None:
        result["body"] = body if isinstance(body, str) else json.dumps(body)
    return result


def action(connection_id, name, data, user_id=None):
    return event("$default", connection_id, user_id, {"action": name, "data": data})


def sent_to(transport, connection_id):
    return [json.loads(payload) for cid, payload in transport.sent if cid == connection_id]


@pytest.fixture
def handler(services):
    return WebSocketHandler(services)


@pytest.fixture
def room(services, handler):
    room = services.chat.create_room(["client-1", "master-1"])
    handler.handle(event("$connect", "client-conn", "client-1"))
    handler.handle(event("$connect", "master-conn", "master-1"))
    return room


class TestConnectDisconnect:
    def test_connect_registers(self, handler, services):
        response = handler.handle(event("$connect", "c1", "u1"))
        assert response["statusCode"] == 200
        assert services.registry.resolve_connections(["u1"]) == ["c1"]

    def test_connect_without_user_rejected(self, handler, services):
        assert handler.handle(event("$connect", "c1"))["statusCode"] == 401
        assert services.registry.find("c1") is None

    def test_principal_id_accepted(self, handler, services):
        connect = event("$connect", "c1")
        connect["requestContext"]["authorizer"] = {"principalId": "u7"}
        assert handler.handle(connect)["statusCode"] == 200
        assert services.registry.find("c1")["userId"] == "u7"

    def test_missing_connection_id(self, handler):
        assert handler.handle({"requestContext": {"routeKey": "$connect"}})["statusCode"] == 400

    def test_disconnect_broadcasts_offline_status(self, handler, room, transport):
        assert handler.handle(event("$disconnect", "master-conn"))["statusCode"] == 200
        assert sent_to(transport, "client-conn") == [
            {"type": "userStatus", "data": {"userId": "master-1", "isOnline": False}}
        ]

    def test_disconnect_with_other_connection_stays_online(self, handler, room, transport):
        handler.handle(event("$connect", "master-phone", "master-1"))
        handler.handle(event("$disconnect", "master-conn"))
        assert sent_to(transport, "client-conn") == []


class TestSendMessage:
    def test_scenario_send_to_room(self, handler, room, services, transport):
        """Test that a sent message is stored, previewed and fanned out to the room."""
        response = handler.handle(
            action("client-conn", "sendMessage", {"roomId": room["id"], "content": "Hello"})
        )
        assert response["statusCode"] == 200
        message_id = json.loads(response["body"])["messageId"]

        stored = services.chat.find_message(room["id"], message_id)
        assert stored["content"] == "Hello"
        assert services.chat.find_room(room["id"])["lastMessage"] == "Hello"

        for connection_id in ("client-conn", "master-conn"):
            payloads = sent_to(transport, connection_id)
            assert [p["type"] for p in payloads] == ["message"]
            assert payloads[0]["data"]["id"] == message_id
            assert "PK" not in payloads[0]["data"]

    def test_stale_recipient_is_cleaned_up(self, handler, room, services, transport):
        """Test that a gone connection is reaped while the others still receive."""
        handler.handle(event("$connect", "master-old", "master-1"))
        transport.gone.add("master-old")

        response = handler.handle(
            action("client-conn", "sendMessage", {"roomId": room["id"], "content": "Hi"})
        )

        assert response["statusCode"] == 200
        assert len(sent_to(transport, "master-conn")) == 1
        assert services.registry.find("master-old") is None
        assert services.registry.resolve_connections(["master-1"]) == ["master-conn"]

    def test_user_from_connection_row(self, handler, room, transport):
        response = handler.handle(
            action("master-conn", "sendMessage", {"roomId": room["id"], "content": "Ok"}, user_id=None)
        )
        assert response["statusCode"] == 200
        assert sent_to(transport, "client-conn")[0]["data"]["senderId"] == "master-1"

    def test_non_participant_forbidden(self, handler, room, transport):
        handler.handle(event("$connect", "outsider-conn", "outsider"))
        response = handler.handle(
            action("outsider-conn", "sendMessage", {"roomId": room["id"], "content": "spam"})
        )
        assert response["statusCode"] == 403
        assert transport.sent == []

    def test_missing_room(self, handler, room):
        response = handler.handle(
            action("client-conn", "sendMessage", {"roomId": "missing", "content": "x"})
        )
        assert response["statusCode"] == 404

    @pytest.mark.parametrize(
        "data",
        [
            {"content": "no room"},
            {"roomId": "r", "content": ""},
            {"roomId": "r", "content": "x" * 5001},
            {"roomId": "r", "content": "x", "type": "STICKER"},
        ],
    )
    def test_invalid_payload(self, handler, room, data):
        assert handler.handle(action("client-conn", "sendMessage", data))["statusCode"] == 400

    def test_recipient_lookup_failure_still_acknowledges(
        self, handler, room, services, store, transport, monkeypatch
    ):
        """Test that a stored message is acknowledged when recipients cannot be resolved."""
        query_all = store.query_all

        def failing_connection_lookup(params):
            if params.index_name == "GSI1" and params.partition_value.startswith("USER#"):
                raise StoreUnavailableError("throttled")
            return query_all(params)

        monkeypatch.setattr(store, "query_all", failing_connection_lookup)
        response = handler.handle(
            action("client-conn", "sendMessage", {"roomId": room["id"], "content": "Hello"})
        )

        assert response["statusCode"] == 200
        message_id = json.loads(response["body"])["messageId"]
        assert services.chat.find_message(room["id"], message_id)["content"] == "Hello"
        assert transport.sent == []

    def test_store_failure_is_500(self, handler, room, store):
        store.fail_on("put_item", lambda item: item["SK"].startswith("MSG#"), StoreUnavailableError("down"))
        response = handler.handle(
            action("client-conn", "sendMessage", {"roomId": room["id"], "content": "Hello"})
        )
        assert response["statusCode"] == 500


class TestOtherActions:
    def send(self, handler, room, connection_id="client-conn", content="Hello"):
        response = handler.handle(
            action(connection_id, "sendMessage", {"roomId": room["id"], "content": content})
        )
        return json.loads(response["body"])["messageId"]

    def test_edit_by_sender(self, handler, room, transport):
        message_id = self.send(handler, room)
        response = handler.handle(
            action(
                "client-conn",
                "editMessage",
                {"roomId": room["id"], "messageId": message_id, "content": "Hello!"},
            )
        )
        assert response["statusCode"] == 200
        edited = sent_to(transport, "master-conn")[-1]
        assert edited["type"] == "messageEdited"
        assert edited["data"]["content"] == "Hello!"

    def test_edit_and_delete_look_up_the_message_once(self, handler, room, services, monkeypatch):
        message_id = self.send(handler, room)
        find_message = MagicMock(wraps=services.chat.find_message)
        monkeypatch.setattr(services.chat, "find_message", find_message)
        target = {"roomId": room["id"], "messageId": message_id}

        handler.handle(action("client-conn", "editMessage", {**target, "content": "Hello!"}))
        assert find_message.call_count == 1
        handler.handle(action("client-conn", "deleteMessage", target))
        assert find_message.call_count == 2
        assert services.chat.find_message(room["id"], message_id)["isDeleted"] is True

    def test_edit_by_other_participant_forbidden(self, handler, room):
        message_id = self.send(handler, room)
        response = handler.handle(
            action(
                "master-conn",
                "editMessage",
                {"roomId": room["id"], "messageId": message_id, "content": "hijack"},
            )
        )
        assert response["statusCode"] == 403

    def test_edit_missing_message(self, handler, room):
        response = handler.handle(
            action(
                "client-conn",
                "editMessage",
                {"roomId": room["id"], "messageId": "missing", "content": "x"},
            )
        )
        assert response["statusCode"] == 404

    def test_delete(self, handler, room, transport, services):
        message_id = self.send(handler, room)
        response = handler.handle(
            action("client-conn", "deleteMessage", {"roomId": room["id"], "messageId": message_id})
        )
        assert response["statusCode"] == 200
        assert sent_to(transport, "master-conn")[-1] == {
            "type": "messageDeleted",
            "data": {"roomId": room["id"], "messageId": message_id},
        }
        assert services.chat.find_message(room["id"], message_id)["isDeleted"] is True

    def test_typing_goes_to_others_only(self, handler, room, transport):
        response = handler.handle(
            action("client-conn", "typing", {"roomId": room["id"], "isTyping": True})
        )
        assert response["statusCode"] == 200
        assert sent_to(transport, "client-conn") == []
        assert sent_to(transport, "master-conn") == [
            {"type": "typing", "data": {"roomId": room["id"], "userId": "client-1", "isTyping": True}}
        ]

    def test_mark_read(self, handler, room, services):
        message_id = self.send(handler, room)
        response = handler.handle(
            action("master-conn", "markRead", {"roomId": room["id"], "messageId": message_id})
        )
        assert response["statusCode"] == 200
        assert "master-1" in services.chat.find_message(room["id"], message_id)["readBy"]
        assert handler.handle(action("master-conn", "markRead", {"roomId": room["id"]}))[
            "statusCode"
        ] == 200

    def test_mark_read_missing_message(self, handler, room):
        response = handler.handle(
            action("master-conn", "markRead", {"roomId": room["id"], "messageId": "missing"})
        )
        assert response["statusCode"] == 404

    def test_ping_refreshes_connection(self, handler, room, services, clock):
        before = services.registry.find("client-conn")["ttl"]
        clock.advance(60)
        response = handler.handle(action("client-conn", "ping", {}))
        assert json.loads(response["body"]) == {"type": "pong"}
        assert services.registry.find("client-conn")["ttl"] > before

    def test_unknown_action(self, handler, room):
        assert handler.handle(action("client-conn", "dance", {}))["statusCode"] == 400

    def test_malformed_body(self, handler, room):
        response = handler.handle(event("$default", "client-conn", "client-1", "not json"))
        assert response["statusCode"] == 400

    def test_unknown_connection_without_authorizer(self, handler):
        assert handler.handle(action("ghost", "ping", {}))["statusCode"] == 401

    def test_expired_connection_without_authorizer(self, handler, room, services, clock):
        clock.advance(1801)
        assert handler.handle(action("client-conn", "ping", {}))["statusCode"] == 401
        assert services.registry.find("client-conn") is None


def test_lambda_handler_uses_cached_handler(services):
    default_handler.cache_clear()
    with patch("handshake_core.realtime.handler.build_services", return_value=services) as build:
        with patch.dict("os.environ", {"WEBSOCKET_ENDPOINT": "https://ws.example.com/prod"}):
            lambda_handler(event("$connect", "c1", "u1"), None)
            lambda_handler(event("$connect", "c2", "u1"), None)
    build.assert_called_once()
    assert services.registry.resolve_connections(["u1"]) == ["c1", "c2"]
    default_handler.cache_clear()
