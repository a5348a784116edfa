"""
WebSocket route handler for the chat API.

Routes ``$connect``, ``$disconnect`` and ``$default`` events from API
Gateway. ``$default`` bodies are ``{"action": ..., "data": {...}}``; every
inbound message refreshes the sender's connection expiry.
"""

import json
from functools import lru_cache
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from ..config import Settings
from ..logging_config import get_logger, setup_logging
from ..services import Services, build_services
from ..store.exceptions import ItemNotFoundError, StoreError
from ..store.models import MessageType
from ..store.repositories.base import strip_keys

logger = get_logger(__name__)

MAX_CONTENT_LENGTH = 5000


class InboundMessage(BaseModel):
    action: str
    data: dict[str, Any] = Field(default_factory=dict)


class SendMessageData(BaseModel):
    roomId: str = Field(min_length=1)
    content: str = Field(min_length=1, max_length=MAX_CONTENT_LENGTH)
    type: MessageType = MessageType.TEXT
    replyToId: str | None = None


class EditMessageData(BaseModel):
    roomId: str = Field(min_length=1)
    messageId: str = Field(min_length=1)
    content: str = Field(min_length=1, max_length=MAX_CONTENT_LENGTH)


class DeleteMessageData(BaseModel):
    roomId: str = Field(min_length=1)
    messageId: str = Field(min_length=1)


class TypingData(BaseModel):
    roomId: str = Field(min_length=1)
    isTyping: bool


class MarkReadData(BaseModel):
    roomId: str = Field(min_length=1)
    messageId: str | None = None


class RequestError(Exception):
    """Ends a request with the given status code."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code


def response(status_code: int, body: Any = None) -> dict[str, Any]:
    result: dict[str, Any] = {"statusCode": status_code}
    if body is not None:
        result["body"] = body if isinstance(body, str) else json.dumps(body, default=str)
    return result


class WebSocketHandler:
    def __init__(self, services: Services):
        self.services = services
        self.actions = {
            "sendMessage": self.send_message,
            "editMessage": self.edit_message,
            "deleteMessage": self.delete_message,
            "typing": self.typing,
            "markRead": self.mark_read,
            "ping": self.ping,
        }

    def handle(self, event: dict[str, Any]) -> dict[str, Any]:
        context = event.get("requestContext", {})
        route = context.get("routeKey", "$default")
        connection_id = context.get("connectionId")
        if not connection_id:
            return response(400, "Missing connection id")

        try:
            if route == "$connect":
                return self.connect(connection_id, context)
            if route == "$disconnect":
                return self.disconnect(connection_id)
            return self.dispatch(connection_id, context, event.get("body"))
        except RequestError as e:
            logger.info(f"{route} on {connection_id} rejected ({e.status_code}): {e}")
            return response(e.status_code, str(e))
        except StoreError as e:
            logger.error(f"{route} on {connection_id} failed: {e}")
            return response(500, "Internal error")

    def connect(self, connection_id: str, context: dict[str, Any]) -> dict[str, Any]:
        user_id = _authorized_user(context)
        if not user_id:
            logger.warning(f"Connection {connection_id} without authorized user")
            return response(401, "Unauthorized")
        self.services.registry.register(connection_id, user_id)
        return response(200)

    def disconnect(self, connection_id: str) -> dict[str, Any]:
        # Presence broadcast runs through the registry's on_offline callback
        self.services.registry.unregister(connection_id)
        return response(200)

    def dispatch(
        self, connection_id: str, context: dict[str, Any], body: str | None
    ) -> dict[str, Any]:
        registry = self.services.registry
        connection = registry.touch(connection_id)
        user_id = _authorized_user(context) or (connection or {}).get("userId")
        if not user_id:
            return response(401, "Unauthorized")

        try:
            message = InboundMessage.model_validate_json(body or "{}")
        except ValidationError:
            return response(400, "Invalid message")

        action = self.actions.get(message.action)
        if action is None:
            logger.warning(f"Unknown action '{message.action}' on {connection_id}")
            return response(400, "Invalid action")

        try:
            return action(user_id, message.data)
        except ValidationError as e:
            logger.info(f"Invalid {message.action} data: {e.error_count()} errors")
            return response(400, f"Invalid {message.action} data")

    def send_message(self, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
        payload = SendMessageData.model_validate(data)
        room = self._room_for(user_id, payload.roomId)
        message = self.services.chat.record_message(
            payload.roomId, user_id, payload.content, payload.type, payload.replyToId
        )
        self.services.broadcaster.broadcast(
            room["participants"], {"type": "message", "data": strip_keys(message)}
        )
        logger.info(f"Message {message['id']} sent to room {payload.roomId}")
        return response(200, {"messageId": message["id"]})

    def edit_message(self, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
        payload = EditMessageData.model_validate(data)
        room = self._room_for(user_id, payload.roomId)
        current = self._own_message(user_id, payload.roomId, payload.messageId)
        message = self.services.chat.edit_message(
            payload.roomId, payload.messageId, payload.content, current=current
        )
        self.services.broadcaster.broadcast(
            room["participants"], {"type": "messageEdited", "data": strip_keys(message)}
        )
        return response(200)

    def delete_message(self, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
        payload = DeleteMessageData.model_validate(data)
        room = self._room_for(user_id, payload.roomId)
        current = self._own_message(user_id, payload.roomId, payload.messageId)
        self.services.chat.delete_message(payload.roomId, payload.messageId, current=current)
        self.services.broadcaster.broadcast(
            room["participants"],
            {
                "type": "messageDeleted",
                "data": {"roomId": payload.roomId, "messageId": payload.messageId},
            },
        )
        return response(200)

    def typing(self, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
        payload = TypingData.model_validate(data)
        room = self._room_for(user_id, payload.roomId)
        others = [uid for uid in room["participants"] if uid != user_id]
        self.services.broadcaster.broadcast(
            others,
            {
                "type": "typing",
                "data": {"roomId": payload.roomId, "userId": user_id, "isTyping": payload.isTyping},
            },
        )
        return response(200)

    def mark_read(self, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
        payload = MarkReadData.model_validate(data)
        self._room_for(user_id, payload.roomId)
        chat = self.services.chat
        try:
            if payload.messageId:
                chat.mark_message_read(payload.roomId, payload.messageId, user_id)
            else:
                chat.mark_room_read(payload.roomId, user_id)
        except ItemNotFoundError as e:
            raise RequestError(404, str(e)) from e
        return response(200)

    def ping(self, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
        return response(200, {"type": "pong"})

    def _room_for(self, user_id: str, room_id: str) -> dict[str, Any]:
        room = self.services.chat.find_room(room_id)
        if room is None:
            raise RequestError(404, "Room not found")
        if user_id not in room.get("participants", []):
            raise RequestError(403, "Not a participant in this room")
        return room

    def _own_message(self, user_id: str, room_id: str, message_id: str) -> dict[str, Any]:
        message = self.services.chat.find_message(room_id, message_id)
        if message is None:
            raise RequestError(404, "Message not found")
        if message["senderId"] != user_id:
            raise RequestError(403, "Only the sender can change a message")
        return message


def _authorized_user(context: dict[str, Any]) -> str | None:
    authorizer = context.get("authorizer") or {}
    return authorizer.get("userId") or authorizer.get("principalId")


@lru_cache(maxsize=1)
def default_handler() -> WebSocketHandler:
    """Handler built once per process from the environment."""
    settings = Settings.from_env()
    setup_logging(settings.log_verbosity)
    return WebSocketHandler(build_services(settings))


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """AWS Lambda entry point for the WebSocket API."""
    return default_handler().handle(event)
