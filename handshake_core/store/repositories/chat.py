"""
Chat rooms, participant rows and messages.

A room keeps its participant ids on the room item and, denormalized, as one
row per participant (``USER#<userId>`` / ``ROOM#<roomId>``, GSI1 back to the
room). Membership changes write the room first, then the participant row.

Messages are room-scoped: ``ROOM#<roomId>`` / ``MSG#<createdAt>#<id>``, so a
forward query over the room partition returns them in creation order.
"""

from typing import Any

from ...logging_config import get_logger
from ..constants import INDEX_GSI1, PREFIX_MESSAGE, PREFIX_ROOM, PREFIX_USER, SK_METADATA
from ..core.indexing import EntitySchema, IndexProjection, compose, constant
from ..exceptions import InvalidEntityError, ItemNotFoundError
from ..keys import participant_key, room_key, room_pk, user_pk
from ..models import MessageType, Page, RoomPatch, SortCondition
from .base import BaseRepository

logger = get_logger(__name__)

ROOM_SCHEMA = EntitySchema(
    name="room",
    key=IndexProjection(None, compose(PREFIX_ROOM, "id"), constant(SK_METADATA)),
    key_prefixes=(f"{PREFIX_ROOM}#", SK_METADATA),
)

PARTICIPANT_SCHEMA = EntitySchema(
    name="room-participant",
    key=IndexProjection(None, compose(PREFIX_USER, "userId"), compose(PREFIX_ROOM, "roomId")),
    indexes=(
        IndexProjection(
            INDEX_GSI1, compose(PREFIX_ROOM, "roomId"), compose(PREFIX_USER, "userId")
        ),
    ),
    immutable=frozenset({"userId", "roomId"}),
    key_prefixes=(f"{PREFIX_USER}#", f"{PREFIX_ROOM}#"),
)

MESSAGE_SCHEMA = EntitySchema(
    name="message",
    key=IndexProjection(
        None, compose(PREFIX_ROOM, "roomId"), compose(PREFIX_MESSAGE, "createdAt", "id")
    ),
    immutable=frozenset({"roomId", "senderId"}),
    key_prefixes=(f"{PREFIX_ROOM}#", f"{PREFIX_MESSAGE}#"),
)

MESSAGE_PREVIEW_LENGTH = 100


class ChatRepository(BaseRepository):
    def create_room(
        self,
        participant_ids: list[str],
        name: str | None = None,
        order_id: str | None = None,
        project_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Create a room and one participant row per member.

        Raises:
            InvalidEntityError: If fewer than two distinct participants are given
        """
        participants = list(dict.fromkeys(participant_ids))
        if len(participants) < 2:
            raise InvalidEntityError("A room needs at least 2 participants")

        room = self._create(
            ROOM_SCHEMA,
            {
                "id": self.id_factory(),
                "name": name,
                "orderId": order_id,
                "projectId": project_id,
                "participants": participants,
                "isActive": True,
            },
        )
        for user_id in participants:
            self._saga_step(
                f"room {room['id']} participant row for {user_id}",
                lambda user_id=user_id: self._put_participant(room["id"], user_id),
            )
        logger.info(f"Created room {room['id']} with {len(participants)} participants")
        return room

    def find_room(self, room_id: str) -> dict[str, Any] | None:
        return self._get(room_key(room_id))

    def find_user_rooms(self, user_id: str) -> list[dict[str, Any]]:
        """Participant rows of every room the user belongs to."""
        return self._query_all(user_pk(user_id), sort=SortCondition.begins_with(f"{PREFIX_ROOM}#"))

    def find_room_participants(self, room_id: str) -> list[dict[str, Any]]:
        return self._query_all(room_pk(room_id), index_name=INDEX_GSI1)

    def add_participant(self, room_id: str, user_id: str) -> dict[str, Any]:
        """
        Add a member: room item first, then the participant row.

        Raises:
            ItemNotFoundError: If the room does not exist
        """
        room = self._require(ROOM_SCHEMA, room_key(room_id))
        if user_id not in room["participants"]:
            room = self._update(
                ROOM_SCHEMA,
                room_key(room_id),
                {"participants": [*room["participants"], user_id]},
                current=room,
            )
        self._saga_step(
            f"room {room_id} participant row for {user_id}",
            lambda: self._put_participant(room_id, user_id),
        )
        return room

    def remove_participant(self, room_id: str, user_id: str) -> dict[str, Any]:
        """
        Remove a member: room item first, then the participant row.

        Raises:
            ItemNotFoundError: If the room does not exist
        """
        room = self._require(ROOM_SCHEMA, room_key(room_id))
        if user_id in room["participants"]:
            room = self._update(
                ROOM_SCHEMA,
                room_key(room_id),
                {"participants": [uid for uid in room["participants"] if uid != user_id]},
                current=room,
            )
        self._saga_step(
            f"room {room_id} participant row removal for {user_id}",
            lambda: self._delete(participant_key(user_id, room_id)),
        )
        return room

    def update_room(self, room_id: str, patch: RoomPatch) -> dict[str, Any]:
        return self._update(ROOM_SCHEMA, room_key(room_id), patch)

    def create_message(
        self,
        room_id: str,
        sender_id: str,
        content: str,
        message_type: MessageType | str = MessageType.TEXT,
        reply_to_id: str | None = None,
    ) -> dict[str, Any]:
        return self._create(
            MESSAGE_SCHEMA,
            {
                "id": self.id_factory(),
                "roomId": room_id,
                "senderId": sender_id,
                "content": content,
                "type": MessageType(message_type).value,
                "replyToId": reply_to_id,
                "isEdited": False,
                "isDeleted": False,
                "readBy": [sender_id],
            },
        )

    def record_message(
        self,
        room_id: str,
        sender_id: str,
        content: str,
        message_type: MessageType | str = MessageType.TEXT,
        reply_to_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Write a message, then move the room's last-message fields to it.

        The room update is the second step; its failure is logged and the
        message stays.
        """
        message = self.create_message(room_id, sender_id, content, message_type, reply_to_id)
        self._saga_step(
            f"room {room_id} last message",
            lambda: self.update_room(
                room_id,
                RoomPatch(
                    last_message=content[:MESSAGE_PREVIEW_LENGTH],
                    last_message_at=message["createdAt"],
                    last_message_sender_id=sender_id,
                ),
            ),
        )
        return message

    def list_messages(
        self,
        room_id: str,
        limit: int | None = None,
        start_token: str | None = None,
        reverse: bool = False,
    ) -> Page:
        """Messages of a room in creation order (newest first with reverse=True)."""
        return self._query(
            room_pk(room_id),
            sort=SortCondition.begins_with(f"{PREFIX_MESSAGE}#"),
            limit=limit,
            scan_forward=not reverse,
            start_token=start_token,
        )

    def find_message(self, room_id: str, message_id: str) -> dict[str, Any] | None:
        """Locate a message by id within its room partition."""
        items = self._query_all(
            room_pk(room_id),
            sort=SortCondition.begins_with(f"{PREFIX_MESSAGE}#"),
            filters={"id": message_id},
        )
        return items[0] if items else None

    def edit_message(
        self,
        room_id: str,
        message_id: str,
        content: str,
        current: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Replace a message's content; ``current`` saves the lookup."""
        message = current or self._require_message(room_id, message_id)
        return self._update(
            MESSAGE_SCHEMA,
            _key_of(message),
            {"content": content, "isEdited": True, "editedAt": self._timestamp()},
            current=message,
        )

    def delete_message(
        self, room_id: str, message_id: str, current: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """
        Soft-delete a message: the row stays so the room history keeps its shape.

        ``current`` is the message row when the caller already read it.
        """
        message = current or self._require_message(room_id, message_id)
        return self._update(
            MESSAGE_SCHEMA,
            _key_of(message),
            {"content": "", "isDeleted": True, "deletedAt": self._timestamp()},
            current=message,
        )

    def mark_message_read(self, room_id: str, message_id: str, user_id: str) -> dict[str, Any]:
        message = self._require_message(room_id, message_id)
        if user_id in message.get("readBy", []):
            return message
        return self._update(
            MESSAGE_SCHEMA,
            _key_of(message),
            {"readBy": [*message.get("readBy", []), user_id]},
            current=message,
        )

    def mark_room_read(self, room_id: str, user_id: str) -> dict[str, Any]:
        """
        Record that the user has read the room up to now.

        Raises:
            ItemNotFoundError: If the user is not a participant
        """
        return self._update(
            PARTICIPANT_SCHEMA,
            participant_key(user_id, room_id),
            {"lastReadAt": self._timestamp()},
        )

    def _put_participant(self, room_id: str, user_id: str) -> None:
        now = self._timestamp()
        existing = self._get(participant_key(user_id, room_id))
        if existing is not None:
            return
        self._create(
            PARTICIPANT_SCHEMA,
            {
                "roomId": room_id,
                "userId": user_id,
                "joinedAt": now,
                "lastReadAt": now,
            },
            if_not_exists=False,
        )

    def _require_message(self, room_id: str, message_id: str) -> dict[str, Any]:
        message = self.find_message(room_id, message_id)
        if message is None:
            raise ItemNotFoundError(f"Message {message_id} not found in room {room_id}")
        return message


def _key_of(item: dict[str, Any]) -> dict[str, str]:
    return {"PK": item["PK"], "SK": item["SK"]}
