"""
Online/offline presence notifications to a user's chat contacts.
"""

from ..logging_config import get_logger
from ..store.repositories.chat import ChatRepository
from .broadcaster import Broadcaster

logger = get_logger(__name__)


def room_contacts(chat: ChatRepository, user_id: str) -> list[str]:
    """Users sharing at least one room with ``user_id``."""
    contacts: dict[str, None] = {}
    for membership in chat.find_user_rooms(user_id):
        room = chat.find_room(membership["roomId"])
        if room is None:
            continue
        for participant in room.get("participants", []):
            if participant != user_id:
                contacts[participant] = None
    return list(contacts)


class PresenceNotifier:
    """Registry ``on_offline`` callback telling a user's contacts they went offline."""

    def __init__(self, chat: ChatRepository, broadcaster: Broadcaster):
        self.chat = chat
        self.broadcaster = broadcaster

    def __call__(self, user_id: str) -> None:
        contacts = room_contacts(self.chat, user_id)
        if not contacts:
            return
        logger.info(f"User {user_id} is offline")
        self.broadcaster.broadcast(
            contacts,
            {"type": "userStatus", "data": {"userId": user_id, "isOnline": False}},
        )
