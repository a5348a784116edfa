"""
In-app notifications and per-user notification settings.
"""

import copy
from typing import Any

from ...logging_config import get_logger
from ..constants import (
    INDEX_GSI1,
    PREFIX_NOTIFICATION,
    PREFIX_NOTIFICATION_TYPE,
    PREFIX_USER,
    SK_NOTIFICATION_SETTINGS,
)
from ..core.indexing import EntitySchema, IndexProjection, compose, constant
from ..exceptions import ItemExistsError, ItemNotFoundError
from ..keys import notification_settings_key, user_pk
from ..models import NotificationSettingsPatch, Page, SortCondition
from ..utils import format_key
from .base import BaseRepository

logger = get_logger(__name__)

NOTIFICATION_SCHEMA = EntitySchema(
    name="notification",
    key=IndexProjection(
        None, compose(PREFIX_USER, "userId"), compose(PREFIX_NOTIFICATION, "createdAt", "id")
    ),
    indexes=(
        IndexProjection(
            INDEX_GSI1,
            compose(PREFIX_NOTIFICATION_TYPE, "type"),
            compose(None, "createdAt", "id"),
        ),
    ),
    immutable=frozenset({"userId"}),
    key_prefixes=(f"{PREFIX_USER}#", f"{PREFIX_NOTIFICATION}#"),
)

SETTINGS_SCHEMA = EntitySchema(
    name="notification-settings",
    key=IndexProjection(None, compose(PREFIX_USER, "userId"), constant(SK_NOTIFICATION_SETTINGS)),
    immutable=frozenset({"userId"}),
    key_prefixes=(f"{PREFIX_USER}#", SK_NOTIFICATION_SETTINGS),
)

DEFAULT_SETTINGS = {
    "pushEnabled": True,
    "emailEnabled": True,
    "smsEnabled": False,
    "telegramEnabled": True,
    "mutedTypes": [],
}

_NOTIFICATION_SORT = SortCondition.begins_with(f"{PREFIX_NOTIFICATION}#")


class NotificationRepository(BaseRepository):
    def create(
        self,
        user_id: str,
        notification_type: str,
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        return self._create(
            NOTIFICATION_SCHEMA,
            {
                "id": self.id_factory(),
                "userId": user_id,
                "type": notification_type,
                "title": title,
                "body": body,
                "data": data,
                "isRead": False,
            },
        )

    def list_for_user(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: int | None = None,
        start_token: str | None = None,
    ) -> Page:
        """A user's notifications, newest first."""
        return self._query(
            user_pk(user_id),
            sort=_NOTIFICATION_SORT,
            filters={"isRead": False} if unread_only else None,
            limit=limit,
            scan_forward=False,
            start_token=start_token,
        )

    def find_by_type(
        self, notification_type: str, limit: int | None = None, start_token: str | None = None
    ) -> Page:
        """Notifications of one type across users, newest first."""
        return self._query(
            format_key(PREFIX_NOTIFICATION_TYPE, notification_type),
            index_name=INDEX_GSI1,
            limit=limit,
            scan_forward=False,
            start_token=start_token,
        )

    def find(self, user_id: str, notification_id: str) -> dict[str, Any] | None:
        items = self._query_all(
            user_pk(user_id), sort=_NOTIFICATION_SORT, filters={"id": notification_id}
        )
        return items[0] if items else None

    def mark_read(self, user_id: str, notification_id: str) -> dict[str, Any]:
        """
        Mark one notification as read.

        Raises:
            ItemNotFoundError: If the notification does not exist
        """
        notification = self.find(user_id, notification_id)
        if notification is None:
            raise ItemNotFoundError(f"Notification {notification_id} not found")
        if notification.get("isRead"):
            return notification
        return self._update(
            NOTIFICATION_SCHEMA,
            {"PK": notification["PK"], "SK": notification["SK"]},
            {"isRead": True, "readAt": self._timestamp()},
            current=notification,
        )

    def mark_all_read(self, user_id: str) -> int:
        """Mark every unread notification as read. Returns how many changed."""
        unread = self._query_all(user_pk(user_id), sort=_NOTIFICATION_SORT, filters={"isRead": False})
        read_at = self._timestamp()
        for notification in unread:
            self._update(
                NOTIFICATION_SCHEMA,
                {"PK": notification["PK"], "SK": notification["SK"]},
                {"isRead": True, "readAt": read_at},
                current=notification,
            )
        logger.info(f"Marked {len(unread)} notifications read for user {user_id}")
        return len(unread)

    def count_unread(self, user_id: str) -> int:
        return len(
            self._query_all(user_pk(user_id), sort=_NOTIFICATION_SORT, filters={"isRead": False})
        )

    def delete(self, user_id: str, notification_id: str) -> bool:
        """Hard-delete a notification. Returns whether it existed."""
        notification = self.find(user_id, notification_id)
        if notification is None:
            return False
        return self._delete({"PK": notification["PK"], "SK": notification["SK"]}) is not None

    def get_settings(self, user_id: str) -> dict[str, Any] | None:
        return self._get(notification_settings_key(user_id))

    def get_or_create_settings(self, user_id: str) -> dict[str, Any]:
        settings = self.get_settings(user_id)
        if settings is not None:
            return settings
        try:
            defaults = copy.deepcopy(DEFAULT_SETTINGS)
            return self._create(SETTINGS_SCHEMA, {"userId": user_id, **defaults})
        except ItemExistsError:
            # Created concurrently by another request
            return self._require(SETTINGS_SCHEMA, notification_settings_key(user_id))

    def update_settings(self, user_id: str, patch: NotificationSettingsPatch) -> dict[str, Any]:
        """Update settings, creating the defaults first when the user has none."""
        current = self.get_or_create_settings(user_id)
        return self._update(
            SETTINGS_SCHEMA, notification_settings_key(user_id), patch, current=current
        )
