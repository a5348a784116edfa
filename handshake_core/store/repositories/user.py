"""
User accounts.

``USER#<id>`` / ``PROFILE``, looked up by phone (GSI1) and by telegram id
(GSI2, sparse: only users linked to telegram are projected).
"""

from typing import Any

from ...logging_config import get_logger
from ..constants import (
    INDEX_GSI1,
    INDEX_GSI2,
    PREFIX_PHONE,
    PREFIX_TELEGRAM,
    PREFIX_USER,
    SK_PROFILE,
)
from ..core.indexing import EntitySchema, IndexProjection, compose, constant
from ..exceptions import ItemExistsError
from ..keys import user_key
from ..models import Page, ScanParams, UserPatch
from ..utils import format_key
from .base import BaseRepository

logger = get_logger(__name__)

USER_SCHEMA = EntitySchema(
    name="user",
    key=IndexProjection(None, compose(PREFIX_USER, "id"), constant(SK_PROFILE)),
    indexes=(
        IndexProjection(INDEX_GSI1, compose(PREFIX_PHONE, "phone"), compose(PREFIX_USER, "id")),
        IndexProjection(
            INDEX_GSI2, compose(PREFIX_TELEGRAM, "telegramId"), compose(PREFIX_USER, "id")
        ),
    ),
    key_prefixes=(f"{PREFIX_USER}#", SK_PROFILE),
)


class UserRepository(BaseRepository):
    def create(
        self,
        phone: str,
        first_name: str,
        last_name: str | None = None,
        role: str = "CLIENT",
        telegram_id: str | None = None,
        email: str | None = None,
        city: str | None = None,
        avatar: str | None = None,
    ) -> dict[str, Any]:
        """
        Create a user.

        Raises:
            ItemExistsError: If another user already has this phone number
        """
        if self.find_by_phone(phone) is not None:
            raise ItemExistsError(f"User with phone {phone} already exists")

        user = self._create(
            USER_SCHEMA,
            {
                "id": self.id_factory(),
                "phone": phone,
                "firstName": first_name,
                "lastName": last_name,
                "role": role,
                "telegramId": telegram_id,
                "email": email,
                "city": city,
                "avatar": avatar,
                "isVerified": False,
                "isActive": True,
            },
        )
        logger.info(f"Created user {user['id']}")
        return user

    def find_by_id(self, user_id: str) -> dict[str, Any] | None:
        return self._get(user_key(user_id))

    def find_by_phone(self, phone: str) -> dict[str, Any] | None:
        return self._first(format_key(PREFIX_PHONE, phone), INDEX_GSI1)

    def find_by_telegram_id(self, telegram_id: str) -> dict[str, Any] | None:
        return self._first(format_key(PREFIX_TELEGRAM, telegram_id), INDEX_GSI2)

    def update(self, user_id: str, patch: UserPatch) -> dict[str, Any]:
        """
        Update a user profile.

        Raises:
            ItemNotFoundError: If the user does not exist
            ItemExistsError: If the new phone belongs to another user
        """
        if patch.phone is not None:
            owner = self.find_by_phone(patch.phone)
            if owner is not None and owner["id"] != user_id:
                raise ItemExistsError(f"User with phone {patch.phone} already exists")
        return self._update(USER_SCHEMA, user_key(user_id), patch)

    def deactivate(self, user_id: str) -> dict[str, Any]:
        """Soft-delete a user account."""
        return self._update(USER_SCHEMA, user_key(user_id), UserPatch(is_active=False))

    def list_telegram_users(self, limit: int | None = None, start_token: str | None = None) -> Page:
        """
        Active users linked to telegram, for broadcast lists.

        Full-table scan: only for admin-triggered paths.
        """
        logger.info("Scanning table for telegram users")
        return self.client.scan(
            ScanParams(
                pk_prefix=f"{PREFIX_USER}#",
                sk_prefix=SK_PROFILE,
                filters={"isActive": True},
                require_attributes=("telegramId",),
                limit=limit,
                start_token=start_token,
            )
        )
