"""
Master availability slots and external calendar integrations.
"""

from typing import Any

from ...logging_config import get_logger
from ..constants import (
    INDEX_GSI1,
    PREFIX_AVAILABILITY,
    PREFIX_CALENDAR_INTEGRATION,
    PREFIX_USER,
)
from ..core.indexing import EntitySchema, IndexProjection, compose, constant
from ..exceptions import InvalidEntityError, ItemExistsError
from ..keys import availability_index_sort, availability_key, calendar_integration_key, user_pk
from ..models import (
    AvailabilityPatch,
    CalendarIntegrationPatch,
    Page,
    ScheduleType,
    SortCondition,
)
from ..utils import format_key
from .base import BaseRepository

logger = get_logger(__name__)

AVAILABILITY_SCHEMA = EntitySchema(
    name="availability",
    key=IndexProjection(None, compose(PREFIX_USER, "masterId"), compose(PREFIX_AVAILABILITY, "id")),
    indexes=(
        IndexProjection(
            INDEX_GSI1, compose(PREFIX_AVAILABILITY, "masterId"), availability_index_sort
        ),
    ),
    immutable=frozenset({"masterId"}),
    key_prefixes=(f"{PREFIX_USER}#", f"{PREFIX_AVAILABILITY}#"),
)

CALENDAR_INTEGRATION_SCHEMA = EntitySchema(
    name="calendar-integration",
    key=IndexProjection(
        None, compose(PREFIX_USER, "userId"), compose(PREFIX_CALENDAR_INTEGRATION, "provider")
    ),
    indexes=(
        IndexProjection(
            INDEX_GSI1,
            constant(PREFIX_CALENDAR_INTEGRATION),
            compose(PREFIX_USER, "userId", "provider"),
        ),
    ),
    immutable=frozenset({"userId", "provider"}),
    key_prefixes=(f"{PREFIX_USER}#", f"{PREFIX_CALENDAR_INTEGRATION}#"),
)


def validate_slot(slot: dict[str, Any]) -> None:
    """
    Check that a slot carries the fields its schedule type needs.

    Raises:
        InvalidEntityError: If the slot is incomplete or inconsistent
    """
    try:
        schedule_type = ScheduleType(slot.get("scheduleType"))
    except ValueError:
        raise InvalidEntityError(f"Unknown schedule type {slot.get('scheduleType')!r}") from None
    if schedule_type == ScheduleType.WEEKLY:
        day = slot.get("dayOfWeek")
        if day is None or not 0 <= int(day) <= 6:
            raise InvalidEntityError("Weekly slots need dayOfWeek between 0 and 6")
    elif not slot.get("specificDate"):
        raise InvalidEntityError("Date slots need specificDate")
    if not slot.get("startTime") or not slot.get("endTime"):
        raise InvalidEntityError("Slots need startTime and endTime")
    if slot["startTime"] >= slot["endTime"]:
        raise InvalidEntityError("Slot startTime must be before endTime")


class CalendarRepository(BaseRepository):
    # Availability

    def create_slot(
        self,
        master_id: str,
        schedule_type: ScheduleType | str,
        start_time: str,
        end_time: str,
        day_of_week: int | None = None,
        specific_date: str | None = None,
        is_available: bool = True,
    ) -> dict[str, Any]:
        attributes = {
            "id": self.id_factory(),
            "masterId": master_id,
            "scheduleType": ScheduleType(schedule_type).value,
            "dayOfWeek": day_of_week,
            "specificDate": specific_date,
            "startTime": start_time,
            "endTime": end_time,
            "isAvailable": is_available,
        }
        validate_slot(attributes)
        return self._create(AVAILABILITY_SCHEMA, attributes)

    def find_slot(self, master_id: str, slot_id: str) -> dict[str, Any] | None:
        return self._get(availability_key(master_id, slot_id))

    def find_slots(
        self,
        master_id: str,
        schedule_type: ScheduleType | str | None = None,
        available_only: bool = False,
    ) -> list[dict[str, Any]]:
        """A master's slots ordered by schedule type, day or date, then start time."""
        sort = None
        if schedule_type is not None:
            sort = SortCondition.begins_with(f"{ScheduleType(schedule_type).value}#")
        return self._query_all(
            format_key(PREFIX_AVAILABILITY, master_id),
            sort=sort,
            index_name=INDEX_GSI1,
            filters={"isAvailable": True} if available_only else None,
        )

    def update_slot(self, master_id: str, slot_id: str, patch: AvailabilityPatch) -> dict[str, Any]:
        """
        Update a slot; its position in the schedule index is recomputed.

        Raises:
            ItemNotFoundError: If the slot does not exist
            InvalidEntityError: If the merged slot is inconsistent
        """
        current = self._require(AVAILABILITY_SCHEMA, availability_key(master_id, slot_id))
        changes = patch.changes()
        validate_slot({**current, **changes})
        return self._update(
            AVAILABILITY_SCHEMA, availability_key(master_id, slot_id), changes, current=current
        )

    def delete_slot(self, master_id: str, slot_id: str) -> bool:
        """Hard-delete a slot. Returns whether it existed."""
        return self._delete(availability_key(master_id, slot_id)) is not None

    # Integrations

    def create_integration(
        self,
        user_id: str,
        provider: str,
        calendar_id: str | None = None,
        access_token_ref: str | None = None,
        sync_enabled: bool = True,
    ) -> dict[str, Any]:
        """
        Connect an external calendar; a previously disconnected one is reactivated.

        Raises:
            ItemExistsError: If an active integration with the provider exists
        """
        existing = self.find_integration(user_id, provider)
        if existing is not None:
            if existing.get("isActive"):
                raise ItemExistsError(f"User {user_id} already connected {provider}")
            return self.update_integration(
                user_id,
                provider,
                CalendarIntegrationPatch(
                    calendar_id=calendar_id,
                    access_token_ref=access_token_ref,
                    sync_enabled=sync_enabled,
                    is_active=True,
                ),
            )
        integration = self._create(
            CALENDAR_INTEGRATION_SCHEMA,
            {
                "userId": user_id,
                "provider": provider,
                "calendarId": calendar_id,
                "accessTokenRef": access_token_ref,
                "syncEnabled": sync_enabled,
                "isActive": True,
            },
        )
        logger.info(f"Connected {provider} calendar for user {user_id}")
        return integration

    def find_integration(self, user_id: str, provider: str) -> dict[str, Any] | None:
        return self._get(calendar_integration_key(user_id, provider))

    def find_user_integrations(self, user_id: str) -> list[dict[str, Any]]:
        return self._query_all(
            user_pk(user_id),
            sort=SortCondition.begins_with(f"{PREFIX_CALENDAR_INTEGRATION}#"),
            filters={"isActive": True},
        )

    def list_integrations(
        self, limit: int | None = None, start_token: str | None = None
    ) -> Page:
        """Active integrations with sync enabled, for the sync job."""
        return self._query(
            PREFIX_CALENDAR_INTEGRATION,
            index_name=INDEX_GSI1,
            filters={"isActive": True, "syncEnabled": True},
            limit=limit,
            start_token=start_token,
        )

    def update_integration(
        self, user_id: str, provider: str, patch: CalendarIntegrationPatch
    ) -> dict[str, Any]:
        return self._update(
            CALENDAR_INTEGRATION_SCHEMA, calendar_integration_key(user_id, provider), patch
        )

    def deactivate_integration(self, user_id: str, provider: str) -> dict[str, Any]:
        """Soft-delete an integration."""
        return self.update_integration(
            user_id, provider, CalendarIntegrationPatch(is_active=False, sync_enabled=False)
        )
