"""
Primary key composition for every entity family.

These are the on-disk key layouts; repositories use them for direct
lookups and the entity schemas derive the same strings from item attributes.
"""

from typing import Any

from .constants import (
    ATTR_PK,
    ATTR_SK,
    OPEN_DUE_DATE,
    PREFIX_APPLICATION,
    PREFIX_AVAILABILITY,
    PREFIX_BACKGROUND_CHECK,
    PREFIX_BADGE,
    PREFIX_CALENDAR_INTEGRATION,
    PREFIX_CARD,
    PREFIX_DISPUTE,
    PREFIX_MESSAGE,
    PREFIX_MILESTONE,
    PREFIX_NOTIFICATION,
    PREFIX_ORDER,
    PREFIX_PROJECT,
    PREFIX_ROOM,
    PREFIX_TIMELINE,
    PREFIX_TRANSACTION,
    PREFIX_USER,
    PREFIX_WS_CONNECTION,
    SK_DETAILS,
    SK_METADATA,
    SK_NOTIFICATION_SETTINGS,
    SK_PROFILE,
    SK_VERIFICATION,
    SK_WALLET,
)
from .utils import format_key

Key = dict[str, str]


def make_key(pk: str, sk: str) -> Key:
    return {ATTR_PK: pk, ATTR_SK: sk}


def user_pk(user_id: str) -> str:
    return format_key(PREFIX_USER, user_id)


def user_key(user_id: str) -> Key:
    return make_key(user_pk(user_id), SK_PROFILE)


def order_pk(order_id: str) -> str:
    return format_key(PREFIX_ORDER, order_id)


def order_key(order_id: str) -> Key:
    return make_key(order_pk(order_id), SK_METADATA)


def order_mirror_key(client_id: str, created_at: str, order_id: str) -> Key:
    return make_key(user_pk(client_id), format_key(PREFIX_ORDER, created_at, order_id))


def application_key(order_id: str, application_id: str) -> Key:
    return make_key(order_pk(order_id), format_key(PREFIX_APPLICATION, application_id))


def project_pk(project_id: str) -> str:
    return format_key(PREFIX_PROJECT, project_id)


def project_key(project_id: str) -> Key:
    return make_key(project_pk(project_id), SK_METADATA)


def project_mirror_key(user_id: str, created_at: str, project_id: str) -> Key:
    return make_key(user_pk(user_id), format_key(PREFIX_PROJECT, created_at, project_id))


def milestone_key(project_id: str, milestone_id: str) -> Key:
    return make_key(project_pk(project_id), format_key(PREFIX_MILESTONE, milestone_id))


def milestone_index_sort(item: dict[str, Any]) -> str | None:
    """Undated milestones sort after every dated one."""
    if not item.get("id"):
        return None
    return format_key(item.get("dueDate") or OPEN_DUE_DATE, item["id"])


def room_pk(room_id: str) -> str:
    return format_key(PREFIX_ROOM, room_id)


def room_key(room_id: str) -> Key:
    return make_key(room_pk(room_id), SK_METADATA)


def participant_key(user_id: str, room_id: str) -> Key:
    return make_key(user_pk(user_id), room_pk(room_id))


def message_sk(created_at: str, message_id: str) -> str:
    return format_key(PREFIX_MESSAGE, created_at, message_id)


def message_key(room_id: str, created_at: str, message_id: str) -> Key:
    return make_key(room_pk(room_id), message_sk(created_at, message_id))


def connection_key(connection_id: str) -> Key:
    return make_key(format_key(PREFIX_WS_CONNECTION, connection_id), SK_DETAILS)


def notification_key(user_id: str, created_at: str, notification_id: str) -> Key:
    return make_key(user_pk(user_id), format_key(PREFIX_NOTIFICATION, created_at, notification_id))


def notification_settings_key(user_id: str) -> Key:
    return make_key(user_pk(user_id), SK_NOTIFICATION_SETTINGS)


def wallet_key(user_id: str) -> Key:
    return make_key(user_pk(user_id), SK_WALLET)


def transaction_key(user_id: str, transaction_id: str) -> Key:
    return make_key(user_pk(user_id), format_key(PREFIX_TRANSACTION, transaction_id))


def card_key(user_id: str, card_id: str) -> Key:
    return make_key(user_pk(user_id), format_key(PREFIX_CARD, card_id))


def availability_key(master_id: str, slot_id: str) -> Key:
    return make_key(user_pk(master_id), format_key(PREFIX_AVAILABILITY, slot_id))


def availability_index_sort(item: dict[str, Any]) -> str | None:
    """``<scheduleType>#<date or dayOfWeek>#<startTime>#<id>``"""
    schedule_type = item.get("scheduleType")
    when = item.get("specificDate") if schedule_type == "SPECIFIC_DATE" else item.get("dayOfWeek")
    parts = [schedule_type, when, item.get("startTime"), item.get("id")]
    if any(part is None or part == "" for part in parts):
        return None
    return "#".join(str(part) for part in parts)


def calendar_integration_key(user_id: str, provider: str) -> Key:
    return make_key(user_pk(user_id), format_key(PREFIX_CALENDAR_INTEGRATION, provider))


def background_check_key(user_id: str, check_id: str) -> Key:
    return make_key(user_pk(user_id), format_key(PREFIX_BACKGROUND_CHECK, check_id))


def dispute_key(check_id: str, dispute_id: str) -> Key:
    return make_key(
        format_key(PREFIX_BACKGROUND_CHECK, check_id), format_key(PREFIX_DISPUTE, dispute_id)
    )


def timeline_key(dispute_id: str, performed_at: str, entry_id: str) -> Key:
    return make_key(
        format_key(PREFIX_DISPUTE, dispute_id), format_key(PREFIX_TIMELINE, performed_at, entry_id)
    )


def badge_key(user_id: str, badge_type: str) -> Key:
    return make_key(user_pk(user_id), format_key(PREFIX_BADGE, badge_type))


def verification_key(user_id: str) -> Key:
    return make_key(user_pk(user_id), SK_VERIFICATION)
